#!/usr/bin/env python3
"""
ARM Template Deployment.
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from collections.abc import Coroutine, Mapping, Sequence
from datetime import datetime
from typing import Any

from arm_template_deployment.__about__ import get_build_info
from arm_template_deployment.manager.github.actions import GitHubActions
from arm_template_deployment.operations.operation_interfaces import (
    DeploymentCancelledError,
    DeploymentOutput,
    Operation,
    OperationParams,
)
from arm_template_deployment.operations.operators import CentralOperator

SECRET_VARIABLE_MARKERS = ("CREDS", "SECRET", "TOKEN", "PASSWORD", "KEY")

# ---------------------------------------------------------------------------- #
# ---------------------------------------------------------------------------- #
# ---------------------------------------------------------------------------- #


def setup_logging() -> str | None:
    """
    Configure logging, with a timestamp-based log file when LOG_DIRECTORY is set.

    Returns:
        str | None: The log filename that was created, if any.
    """
    log_level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_filename = None
    log_directory = os.getenv("LOG_DIRECTORY", "")
    if log_directory:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")  # noqa: DTZ005
        log_filename = os.path.join(log_directory, f"app_{timestamp}.log")
        handlers.append(logging.FileHandler(log_filename))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s",
        handlers=handlers,
    )
    return log_filename


def dump_env_vars(environ: Mapping[str, str] | None = None) -> None:
    """
    Log all environment variables for debugging purposes, masking secrets.
    """
    environ = os.environ if environ is None else environ
    for key, value in sorted(environ.items()):
        if any(marker in key.upper() for marker in SECRET_VARIABLE_MARKERS):
            value = "***"
        logging.debug(f"{key}={value}")


def parse_config(argv: Sequence[str] | None = None, environ: Mapping[str, str] | None = None) -> OperationParams:
    """
    Parse command line arguments, falling back to the INPUT_* environment variables of the action.

    Returns:
        OperationParams: The parsed operation parameters.
    """
    parser = argparse.ArgumentParser(description="Validates and deploys an ARM template.")
    parser.add_argument("--creds", type=str, help="Service principal credentials as JSON.")
    parser.add_argument("--subscription-id", type=str, help="Subscription to deploy to.")
    parser.add_argument("--resource-group-name", type=str, help="Resource group to deploy to.")
    parser.add_argument("--management-group-id", type=str, help="Management group to deploy to.")
    parser.add_argument("--location", type=str, help="Location of subscription or management group deployments.")
    parser.add_argument("--template-location", type=str, help="Path to the template, or the template as inline JSON.")
    parser.add_argument("--parameters", type=str, help="Path to a .json parameters file, or inline KEY=VALUE pairs.")
    parser.add_argument("--override-parameters", type=str, help="Parameters overriding --parameters, same format.")
    parser.add_argument("--deployment-name", type=str, help="Base name of the deployment.")
    parser.add_argument("--deployment-mode", type=str, help="Incremental (default) or Complete.")
    parser.add_argument("--timeout", type=str, help="Maximum duration of the run, e.g. 20m.")
    parser.add_argument("--auth-method", type=str, help="auto (default), servicePrincipal, environment or cli.")
    parser.add_argument("--operation", type=str, choices=[operation.value for operation in Operation], help="The operation to execute.")
    args = parser.parse_args(argv)

    raw_inputs = OperationParams.collect_inputs(vars(args), environ)
    logging.info(f"Template location: {raw_inputs['template_location']}")
    logging.info(f"Operation: {raw_inputs['operation'] or Operation.DEPLOY.value}")

    operation_params = OperationParams(raw_inputs, raw_inputs["operation"], environ=environ)
    if operation_params.validate():
        logging.info("Configuration validation passed")
        logging.debug(f"Configuration: {operation_params.to_pretty_json()}")
    else:
        logging.error("Configuration validation failed")
        error_message = "Invalid configuration parameters."
        raise ValueError(error_message)

    return operation_params


def setup_interrupt_handler(task: asyncio.Future, interrupted: asyncio.Event) -> bool:
    """
    Cancel the task on SIGINT.

    Returns:
        bool: Whether the handler could be installed on this platform.
    """

    def on_interrupt() -> None:
        logging.info("Received interrupt, exiting now...")
        interrupted.set()
        task.cancel()

    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, on_interrupt)
    except (NotImplementedError, RuntimeError):
        logging.debug("Signal handlers are not supported on this platform")
        return False
    return True


async def run_with_cancellation(coro: Coroutine[Any, Any, Any], timeout_seconds: float) -> Any:
    """
    Run a coroutine bounded by a timeout and cancelled by SIGINT.

    Raises:
        DeploymentCancelledError: If the timeout expired or the process was interrupted.
    """
    task = asyncio.ensure_future(asyncio.wait_for(coro, timeout=timeout_seconds))
    interrupted = asyncio.Event()
    handler_installed = setup_interrupt_handler(task, interrupted)

    try:
        return await task

    except asyncio.TimeoutError as e:
        error_message = f"Deployment did not finish within {timeout_seconds:g} seconds"
        raise DeploymentCancelledError(error_message) from e

    except asyncio.CancelledError as e:
        if interrupted.is_set():
            raise DeploymentCancelledError("Deployment was interrupted") from e
        raise

    finally:
        if handler_installed:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)


# ---------------------------------------------------------------------------- #
# ---------------------------------------------------------------------------- #
# ---------------------------------------------------------------------------- #


async def async_main(argv: Sequence[str] | None = None) -> dict[str, DeploymentOutput]:
    """
    Async entry point.
    """
    log_filename = setup_logging()
    logging.info(f"Starting ARM Template Deployment ({get_build_info()}){f' with logs at: {log_filename}' if log_filename else ''}.")
    dump_env_vars()
    operation_params = parse_config(argv)

    github = operation_params.github
    if github.running_as_action:
        logging.info(f"==== Running workflow {github.workflow} for {github.ref}@{github.commit} ====")

    outputs = await run_with_cancellation(CentralOperator(operation_params).execute(), operation_params.inputs.timeout_seconds)

    if github.running_as_action:
        logging.info("==== Successfully finished running the workflow ====")
    logging.info("ARM Template Deployment complete.")
    return outputs


def main() -> None:
    """
    Synchronous entry point for the CLI.
    """
    github_actions = GitHubActions()
    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        logging.error("Deployment was interrupted")
        github_actions.write_error("Deployment was interrupted")
        sys.exit(1)
    except Exception as e:
        logging.error(f"Deployment failed: {e}")
        github_actions.write_error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
