# SPDX-FileCopyrightText: 2025-present Raki Rahman <mdrakiburrahman@gmail.com>
#
# SPDX-License-Identifier: MIT

import functools
import json
import logging
import os
import sys
from collections.abc import Mapping
from subprocess import PIPE, Popen, TimeoutExpired

# Path a developer can set to point at a specific Azure CLI install
AZURE_CLI_PATH_VARIABLE = "AzureCLIPath"

# Default install locations, so that arbitrary entries of the caller's PATH are not used to run az
AZURE_CLI_DEFAULT_PATH = "/bin:/sbin:/usr/bin:/usr/local/bin"
AZURE_CLI_DEFAULT_PATH_WINDOWS = "{program_files_x86}\\Microsoft SDKs\\Azure\\CLI2\\wbin;{program_files}\\Microsoft SDKs\\Azure\\CLI2\\wbin"


class AzCli:
    """
    An Azure CLI wrapper.
    """

    def __init__(self, *, environ: Mapping[str, str] | None = None, logger: logging.Logger | None = None):
        """
        Initialize the AzCli wrapper.

        Args:
            environ: Base environment for the az process, defaults to os.environ
            logger: Optional logger instance. If None, creates a default logger.
        """
        self.environ = os.environ if environ is None else environ
        self.logger = logger or logging.getLogger(__name__)

    def run(self, commands: list[str], timeout: int | None = None) -> tuple[str, str]:
        """
        Execute an az command with the given arguments.

        Args:
            commands: List of command arguments, "az" is prepended if missing
            timeout: Optional timeout in seconds

        Returns:
            Tuple of (stdout, stderr) as strings

        Raises:
            RuntimeError: If the command fails
            TimeoutExpired: If command times out
        """
        if not commands or commands[0] != "az":
            commands = ["az", *commands]

        self.logger.debug(f"Executing command: {' '.join(commands)}")
        try:
            proc = Popen(commands, stdout=PIPE, stderr=PIPE, env=self.cli_environment(), shell=sys.platform == "win32")  # noqa: S603
        except FileNotFoundError as e:
            raise RuntimeError("Azure CLI not found, please install it or set AzureCLIPath") from e

        try:
            (stdout, stderr) = proc.communicate(timeout=timeout)
        except TimeoutExpired:
            self.logger.warning(f"Command execution timeout: {timeout}")
            proc.kill()
            proc.communicate()
            raise

        self.logger.debug(f"Exited command: {' '.join(commands)}")

        stdout_str = stdout.decode("utf-8", errors="replace")
        stderr_str = stderr.decode("utf-8", errors="replace")

        self.logger.debug(f"Stdout: {stdout_str}")
        self.logger.debug(f"Stderr: {stderr_str}")

        if proc.returncode != 0:
            raise RuntimeError(f"Invoking Azure CLI failed with the following error: {stderr_str.strip()}")

        return (stdout_str, stderr_str)

    def run_command(self, command: str, timeout: int | None = None) -> str:
        """
        Execute an Azure CLI command and return only stdout.

        Args:
            command: Azure CLI command to execute (without 'az' prefix)
            timeout: Optional timeout in seconds

        Returns:
            stdout as string

        Raises:
            RuntimeError: If the command fails
        """
        try:
            stdout, _ = self.run(command.split(), timeout)
        except RuntimeError:
            self.logger.error(f"Error running Azure CLI command: {command}")
            raise
        return stdout.strip()

    @functools.cache  # noqa: B019
    def get_active_subscription_id(self) -> str:
        """
        Get the id of the subscription the Azure CLI is currently logged in to.

        Returns:
            str: The subscription id

        Raises:
            RuntimeError: If the CLI call fails or returns no id
        """
        output = self.run_command("account show -o json", timeout=60)
        try:
            subscription_id = json.loads(output).get("id", "")
        except (json.JSONDecodeError, AttributeError) as e:
            raise RuntimeError(f"Unexpected output of 'az account show': {output}") from e

        if not subscription_id:
            raise RuntimeError("No active subscription found. Please run 'az login' or set subscriptionId")  # noqa: EM101

        return subscription_id

    def cli_environment(self) -> dict[str, str]:
        """
        Environment for the az process, with PATH restricted to AzureCLIPath and the default install locations.
        """
        env = dict(self.environ)
        cli_path = self.environ.get(AZURE_CLI_PATH_VARIABLE, "")
        if sys.platform == "win32":
            default_path = AZURE_CLI_DEFAULT_PATH_WINDOWS.format(
                program_files_x86=self.environ.get("ProgramFiles(x86)", ""),
                program_files=self.environ.get("ProgramFiles", ""),
            )
            env["PATH"] = f"{cli_path};{default_path}"
        else:
            env["PATH"] = f"{cli_path}:{AZURE_CLI_DEFAULT_PATH}"
        return env
