# SPDX-FileCopyrightText: 2025-present Raki Rahman <mdrakiburrahman@gmail.com>
#
# SPDX-License-Identifier: MIT

import asyncio
import dataclasses
import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any

from azure.core.exceptions import ClientAuthenticationError, HttpResponseError, ServiceRequestError, ServiceResponseError
from azure.core.polling import LROPoller
from azure.mgmt.resource import ResourceManagementClient
from azure.mgmt.resource.resources.models import Deployment, DeploymentProperties, ScopedDeployment

from arm_template_deployment.operations.operation_interfaces import (
    DEFAULT_POLL_INTERVAL_SECONDS,
    HTTP_OK,
    SUCCEEDED_PROVISIONING_STATE,
    AuthenticationError,
    DeploymentFailedError,
    DeploymentManager,
    DeploymentRequest,
    DeploymentResult,
    ManagementGroupScope,
    RemoteOperationError,
    ResourceGroupScope,
    SubscriptionScope,
    TransportError,
    ValidationFailedError,
    ValidationResult,
)
from arm_template_deployment.static.threads import run_in_daemon_thread

VALIDATE_OPERATION = "validate"
CREATE_OPERATION = "create_or_update"


@dataclass
class SdkResponse:
    """Deserialized body of a finished operation together with its final HTTP status."""

    body: Any
    status_code: int
    reason: str = ""

    @property
    def status(self) -> str:
        return f"{self.status_code} {self.reason}".strip()


def capture_response(pipeline_response: Any, deserialized: Any, headers: Any) -> SdkResponse:
    """Response hook passed to the SDK as `cls` so the final HTTP status survives deserialization."""
    http_response = pipeline_response.http_response
    return SdkResponse(body=deserialized, status_code=http_response.status_code, reason=getattr(http_response, "reason", "") or "")


class ArmDeploymentManager(DeploymentManager):
    """Concrete implementation of DeploymentManager for Azure Resource Manager."""

    def __init__(
        self,
        client: ResourceManagementClient,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize the ARM deployment manager.

        Args:
            client: Resource management client bound to a credential and subscription
            poll_interval_seconds: How often to check whether a long-running operation finished
            logger: Optional logger instance. If None, creates a default logger.
        """
        self.client = client
        self.poll_interval_seconds = poll_interval_seconds
        self.logger = logger or logging.getLogger(__name__)

    def prepare(self, request: DeploymentRequest) -> DeploymentRequest:
        unique_id = str(uuid.uuid4())
        name = f"{request.name}-{unique_id}"
        self.logger.info(f"Creating deployment {request.name} with uuid {unique_id} -> {name}, mode: {request.mode.value}")
        return dataclasses.replace(request, name=name)

    async def validate(self, request: DeploymentRequest) -> ValidationResult:
        self.logger.info(f"Validating deployment {request.name} at {self.describe_scope(request)}")

        with self._translate_errors(ValidationFailedError):
            response = await self._run(VALIDATE_OPERATION, request)

        error_message = self._error_message(getattr(response.body, "error", None))
        if response.status_code != HTTP_OK or error_message:
            raise ValidationFailedError(response.status, error_message)

        properties = getattr(response.body, "properties", None)
        self.logger.info("Validation finished.")
        return ValidationResult(
            name=request.name,
            status_code=response.status_code,
            status=response.status,
            provisioning_state=getattr(properties, "provisioning_state", None),
        )

    async def create(self, request: DeploymentRequest) -> DeploymentResult:
        self.logger.info(f"Creating deployment {request.name} at {self.describe_scope(request)}")

        with self._translate_errors(DeploymentFailedError):
            response = await self._run(CREATE_OPERATION, request)

        properties = getattr(response.body, "properties", None)
        provisioning_state = getattr(properties, "provisioning_state", None)
        if response.status_code != HTTP_OK:
            raise DeploymentFailedError(response.status, self._error_message(getattr(properties, "error", None)))
        if provisioning_state and provisioning_state != SUCCEEDED_PROVISIONING_STATE:
            raise DeploymentFailedError(provisioning_state, self._error_message(getattr(properties, "error", None)))

        self.logger.info("Template deployment finished.")
        return DeploymentResult(
            name=getattr(response.body, "name", None) or request.name,
            status_code=response.status_code,
            status=response.status,
            provisioning_state=provisioning_state,
            outputs=getattr(properties, "outputs", None),
        )

    async def deploy(self, request: DeploymentRequest) -> DeploymentResult:
        prepared = self.prepare(request)
        await self.validate(prepared)
        return await self.create(prepared)

    @staticmethod
    def describe_scope(request: DeploymentRequest) -> str:
        match request.scope:
            case ResourceGroupScope(resource_group_name=resource_group_name):
                return f"resource group {resource_group_name}"
            case ManagementGroupScope(management_group_id=management_group_id):
                return f"management group {management_group_id}"
            case SubscriptionScope(subscription_id=subscription_id):
                return f"subscription {subscription_id}"
            case _:
                raise ValueError(f"Unknown deployment scope: {request.scope}")

    # ---------------------------------------------------------------------------- #

    async def _run(self, operation: str, request: DeploymentRequest) -> SdkResponse:
        """Start a long-running operation and wait for its result without blocking the event loop."""
        poller = await run_in_daemon_thread(self._begin, operation, request)
        return await self._wait_for_completion(poller, request.name)

    def _begin(self, operation: str, request: DeploymentRequest) -> LROPoller:
        """
        Call the SDK operation matching the request's scope.

        Args:
            operation: Either "validate" or "create_or_update"
            request: The deployment request

        Returns:
            LROPoller: Poller of the started operation
        """
        properties = DeploymentProperties(
            mode=request.mode.value,
            template=request.template,
            parameters=request.parameters,
        )

        match request.scope:
            case ResourceGroupScope(resource_group_name=resource_group_name):
                method_name = f"begin_{operation}"
                args = (resource_group_name, request.name, Deployment(properties=properties))

            case ManagementGroupScope(management_group_id=management_group_id, location=location):
                method_name = f"begin_{operation}_at_management_group_scope"
                args = (management_group_id, request.name, ScopedDeployment(location=location, properties=properties))

            case SubscriptionScope(location=location):
                method_name = f"begin_{operation}_at_subscription_scope"
                args = (request.name, Deployment(location=location or None, properties=properties))

            case _:
                raise ValueError(f"Unknown deployment scope: {request.scope}")

        self.logger.debug(f"Calling deployments.{method_name} for {request.name}")
        return getattr(self.client.deployments, method_name)(*args, cls=capture_response)

    async def _wait_for_completion(self, poller: LROPoller, name: str) -> SdkResponse:
        """The SDK polls in its own thread; only the completion check happens here."""
        try:
            while not poller.done():
                await asyncio.sleep(self.poll_interval_seconds)
        except asyncio.CancelledError:
            self.logger.warning(f"Stopped waiting for deployment {name}, the remote operation is not rolled back")
            raise

        return poller.result()

    @contextmanager
    def _translate_errors(self, failure: type[RemoteOperationError]) -> Iterator[None]:
        """Translate SDK exceptions into deployment errors."""
        try:
            yield
        except ClientAuthenticationError as e:
            raise AuthenticationError(f"Request was not authorized: {e.message}") from e
        except (ServiceRequestError, ServiceResponseError) as e:
            raise TransportError(f"Failed to reach Azure Resource Manager: {e.message}") from e
        except HttpResponseError as e:
            status = f"{e.status_code} {e.reason or ''}".strip() if e.status_code else "Failed"
            raise failure(status, e.message) from e

    @staticmethod
    def _error_message(error: Any) -> str | None:
        """Flatten an ARM error response and its details into one message."""
        if error is None:
            return None

        message = getattr(error, "message", None) or getattr(error, "code", None) or str(error)
        details = [getattr(detail, "message", None) for detail in getattr(error, "details", None) or []]
        details = [detail for detail in details if detail]
        if details:
            message = f"{message} ({'; '.join(details)})"
        return message
