# SPDX-FileCopyrightText: 2025-present Raki Rahman <mdrakiburrahman@gmail.com>
#
# SPDX-License-Identifier: MIT

import json
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

import dacite
from azure.core.credentials import TokenCredential

from arm_template_deployment.static.transformers import StringTransformer

# ---------------------------------------------------------------------------- #
# ---------------------------- ARM CONSTANTS --------------------------------- #
# ---------------------------------------------------------------------------- #

DEFAULT_RESOURCE_MANAGER_ENDPOINT = "https://management.azure.com/"
DEFAULT_TIMEOUT = "20m"
DEFAULT_POLL_INTERVAL_SECONDS = 5.0
SUCCEEDED_PROVISIONING_STATE = "Succeeded"
HTTP_OK = 200

CREDENTIAL_FIELD_ALIASES = {
    "app_id": "client_id",
    "password": "client_secret",
    "tenant": "tenant_id",
}

# ---------------------------------------------------------------------------- #
# --------------------------- INPUT CONSTANTS -------------------------------- #
# ---------------------------------------------------------------------------- #

INPUT_ENVIRONMENT_VARIABLES = {
    "creds": "INPUT_CREDS",
    "subscription_id": "INPUT_SUBSCRIPTIONID",
    "resource_group_name": "INPUT_RESOURCEGROUPNAME",
    "management_group_id": "INPUT_MANAGEMENTGROUPID",
    "location": "INPUT_LOCATION",
    "template_location": "INPUT_TEMPLATELOCATION",
    "parameters": "INPUT_PARAMETERS",
    "override_parameters": "INPUT_OVERRIDEPARAMETERS",
    "deployment_name": "INPUT_DEPLOYMENTNAME",
    "deployment_mode": "INPUT_DEPLOYMENTMODE",
    "timeout": "INPUT_TIMEOUT",
    "auth_method": "INPUT_AUTHMETHOD",
    "operation": "INPUT_OPERATION",
}

GITHUB_ENVIRONMENT_VARIABLES = {
    "workflow": "GITHUB_WORKFLOW",
    "action": "GITHUB_ACTION",
    "actor": "GITHUB_ACTOR",
    "repository": "GITHUB_REPOSITORY",
    "commit": "GITHUB_SHA",
    "event_name": "GITHUB_EVENT_NAME",
    "event_path": "GITHUB_EVENT_PATH",
    "ref": "GITHUB_REF",
}

# ---------------------------------------------------------------------------- #
# ------------------------------- EXCEPTIONS --------------------------------- #
# ---------------------------------------------------------------------------- #


class DeploymentActionError(Exception):
    """Base class for every error that terminates a deployment run."""


class MalformedCredentialsError(DeploymentActionError, ValueError):
    """The credential text is not a JSON object of the expected shape."""


class AuthenticationError(DeploymentActionError):
    """The identity provider rejected the principal or could not be reached."""


class TemplateReadError(DeploymentActionError):
    """A template or parameters file could not be read."""


class TemplateParseError(DeploymentActionError, ValueError):
    """A template or parameters document is not a JSON object."""


class InvalidParameterSyntaxError(DeploymentActionError, ValueError):
    """An inline parameter is not a KEY=VALUE pair."""


class OutputDecodeError(DeploymentActionError):
    """A deployment output does not have the {type, value} shape."""


class TransportError(DeploymentActionError):
    """The request never produced an HTTP response."""


class DeploymentCancelledError(DeploymentActionError):
    """The run was interrupted or ran out of time."""


class RemoteOperationError(DeploymentActionError):
    """
    A remote ARM operation finished with a non-success status.

    Attributes:
        status: Status text reported by ARM (e.g. "400 Bad Request" or a provisioning state)
        message: Error message reported by ARM, if any
    """

    prefix = "Remote operation failed"

    def __init__(self, status: str, message: str | None = None):
        self.status = status
        self.message = message
        detail = f"{status}, {message}" if message else status
        super().__init__(f"{self.prefix}, {detail}")


class ValidationFailedError(RemoteOperationError):
    """Template validation was rejected by ARM."""

    prefix = "Template validation failed"


class DeploymentFailedError(RemoteOperationError):
    """Template deployment did not succeed."""

    prefix = "Template deployment failed"


# ---------------------------------------------------------------------------- #
# ------------------------------ DATA CLASSES -------------------------------- #
# ---------------------------------------------------------------------------- #


class Operation(Enum):
    """Enumeration of available operations."""

    DEPLOY = "deploy"
    VALIDATE = "validate"


class DeploymentMode(Enum):
    """Enumeration of ARM deployment modes."""

    INCREMENTAL = "Incremental"
    COMPLETE = "Complete"


class AuthMethod(Enum):
    """Enumeration of the ways a token credential can be obtained."""

    AUTO = "auto"
    SERVICE_PRINCIPAL = "servicePrincipal"
    ENVIRONMENT = "environment"
    CLI = "cli"


@dataclass(frozen=True)
class Principal:
    """Service principal parsed from the credential input."""

    client_id: str
    client_secret: str
    tenant_id: str
    subscription_id: str = ""
    resource_manager_endpoint_url: str = DEFAULT_RESOURCE_MANAGER_ENDPOINT
    active_directory_endpoint_url: str = ""

    def __repr__(self) -> str:
        return f"Principal(client_id={self.client_id!r}, tenant_id={self.tenant_id!r}, subscription_id={self.subscription_id!r})"

    @classmethod
    def from_json(cls, raw: str) -> "Principal":
        """
        Parse credential text into a principal.

        Accepts the `--sdk-auth` shape (clientId, clientSecret, tenantId, ...) and the
        `az ad sp create-for-rbac` shape (AppID, Password, Tenant). Unknown keys are ignored.

        Raises:
            MalformedCredentialsError: If the text is not a credential object
        """
        try:
            data = json.loads(raw)
        except (TypeError, json.JSONDecodeError) as e:
            raise MalformedCredentialsError(f"failed to parse the credentials passed, marshal error: {e}") from e

        if not isinstance(data, dict):
            raise MalformedCredentialsError(f"failed to parse the credentials passed, expected a JSON object but got {type(data).__name__}")

        normalized = {}
        for key, item in data.items():
            if item is None:
                continue
            snake_key = StringTransformer.camel_to_snake(key)
            normalized[CREDENTIAL_FIELD_ALIASES.get(snake_key, snake_key)] = item

        # An empty endpoint means the public cloud
        if not normalized.get("resource_manager_endpoint_url"):
            normalized.pop("resource_manager_endpoint_url", None)

        try:
            principal = dacite.from_dict(
                data_class=cls,
                data=normalized,
                config=dacite.Config(cast=[str]),
            )
        except dacite.DaciteError as e:
            raise MalformedCredentialsError(f"failed to parse the credentials passed: {e}") from e

        for name in ("client_id", "client_secret", "tenant_id"):
            if not getattr(principal, name):
                raise MalformedCredentialsError(f"failed to parse the credentials passed, {name} cannot be empty")

        return principal


@dataclass(frozen=True)
class ResourceGroupScope:
    """Deployment into a resource group."""

    resource_group_name: str


@dataclass(frozen=True)
class ManagementGroupScope:
    """Deployment at management group level."""

    management_group_id: str
    location: str


@dataclass(frozen=True)
class SubscriptionScope:
    """Deployment at subscription level."""

    subscription_id: str
    location: str = ""


DeploymentScope = ResourceGroupScope | ManagementGroupScope | SubscriptionScope


def select_scope(resource_group_name: str, management_group_id: str, subscription_id: str, location: str = "") -> DeploymentScope:
    """
    Pick the deployment scope from the first non-empty identifier.

    Resource group wins over management group, which wins over the subscription fallback.
    """
    if resource_group_name:
        return ResourceGroupScope(resource_group_name=resource_group_name)
    if management_group_id:
        return ManagementGroupScope(management_group_id=management_group_id, location=location)
    return SubscriptionScope(subscription_id=subscription_id, location=location)


@dataclass(frozen=True)
class DeploymentRequest:
    """A single template deployment request."""

    name: str
    scope: DeploymentScope
    template: dict[str, Any]
    parameters: dict[str, Any] = field(default_factory=dict)
    mode: DeploymentMode = DeploymentMode.INCREMENTAL


@dataclass
class ValidationResult:
    """Outcome of a successful template validation."""

    name: str
    status_code: int
    status: str
    provisioning_state: str | None = None


@dataclass
class DeploymentResult:
    """Outcome of a completed template deployment."""

    name: str
    status_code: int
    status: str
    provisioning_state: str | None = None
    outputs: Any = None


@dataclass
class DeploymentOutput:
    """A single output of an ARM template."""

    type: str
    value: str


@dataclass
class GitHubContext:
    """The inputs GitHub provides to every action by default."""

    workflow: str = ""
    action: str = ""
    actor: str = ""
    repository: str = ""
    commit: str = ""
    event_name: str = ""
    event_path: str = ""
    ref: str = ""
    running_as_action: bool = False


@dataclass
class DeploymentInputs:
    """Inputs of a deployment run."""

    credentials: Principal | None
    subscription_id: str
    resource_group_name: str
    management_group_id: str
    location: str
    template_location: str
    parameters: str
    override_parameters: str
    deployment_name: str
    deployment_mode: DeploymentMode
    timeout_seconds: float
    auth_method: AuthMethod


# ---------------------------------------------------------------------------- #
# ----------------------------- INTERFACES ----------------------------------- #
# ---------------------------------------------------------------------------- #


class EntryPointOperator(ABC):
    """
    Interface for entry point operators.
    """

    def __init__(self, operation_params: "OperationParams"):
        """
        Initialize the entry point operator with operation parameters.
        """
        self.operation_params = operation_params
        self.inputs = operation_params.inputs
        self.operation = operation_params.operation

    @abstractmethod
    async def execute(self) -> dict[str, DeploymentOutput]:
        """Execute the operation and return the flattened outputs."""
        pass


class Authenticator(ABC):
    """
    Interface for turning credential input into a token credential.
    """

    @abstractmethod
    def resolve(self, raw: str) -> Principal:
        """
        Parse raw credential text into a principal.

        Args:
            raw: JSON credential text

        Raises:
            MalformedCredentialsError: If the text is not a credential object
        """
        pass

    @abstractmethod
    def authorize(self, principal: Principal) -> TokenCredential:
        """
        Exchange a principal for a token credential.

        Raises:
            AuthenticationError: If the identity provider rejects the principal
        """
        pass

    @abstractmethod
    def authorize_from_environment(self) -> TokenCredential:
        """
        Obtain a token credential from environment variables or a managed identity.

        Raises:
            AuthenticationError: If no ambient identity is available
        """
        pass

    @abstractmethod
    def authorize_from_cli(self) -> TokenCredential:
        """
        Obtain a token credential from the logged in Azure CLI.
        """
        pass

    @abstractmethod
    def authenticate(self, inputs: DeploymentInputs) -> TokenCredential:
        """
        Obtain a token credential the way the inputs ask for.
        """
        pass


class ParameterLoader(ABC):
    """
    Interface for loading templates and parameter sets.
    """

    @abstractmethod
    def load_json(self, path: str) -> dict[str, Any]:
        """
        Read and parse one JSON object from a file.

        Raises:
            TemplateReadError: If the file cannot be read
            TemplateParseError: If the content is not a JSON object
        """
        pass

    @abstractmethod
    def load_template(self, location: str) -> dict[str, Any]:
        """
        Load a template from a path or an inline JSON string.
        """
        pass

    @abstractmethod
    def load_parameters(self, location: str) -> dict[str, Any]:
        """
        Load a parameter set from a .json path or inline KEY=VALUE pairs.

        Raises:
            InvalidParameterSyntaxError: If an inline pair is malformed
        """
        pass

    @abstractmethod
    def merge(self, base: dict[str, Any] | None, override: dict[str, Any] | None) -> dict[str, Any]:
        """
        Overlay override onto base, replacing whole values per key.
        """
        pass


class DeploymentManager(ABC):
    """
    Interface for validating and creating template deployments.
    """

    @abstractmethod
    def prepare(self, request: DeploymentRequest) -> DeploymentRequest:
        """
        Return a copy of the request with a unique deployment name.
        """
        pass

    @abstractmethod
    async def validate(self, request: DeploymentRequest) -> ValidationResult:
        """
        Validate a deployment against its scope.

        Raises:
            ValidationFailedError: If ARM rejects the template
            TransportError: If the request could not be sent
        """
        pass

    @abstractmethod
    async def create(self, request: DeploymentRequest) -> DeploymentResult:
        """
        Create a deployment and wait for it to complete.

        Raises:
            DeploymentFailedError: If the deployment does not succeed
            TransportError: If the request could not be sent
        """
        pass

    @abstractmethod
    async def deploy(self, request: DeploymentRequest) -> DeploymentResult:
        """
        Name, validate and create a deployment.
        """
        pass


class OutputParser(ABC):
    """
    Interface for decoding deployment outputs.
    """

    @abstractmethod
    def flatten(self, raw: Any) -> dict[str, DeploymentOutput]:
        """
        Decode raw outputs into typed outputs with textual values.

        Raises:
            OutputDecodeError: If an entry is not a {type, value} object
        """
        pass


# ---------------------------------------------------------------------------- #
# ---------------------------------------------------------------------------- #
# ---------------------------------------------------------------------------- #


class OperationParams:
    """
    Main operation parameters container with parsing and validation capabilities.
    """

    def __init__(
        self,
        raw_inputs: Mapping[str, str],
        operation: str,
        environ: Mapping[str, str] | None = None,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize OperationParams by converting raw input values.

        Args:
            raw_inputs: Raw input values keyed by input name (see INPUT_ENVIRONMENT_VARIABLES)
            operation: The operation to execute
            environ: Environment to read the GitHub context from, defaults to os.environ

        Raises:
            MalformedCredentialsError: If the credentials input cannot be parsed
            ValueError: If an input value is invalid
        """
        self.logger = logger or logging.getLogger(__name__)
        environ = os.environ if environ is None else environ

        try:
            self.operation = Operation(operation or Operation.DEPLOY.value)
            self.github = self._parse_github_context(environ)
            self.inputs = self._parse_inputs(raw_inputs)

        except MalformedCredentialsError as e:
            self.logger.error(f"Invalid credentials input: {e}")
            raise

        except ValueError as e:
            self.logger.error(f"Invalid input value: {e}")
            raise

    @staticmethod
    def collect_inputs(overrides: Mapping[str, str | None], environ: Mapping[str, str] | None = None) -> dict[str, str]:
        """
        Collect raw input values, preferring explicit values over INPUT_* environment variables.

        Args:
            overrides: Values given on the command line, None when not given
            environ: Environment to fall back to, defaults to os.environ

        Returns:
            dict[str, str]: Raw input values for every known input name
        """
        environ = os.environ if environ is None else environ
        raw_inputs = {}
        for name, variable in INPUT_ENVIRONMENT_VARIABLES.items():
            value = overrides.get(name)
            raw_inputs[name] = value if value is not None else environ.get(variable, "")
        return raw_inputs

    def validate(self) -> bool:
        """
        Validate the operation parameters.

        Returns:
            bool: True if all parameters are valid, False otherwise
        """
        return self._validate_deployment_params() and self._validate_scope_params() and self._validate_auth_params()

    def to_pretty_json(self) -> str:
        """
        Return a pretty formatted JSON representation of the inputs with secrets redacted.

        Returns:
            str: Pretty formatted JSON string of the inputs
        """
        data = asdict(self.inputs)
        if data["credentials"]:
            data["credentials"]["client_secret"] = "***"
        data["deployment_mode"] = self.inputs.deployment_mode.value
        data["auth_method"] = self.inputs.auth_method.value
        data["operation"] = self.operation.value
        return json.dumps(data, indent=2, ensure_ascii=False)

    # ---------------------------------------------------------------------------- #

    def _parse_inputs(self, raw: Mapping[str, str]) -> DeploymentInputs:
        """Parse deployment inputs."""
        return DeploymentInputs(
            credentials=self._parse_credentials(raw.get("creds", "")),
            subscription_id=raw.get("subscription_id", "").strip(),
            resource_group_name=raw.get("resource_group_name", "").strip(),
            management_group_id=raw.get("management_group_id", "").strip(),
            location=raw.get("location", "").strip(),
            template_location=raw.get("template_location", "").strip(),
            parameters=raw.get("parameters", ""),
            override_parameters=raw.get("override_parameters", ""),
            deployment_name=raw.get("deployment_name", "").strip(),
            deployment_mode=self._parse_deployment_mode(raw.get("deployment_mode", "")),
            timeout_seconds=self._parse_timeout(raw.get("timeout", "")),
            auth_method=self._parse_auth_method(raw.get("auth_method", "")),
        )

    def _parse_github_context(self, environ: Mapping[str, str]) -> GitHubContext:
        """Parse the default GitHub environment."""
        values = {name: environ.get(variable, "") for name, variable in GITHUB_ENVIRONMENT_VARIABLES.items()}
        return GitHubContext(**values, running_as_action=environ.get("GITHUB_ACTIONS", "false").strip().lower() == "true")

    @staticmethod
    def _parse_credentials(value: str) -> Principal | None:
        """Parse the credentials input, None when no credentials were given."""
        if not value or not value.strip():
            return None
        return Principal.from_json(value)

    @staticmethod
    def _parse_deployment_mode(value: str) -> DeploymentMode:
        """Parse the deployment mode, defaulting to Incremental."""
        if not value or not value.strip():
            return DeploymentMode.INCREMENTAL

        for mode in DeploymentMode:
            if mode.value.lower() == value.strip().lower():
                return mode

        allowed = ", ".join(mode.value for mode in DeploymentMode)
        raise ValueError(f"Unknown deployment mode '{value}', expected one of: {allowed}")

    @staticmethod
    def _parse_timeout(value: str) -> float:
        """Parse the timeout duration into seconds, defaulting to 20 minutes."""
        if not value or not value.strip():
            value = DEFAULT_TIMEOUT
        return StringTransformer.duration_to_seconds(value)

    @staticmethod
    def _parse_auth_method(value: str) -> AuthMethod:
        """Parse the authentication method, defaulting to auto."""
        if not value or not value.strip():
            return AuthMethod.AUTO

        for method in AuthMethod:
            if method.value.lower() == value.strip().lower():
                return method

        allowed = ", ".join(method.value for method in AuthMethod)
        raise ValueError(f"Unknown authentication method '{value}', expected one of: {allowed}")

    def _validate_deployment_params(self) -> bool:
        """Validate deployment parameters."""
        if not self.inputs.deployment_name:
            self.logger.error("deploymentName cannot be empty")
            return False
        if not self.inputs.template_location:
            self.logger.error("templateLocation cannot be empty")
            return False
        if self.inputs.timeout_seconds <= 0:
            self.logger.error(f"timeout must be positive: {self.inputs.timeout_seconds}")
            return False
        return True

    def _validate_scope_params(self) -> bool:
        """Validate scope parameters."""
        if not self.inputs.resource_group_name and self.inputs.management_group_id and not self.inputs.location:
            self.logger.error(f"location cannot be empty when deploying to management group: {self.inputs.management_group_id}")
            return False
        return True

    def _validate_auth_params(self) -> bool:
        """Validate authentication parameters."""
        if self.inputs.auth_method == AuthMethod.SERVICE_PRINCIPAL and self.inputs.credentials is None:
            self.logger.error("creds cannot be empty when authMethod is servicePrincipal")
            return False
        return True
