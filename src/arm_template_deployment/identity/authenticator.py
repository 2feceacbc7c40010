# SPDX-FileCopyrightText: 2025-present Raki Rahman <mdrakiburrahman@gmail.com>
#
# SPDX-License-Identifier: MIT

import logging
import os
from collections.abc import Mapping

from azure.core.credentials import TokenCredential
from azure.core.exceptions import AzureError
from azure.identity import (
    AzureCliCredential,
    ChainedTokenCredential,
    ClientSecretCredential,
    EnvironmentCredential,
    ManagedIdentityCredential,
)

from arm_template_deployment.identity.token_credential import StaticTokenCredential
from arm_template_deployment.operations.operation_interfaces import (
    DEFAULT_RESOURCE_MANAGER_ENDPOINT,
    AuthenticationError,
    AuthMethod,
    Authenticator,
    DeploymentInputs,
    Principal,
)

STATIC_TOKEN_ENVIRONMENT_VARIABLE = "AZURE_ACCESS_TOKEN"


def arm_scope(endpoint: str) -> str:
    """Token scope of a Resource Manager endpoint."""
    return f"{endpoint.rstrip('/')}/.default"


class AzureAuthenticator(Authenticator):
    """Concrete implementation of Authenticator backed by azure-identity."""

    def __init__(self, environ: Mapping[str, str] | None = None, logger: logging.Logger | None = None):
        """
        Initialize the authenticator.

        Args:
            environ: Environment to look for a static access token in, defaults to os.environ
            logger: Optional logger instance. If None, creates a default logger.
        """
        self.environ = os.environ if environ is None else environ
        self.logger = logger or logging.getLogger(__name__)

    def resolve(self, raw: str) -> Principal:
        return Principal.from_json(raw)

    def authorize(self, principal: Principal) -> TokenCredential:
        self.logger.info(f"Authenticating service principal {principal.client_id} in tenant {principal.tenant_id}")
        kwargs = {}
        if principal.active_directory_endpoint_url:
            kwargs["authority"] = principal.active_directory_endpoint_url

        try:
            credential = ClientSecretCredential(
                tenant_id=principal.tenant_id,
                client_id=principal.client_id,
                client_secret=principal.client_secret,
                **kwargs,
            )
        except ValueError as e:
            raise AuthenticationError(f"Invalid service principal configuration: {e}") from e

        return self._verify(credential, principal.resource_manager_endpoint_url, "service principal")

    def authorize_from_environment(self) -> TokenCredential:
        self.logger.info("Authenticating from environment variables or managed identity")
        credential = ChainedTokenCredential(EnvironmentCredential(), ManagedIdentityCredential())
        return self._verify(credential, DEFAULT_RESOURCE_MANAGER_ENDPOINT, "environment")

    def authorize_from_cli(self) -> TokenCredential:
        self.logger.info("Authenticating with the Azure CLI login")
        return self._verify(AzureCliCredential(), DEFAULT_RESOURCE_MANAGER_ENDPOINT, "Azure CLI")

    def authorize_from_token(self, token: str) -> TokenCredential:
        self.logger.info(f"Authenticating with the access token from {STATIC_TOKEN_ENVIRONMENT_VARIABLE}")
        return StaticTokenCredential(token)

    def authenticate(self, inputs: DeploymentInputs) -> TokenCredential:
        match inputs.auth_method:
            case AuthMethod.SERVICE_PRINCIPAL:
                if inputs.credentials is None:
                    raise AuthenticationError("No credentials given for service principal authentication")
                return self.authorize(inputs.credentials)

            case AuthMethod.ENVIRONMENT:
                return self.authorize_from_environment()

            case AuthMethod.CLI:
                return self.authorize_from_cli()

            case AuthMethod.AUTO:
                if inputs.credentials is not None:
                    return self.authorize(inputs.credentials)
                static_token = self.environ.get(STATIC_TOKEN_ENVIRONMENT_VARIABLE, "").strip()
                if static_token:
                    return self.authorize_from_token(static_token)
                return self.authorize_from_environment()

            case _:
                raise ValueError(f"Unknown authentication method: {inputs.auth_method}")

    def _verify(self, credential: TokenCredential, endpoint: str, source: str) -> TokenCredential:
        """
        Request one token so that a rejected identity fails before any deployment call.

        Raises:
            AuthenticationError: If no token could be obtained
        """
        try:
            credential.get_token(arm_scope(endpoint))
        except AzureError as e:
            raise AuthenticationError(f"Failed to authenticate with {source}: {e.message}") from e
        except ValueError as e:
            raise AuthenticationError(f"Failed to authenticate with {source}: {e}") from e

        self.logger.info(f"Authenticated with {source}")
        return credential
