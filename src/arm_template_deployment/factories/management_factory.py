# SPDX-FileCopyrightText: 2025-present Raki Rahman <mdrakiburrahman@gmail.com>
#
# SPDX-License-Identifier: MIT

import logging
from abc import ABC, abstractmethod

from azure.core.credentials import TokenCredential
from azure.mgmt.resource import ResourceManagementClient

from arm_template_deployment.identity.authenticator import AzureAuthenticator, arm_scope
from arm_template_deployment.manager.arm.deployment import ArmDeploymentManager
from arm_template_deployment.manager.arm.outputs import ArmOutputParser
from arm_template_deployment.manager.arm.parameters import ArmParameterLoader
from arm_template_deployment.manager.azure.cli import AzCli
from arm_template_deployment.manager.github.actions import GitHubActions
from arm_template_deployment.operations.operation_interfaces import (
    Authenticator,
    DeploymentManager,
    OperationParams,
    OutputParser,
    ParameterLoader,
)


class ManagementFactory(ABC):
    """
    Factory for creating the collaborators of a deployment run.
    """

    @abstractmethod
    def create_azure_cli(self) -> AzCli:
        """
        Create a Azure CLI instance.
        """
        pass

    @abstractmethod
    def create_authenticator(self) -> Authenticator:
        """
        Create an Authenticator instance.
        """
        pass

    @abstractmethod
    def create_parameter_loader(self) -> ParameterLoader:
        """
        Create a Parameter Loader instance.
        """
        pass

    @abstractmethod
    def create_output_parser(self) -> OutputParser:
        """
        Create an Output Parser instance.
        """
        pass

    @abstractmethod
    def create_github_actions(self) -> GitHubActions:
        """
        Create a GitHub Actions output writer.
        """
        pass

    @abstractmethod
    def create_deployment_manager(self, credential: TokenCredential, subscription_id: str, endpoint: str) -> DeploymentManager:
        """
        Create a Deployment Manager bound to a credential and subscription.
        """
        pass


class ContainerizedManagementFactory(ManagementFactory):
    """Containerized implementation of the ManagementFactory."""

    def __init__(self, operation_params: "OperationParams"):
        """
        Initialize the factory with operation parameters.

        Args:
            operation_params: The operation parameters containing all configuration
        """
        self.operation_params = operation_params
        self.logger = logging.getLogger(__name__)

    def create_azure_cli(self) -> AzCli:
        return AzCli(logger=self.logger)

    def create_authenticator(self) -> Authenticator:
        return AzureAuthenticator(logger=self.logger)

    def create_parameter_loader(self) -> ParameterLoader:
        return ArmParameterLoader(logger=self.logger)

    def create_output_parser(self) -> OutputParser:
        return ArmOutputParser(logger=self.logger)

    def create_github_actions(self) -> GitHubActions:
        return GitHubActions(logger=self.logger)

    def create_deployment_manager(self, credential: TokenCredential, subscription_id: str, endpoint: str) -> DeploymentManager:
        client = ResourceManagementClient(
            credential,
            subscription_id,
            base_url=endpoint.rstrip("/"),
            credential_scopes=[arm_scope(endpoint)],
        )
        return ArmDeploymentManager(client, logger=self.logger)
