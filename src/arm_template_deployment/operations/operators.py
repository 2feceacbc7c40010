# SPDX-FileCopyrightText: 2025-present Raki Rahman <mdrakiburrahman@gmail.com>
#
# SPDX-License-Identifier: MIT

import logging

from arm_template_deployment.factories.management_factory import ContainerizedManagementFactory, ManagementFactory
from arm_template_deployment.manager.github.actions import GitHubActions
from arm_template_deployment.operations.operation_interfaces import (
    DEFAULT_RESOURCE_MANAGER_ENDPOINT,
    AuthMethod,
    Authenticator,
    DeploymentManager,
    DeploymentOutput,
    DeploymentRequest,
    EntryPointOperator,
    Operation,
    OperationParams,
    OutputParser,
    ParameterLoader,
    select_scope,
)
from arm_template_deployment.static.threads import run_in_daemon_thread

DEPLOYMENT_NAME_OUTPUT = "deploymentName"


class CentralOperator(EntryPointOperator):
    """Central operator that handles all operations."""

    def __init__(self, operation_params: "OperationParams", management_factory: ManagementFactory | None = None):
        """
        Creates a new instance of the CentralOperator.

        Args:
            operation_params: The operation parameters containing all configuration
            management_factory: Factory for the collaborators, defaults to the containerized factory
        """
        super().__init__(operation_params)
        self.logger = logging.getLogger(__name__)
        self.management_factory: ManagementFactory = management_factory or ContainerizedManagementFactory(operation_params)
        self.authenticator: Authenticator = self.management_factory.create_authenticator()
        self.parameter_loader: ParameterLoader = self.management_factory.create_parameter_loader()
        self.output_parser: OutputParser = self.management_factory.create_output_parser()
        self.github_actions: GitHubActions = self.management_factory.create_github_actions()

    async def execute(self) -> dict[str, DeploymentOutput]:
        """Execute the operation based on the operation type."""
        try:
            self.logger.info(f"Executing operation: {self.operation.value}")

            match self.operation:
                case Operation.DEPLOY:
                    outputs = await self._execute_deploy()

                case Operation.VALIDATE:
                    outputs = await self._execute_validate()

                case _:
                    error_message = f"Unknown operation: {self.operation}"
                    raise ValueError(error_message)

            self.logger.info(f"Successfully completed operation: {self.operation.value}")
            return outputs

        except Exception as e:
            self.logger.error(f"Failed to execute operation {self.operation.value}: {e}")
            raise

    # ---------------------------------------------------------------------------- #

    async def _execute_deploy(self) -> dict[str, DeploymentOutput]:
        """
        Execute deploy operation: validate, create and publish outputs.
        """
        deployment_manager, request = await self._prepare_deployment()
        result = await deployment_manager.deploy(request)
        outputs = self.output_parser.flatten(result.outputs)

        self.github_actions.set_outputs({DEPLOYMENT_NAME_OUTPUT: result.name, **{name: output.value for name, output in outputs.items()}})

        self.logger.info(f"Deployment {result.name} finished with {len(outputs)} outputs")
        return outputs

    async def _execute_validate(self) -> dict[str, DeploymentOutput]:
        """
        Execute validate operation: validate only, nothing is created.
        """
        deployment_manager, request = await self._prepare_deployment()
        validation = await deployment_manager.validate(deployment_manager.prepare(request))
        self.github_actions.set_output(DEPLOYMENT_NAME_OUTPUT, validation.name)
        return {}

    async def _prepare_deployment(self) -> tuple[DeploymentManager, DeploymentRequest]:
        """
        Authenticate, load the template and parameters and build the request.
        """
        credentials = self.inputs.credentials
        if credentials is not None and self.operation_params.github.running_as_action:
            self.github_actions.add_mask(credentials.client_secret)

        token_credential = await run_in_daemon_thread(self.authenticator.authenticate, self.inputs)

        template = self.parameter_loader.load_template(self.inputs.template_location)
        parameters = self.parameter_loader.merge(
            self.parameter_loader.load_parameters(self.inputs.parameters),
            self.parameter_loader.load_parameters(self.inputs.override_parameters),
        )
        self.logger.info(f"Loaded template {self.inputs.template_location} with {len(parameters)} parameters")

        subscription_id = self._resolve_subscription_id()
        scope = select_scope(
            self.inputs.resource_group_name,
            self.inputs.management_group_id,
            subscription_id,
            self.inputs.location,
        )
        request = DeploymentRequest(
            name=self.inputs.deployment_name,
            scope=scope,
            template=template,
            parameters=parameters,
            mode=self.inputs.deployment_mode,
        )

        endpoint = credentials.resource_manager_endpoint_url if credentials is not None else DEFAULT_RESOURCE_MANAGER_ENDPOINT
        deployment_manager = self.management_factory.create_deployment_manager(token_credential, subscription_id, endpoint)
        return deployment_manager, request

    def _resolve_subscription_id(self) -> str:
        """
        Pick the subscription from the inputs, the credentials, or the Azure CLI login.

        Management group deployments do not need one.

        Raises:
            ValueError: If a subscription is needed but none can be found
        """
        if self.inputs.subscription_id:
            return self.inputs.subscription_id

        credentials = self.inputs.credentials
        if credentials is not None and credentials.subscription_id:
            return credentials.subscription_id

        if self.inputs.auth_method == AuthMethod.CLI:
            subscription_id = self.management_factory.create_azure_cli().get_active_subscription_id()
            self.logger.info(f"Using active Azure CLI subscription {subscription_id}")
            return subscription_id

        if self.inputs.management_group_id and not self.inputs.resource_group_name:
            return ""

        error_message = "subscriptionId cannot be empty, set it as input or in the credentials"
        raise ValueError(error_message)
