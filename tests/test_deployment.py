"""
Unit tests for ArmDeploymentManager.

The SDK client is a MagicMock whose begin_* methods return fake pollers,
so no request ever leaves the process.
"""

import asyncio
import re
from unittest.mock import MagicMock

import pytest
from azure.core.exceptions import ClientAuthenticationError, HttpResponseError, ServiceRequestError
from azure_fakes import arm_error, deployment_body, sdk_responder, validation_body

from arm_template_deployment.manager.arm.deployment import ArmDeploymentManager, SdkResponse, capture_response
from arm_template_deployment.operations.operation_interfaces import (
    AuthenticationError,
    DeploymentFailedError,
    DeploymentMode,
    DeploymentRequest,
    ManagementGroupScope,
    ResourceGroupScope,
    SubscriptionScope,
    TransportError,
    ValidationFailedError,
)

TEMPLATE = {"resources": [], "outputs": {}}
PARAMETERS = {"containerName": {"value": "github-action"}}


@pytest.fixture
def client():
    client = MagicMock()
    client.deployments.begin_validate.side_effect = sdk_responder(validation_body())
    client.deployments.begin_create_or_update.side_effect = sdk_responder(deployment_body(outputs={}))
    return client


@pytest.fixture
def manager(client):
    return ArmDeploymentManager(client, poll_interval_seconds=0)


def make_request(scope=None, mode=DeploymentMode.INCREMENTAL, name="test-deployment"):
    return DeploymentRequest(
        name=name,
        scope=scope or ResourceGroupScope(resource_group_name="rg-test"),
        template=TEMPLATE,
        parameters=PARAMETERS,
        mode=mode,
    )


def http_error(status_code: int, reason: str, message: str) -> HttpResponseError:
    error = HttpResponseError(message=message)
    error.status_code = status_code
    error.reason = reason
    return error


# ==========================================
# Naming
# ==========================================


class TestPrepare:
    """Tests for unique deployment names."""

    def test_name_gets_uuid_suffix(self, manager):
        prepared = manager.prepare(make_request(name="my-deploy"))

        assert re.fullmatch(r"my-deploy-[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", prepared.name)

    def test_names_are_unique(self, manager):
        request = make_request()

        assert manager.prepare(request).name != manager.prepare(request).name

    def test_request_is_not_mutated(self, manager):
        request = make_request(name="my-deploy")

        prepared = manager.prepare(request)

        assert request.name == "my-deploy"
        assert prepared.template is request.template
        assert prepared.parameters is request.parameters
        assert prepared.scope == request.scope


# ==========================================
# Scope dispatch
# ==========================================


class TestScopes:
    """Tests that each scope reaches the matching SDK operation."""

    def test_resource_group_scope(self, manager, client):
        asyncio.run(manager.validate(make_request()))

        args, kwargs = client.deployments.begin_validate.call_args
        assert args[0] == "rg-test"
        assert args[1] == "test-deployment"
        assert args[2].properties.template == TEMPLATE
        assert args[2].properties.parameters == PARAMETERS
        assert args[2].properties.mode == "Incremental"
        assert kwargs["cls"] is capture_response

    def test_management_group_scope(self, manager, client):
        client.deployments.begin_validate_at_management_group_scope.side_effect = sdk_responder(validation_body())
        scope = ManagementGroupScope(management_group_id="mg-test", location="westeurope")

        asyncio.run(manager.validate(make_request(scope=scope)))

        args, _ = client.deployments.begin_validate_at_management_group_scope.call_args
        assert args[0] == "mg-test"
        assert args[1] == "test-deployment"
        assert args[2].location == "westeurope"
        assert args[2].properties.template == TEMPLATE
        client.deployments.begin_validate.assert_not_called()

    def test_subscription_scope(self, manager, client):
        client.deployments.begin_create_or_update_at_subscription_scope.side_effect = sdk_responder(deployment_body())
        scope = SubscriptionScope(subscription_id="00000000-0000-0000-0000-000000000002", location="westeurope")

        asyncio.run(manager.create(make_request(scope=scope)))

        args, _ = client.deployments.begin_create_or_update_at_subscription_scope.call_args
        assert args[0] == "test-deployment"
        assert args[1].location == "westeurope"
        client.deployments.begin_create_or_update.assert_not_called()

    def test_subscription_scope_without_location(self, manager, client):
        client.deployments.begin_validate_at_subscription_scope.side_effect = sdk_responder(validation_body())
        scope = SubscriptionScope(subscription_id="00000000-0000-0000-0000-000000000002")

        asyncio.run(manager.validate(make_request(scope=scope)))

        args, _ = client.deployments.begin_validate_at_subscription_scope.call_args
        assert args[1].location is None

    def test_complete_mode_is_passed_through(self, manager, client):
        asyncio.run(manager.create(make_request(mode=DeploymentMode.COMPLETE)))

        args, _ = client.deployments.begin_create_or_update.call_args
        assert args[2].properties.mode == "Complete"

    @pytest.mark.parametrize(
        ("scope", "expected"),
        [
            (ResourceGroupScope(resource_group_name="rg"), "resource group rg"),
            (ManagementGroupScope(management_group_id="mg", location="westeurope"), "management group mg"),
            (SubscriptionScope(subscription_id="sub"), "subscription sub"),
        ],
    )
    def test_describe_scope(self, scope, expected):
        assert ArmDeploymentManager.describe_scope(make_request(scope=scope)) == expected


# ==========================================
# Validation
# ==========================================


class TestValidate:
    """Tests for template validation."""

    def test_success(self, manager):
        result = asyncio.run(manager.validate(make_request()))

        assert result.name == "test-deployment"
        assert result.status_code == 200
        assert result.status == "200 OK"
        assert result.provisioning_state == "Succeeded"

    def test_non_ok_status_fails(self, manager, client):
        client.deployments.begin_validate.side_effect = sdk_responder(validation_body(), status_code=400, reason="Bad Request")

        with pytest.raises(ValidationFailedError) as exc_info:
            asyncio.run(manager.validate(make_request()))

        assert exc_info.value.status == "400 Bad Request"
        assert str(exc_info.value).startswith("Template validation failed, 400 Bad Request")

    def test_error_body_fails(self, manager, client):
        error = arm_error("Deployment template validation failed", details=[arm_error("The resource 'x' is not defined")])
        client.deployments.begin_validate.side_effect = sdk_responder(validation_body(error=error))

        with pytest.raises(ValidationFailedError) as exc_info:
            asyncio.run(manager.validate(make_request()))

        assert exc_info.value.message == "Deployment template validation failed (The resource 'x' is not defined)"

    def test_http_error_fails(self, manager, client):
        client.deployments.begin_validate.side_effect = http_error(400, "Bad Request", "InvalidTemplate")

        with pytest.raises(ValidationFailedError) as exc_info:
            asyncio.run(manager.validate(make_request()))

        assert str(exc_info.value) == "Template validation failed, 400 Bad Request, InvalidTemplate"

    def test_transport_error(self, manager, client):
        client.deployments.begin_validate.side_effect = ServiceRequestError("connection refused")

        with pytest.raises(TransportError, match="connection refused"):
            asyncio.run(manager.validate(make_request()))

    def test_authentication_error(self, manager, client):
        client.deployments.begin_validate.side_effect = ClientAuthenticationError(message="token expired")

        with pytest.raises(AuthenticationError, match="token expired"):
            asyncio.run(manager.validate(make_request()))

    def test_waits_for_completion(self, manager, client):
        client.deployments.begin_validate.side_effect = sdk_responder(validation_body(), pending_checks=3)

        result = asyncio.run(manager.validate(make_request()))

        assert result.status_code == 200


# ==========================================
# Creation
# ==========================================


class TestCreate:
    """Tests for deployment creation."""

    def test_success_returns_outputs(self, manager, client):
        outputs = {"location": {"type": "String", "value": "westeurope"}}
        client.deployments.begin_create_or_update.side_effect = sdk_responder(deployment_body(name="test-deployment", outputs=outputs))

        result = asyncio.run(manager.create(make_request()))

        assert result.name == "test-deployment"
        assert result.provisioning_state == "Succeeded"
        assert result.outputs == outputs

    def test_failed_state_fails(self, manager, client):
        error = arm_error("Resource quota exceeded", code="QuotaExceeded")
        client.deployments.begin_create_or_update.side_effect = sdk_responder(deployment_body(state="Failed", error=error))

        with pytest.raises(DeploymentFailedError) as exc_info:
            asyncio.run(manager.create(make_request()))

        assert str(exc_info.value) == "Template deployment failed, Failed, Resource quota exceeded"

    def test_non_ok_status_fails(self, manager, client):
        client.deployments.begin_create_or_update.side_effect = sdk_responder(deployment_body(), status_code=409, reason="Conflict")

        with pytest.raises(DeploymentFailedError, match="409 Conflict"):
            asyncio.run(manager.create(make_request()))

    def test_http_error_fails(self, manager, client):
        client.deployments.begin_create_or_update.side_effect = http_error(403, "Forbidden", "AuthorizationFailed")

        with pytest.raises(DeploymentFailedError, match="403 Forbidden, AuthorizationFailed"):
            asyncio.run(manager.create(make_request()))

    def test_name_falls_back_to_request(self, manager, client):
        client.deployments.begin_create_or_update.side_effect = sdk_responder(deployment_body(name=None), echo_name=False)

        result = asyncio.run(manager.create(make_request(name="fallback")))

        assert result.name == "fallback"

    def test_name_is_the_submitted_name(self, manager, client):
        result = asyncio.run(manager.deploy(make_request(name="my-deploy")))

        assert result.name == client.deployments.begin_create_or_update.call_args[0][1]
        assert result.name.startswith("my-deploy-")

    def test_cancelled_wait_logs_warning(self, manager, client, caplog):
        client.deployments.begin_create_or_update.side_effect = sdk_responder(deployment_body(), pending_checks=10**9)

        async def cancel_while_waiting():
            task = asyncio.ensure_future(manager.create(make_request(name="slow")))
            await asyncio.sleep(0.1)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(cancel_while_waiting())

        assert "Stopped waiting for deployment slow, the remote operation is not rolled back" in caplog.text


# ==========================================
# Full deployment
# ==========================================


class TestDeploy:
    """Tests for the validate then create sequence."""

    def test_validates_then_creates_with_same_name(self, manager, client):
        asyncio.run(manager.deploy(make_request(name="my-deploy")))

        validated_name = client.deployments.begin_validate.call_args[0][1]
        created_name = client.deployments.begin_create_or_update.call_args[0][1]
        assert validated_name == created_name
        assert validated_name.startswith("my-deploy-")
        assert client.deployments.begin_validate.call_count == 1
        assert client.deployments.begin_create_or_update.call_count == 1

    def test_failed_validation_skips_create(self, manager, client):
        client.deployments.begin_validate.side_effect = sdk_responder(validation_body(), status_code=400, reason="Bad Request")

        with pytest.raises(ValidationFailedError):
            asyncio.run(manager.deploy(make_request()))

        client.deployments.begin_create_or_update.assert_not_called()


class TestCaptureResponse:
    """Tests for the SDK response hook."""

    def test_keeps_status(self):
        pipeline_response = MagicMock()
        pipeline_response.http_response.status_code = 201
        pipeline_response.http_response.reason = "Created"

        response = capture_response(pipeline_response, "body", {})

        assert response == SdkResponse(body="body", status_code=201, reason="Created")
        assert response.status == "201 Created"
