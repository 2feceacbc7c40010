import json
import os

import pytest

from arm_template_deployment.operations.operation_interfaces import GITHUB_ENVIRONMENT_VARIABLES, INPUT_ENVIRONMENT_VARIABLES

DATA_DIR = os.path.join(os.path.dirname(__file__), "data")


@pytest.fixture(autouse=True)
def clean_action_env(monkeypatch):
    """Keep the runner's own INPUT_* and GITHUB_* variables out of the tests."""
    for variable in [*INPUT_ENVIRONMENT_VARIABLES.values(), *GITHUB_ENVIRONMENT_VARIABLES.values()]:
        monkeypatch.delenv(variable, raising=False)
    for variable in ("GITHUB_ACTIONS", "GITHUB_OUTPUT", "AZURE_ACCESS_TOKEN"):
        monkeypatch.delenv(variable, raising=False)


@pytest.fixture
def template_path() -> str:
    return os.path.join(DATA_DIR, "template.json")


@pytest.fixture
def parameters_path() -> str:
    return os.path.join(DATA_DIR, "parameters.json")


@pytest.fixture
def credentials() -> str:
    return json.dumps(
        {
            "clientId": "00000000-0000-0000-0000-000000000001",
            "clientSecret": "super-secret",
            "subscriptionId": "00000000-0000-0000-0000-000000000002",
            "tenantId": "00000000-0000-0000-0000-000000000003",
            "activeDirectoryEndpointUrl": "https://login.microsoftonline.com",
            "resourceManagerEndpointUrl": "https://management.azure.com/",
        }
    )
