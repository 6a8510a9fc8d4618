import json
from unittest.mock import patch

import pytest

from thakii_ops.aws.deploy import ECSServiceDeployer, deploy_service, load_task_definition
from thakii_ops.aws.infrastructure import ECSInfrastructureManager, setup_infrastructure
from thakii_ops.exceptions import ConfigurationError
from tests.consts import TEST_CLUSTER_NAME, TEST_SERVICE_NAME, TEST_TASK_FAMILY


def test_load_task_definition_strips_describe_output(tmp_path):
    path = tmp_path / "task.json"
    path.write_text(json.dumps({
        "taskDefinition": {
            "family": TEST_TASK_FAMILY,
            "containerDefinitions": [{"name": "app", "image": "app:latest"}],
            "taskDefinitionArn": "arn:aws:ecs:us-east-2:123456789012:task-definition/x:1",
            "revision": 1,
            "status": "ACTIVE",
            "compatibilities": ["FARGATE"],
        }
    }))

    data = load_task_definition(str(path))

    assert data["family"] == TEST_TASK_FAMILY
    for key in ("taskDefinitionArn", "revision", "status", "compatibilities"):
        assert key not in data


def test_load_task_definition_missing_file(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_task_definition(str(tmp_path / "missing.json"))


def test_load_task_definition_invalid_json(tmp_path):
    path = tmp_path / "task.json"
    path.write_text("{not json")
    with pytest.raises(ConfigurationError, match="Invalid JSON"):
        load_task_definition(str(path))


def test_load_task_definition_requires_containers(tmp_path):
    path = tmp_path / "task.json"
    path.write_text(json.dumps({"family": TEST_TASK_FAMILY}))
    with pytest.raises(ConfigurationError, match="containerDefinitions"):
        load_task_definition(str(path))


def test_register_task_definition(mocked_aws, ops_settings, ecs_client):
    arn = ECSServiceDeployer(ops_settings).register_task_definition()

    assert f"task-definition/{TEST_TASK_FAMILY}:1" in arn
    described = ecs_client.describe_task_definition(taskDefinition=TEST_TASK_FAMILY)
    assert described['taskDefinition']['containerDefinitions'][0]['name'] == "lecture2pdf"


def test_create_then_update_service(mocked_aws, ops_settings, ecs_client):
    setup_infrastructure(ops_settings)
    deployer = ECSServiceDeployer(ops_settings)
    deployer.register_task_definition()
    network = ECSInfrastructureManager(ops_settings).get_default_network()

    assert deployer.service_is_active(TEST_SERVICE_NAME) is False
    created = deployer.create_or_update_service(TEST_SERVICE_NAME, network)
    assert created['serviceName'] == TEST_SERVICE_NAME
    assert deployer.service_is_active(TEST_SERVICE_NAME) is True

    second_revision = deployer.register_task_definition()
    updated = deployer.create_or_update_service(TEST_SERVICE_NAME, network, second_revision)
    assert updated["taskDefinition"] == second_revision
    assert second_revision.endswith(f"{TEST_TASK_FAMILY}:2")

    services = ecs_client.list_services(cluster=TEST_CLUSTER_NAME)['serviceArns']
    assert len(services) == 1


def test_deploy_service_skip_image(mocked_aws, ops_settings):
    setup_infrastructure(ops_settings)

    with patch("thakii_ops.aws.deploy.ecr_login") as login, \
            patch("thakii_ops.aws.deploy.prepare_image") as prepare:
        result = deploy_service(TEST_SERVICE_NAME, settings=ops_settings, skip_image=True)

    login.assert_not_called()
    prepare.assert_not_called()
    assert result["status"] == "success"
    assert result["service_name"] == TEST_SERVICE_NAME
    assert result["security_group"] is not None
    assert result["image"] is None


def test_deploy_service_pushes_image(mocked_aws, ops_settings):
    setup_infrastructure(ops_settings)

    with patch("thakii_ops.aws.deploy.ecr_login") as login, \
            patch("thakii_ops.aws.deploy.prepare_image", return_value="repo:latest") as prepare:
        result = deploy_service(TEST_SERVICE_NAME, settings=ops_settings, reuse_existing_image=True)

    login.assert_called_once_with(ops_settings)
    prepare.assert_called_once_with(ops_settings, context=".", reuse_existing=True)
    assert result["image"] == "repo:latest"


def test_redeploy_pins_service_to_new_revision(mocked_aws, ops_settings, ecs_client):
    setup_infrastructure(ops_settings)

    first = deploy_service(TEST_SERVICE_NAME, settings=ops_settings, skip_image=True)
    second = deploy_service(TEST_SERVICE_NAME, settings=ops_settings, skip_image=True)

    assert first["task_definition"].endswith(f"{TEST_TASK_FAMILY}:1")
    assert second["task_definition"].endswith(f"{TEST_TASK_FAMILY}:2")
    service = ecs_client.describe_services(cluster=TEST_CLUSTER_NAME, services=[TEST_SERVICE_NAME])['services'][0]
    assert service['taskDefinition'] == second["task_definition"]
