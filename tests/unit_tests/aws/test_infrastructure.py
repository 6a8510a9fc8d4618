import pytest

from thakii_ops.aws.infrastructure import ECSInfrastructureManager, NetworkConfig, setup_infrastructure
from thakii_ops.exceptions import DeploymentError
from tests.consts import TEST_ACCOUNT_ID, TEST_CLUSTER_NAME


def test_setup_infrastructure_creates_everything(mocked_aws, ops_settings, ecs_client, ec2_client):
    summary = setup_infrastructure(ops_settings)

    assert summary.account_id == TEST_ACCOUNT_ID
    assert summary.cluster_name == TEST_CLUSTER_NAME
    assert summary.repository_uri.endswith(f"/{ops_settings.ecr_repo_name}")
    assert summary.network.subnet_ids

    clusters = ecs_client.describe_clusters(clusters=[TEST_CLUSTER_NAME])['clusters']
    assert clusters[0]['status'] == 'ACTIVE'

    group = ec2_client.describe_security_groups(GroupIds=[summary.network.security_group_id])['SecurityGroups'][0]
    ports = [perm.get('FromPort') for perm in group['IpPermissions']]
    assert ops_settings.service_port in ports


def test_setup_infrastructure_is_idempotent(mocked_aws, ops_settings, ecs_client, ec2_client):
    first = setup_infrastructure(ops_settings)
    second = setup_infrastructure(ops_settings)

    assert first.cluster_arn == second.cluster_arn
    assert first.repository_uri == second.repository_uri
    assert first.network.security_group_id == second.network.security_group_id

    clusters = ecs_client.list_clusters()['clusterArns']
    assert len([arn for arn in clusters if arn.endswith(f"/{TEST_CLUSTER_NAME}")]) == 1

    groups = ec2_client.describe_security_groups(
        Filters=[{'Name': 'group-name', 'Values': [ops_settings.security_group_name]}]
    )['SecurityGroups']
    assert len(groups) == 1


def test_authorize_port_reports_duplicate(mocked_aws, ops_settings):
    manager = ECSInfrastructureManager(ops_settings)
    vpc_id = manager.get_default_vpc_id()
    sg_id = manager.ensure_security_group(vpc_id)

    assert manager.authorize_port(sg_id, 8080) is True
    assert manager.authorize_port(sg_id, 8080) is False


def test_get_default_network_requires_security_group(mocked_aws, ops_settings):
    manager = ECSInfrastructureManager(ops_settings)

    network = manager.get_default_network(require_security_group=False)
    assert network.security_group_id is None

    with pytest.raises(DeploymentError, match="not found"):
        manager.get_default_network()


def test_network_config_awsvpc_shape():
    network = NetworkConfig(vpc_id="vpc-1", subnet_ids=["subnet-a", "subnet-b"], security_group_id="sg-1")
    config = network.to_aws_vpc_configuration()['awsvpcConfiguration']

    assert config['subnets'] == ["subnet-a", "subnet-b"]
    assert config['securityGroups'] == ["sg-1"]
    assert config['assignPublicIp'] == 'ENABLED'
