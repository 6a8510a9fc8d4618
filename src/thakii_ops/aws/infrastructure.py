"""ECS cluster, ECR repository and security group provisioning on the default VPC."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from thakii_ops.aws.clients import get_ec2_client, get_ecr_client, get_ecs_client
from thakii_ops.config.settings import Settings, get_settings
from thakii_ops.exceptions import DeploymentError
from thakii_ops.utils.console import print_info, print_success
from thakii_ops.utils.decorators import log_operation

logger = logging.getLogger(__name__)


@dataclass
class NetworkConfig:
    """awsvpc networking used by Fargate services."""
    vpc_id: str
    subnet_ids: List[str]
    security_group_id: Optional[str] = None

    def to_aws_vpc_configuration(self) -> Dict[str, Any]:
        config = {
            'subnets': self.subnet_ids,
            'assignPublicIp': 'ENABLED'
        }
        if self.security_group_id:
            config['securityGroups'] = [self.security_group_id]
        return {'awsvpcConfiguration': config}


@dataclass
class InfrastructureSummary:
    account_id: str
    region: str
    cluster_name: str
    cluster_arn: str
    repository_uri: str
    network: NetworkConfig

    @property
    def docker_login_command(self) -> str:
        registry = self.repository_uri.split('/')[0]
        return (
            f"aws ecr get-login-password --region {self.region} | "
            f"docker login --username AWS --password-stdin {registry}"
        )


class ECSInfrastructureManager:
    """Idempotent creation of the primitives an ECS Fargate service needs."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.ecs_client = get_ecs_client()
        self.ecr_client = get_ecr_client()
        self.ec2_client = get_ec2_client()

    def ensure_cluster(self) -> Dict[str, Any]:
        """Return the ACTIVE cluster, creating it when missing."""
        existing_cluster = self._find_existing_cluster()
        if existing_cluster:
            logger.info(f"Using existing ECS cluster: {self.settings.cluster_name}")
            return existing_cluster

        try:
            response = self.ecs_client.create_cluster(
                clusterName=self.settings.cluster_name,
                tags=[
                    {'key': 'Name', 'value': self.settings.cluster_name},
                    {'key': 'Project', 'value': self.settings.app_name}
                ]
            )
        except ClientError as e:
            logger.error(f"Failed to create ECS cluster: {e}")
            raise
        logger.info(f"Created ECS cluster: {self.settings.cluster_name}")
        return response['cluster']

    def ensure_repository(self) -> Dict[str, Any]:
        """Return the ECR repository, creating it when missing."""
        repo_name = self.settings.ecr_repo_name
        try:
            response = self.ecr_client.create_repository(repositoryName=repo_name)
            logger.info(f"Created ECR repository: {repo_name}")
            return response['repository']
        except self.ecr_client.exceptions.RepositoryAlreadyExistsException:
            logger.info(f"ECR repository already exists: {repo_name}")
            response = self.ecr_client.describe_repositories(repositoryNames=[repo_name])
            return response['repositories'][0]

    def get_default_vpc_id(self) -> str:
        response = self.ec2_client.describe_vpcs(
            Filters=[{'Name': 'is-default', 'Values': ['true']}]
        )
        vpcs = response.get('Vpcs', [])
        if not vpcs:
            raise DeploymentError(f"No default VPC found in {self.settings.aws_region}")
        return vpcs[0]['VpcId']

    def get_subnet_ids(self, vpc_id: str) -> List[str]:
        response = self.ec2_client.describe_subnets(
            Filters=[{'Name': 'vpc-id', 'Values': [vpc_id]}]
        )
        return [subnet['SubnetId'] for subnet in response.get('Subnets', [])]

    def find_security_group(self, vpc_id: Optional[str] = None) -> Optional[str]:
        """Look up the service security group by name."""
        filters = [{'Name': 'group-name', 'Values': [self.settings.security_group_name]}]
        if vpc_id:
            filters.append({'Name': 'vpc-id', 'Values': [vpc_id]})
        response = self.ec2_client.describe_security_groups(Filters=filters)
        groups = response.get('SecurityGroups', [])
        return groups[0]['GroupId'] if groups else None

    def ensure_security_group(self, vpc_id: str) -> str:
        """Create the service security group and open the service port to the world."""
        sg_name = self.settings.security_group_name
        existing_sg = self.find_security_group(vpc_id)
        if existing_sg:
            logger.info(f"Using existing security group: {sg_name} ({existing_sg})")
            sg_id = existing_sg
        else:
            try:
                response = self.ec2_client.create_security_group(
                    GroupName=sg_name,
                    Description="Security group for Thakii ECS service",
                    VpcId=vpc_id
                )
            except ClientError as e:
                logger.error(f"Failed to create security group {sg_name}: {e}")
                raise
            sg_id = response['GroupId']
            logger.info(f"Created security group: {sg_name} ({sg_id})")

        self.authorize_port(sg_id, self.settings.service_port)
        return sg_id

    def authorize_port(self, group_id: str, port: int, cidr: str = "0.0.0.0/0") -> bool:
        """Allow inbound TCP on a port. Returns False when the rule already exists."""
        try:
            self.ec2_client.authorize_security_group_ingress(
                GroupId=group_id,
                IpPermissions=[
                    {
                        'IpProtocol': 'tcp',
                        'FromPort': port,
                        'ToPort': port,
                        'IpRanges': [{'CidrIp': cidr}]
                    }
                ]
            )
            logger.info(f"Opened tcp/{port} from {cidr} on {group_id}")
            return True
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') == 'InvalidPermission.Duplicate':
                logger.info(f"Ingress rule tcp/{port} already present on {group_id}")
                return False
            raise

    def get_default_network(self, require_security_group: bool = True) -> NetworkConfig:
        """Default VPC, all of its subnets and the service security group."""
        vpc_id = self.get_default_vpc_id()
        subnet_ids = self.get_subnet_ids(vpc_id)
        if not subnet_ids:
            raise DeploymentError(f"Default VPC {vpc_id} has no subnets")

        sg_id = self.find_security_group(vpc_id)
        if sg_id is None and require_security_group:
            raise DeploymentError(
                f"Security group {self.settings.security_group_name} not found; run 'thakii-ops ecs setup' first"
            )
        return NetworkConfig(vpc_id=vpc_id, subnet_ids=subnet_ids, security_group_id=sg_id)

    def _find_existing_cluster(self) -> Optional[Dict[str, Any]]:
        """Find existing ECS cluster."""
        try:
            response = self.ecs_client.describe_clusters(clusters=[self.settings.cluster_name])
            for cluster in response.get('clusters', []):
                if cluster['status'] == 'ACTIVE':
                    return cluster
            return None
        except ClientError:
            return None


@log_operation("ECS infrastructure setup")
def setup_infrastructure(settings: Optional[Settings] = None) -> InfrastructureSummary:
    """Create cluster, repository and security group, printing progress as it goes."""
    settings = settings or get_settings()
    manager = ECSInfrastructureManager(settings)

    account_id = settings.account_id
    print(f"Account ID: {account_id}")
    print(f"Region: {settings.aws_region}")
    print(f"Cluster: {settings.cluster_name}")

    print("📦 Creating ECS Cluster...")
    cluster = manager.ensure_cluster()

    print("🐳 Creating ECR Repository...")
    repository = manager.ensure_repository()

    print("🌐 Getting VPC information...")
    vpc_id = manager.get_default_vpc_id()
    print(f"Default VPC: {vpc_id}")
    subnet_ids = manager.get_subnet_ids(vpc_id)
    print(f"Subnets: {','.join(subnet_ids)}")

    print("🔒 Creating Security Group...")
    sg_id = manager.ensure_security_group(vpc_id)
    print(f"Security Group: {sg_id}")

    summary = InfrastructureSummary(
        account_id=account_id,
        region=settings.aws_region,
        cluster_name=cluster['clusterName'],
        cluster_arn=cluster['clusterArn'],
        repository_uri=repository['repositoryUri'],
        network=NetworkConfig(vpc_id=vpc_id, subnet_ids=subnet_ids, security_group_id=sg_id)
    )

    print_success("Infrastructure setup complete!")
    print("")
    print("📋 Next steps:")
    print("1. Build and push Docker image to ECR")
    print("2. Create ECS service")
    print("")
    print_info(f"ECR Repository URI: {summary.repository_uri}")
    print("Docker login command:")
    print(summary.docker_login_command)
    return summary
