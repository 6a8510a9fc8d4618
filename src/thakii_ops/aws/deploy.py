"""Task definition registration and ECS Fargate service deployment."""
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from thakii_ops.aws.clients import get_ecs_client
from thakii_ops.aws.image import ecr_login, prepare_image
from thakii_ops.aws.infrastructure import ECSInfrastructureManager, NetworkConfig
from thakii_ops.config.settings import Settings, get_settings
from thakii_ops.exceptions import ConfigurationError, DeploymentError
from thakii_ops.utils.console import print_info, print_success
from thakii_ops.utils.decorators import log_operation

logger = logging.getLogger(__name__)

# Keys returned by describe-task-definition that register-task-definition rejects
READ_ONLY_TASK_KEYS = (
    'taskDefinitionArn',
    'revision',
    'status',
    'requiresAttributes',
    'compatibilities',
    'registeredAt',
    'registeredBy',
    'deregisteredAt',
)


def load_task_definition(path: str) -> Dict[str, Any]:
    """Read a task definition JSON file, accepting raw describe output as well."""
    task_path = Path(path)
    if not task_path.is_file():
        raise ConfigurationError(f"Task definition file not found: {task_path}")

    try:
        with open(task_path, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {task_path}: {e}")

    # `aws ecs describe-task-definition` wraps the payload
    if 'taskDefinition' in data:
        data = data['taskDefinition']

    for key in READ_ONLY_TASK_KEYS:
        data.pop(key, None)

    if 'family' not in data or 'containerDefinitions' not in data:
        raise ConfigurationError(f"{task_path} must define 'family' and 'containerDefinitions'")
    return data


class ECSServiceDeployer:
    """Registers task definitions and creates or updates the Fargate service."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.ecs_client = get_ecs_client()

    def register_task_definition(self, path: Optional[str] = None) -> str:
        """Register the task definition file. Returns the new task definition ARN."""
        path = path or self.settings.task_definition_file
        task_definition = load_task_definition(path)
        try:
            response = self.ecs_client.register_task_definition(**task_definition)
        except ClientError as e:
            logger.error(f"Failed to register task definition from {path}: {e}")
            raise
        arn = response['taskDefinition']['taskDefinitionArn']
        logger.info(f"Registered task definition: {arn}")
        return arn

    def describe_service(self, service_name: str) -> Optional[Dict[str, Any]]:
        response = self.ecs_client.describe_services(
            cluster=self.settings.cluster_name,
            services=[service_name]
        )
        services = response.get('services', [])
        return services[0] if services else None

    def service_is_active(self, service_name: str) -> bool:
        """A missing service comes back under `failures`, a deleted one as INACTIVE."""
        try:
            service = self.describe_service(service_name)
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in ('ClusterNotFoundException', 'ServiceNotFoundException'):
                return False
            raise
        return bool(service) and service.get('status') == 'ACTIVE'

    def create_service(self, service_name: str, network: NetworkConfig,
                       task_definition: Optional[str] = None, desired_count: int = 1) -> Dict[str, Any]:
        task_definition = task_definition or self.settings.task_family
        try:
            response = self.ecs_client.create_service(
                cluster=self.settings.cluster_name,
                serviceName=service_name,
                taskDefinition=task_definition,
                desiredCount=desired_count,
                launchType='FARGATE',
                networkConfiguration=network.to_aws_vpc_configuration()
            )
        except ClientError as e:
            logger.error(f"Failed to create service {service_name}: {e}")
            raise
        logger.info(f"Created ECS service: {service_name}")
        return response['service']

    def update_service(self, service_name: str, task_definition: Optional[str] = None) -> Dict[str, Any]:
        task_definition = task_definition or self.settings.task_family
        response = self.ecs_client.update_service(
            cluster=self.settings.cluster_name,
            service=service_name,
            taskDefinition=task_definition
        )
        logger.info(f"Updated ECS service {service_name} to {task_definition}")
        return response['service']

    def create_or_update_service(self, service_name: str, network: NetworkConfig,
                                 task_definition: Optional[str] = None) -> Dict[str, Any]:
        if self.service_is_active(service_name):
            print("Updating existing service...")
            return self.update_service(service_name, task_definition)

        print("🚀 Creating ECS Service...")
        return self.create_service(service_name, network, task_definition)


@log_operation("ECS service deployment")
def deploy_service(service_name: Optional[str] = None, settings: Optional[Settings] = None,
                   context: str = ".", reuse_existing_image: bool = False,
                   skip_image: bool = False) -> Dict[str, Any]:
    """Push the image, register the task definition and roll the service.

    Args:
        service_name: ECS service to create or update
        settings: Settings to use, defaults to the cached instance
        context: Docker build context
        reuse_existing_image: Prefer a locally built image over a fresh build
        skip_image: Do not touch docker at all, only register and roll the service

    Returns:
        Deployment result dict with service, task definition and network details
    """
    settings = settings or get_settings()
    service_name = service_name or settings.service_name

    if not skip_image:
        print("🔑 Logging into ECR...")
        ecr_login(settings)
        image_uri = prepare_image(settings, context=context, reuse_existing=reuse_existing_image)
    else:
        image_uri = None
        print_info("Skipping image build and push")

    print("📋 Registering task definition...")
    deployer = ECSServiceDeployer(settings)
    task_definition_arn = deployer.register_task_definition()

    print("🌐 Getting network configuration...")
    network = ECSInfrastructureManager(settings).get_default_network()
    print(f"VPC: {network.vpc_id}")
    print(f"Subnets: {','.join(network.subnet_ids)}")
    print(f"Security Group: {network.security_group_id}")

    service = deployer.create_or_update_service(service_name, network, task_definition_arn)
    if not service:
        raise DeploymentError(f"ECS did not return a service for {service_name}")

    print_success("Deployment complete!")
    print("")
    print("📊 Check service status:")
    print(
        f"aws ecs describe-services --cluster {settings.cluster_name} "
        f"--services {service_name} --region {settings.aws_region}"
    )
    print("")
    print("📋 View service in AWS Console:")
    print(settings.console_url)

    return {
        "status": "success",
        "service_name": service_name,
        "service_arn": service.get('serviceArn'),
        "task_definition": task_definition_arn,
        "image": image_uri,
        "vpc_id": network.vpc_id,
        "subnets": network.subnet_ids,
        "security_group": network.security_group_id,
    }
