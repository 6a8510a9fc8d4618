"""AWS client management."""
import os
import boto3
import logging
from typing import Any

from thakii_ops.config.settings import get_settings

logger = logging.getLogger(__name__)


class AWSClientManager:
    """Singleton manager for AWS service clients."""
    _instance = None
    _clients = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(AWSClientManager, cls).__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        """Initialize the client manager with settings."""
        self.settings = get_settings()

        # Cache commonly used values
        self.region = self.settings.aws_region
        self.endpoint_url = self.settings.aws_endpoint_url

        logger.debug("Initializing AWSClientManager")
        logger.debug(f"  Region: {self.region}")
        logger.debug(f"  Endpoint: {self.endpoint_url}")

    def get_client(self, service_name: str) -> Any:
        """Get or create an AWS service client."""
        if service_name in self._clients:
            return self._clients[service_name]

        client_kwargs = {
            'region_name': self.region
        }

        # Named profiles (SSO) take precedence over static credentials
        aws_profile = os.environ.get('AWS_PROFILE')
        if aws_profile:
            try:
                session = boto3.Session(profile_name=aws_profile)
                client = session.client(service_name, region_name=self.region,
                                        endpoint_url=self.endpoint_url)
                self._clients[service_name] = client
                logger.debug(f"Created {service_name} client using profile: {aws_profile}")
                return client
            except Exception as e:
                logger.warning(f"Failed to create client with profile {aws_profile}: {e}")

        if self.endpoint_url:
            client_kwargs['endpoint_url'] = self.endpoint_url

        try:
            client = boto3.client(service_name, **client_kwargs)
            self._clients[service_name] = client
            logger.debug(f"Created {service_name} client")
            return client
        except Exception as e:
            logger.error(f"Error creating {service_name} client: {str(e)}")
            raise

    @classmethod
    def reset(cls):
        """Drop the singleton so the next use re-reads settings."""
        cls._clients.clear()
        cls._instance = None


# Convenience functions for common operations

def get_ecs_client():
    """Get the ECS client."""
    return AWSClientManager().get_client('ecs')


def get_ecr_client():
    """Get the ECR client."""
    return AWSClientManager().get_client('ecr')


def get_ec2_client():
    """Get the EC2 client."""
    return AWSClientManager().get_client('ec2')


def get_logs_client():
    """Get the CloudWatch Logs client."""
    return AWSClientManager().get_client('logs')


def get_sts_client():
    """Get the STS client."""
    return AWSClientManager().get_client('sts')
