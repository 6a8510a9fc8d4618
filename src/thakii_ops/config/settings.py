# src/thakii_ops/config/settings.py
import os
from functools import lru_cache
from pathlib import Path
from typing import Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Single source of truth for all tooling settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Usage:
        from thakii_ops.config.settings import get_settings
        settings = get_settings()
        cluster = settings.cluster_name
    """

    # Application Settings
    app_name: str = Field(
        default="thakii-lecture2pdf",
        alias="APP_NAME",
        description="Application name used in banners and tags"
    )

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-2",
        alias="AWS_DEFAULT_REGION"
    )

    aws_account_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCOUNT_ID",
        description="AWS Account ID (auto-detected if not provided)"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL"
    )

    # ECS Configuration
    cluster_name: str = Field(
        default="Thakii",
        alias="ECS_CLUSTER_NAME"
    )

    ecr_repo_name: str = Field(
        default="thakii-lecture2pdf-service",
        alias="ECR_REPO_NAME",
        description="ECR repository name, also the local docker image name"
    )

    service_name: str = Field(
        default="thakii-lecture2pdf-service",
        alias="ECS_SERVICE_NAME"
    )

    s3_service_name: str = Field(
        default="thakii-lecture2pdf-s3-service",
        alias="ECS_S3_SERVICE_NAME",
        description="ECS service running the S3-enabled image"
    )

    task_family: str = Field(
        default="thakii-lecture2pdf-task",
        alias="ECS_TASK_FAMILY"
    )

    task_definition_file: str = Field(
        default="ecs-task-definition.json",
        alias="ECS_TASK_DEFINITION_FILE"
    )

    security_group_name: str = Field(
        default="thakii-ecs-sg",
        alias="ECS_SECURITY_GROUP"
    )

    service_port: int = Field(
        default=5002,
        alias="SERVICE_PORT",
        description="Container port exposed by the ECS service"
    )

    log_group: str = Field(
        default="/ecs/thakii-lecture2pdf",
        alias="ECS_LOG_GROUP"
    )

    # S3 Configuration
    s3_bucket_name: str = Field(
        default="thakii-video-storage-1753883631",
        alias="S3_BUCKET_NAME"
    )

    google_application_credentials: Optional[str] = Field(
        default=None,
        alias="GOOGLE_APPLICATION_CREDENTIALS"
    )

    # Local stack
    backend_host: str = Field(default="localhost", alias="BACKEND_HOST")

    remote_backend_host: str = Field(
        default="thakii-02.fanusdigital.site",
        alias="REMOTE_BACKEND_HOST",
        description="Deployed backend checked by the full-stack runner"
    )

    backend_port: int = Field(default=5001, alias="BACKEND_PORT")

    web_port: int = Field(default=3000, alias="WEB_PORT")

    health_endpoint: str = Field(default="/health", alias="HEALTH_ENDPOINT")

    backend_startup_timeout: int = Field(default=15, alias="BACKEND_STARTUP_TIMEOUT")

    web_startup_timeout: int = Field(default=15, alias="WEB_STARTUP_TIMEOUT")

    project_root: str = Field(
        default=".",
        alias="PROJECT_ROOT",
        description="Checkout containing backend/ and web/"
    )

    # Logging
    log_dir: str = Field(default="logs", alias="LOG_DIR")

    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Logging level"
    )

    @validator('health_endpoint', pre=True)
    def ensure_leading_slash(cls, v):
        """Health endpoint is always joined onto a base URL."""
        if v and not str(v).startswith('/'):
            return f"/{v}"
        return v

    @validator('log_level', pre=True)
    def normalize_log_level(cls, v):
        return str(v).upper() if v else "INFO"

    @property
    def account_id(self) -> str:
        """Get AWS account ID, asking STS when it is not configured."""
        if self.aws_account_id:
            return self.aws_account_id

        from thakii_ops.aws.clients import get_sts_client
        return get_sts_client().get_caller_identity()['Account']

    @property
    def ecr_registry(self) -> str:
        """Get ECR registry URL."""
        return f"{self.account_id}.dkr.ecr.{self.aws_region}.amazonaws.com"

    @property
    def ecr_uri(self) -> str:
        return f"{self.ecr_registry}/{self.ecr_repo_name}"

    @property
    def root_path(self) -> Path:
        return Path(self.project_root).expanduser().resolve()

    @property
    def log_path(self) -> Path:
        path = Path(self.log_dir)
        if not path.is_absolute():
            path = self.root_path / path
        return path

    @property
    def backend_url(self) -> str:
        return f"http://{self.backend_host}:{self.backend_port}"

    @property
    def remote_backend_url(self) -> str:
        return f"http://{self.remote_backend_host}:{self.backend_port}"

    @property
    def web_url(self) -> str:
        return f"http://localhost:{self.web_port}"

    @property
    def console_url(self) -> str:
        """ECS console page listing the cluster's services."""
        return (
            f"https://{self.aws_region}.console.aws.amazon.com/ecs/home"
            f"?region={self.aws_region}#/clusters/{self.cluster_name}/services"
        )

    def get_environment_dict(self, lecture2pdf_path: Optional[str] = None) -> Dict[str, str]:
        """Get the environment handed to backend and worker processes.

        Returns:
            Dictionary of environment variables
        """
        env = {
            'S3_BUCKET_NAME': self.s3_bucket_name,
            'AWS_DEFAULT_REGION': self.aws_region,
        }
        if self.google_application_credentials:
            env['GOOGLE_APPLICATION_CREDENTIALS'] = self.google_application_credentials
        else:
            env['GOOGLE_APPLICATION_CREDENTIALS'] = str(
                self.root_path / "backend" / "firebase" / "firebase-service-account.json"
            )
        if lecture2pdf_path:
            env['LECTURE2PDF_PATH'] = lecture2pdf_path
        return env

    def export_environment_variables(self, lecture2pdf_path: Optional[str] = None) -> Dict[str, str]:
        """Export the child-process environment into os.environ."""
        env_vars = self.get_environment_dict(lecture2pdf_path)
        for key, value in env_vars.items():
            if value:  # Only set non-empty values
                os.environ[key] = str(value)
        return env_vars

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()


DEFAULT_VPN_SERVER = "us-east.privateinternetaccess.com"
DEFAULT_VPN_PORT = 1198
DEFAULT_VPN_PROTOCOL = "udp"


class VPNSettings(BaseModel):
    """
    PIA connection settings kept in `.env.vpn`.

    Field aliases are the keys used in that file, so the parsed dotenv
    mapping validates directly.
    """

    username: str = Field(min_length=1, alias="PIA_USERNAME")
    password: str = Field(min_length=1, alias="PIA_PASSWORD")
    server: str = Field(default=DEFAULT_VPN_SERVER, min_length=1, alias="VPN_SERVER")
    port: int = Field(default=DEFAULT_VPN_PORT, ge=1, le=65535, alias="VPN_PORT")
    protocol: Literal["udp", "tcp"] = Field(default=DEFAULT_VPN_PROTOCOL, alias="VPN_PROTOCOL")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def endpoint(self) -> str:
        return f"{self.server}:{self.port}"
