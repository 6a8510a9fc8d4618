"""ECR login and docker build/tag/push for the service image."""
import base64
import logging
from typing import Optional

from thakii_ops.aws.clients import get_ecr_client
from thakii_ops.config.settings import Settings, get_settings
from thakii_ops.utils.console import print_success, print_warning
from thakii_ops.utils.decorators import log_operation
from thakii_ops.utils.shell import run_command, run_streaming

logger = logging.getLogger(__name__)

MINIMAL_DOCKERFILE = "Dockerfile.minimal"


def ecr_login(settings: Optional[Settings] = None) -> str:
    """Log docker into the account's ECR registry. Returns the registry endpoint."""
    settings = settings or get_settings()
    ecr_client = get_ecr_client()

    token_response = ecr_client.get_authorization_token()
    token_data = token_response['authorizationData'][0]

    # Decode ECR token
    token = base64.b64decode(token_data['authorizationToken']).decode('utf-8')
    username, password = token.split(':', 1)
    registry = token_data['proxyEndpoint']

    run_command(
        ["docker", "login", "--username", username, "--password-stdin", registry],
        input_text=password
    )
    logger.info(f"Logged into ECR registry {registry}")
    return registry


def image_exists(name: str) -> bool:
    """True when the local docker daemon has an image with this repository name."""
    stdout, _ = run_command(["docker", "images", "-q", name])
    return bool(stdout.strip())


def build_image(tag: str, context: str = ".", dockerfile: Optional[str] = None) -> None:
    cmd = ["docker", "build", "-t", tag]
    if dockerfile:
        cmd += ["-f", dockerfile]
    cmd.append(context)
    run_streaming(cmd)
    logger.info(f"Built image {tag}")


def tag_image(source: str, target: str) -> None:
    run_command(["docker", "tag", source, target])


def push_image(uri: str) -> None:
    run_streaming(["docker", "push", uri])
    logger.info(f"Pushed image to ECR: {uri}")


@log_operation("ECR image preparation")
def prepare_image(settings: Optional[Settings] = None, context: str = ".",
                  reuse_existing: bool = False) -> str:
    """Make sure `<ecr_uri>:latest` holds the current service image.

    Args:
        settings: Settings to use, defaults to the cached instance
        context: Docker build context
        reuse_existing: Push an already built local image when one exists, otherwise
            build a minimal image from Dockerfile.minimal

    Returns:
        The pushed image URI
    """
    settings = settings or get_settings()
    image_name = settings.ecr_repo_name
    target = f"{settings.ecr_uri}:latest"

    if reuse_existing:
        if image_exists(image_name):
            print_success(f"Using existing {image_name} image")
        else:
            print_warning("Building minimal S3-enabled image...")
            image_name = f"{settings.ecr_repo_name}-minimal"
            build_image(image_name, context, dockerfile=MINIMAL_DOCKERFILE)
    else:
        print("🐳 Building Docker image...")
        build_image(image_name, context)

    print("🏷️ Tagging image...")
    tag_image(f"{image_name}:latest", target)

    print("📦 Pushing to ECR...")
    push_image(target)
    return target
