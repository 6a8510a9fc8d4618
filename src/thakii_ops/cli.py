# cli.py
import functools
import logging
import sys
from pathlib import Path

import click
from botocore.exceptions import BotoCoreError, ClientError

from thakii_ops.config.settings import get_settings
from thakii_ops.exceptions import ThakiiOpsError
from thakii_ops.utils.console import print_error, print_header
from thakii_ops.utils.log_setup import configure_file_logging, configure_logging

# Configure logging
logger = logging.getLogger(__name__)

VPN_ACTIONS = ["status", "connect", "disconnect", "test", "logs", "interactive"]


def handle_errors(func):
    """Turn tooling and AWS errors into a red message and exit status 1."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (ThakiiOpsError, ClientError, BotoCoreError) as e:
            logger.debug("Command failed", exc_info=True)
            print_error(str(e))
            sys.exit(1)
    return wrapper


def _vpn_paths(env_file):
    settings = get_settings()
    env_path = Path(env_file) if env_file else settings.root_path / ".env.vpn"
    return env_path, settings.log_path / "vpn_manager.log"


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
def cli(log_level):
    """Deployment, local stack and VPN tooling for Thakii Lecture2PDF"""
    settings = get_settings()
    configure_logging(log_level or settings.log_level)


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    print("Current Configuration:")
    print(f"  App Name: {settings.app_name}")
    print(f"  AWS Region: {settings.aws_region}")
    print(f"  AWS Endpoint: {settings.aws_endpoint_url}")
    print(f"  ECS Cluster: {settings.cluster_name}")
    print(f"  ECR Repository: {settings.ecr_repo_name}")
    print(f"  ECS Service: {settings.service_name}")
    print(f"  ECS S3 Service: {settings.s3_service_name}")
    print(f"  Task Family: {settings.task_family}")
    print(f"  Service Port: {settings.service_port}")
    print(f"  S3 Bucket: {settings.s3_bucket_name}")
    print(f"  Backend URL: {settings.backend_url}")
    print(f"  Remote Backend URL: {settings.remote_backend_url}")
    print(f"  Web URL: {settings.web_url}")
    print(f"  Project Root: {settings.root_path}")
    print(f"  Log Directory: {settings.log_path}")


# ---------------------------------------------------------------- ECS

@cli.group()
def ecs():
    """ECS cluster, image and service management"""
    pass


@ecs.command()
@handle_errors
def setup():
    """Create the cluster, ECR repository and security group"""
    from thakii_ops.aws.infrastructure import setup_infrastructure
    setup_infrastructure()


@ecs.command()
@click.option("--service", default=None, help="Service name (defaults to ECS_SERVICE_NAME)")
@click.option("--context", default=".", show_default=True, help="Docker build context")
@click.option("--skip-image", is_flag=True, help="Only register the task definition and roll the service")
@handle_errors
def deploy(service, context, skip_image):
    """Build, push and deploy the service image"""
    from thakii_ops.aws.deploy import deploy_service
    deploy_service(service_name=service, context=context, skip_image=skip_image)


@ecs.command("deploy-s3")
@click.option("--context", default=".", show_default=True, help="Docker build context")
@handle_errors
def deploy_s3(context):
    """Deploy the S3-enabled service, reusing a local image when present"""
    from thakii_ops.aws.deploy import deploy_service
    print("🚀 Deploying S3-enabled Thakii Lecture2PDF Service...")
    settings = get_settings()
    deploy_service(
        service_name=settings.s3_service_name,
        context=context,
        reuse_existing_image=True,
    )
    print(f"🪣 S3 Bucket: {settings.s3_bucket_name}")


@ecs.command()
@click.option("--group-id", default=None, help="Security group to inspect")
@click.option("--service-ip", default=None, help="Public IP to check")
@handle_errors
def diagnose(group_id, service_ip):
    """Check security group, connectivity, task status and logs"""
    from thakii_ops.aws.diagnostics import diagnose as run_diagnose
    run_diagnose(group_id=group_id, service_ip=service_ip)


@ecs.command()
@handle_errors
def logs():
    """Show task health and recent CloudWatch logs"""
    from thakii_ops.aws.diagnostics import check_logs
    check_logs()


@ecs.command()
@click.option("--no-create", is_flag=True, help="Do not create the service when no task runs")
@handle_errors
def ip(no_create):
    """Print the running task's public IP and endpoints"""
    from thakii_ops.aws.diagnostics import show_public_ip
    show_public_ip(create_if_missing=not no_create)


# ---------------------------------------------------------------- local stack

@cli.group()
def stack():
    """Local backend, worker and frontend"""
    pass


@stack.command("start")
@click.option("--no-monitor", is_flag=True, help="Return once the frontend is up")
@handle_errors
def stack_start(no_monitor):
    """Start the local frontend against the remote backend"""
    from thakii_ops.local.stack import FullStackRunner
    FullStackRunner().start(monitor=not no_monitor)


@stack.command("test")
@handle_errors
def stack_test():
    """Run backend and frontend smoke tests"""
    from thakii_ops.local.stack import FullStackRunner
    if not FullStackRunner().run_tests():
        sys.exit(1)


@stack.command("stop")
@handle_errors
def stack_stop():
    """Stop the local frontend"""
    from thakii_ops.local.stack import FullStackRunner
    FullStackRunner().stop()


@stack.command("status")
@handle_errors
def stack_status():
    """Show backend and frontend status"""
    from thakii_ops.local.stack import FullStackRunner
    FullStackRunner().status()


@stack.command("restart")
@click.option("--no-monitor", is_flag=True, help="Return once the frontend is up")
@handle_errors
def stack_restart(no_monitor):
    """Stop then start the local frontend"""
    from thakii_ops.local.stack import FullStackRunner
    FullStackRunner().restart(monitor=not no_monitor)


@stack.command("logs")
@handle_errors
def stack_logs():
    """Follow the frontend log"""
    from thakii_ops.local.stack import FullStackRunner
    FullStackRunner().logs()


@stack.command("start-simple")
@handle_errors
def stack_start_simple():
    """Start the frontend and exit without monitoring"""
    from thakii_ops.local.stack import start_simple
    start_simple()


@stack.command("start-all")
@handle_errors
def stack_start_all():
    """Start backend, worker and frontend locally"""
    from thakii_ops.local.stack import start_all
    start_all()


@stack.command("stop-all")
@handle_errors
def stack_stop_all():
    """Stop every local service and remove its logs"""
    from thakii_ops.local.stack import stop_all
    stop_all()


@stack.command("validate")
@handle_errors
def stack_validate():
    """Start backend and web locally and validate their endpoints"""
    from thakii_ops.local.stack import validate_and_run
    validate_and_run()


# ---------------------------------------------------------------- VPN

@cli.group()
@click.option("--env-file", default=None, type=click.Path(dir_okay=False),
              help="Credentials file (defaults to <project root>/.env.vpn)")
@click.pass_context
def vpn(ctx, env_file):
    """PIA OpenVPN management"""
    ctx.ensure_object(dict)
    ctx.obj["env_file"], ctx.obj["log_file"] = _vpn_paths(env_file)


def _run_vpn_action(ctx, action):
    from thakii_ops.vpn.manager import VPNManager

    manager = VPNManager(ctx.obj["env_file"], ctx.obj["log_file"])
    handler = configure_file_logging(manager.log_file.with_name("vpn_cli.log"), "thakii_ops.vpn")
    try:
        print_header("🔐 PIA VPN CONNECTION MANAGER")
        manager.record_original_ip()
        manager.load()
        manager.check_prerequisites()

        if action == "status":
            manager.show_network_status()
        elif action == "connect":
            manager.connect_and_test()
        elif action == "disconnect":
            manager.disconnect()
        elif action == "test":
            manager.test()
        elif action == "logs":
            manager.show_logs()
        else:
            manager.interactive()
    finally:
        manager.cleanup()
        logging.getLogger("thakii_ops.vpn").removeHandler(handler)
        handler.close()


@vpn.command("setup")
@click.pass_context
@handle_errors
def vpn_setup(ctx):
    """Prompt for PIA credentials and write the env file"""
    from thakii_ops.vpn.credentials import setup_env_file
    if setup_env_file(ctx.obj["env_file"]) is None:
        sys.exit(1)


@vpn.command("run")
@click.argument("action", required=False, default="interactive", type=click.Choice(VPN_ACTIONS))
@click.pass_context
@handle_errors
def vpn_run(ctx, action):
    """Run a manager action (interactive menu by default)"""
    _run_vpn_action(ctx, action)


@vpn.command("status")
@click.pass_context
@handle_errors
def vpn_status(ctx):
    """Show public IP, location and VPN process state"""
    from thakii_ops.vpn.manager import VPNManager
    VPNManager(ctx.obj["env_file"], ctx.obj["log_file"]).show_network_status()


@vpn.command("connect")
@click.pass_context
@handle_errors
def vpn_connect(ctx):
    """Connect and test the tunnel"""
    _run_vpn_action(ctx, "connect")


@vpn.command("disconnect")
@click.pass_context
@handle_errors
def vpn_disconnect(ctx):
    """Stop the tunnel"""
    from thakii_ops.vpn.manager import VPNManager
    VPNManager(ctx.obj["env_file"], ctx.obj["log_file"]).disconnect()


@vpn.command("test")
@click.pass_context
@handle_errors
def vpn_test(ctx):
    """IP change, DNS leak and speed checks"""
    _run_vpn_action(ctx, "test")


@vpn.command("logs")
@click.option("--lines", default=20, show_default=True, help="Number of lines to show")
@click.pass_context
@handle_errors
def vpn_logs(ctx, lines):
    """Show the OpenVPN log tail"""
    from thakii_ops.vpn.manager import VPNManager
    VPNManager(ctx.obj["env_file"], ctx.obj["log_file"]).show_logs(lines)


@vpn.command("quick")
@click.pass_context
@handle_errors
def vpn_quick(ctx):
    """Quick status check"""
    from thakii_ops.vpn.checks import quick_status
    if not quick_status(ctx.obj["env_file"]):
        sys.exit(1)


@vpn.command("self-test")
@click.pass_context
@handle_errors
def vpn_self_test(ctx):
    """Offline checks of the VPN setup"""
    from thakii_ops.vpn.checks import self_test
    if not self_test(ctx.obj["env_file"]):
        sys.exit(1)


@vpn.command("demo")
@click.pass_context
@handle_errors
def vpn_demo(ctx):
    """Guided walkthrough of the VPN tooling"""
    from thakii_ops.vpn.checks import demo
    demo(ctx.obj["env_file"])


if __name__ == "__main__":
    cli()
