"""
ECS service diagnostics.

Read-only views over the running service: security group rules, task and
container status, CloudWatch log tails, the task's public IP and a plain TCP
reachability check. Every call re-queries AWS; nothing is cached.
"""

import logging
import socket
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from botocore.exceptions import ClientError

from thakii_ops.aws.clients import get_ec2_client, get_ecs_client, get_logs_client
from thakii_ops.aws.deploy import ECSServiceDeployer
from thakii_ops.aws.infrastructure import ECSInfrastructureManager
from thakii_ops.config.settings import Settings, get_settings
from thakii_ops.exceptions import DeploymentError
from thakii_ops.utils.console import print_error, print_success, print_warning

logger = logging.getLogger(__name__)


@dataclass
class TaskStatus:
    task_arn: str
    last_status: Optional[str]
    health_status: Optional[str]
    container_name: Optional[str] = None
    container_status: Optional[str] = None
    container_health: Optional[str] = None
    exit_code: Optional[int] = None
    reason: Optional[str] = None


@dataclass
class ServiceSummary:
    service_name: str
    status: str
    running_count: int
    desired_count: int
    pending_count: int


def check_tcp(host: str, port: int, timeout: float = 5.0) -> bool:
    """Port check equivalent to `nc -z`."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


class ECSDiagnostics:
    """Queries ECS, EC2 and CloudWatch Logs for the configured service."""

    def __init__(self, settings: Optional[Settings] = None, service_name: Optional[str] = None):
        self.settings = settings or get_settings()
        self.service_name = service_name or self.settings.s3_service_name
        self.ecs_client = get_ecs_client()
        self.ec2_client = get_ec2_client()
        self.logs_client = get_logs_client()

    def describe_security_group_rules(self, group_id: str) -> List[Tuple[str, Optional[int], Optional[int], Optional[str]]]:
        """Inbound rules as (protocol, from port, to port, first CIDR)."""
        response = self.ec2_client.describe_security_groups(GroupIds=[group_id])
        groups = response.get('SecurityGroups', [])
        if not groups:
            return []
        rules = []
        for permission in groups[0].get('IpPermissions', []):
            ranges = permission.get('IpRanges', [])
            cidr = ranges[0].get('CidrIp') if ranges else None
            rules.append((
                permission.get('IpProtocol'),
                permission.get('FromPort'),
                permission.get('ToPort'),
                cidr
            ))
        return rules

    def ensure_ingress_rule(self, group_id: str, port: int) -> bool:
        """Open the port. False when the rule already existed."""
        manager = ECSInfrastructureManager(self.settings)
        return manager.authorize_port(group_id, port)

    def get_first_task_arn(self) -> Optional[str]:
        try:
            response = self.ecs_client.list_tasks(
                cluster=self.settings.cluster_name,
                serviceName=self.service_name
            )
        except ClientError as e:
            logger.warning(f"Could not list tasks for {self.service_name}: {e}")
            return None
        task_arns = response.get('taskArns', [])
        return task_arns[0] if task_arns else None

    def describe_task(self, task_arn: str) -> Optional[Dict[str, Any]]:
        response = self.ecs_client.describe_tasks(
            cluster=self.settings.cluster_name,
            tasks=[task_arn]
        )
        tasks = response.get('tasks', [])
        return tasks[0] if tasks else None

    def get_task_status(self, task_arn: str) -> Optional[TaskStatus]:
        task = self.describe_task(task_arn)
        if not task:
            return None

        status = TaskStatus(
            task_arn=task_arn,
            last_status=task.get('lastStatus'),
            health_status=task.get('healthStatus')
        )
        containers = task.get('containers', [])
        if containers:
            container = containers[0]
            status.container_name = container.get('name')
            status.container_status = container.get('lastStatus')
            status.container_health = container.get('healthStatus')
            status.exit_code = container.get('exitCode')
            status.reason = container.get('reason')
        return status

    def get_task_eni_id(self, task_arn: str) -> Optional[str]:
        task = self.describe_task(task_arn)
        if not task:
            return None

        eni_id = None
        for attachment in task.get('attachments', []):
            for detail in attachment.get('details', []):
                if detail.get('name') == 'networkInterfaceId':
                    eni_id = detail.get('value')
                    break
            if eni_id:
                break

        if not eni_id:
            logger.info(f"Task {task_arn} has no network interface attachment")
        return eni_id

    def get_eni_public_ip(self, eni_id: str) -> Optional[str]:
        response = self.ec2_client.describe_network_interfaces(NetworkInterfaceIds=[eni_id])
        interfaces = response.get('NetworkInterfaces', [])
        if not interfaces:
            return None
        return interfaces[0].get('Association', {}).get('PublicIp')

    def get_task_public_ip(self, task_arn: str) -> Optional[str]:
        """Follow the task's ENI to its public IP."""
        eni_id = self.get_task_eni_id(task_arn)
        return self.get_eni_public_ip(eni_id) if eni_id else None

    def get_log_streams(self, limit: int = 3) -> List[str]:
        """Newest log streams in the service's log group."""
        try:
            response = self.logs_client.describe_log_streams(
                logGroupName=self.settings.log_group,
                orderBy='LastEventTime',
                descending=True,
                limit=limit
            )
        except ClientError as e:
            logger.info(f"No log streams for {self.settings.log_group}: {e}")
            return []
        return [stream['logStreamName'] for stream in response.get('logStreams', [])]

    def get_recent_log_messages(self, stream_name: str, limit: int = 10) -> List[str]:
        try:
            response = self.logs_client.get_log_events(
                logGroupName=self.settings.log_group,
                logStreamName=stream_name,
                limit=limit,
                startFromHead=False
            )
        except ClientError as e:
            logger.info(f"Could not read {stream_name}: {e}")
            return []
        return [event['message'] for event in response.get('events', [])]

    def get_service_summary(self) -> Optional[ServiceSummary]:
        service = ECSServiceDeployer(self.settings).describe_service(self.service_name)
        if not service:
            return None
        return ServiceSummary(
            service_name=service['serviceName'],
            status=service.get('status', 'UNKNOWN'),
            running_count=service.get('runningCount', 0),
            desired_count=service.get('desiredCount', 0),
            pending_count=service.get('pendingCount', 0)
        )


def diagnose(group_id: Optional[str] = None, service_ip: Optional[str] = None,
             settings: Optional[Settings] = None) -> None:
    """Print security group, connectivity, task and log diagnostics."""
    settings = settings or get_settings()
    diagnostics = ECSDiagnostics(settings)
    port = settings.service_port

    if not group_id:
        group_id = ECSInfrastructureManager(settings).find_security_group()
    print("🔍 Diagnosing ECS Service Connection Issues...")

    if group_id:
        print("🔒 Checking Security Group Rules...")
        print("")
        print("📋 Current Security Group Rules:")
        for protocol, from_port, to_port, cidr in diagnostics.describe_security_group_rules(group_id):
            print(f"  {protocol}\t{from_port}\t{to_port}\t{cidr or ''}")

        print("")
        print(f"🔧 Adding port {port} rule if missing...")
        try:
            if diagnostics.ensure_ingress_rule(group_id, port):
                print_success(f"Port {port} rule added")
            else:
                print_warning(f"Port {port} rule already exists")
        except ClientError as e:
            print_warning(f"Port {port} rule failed to add: {e}")
    else:
        print_warning(f"Security group {settings.security_group_name} not found")

    task_arn = diagnostics.get_first_task_arn()
    if not service_ip and task_arn:
        service_ip = diagnostics.get_task_public_ip(task_arn)

    print("")
    print("🌐 Testing connectivity...")
    if service_ip:
        print(f"Testing port {port}...")
        if check_tcp(service_ip, port):
            print_success(f"Connection to {service_ip} port {port} succeeded")
        else:
            print_error(f"Connection to {service_ip} port {port} failed")
    else:
        print_warning("No service IP available to test")

    print("")
    print("📊 ECS Task Status:")
    status = diagnostics.get_task_status(task_arn) if task_arn else None
    if status:
        print(f"{status.last_status}\t{status.health_status}\t{status.container_status}")
    else:
        print_error("No running tasks found")

    print("")
    print("📝 CloudWatch Logs (if available):")
    streams = diagnostics.get_log_streams(limit=1)
    if streams:
        print("Latest logs:")
        for message in diagnostics.get_recent_log_messages(streams[0], limit=5):
            print(message)
    else:
        print("No logs available yet")


def check_logs(settings: Optional[Settings] = None) -> bool:
    """Print task health, container detail, log tails and the service summary."""
    settings = settings or get_settings()
    diagnostics = ECSDiagnostics(settings)

    print("🔍 Checking ECS Task Health and Logs...")
    task_arn = diagnostics.get_first_task_arn()
    found = task_arn is not None

    if task_arn:
        print(f"📋 Task ARN: {task_arn}")
        status = diagnostics.get_task_status(task_arn)
        if status:
            print(
                f"📊 Task Status: {status.last_status} {status.health_status} "
                f"{status.container_status} {status.container_health}"
            )
            print("")
            print("🔍 Detailed Task Information:")
            print(f"  Container:     {status.container_name}")
            print(f"  Last status:   {status.container_status}")
            print(f"  Health status: {status.container_health}")
            print(f"  Exit code:     {status.exit_code}")
            print(f"  Reason:        {status.reason}")

        print("")
        print("📝 CloudWatch Logs:")
        streams = diagnostics.get_log_streams(limit=3)
        if streams:
            for stream in streams:
                print(f"--- Log Stream: {stream} ---")
                for message in diagnostics.get_recent_log_messages(stream, limit=10)[-5:]:
                    print(message)
                print("")
        else:
            print_error("No CloudWatch logs found")
    else:
        print_error("No running tasks found")

    print("")
    print("🌐 Service Summary:")
    try:
        summary = diagnostics.get_service_summary()
    except ClientError as e:
        logger.warning(f"Service lookup failed: {e}")
        summary = None
    if summary:
        print(
            f"  {summary.service_name} | {summary.status} | running={summary.running_count} "
            f"desired={summary.desired_count} pending={summary.pending_count}"
        )
    else:
        print("Service info unavailable")
    return found


def show_public_ip(create_if_missing: bool = True, settings: Optional[Settings] = None) -> Optional[str]:
    """
    Print the task's public IP and endpoints.

    When no task runs the service is created (or, without `create_if_missing`,
    a DeploymentError is raised) and None is returned. A task without an ENI
    or public IP also raises DeploymentError.
    """
    settings = settings or get_settings()
    diagnostics = ECSDiagnostics(settings)

    print("🔍 Getting ECS Task Details...")
    task_arn = diagnostics.get_first_task_arn()

    if not task_arn:
        if not create_if_missing:
            raise DeploymentError("No running tasks found")
        print_error("No running tasks found")
        print("Creating service...")
        network = ECSInfrastructureManager(settings).get_default_network()
        ECSServiceDeployer(settings).create_service(diagnostics.service_name, network)
        print("⏳ Service created. Wait 2-3 minutes for task to start, then run this command again.")
        return None

    print(f"Task ARN: {task_arn}")
    eni_id = diagnostics.get_task_eni_id(task_arn)
    if not eni_id:
        raise DeploymentError("No ENI found")
    print(f"ENI ID: {eni_id}")

    public_ip = diagnostics.get_eni_public_ip(eni_id)
    if not public_ip:
        raise DeploymentError("No public IP found")

    port = settings.service_port
    print_success(f"Public IP: {public_ip}")
    print(f"🌐 Service URL: http://{public_ip}:{port}")
    print("")
    print("📋 Test endpoints:")
    print(f"  - Upload: POST http://{public_ip}:{port}/upload")
    print(f"  - List: GET http://{public_ip}:{port}/list")
    print(f"  - Download: GET http://{public_ip}:{port}/download/{{video_id}}")
    return public_ip
