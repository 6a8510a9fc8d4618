import logging
from logging.handlers import RotatingFileHandler
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError
from click.testing import CliRunner

from thakii_ops.cli import cli
from thakii_ops.config.settings import get_settings
from thakii_ops.exceptions import DeploymentError
from thakii_ops.vpn.credentials import write_env_file
from thakii_ops.vpn.manager import VPNManager
from thakii_ops.vpn.network import IPInfo
from tests.consts import TEST_VPN_PASSWORD, TEST_VPN_USERNAME


@pytest.fixture
def runner(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("PROJECT_ROOT", str(tmp_path))
    monkeypatch.setenv("ECS_CLUSTER_NAME", "Thakii-cli")
    get_settings.cache_clear()
    yield CliRunner()
    get_settings.cache_clear()


@pytest.fixture
def vpn_temp_files(tmp_path, monkeypatch):
    """Keep the manager's OpenVPN config, credentials and pid file out of /tmp."""
    config_path = tmp_path / "pia_openvpn.conf"
    credentials_path = tmp_path / "pia_credentials"
    monkeypatch.setattr("thakii_ops.vpn.manager.DEFAULT_CONFIG_PATH", config_path)
    monkeypatch.setattr("thakii_ops.vpn.manager.DEFAULT_CREDENTIALS_PATH", credentials_path)
    monkeypatch.setattr("thakii_ops.vpn.manager.DEFAULT_PID_FILE", tmp_path / "pia_openvpn.pid")
    return config_path, credentials_path


def test_show_config(runner, tmp_path):
    result = runner.invoke(cli, ["show-config"])

    assert result.exit_code == 0
    assert "ECS Cluster: Thakii-cli" in result.output
    assert f"Project Root: {tmp_path.resolve()}" in result.output


def test_vpn_status_prints_current_ip(runner):
    with patch("thakii_ops.vpn.manager.current_ip_info",
               return_value=IPInfo(ip="203.0.113.7", city="Ashburn", region="Virginia", country="US")), \
            patch("thakii_ops.vpn.manager.find_pids_by_pattern", return_value=[]):
        result = runner.invoke(cli, ["vpn", "status"])

    assert result.exit_code == 0
    assert "203.0.113.7" in result.output
    assert "Ashburn, Virginia, US" in result.output


def test_vpn_self_test_without_credentials(runner, tmp_path):
    result = runner.invoke(cli, ["vpn", "--env-file", str(tmp_path / "missing.env"), "self-test"])

    assert result.exit_code == 1
    assert "not found" in result.output


def test_vpn_connect_without_credentials_exits(runner, vpn_temp_files):
    with patch("thakii_ops.vpn.manager.current_ip_info", return_value=IPInfo()):
        result = runner.invoke(cli, ["vpn", "connect"])

    assert result.exit_code == 1
    assert "❌" in result.output


def test_stack_stop_all(runner):
    with patch("thakii_ops.local.stack.kill_port") as kill_port, \
            patch("thakii_ops.local.stack.kill_process"):
        result = runner.invoke(cli, ["stack", "stop-all"])

    assert result.exit_code == 0
    assert kill_port.called


def test_aws_errors_exit_with_message(runner):
    error = ClientError({"Error": {"Code": "ClusterNotFoundException", "Message": "Cluster not found."}},
                        "DescribeServices")
    with patch("thakii_ops.aws.diagnostics.check_logs", side_effect=error):
        result = runner.invoke(cli, ["ecs", "logs"])

    assert result.exit_code == 1
    assert "ClusterNotFoundException" in result.output


def test_deploy_s3_prints_bucket(runner, monkeypatch):
    monkeypatch.setenv("S3_BUCKET_NAME", "thakii-video-storage-test")
    get_settings.cache_clear()

    with patch("thakii_ops.aws.deploy.deploy_service") as deploy:
        result = runner.invoke(cli, ["ecs", "deploy-s3"])

    assert result.exit_code == 0
    deploy.assert_called_once_with(
        service_name="thakii-lecture2pdf-s3-service", context=".", reuse_existing_image=True
    )
    assert "🪣 S3 Bucket: thakii-video-storage-test" in result.output


def test_ecs_ip_succeeds_after_creating_service(runner):
    with patch("thakii_ops.aws.diagnostics.show_public_ip", return_value=None) as show:
        result = runner.invoke(cli, ["ecs", "ip"])

    assert result.exit_code == 0
    show.assert_called_once_with(create_if_missing=True)


def test_ecs_ip_missing_eni_exits(runner):
    with patch("thakii_ops.aws.diagnostics.show_public_ip", side_effect=DeploymentError("No ENI found")):
        result = runner.invoke(cli, ["ecs", "ip", "--no-create"])

    assert result.exit_code == 1
    assert "❌ No ENI found" in result.output


def test_vpn_run_connect_cleans_up_after_timeout(runner, tmp_path, vpn_temp_files):
    config_path, credentials_path = vpn_temp_files
    env_file = write_env_file(tmp_path / ".env.vpn", TEST_VPN_USERNAME, TEST_VPN_PASSWORD)
    started = []

    def fake_openvpn(cmd, **kwargs):
        if cmd[0] == "openvpn":
            started.append(config_path.exists() and credentials_path.exists())
        return "", ""

    with patch("thakii_ops.vpn.manager.current_ip_info", return_value=IPInfo(ip="198.51.100.1")), \
            patch.object(VPNManager, "check_prerequisites"), \
            patch("thakii_ops.vpn.manager.run_command", side_effect=fake_openvpn), \
            patch("thakii_ops.vpn.manager.find_pids_by_pattern", return_value=[]), \
            patch("thakii_ops.vpn.manager.time.sleep"):
        result = runner.invoke(cli, ["vpn", "--env-file", str(env_file), "run", "connect"])

    assert result.exit_code == 1
    assert "VPN connection failed or timed out" in result.output
    assert started == [True]
    assert not config_path.exists()
    assert not credentials_path.exists()
    assert not any(isinstance(h, RotatingFileHandler) for h in logging.getLogger("thakii_ops.vpn").handlers)
