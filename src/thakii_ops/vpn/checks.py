"""Non-connecting VPN checks: quick status, self-test and a guided walkthrough."""

import logging
import shutil
import tempfile
from pathlib import Path
from typing import List

import click

from thakii_ops.aws.diagnostics import check_tcp
from thakii_ops.exceptions import CredentialsError
from thakii_ops.local.ports import find_pids_by_pattern
from thakii_ops.utils.console import print_error, print_header, print_info, print_step, print_success, print_warning
from thakii_ops.utils.shell import command_exists, has_passwordless_sudo
from thakii_ops.vpn.credentials import SECURE_MODE, file_mode, load_env_file, mask_secret
from thakii_ops.vpn.manager import VPN_PROCESS_PATTERN
from thakii_ops.vpn.network import current_ip_info, get_public_ip, https_reachable, resolve_dns
from thakii_ops.vpn.openvpn import openvpn_version, write_config, write_credentials_file

logger = logging.getLogger(__name__)

AVAILABLE_COMMANDS = (
    ("thakii-ops vpn status", "Detailed network status"),
    ("thakii-ops vpn connect", "Connect to VPN"),
    ("thakii-ops vpn disconnect", "Disconnect VPN"),
    ("thakii-ops vpn test", "Test VPN connection"),
    ("thakii-ops vpn run", "Interactive mode"),
)


def _print_commands() -> None:
    click.echo("Available commands:")
    for command, description in AVAILABLE_COMMANDS:
        click.echo(f"  {command:<28} # {description}")


def quick_status(env_file: Path) -> bool:
    """One-screen status. False when the credentials file is missing."""
    env_file = Path(env_file)
    if not env_file.is_file():
        print_error("VPN environment file not found!")
        print_info("Run the following commands first:")
        click.echo("  thakii-ops vpn setup    # Set up credentials securely")
        click.echo("  thakii-ops vpn run      # Full VPN management")
        return False

    click.echo("🔐 Quick VPN Status Check")
    click.echo("=" * 25)
    click.echo(f"Current IP: {get_public_ip() or 'Unknown'}")

    if find_pids_by_pattern(VPN_PROCESS_PATTERN):
        print_success("VPN process is running")
    else:
        print_info("No VPN process detected")

    click.echo()
    _print_commands()
    return True


def self_test(env_file: Path) -> bool:
    """Six offline checks of the VPN setup. Temporary files are always removed."""
    click.secho("🔐 VPN Test Script - Proof of Concept", fg="cyan")
    click.echo("=" * 40)

    click.secho("\nTest 1: Environment File", fg="blue")
    try:
        settings = load_env_file(env_file)
    except CredentialsError as e:
        print_error(str(e))
        return False
    print_success(f"{Path(env_file).name} file found")
    print_success("Credentials loaded successfully")
    click.echo(f"   Username: {settings.username}")
    click.echo(f"   Password: {mask_secret(settings.password)}")
    click.echo(f"   Server: {settings.server}")
    click.echo(f"   Port: {settings.port}")

    click.secho("\nTest 2: Prerequisites", fg="blue")
    version = openvpn_version()
    if version:
        print_success(f"OpenVPN found: {' '.join(version.split()[:2])}")
    else:
        print_error("OpenVPN not found")

    click.secho("\nTest 3: Current Network Status", fg="blue")
    click.echo("Getting current IP information...")
    info = current_ip_info()
    if info.known:
        print_success("Network information retrieved:")
        click.echo(f"   IP: {info.ip}")
        click.echo(f"   Location: {info.location}")
        click.echo(f"   ISP: {info.org}")
    else:
        print_error("Could not retrieve network information")

    click.secho("\nTest 4: VPN Process Check", fg="blue")
    pids = find_pids_by_pattern(VPN_PROCESS_PATTERN)
    if pids:
        print_success("VPN process detected")
        for pid in pids:
            click.echo(f"   PID: {pid}")
    else:
        print_info("No VPN process currently running")

    workdir = Path(tempfile.mkdtemp(prefix="thakii_vpn_"))
    try:
        click.secho("\nTest 5: OpenVPN Configuration Test", fg="blue")
        config_path = write_config(workdir / "test_pia.conf", settings, include_ca=False)
        print_success(f"Test OpenVPN configuration created at {config_path}")
        click.echo(f"   Server: {settings.endpoint}")

        click.secho("\nTest 6: Credentials File Test", fg="blue")
        creds_path = write_credentials_file(workdir / "test_pia_creds", settings)
        print_success(f"Test credentials file created at {creds_path}")
        click.echo(f"   Permissions: {file_mode(creds_path):o}")
    finally:
        shutil.rmtree(workdir, ignore_errors=True)

    click.secho("\n🎉 All tests completed successfully!", fg="green")
    click.secho("The VPN management system is properly configured.", fg="cyan")
    click.echo("\nNext steps:")
    click.echo("• Use 'thakii-ops vpn connect' to connect to VPN")
    click.echo("• Use 'thakii-ops vpn disconnect' to disconnect")
    click.echo("• Use 'thakii-ops vpn test' to test connection")
    click.echo("\n✅ Cleanup completed")
    return True


def demo(env_file: Path) -> List[str]:
    """
    Guided ten-step walkthrough of the VPN tooling.

    Nothing here connects the tunnel. Each step only reports, so a missing
    credentials file or openvpn binary produces warnings rather than errors.

    Returns:
        Titles of the steps that produced a warning
    """
    env_file = Path(env_file)
    warnings: List[str] = []
    width = 50

    def warn(step: str, message: str) -> None:
        warnings.append(step)
        print_warning(message)

    print_header("🚀 VPN MANAGEMENT SYSTEM DEMONSTRATION")

    step = "1. ENVIRONMENT SETUP VERIFICATION"
    print_step(step, width)
    settings = None
    if env_file.is_file():
        print_success("VPN environment file exists")
        print_success(f"File permissions: {file_mode(env_file):o}")
        try:
            settings = load_env_file(env_file)
            print_success(f"Credentials loaded: {settings.username} / {settings.password[:3]}***")
            print_success(f"Server configuration: {settings.endpoint} ({settings.protocol})")
        except CredentialsError as e:
            warn(step, str(e))
    else:
        warn(step, "Environment file not found")

    step = "2. COMMAND AVAILABILITY CHECK"
    print_step(step, width)
    for tool in ("openvpn", "sudo", "pkill"):
        if command_exists(tool):
            print_success(f"{tool} is available")
        else:
            warn(step, f"{tool} not found")

    step = "3. CURRENT NETWORK STATUS (BEFORE VPN)"
    print_step(step, width)
    print_info("Fetching current network information...")
    info = current_ip_info()
    if info.known:
        print_success(f"Current IP: {info.ip}")
        print_info(f"Location: {info.city}, {info.country}")
        print_info(f"ISP: {info.org}")
    else:
        warn(step, "Could not retrieve current IP")

    step = "4. VPN PREREQUISITES CHECK"
    print_step(step, width)
    version = openvpn_version()
    if version:
        print_success(f"OpenVPN installed: {' '.join(version.split()[:2])}")
        print_info(f"Location: {shutil.which('openvpn')}")
    else:
        warn(step, "OpenVPN not found - install with: brew install openvpn")
    if has_passwordless_sudo():
        print_success("Sudo access available (passwordless)")
    else:
        print_info("Sudo access may require password (normal for VPN operations)")

    step = "5. OPENVPN CONFIGURATION GENERATION"
    print_step(step, width)
    workdir = Path(tempfile.mkdtemp(prefix="thakii_vpn_demo_"))
    try:
        if settings:
            creds_path = workdir / "demo_pia_creds"
            config_path = write_config(workdir / "demo_pia.conf", settings, str(creds_path), include_ca=False)
            print_success("OpenVPN configuration generated")
            print_info(f"Config file: {config_path}")
            print_info(f"Target server: {settings.endpoint}")
            write_credentials_file(creds_path, settings)
            print_success("Credentials file created securely")
            print_info(f"Credentials file: {creds_path}")
        else:
            warn(step, "Skipped, no credentials loaded")

        step = "6. PIA SERVER CONNECTIVITY TEST"
        print_step(step, width)
        if settings:
            print_info("Testing connectivity to PIA server...")
            # UDP servers usually refuse TCP connections
            if check_tcp(settings.server, settings.port, timeout=5):
                print_success(f"PIA server is reachable: {settings.endpoint}")
            else:
                warn(step, "PIA server test inconclusive (may be normal)")
        else:
            warn(step, "Skipped, no server configured")

        step = "7. VPN PROCESS MANAGEMENT TEST"
        print_step(step, width)
        pids = find_pids_by_pattern("openvpn")
        if pids:
            print_info("Existing OpenVPN processes detected:")
            for pid in pids:
                print_info(f"  PID: {pid}")
        else:
            print_info("No OpenVPN processes currently running")

        step = "8. QUICK STATUS CHECK"
        print_step(step, width)
        print_info("Running quick status check...")
        public_ip = get_public_ip()
        if public_ip:
            print_success("Quick status check executed successfully")
            print_info(f"Detected IP: {public_ip}")
        else:
            warn(step, "Quick status check had issues")

        step = "9. DNS AND SECURITY FEATURES TEST"
        print_step(step, width)
        print_info("Testing DNS resolution...")
        if resolve_dns("google.com"):
            print_success("DNS resolution working")
        else:
            warn(step, "DNS resolution issues detected")
        print_info("Testing HTTPS connectivity...")
        if https_reachable("https://www.google.com"):
            print_success("HTTPS connectivity working")
        else:
            warn(step, "HTTPS connectivity issues")

        step = "10. FILE SECURITY AND CLEANUP"
        print_step(step, width)
        print_info("Checking file permissions...")
        if env_file.is_file() and file_mode(env_file) == SECURE_MODE:
            print_success("Environment file has secure permissions (600)")
        elif env_file.is_file():
            warn(step, f"Environment file permissions should be 600, currently: {file_mode(env_file):o}")
        else:
            warn(step, "Environment file missing, nothing to audit")
        print_info("Cleaning up temporary files...")
    finally:
        shutil.rmtree(workdir, ignore_errors=True)
    print_success("Temporary files cleaned up")

    print_step("🎉 DEMONSTRATION SUMMARY", width)
    if warnings:
        print_warning(f"VPN Management System Status: {len(warnings)} step(s) need attention")
    else:
        print_success("VPN Management System Status: FULLY FUNCTIONAL")
    click.echo()
    click.secho("Available Commands:", fg="cyan")
    click.echo("• thakii-ops vpn setup      - Set up VPN credentials securely")
    click.echo("• thakii-ops vpn run        - Full VPN management (connect/disconnect/test)")
    click.echo("• thakii-ops vpn quick      - Quick status check")
    click.echo("• thakii-ops vpn self-test  - Simple functionality test")
    click.echo()
    click.secho("Important Security Notes:", fg="yellow")
    click.echo("• Credentials are stored with 600 permissions")
    click.echo("• Environment file is added to .gitignore")
    click.echo("• Temporary files are automatically cleaned up")
    click.echo("• VPN operations require sudo access for network interfaces")
    return warnings
