"""
PIA VPN connection manager.

Connects by writing a temporary OpenVPN config and credentials file and
starting `sudo openvpn --daemon`. A connection counts as up once the public IP
reported by ipinfo.io differs from the one recorded before connecting.
"""

import logging
import time
from collections import deque
from pathlib import Path
from typing import List, Optional

import click

from thakii_ops.config.settings import VPNSettings
from thakii_ops.exceptions import CommandError, PrerequisiteError, VPNConnectionError
from thakii_ops.local.ports import find_pids_by_pattern
from thakii_ops.utils.console import (
    print_error,
    print_field,
    print_info,
    print_step,
    print_success,
    print_warning,
)
from thakii_ops.utils.shell import has_passwordless_sudo, run_command
from thakii_ops.vpn.credentials import load_env_file
from thakii_ops.vpn.network import (
    IPInfo,
    current_ip_info,
    dns_leak_test,
    https_reachable,
    speed_test,
)
from thakii_ops.vpn.openvpn import openvpn_version, write_config, write_credentials_file

logger = logging.getLogger(__name__)

VPN_PROCESS_PATTERN = "openvpn.*pia"
DEFAULT_CONFIG_PATH = Path("/tmp/pia_openvpn.conf")
DEFAULT_CREDENTIALS_PATH = Path("/tmp/pia_credentials")
DEFAULT_PID_FILE = Path("/tmp/pia_openvpn.pid")

MENU_OPTIONS = (
    "Show current network status",
    "Connect to VPN",
    "Disconnect from VPN",
    "Test VPN connection",
    "Show connection logs",
    "Exit",
)


class VPNManager:
    def __init__(self, env_file: Path, log_file: Path,
                 config_path: Optional[Path] = None,
                 credentials_path: Optional[Path] = None,
                 pid_file: Optional[Path] = None):
        self.env_file = Path(env_file)
        self.log_file = Path(log_file)
        self.config_path = Path(config_path or DEFAULT_CONFIG_PATH)
        self.credentials_path = Path(credentials_path or DEFAULT_CREDENTIALS_PATH)
        self.pid_file = Path(pid_file or DEFAULT_PID_FILE)
        self.settings: Optional[VPNSettings] = None
        self.original_ip: Optional[str] = None

        self.log_file.parent.mkdir(parents=True, exist_ok=True)

    def record_original_ip(self) -> Optional[str]:
        info = current_ip_info()
        self.original_ip = info.ip if info.known else None
        return self.original_ip

    def load(self) -> VPNSettings:
        self.settings = load_env_file(self.env_file)
        print_success("Environment loaded successfully")
        return self.settings

    def check_prerequisites(self) -> None:
        print_step("🔍 CHECKING PREREQUISITES")

        version = openvpn_version()
        if not version:
            print_info("Install with: brew install openvpn (macOS) or apt install openvpn")
            raise PrerequisiteError("OpenVPN not installed")
        print_success(f"OpenVPN found: {version}")

        if https_reachable("https://ipinfo.io"):
            print_success("HTTPS client ready")
        else:
            print_warning("Could not reach ipinfo.io, IP checks will be inconclusive")

        if not has_passwordless_sudo():
            print_warning("Script may require sudo access for VPN operations")

        print_success("Prerequisites check completed")

    def find_vpn_pids(self) -> List[int]:
        return find_pids_by_pattern(VPN_PROCESS_PATTERN)

    def show_network_status(self) -> IPInfo:
        print_step("🌐 CURRENT NETWORK STATUS")
        info = current_ip_info()
        print_field("Current IP", info.ip)
        print_field("Location", info.location)
        print_field("ISP/Org", info.org)

        if self.find_vpn_pids():
            print_success("VPN process detected")
        else:
            print_info("No VPN process detected")
        return info

    def _require_settings(self) -> VPNSettings:
        if self.settings is None:
            return self.load()
        return self.settings

    def prepare(self) -> None:
        """Write the temporary OpenVPN config and credentials file."""
        settings = self._require_settings()
        print_step("📥 PREPARING PIA CONFIGURATION")
        print_info(f"Creating configuration for {settings.endpoint} ({settings.protocol})")

        write_config(self.config_path, settings, str(self.credentials_path))
        print_success(f"Configuration created at {self.config_path}")

        write_credentials_file(self.credentials_path, settings)
        print_success("Credentials file created securely")

    def _stop_existing(self) -> None:
        run_command(["pkill", "-f", VPN_PROCESS_PATTERN], check=False, use_sudo=True)

    def connect(self, max_wait: int = 30) -> str:
        """Start openvpn and wait for the public IP to change. Returns the new IP."""
        print_step("🔌 CONNECTING TO VPN")

        if self.find_vpn_pids():
            print_info("Stopping existing VPN connection...")
            self._stop_existing()
            time.sleep(2)

        print_info("Starting VPN connection...")
        print_warning("This requires sudo access for network interface creation")
        run_command(
            [
                "openvpn",
                "--config", str(self.config_path),
                "--daemon",
                "--writepid", str(self.pid_file),
                "--log", str(self.log_file),
            ],
            use_sudo=True,
        )

        print_info("Waiting for VPN connection...")
        for elapsed in range(1, max_wait + 1):
            if self.find_vpn_pids():
                time.sleep(2)
                info = current_ip_info()
                if info.known and info.ip != self.original_ip:
                    print_success("VPN connected successfully!")
                    return info.ip
            time.sleep(1)
            if elapsed % 5 == 0:
                print_info(f"Still connecting... ({elapsed}s elapsed)")

        raise VPNConnectionError("VPN connection failed or timed out")

    def disconnect(self) -> bool:
        print_step("🔌 DISCONNECTING VPN")

        if not self.find_vpn_pids():
            print_info("No VPN connection to disconnect")
            return False

        print_info("Stopping VPN connection...")
        self._stop_existing()
        time.sleep(2)

        if self.find_vpn_pids():
            print_warning("VPN process may still be running")
            return False
        print_success("VPN disconnected successfully")
        return True

    def test(self) -> bool:
        """Report IP change, DNS leak and speed. True when the IP differs from the original."""
        print_step("🧪 TESTING VPN CONNECTION")

        info = current_ip_info()
        print_field("Current IP", info.ip)
        print_field("Country", info.country)
        print_field("Organization", info.org)

        changed = bool(self.original_ip) and info.known and info.ip != self.original_ip
        if changed:
            print_success(f"IP address changed from {self.original_ip} to {info.ip}")
        else:
            print_warning("IP address unchanged - VPN may not be working")

        print_info("Testing DNS leak...")
        if dns_leak_test():
            print_success("DNS leak test passed - using PIA DNS")
        else:
            print_warning("DNS leak test inconclusive")

        print_info("Testing connection speed...")
        mbps = speed_test()
        if mbps:
            print_success(f"Download speed: {mbps:.2f} Mbps")
        else:
            print_info("Speed test inconclusive")
        return changed

    def show_logs(self, lines: int = 20) -> List[str]:
        print_step("📋 VPN CONNECTION LOGS")
        if not self.log_file.is_file():
            print_info("No log file found")
            return []
        with open(self.log_file, "r", errors="replace") as f:
            tail = [line.rstrip("\n") for line in deque(f, maxlen=lines)]
        for line in tail:
            click.echo(line)
        return tail

    def cleanup(self) -> None:
        print_info("Cleaning up temporary files...")
        for path in (self.config_path, self.credentials_path):
            try:
                path.unlink()
            except FileNotFoundError:
                continue

    def connect_and_test(self, max_wait: int = 30) -> str:
        self.prepare()
        ip = self.connect(max_wait=max_wait)
        self.test()
        return ip

    def interactive(self) -> None:
        while True:
            click.secho("\nVPN Manager Options:", fg="cyan")
            for number, label in enumerate(MENU_OPTIONS, start=1):
                click.echo(f"{number}. {label}")
            choice = click.prompt(f"Select an option (1-{len(MENU_OPTIONS)})", default="", show_default=False)

            try:
                if choice == "1":
                    self.show_network_status()
                elif choice == "2":
                    self.prepare()
                    self.connect()
                elif choice == "3":
                    self.disconnect()
                elif choice == "4":
                    self.test()
                elif choice == "5":
                    self.show_logs()
                elif choice == "6":
                    print_info("Exiting...")
                    break
                else:
                    print_error("Invalid option. Please try again.")
            except (CommandError, VPNConnectionError) as e:
                print_error(str(e))

            click.prompt("\nPress Enter to continue...", default="", show_default=False)
