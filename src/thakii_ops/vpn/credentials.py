"""PIA credentials kept in a private `.env.vpn` file."""

import datetime
import logging
import os
import stat
from pathlib import Path
from typing import Optional

import click
from dotenv import dotenv_values
from pydantic import ValidationError

from thakii_ops.config.settings import (
    DEFAULT_VPN_PORT,
    DEFAULT_VPN_PROTOCOL,
    DEFAULT_VPN_SERVER,
    VPNSettings,
)
from thakii_ops.exceptions import CredentialsError
from thakii_ops.utils.console import print_info, print_success, print_warning

logger = logging.getLogger(__name__)

ENV_FILE_NAME = ".env.vpn"
SECURE_MODE = 0o600


def file_mode(path: Path) -> int:
    return stat.S_IMODE(os.stat(path).st_mode)


def mask_secret(value: str) -> str:
    """First and last three characters around `***`."""
    if len(value) <= 6:
        return "***"
    return f"{value[:3]}***{value[-3:]}"


def write_env_file(path: Path, username: str, password: str, server: str = DEFAULT_VPN_SERVER,
                   port: int = DEFAULT_VPN_PORT, protocol: str = DEFAULT_VPN_PROTOCOL) -> Path:
    """Write the credentials file, readable and writable by the owner only."""
    path = Path(path)
    content = (
        "# PIA VPN Configuration\n"
        f"# Generated on {datetime.datetime.now():%a %b %d %H:%M:%S %Y}\n"
        "# KEEP THIS FILE SECURE AND PRIVATE!\n"
        "\n"
        f"PIA_USERNAME={username}\n"
        f"PIA_PASSWORD={password}\n"
        "\n"
        "# VPN Configuration\n"
        f"VPN_SERVER={server}\n"
        f"VPN_PORT={port}\n"
        f"VPN_PROTOCOL={protocol}\n"
    )
    # Create with restricted permissions so the secret is never world readable
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, SECURE_MODE)
    with os.fdopen(fd, "w") as f:
        f.write(content)
    os.chmod(path, SECURE_MODE)
    logger.info(f"Wrote VPN environment file {path}")
    return path


def ensure_gitignored(directory: Path, entry: str = ENV_FILE_NAME) -> bool:
    """Append the entry to .gitignore. Returns True when the file changed."""
    gitignore = Path(directory) / ".gitignore"
    if not gitignore.exists():
        gitignore.write_text(f"{entry}\n")
        print_success(f"Created .gitignore with {entry}")
        return True

    content = gitignore.read_text()
    if entry in content.splitlines():
        return False
    with open(gitignore, "a") as f:
        if content and not content.endswith("\n"):
            f.write("\n")
        f.write(f"{entry}\n")
    print_success(f"Added {entry} to .gitignore")
    return True


def setup_env_file(path: Path, username: Optional[str] = None,
                   password: Optional[str] = None) -> Optional[Path]:
    """Prompt for PIA credentials and write them. Returns None when the user declines to overwrite."""
    path = Path(path)
    click.echo("🔐 Secure VPN Environment Setup")
    click.echo("=" * 32)

    if path.exists():
        print_warning(f"{path.name} already exists!")
        if not click.confirm("Do you want to overwrite it?", default=False):
            click.echo("Aborted.")
            return None

    if username is None or password is None:
        click.echo("Enter your PIA credentials:")
    if username is None:
        username = click.prompt("Username")
    if password is None:
        password = click.prompt("Password", hide_input=True)

    if not username or not password:
        raise CredentialsError("Username and password must not be empty")

    write_env_file(path, username, password)
    ensure_gitignored(path.parent, path.name)

    print_success("VPN environment file created securely")
    click.echo("🔒 File permissions set to 600 (owner read/write only)")
    print_warning("Remember to change your password if it was previously exposed!")
    return path


def load_env_file(path: Path) -> VPNSettings:
    """Read and validate the credentials file, fixing loose permissions first."""
    path = Path(path)
    if not path.is_file():
        raise CredentialsError(
            f"VPN environment file not found: {path}. Run `thakii-ops vpn setup` first."
        )

    mode = file_mode(path)
    if mode != SECURE_MODE:
        print_warning(f"Environment file has incorrect permissions: {mode:o}")
        print_info("Setting secure permissions...")
        os.chmod(path, SECURE_MODE)

    # Blank entries fall back to the model defaults
    values = {key: value for key, value in dotenv_values(path).items() if value}
    try:
        return VPNSettings.model_validate(values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in e.errors()
        )
        raise CredentialsError(f"Invalid VPN settings in {path}: {problems}")
