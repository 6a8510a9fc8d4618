"""Thin wrappers around subprocess for external tools (aws, docker, npm, openvpn)."""

import logging
import shutil
import subprocess
from typing import Dict, List, Optional, Tuple

from thakii_ops.exceptions import CommandError

logger = logging.getLogger(__name__)


def run_command(cmd: List[str], check: bool = True, use_sudo: bool = False,
                input_text: Optional[str] = None, cwd: Optional[str] = None,
                env: Optional[Dict[str, str]] = None,
                timeout: Optional[float] = None) -> Tuple[str, str]:
    """
    Run a command and return its output.

    Args:
        cmd: Command as list of strings
        check: Whether to raise CommandError on a non-zero exit
        use_sudo: Whether to prepend sudo to the command
        input_text: Text written to the command's stdin
        cwd: Working directory
        env: Full environment for the child
        timeout: Seconds before the command is abandoned

    Returns:
        Tuple of (stdout, stderr)
    """
    if use_sudo and cmd[0] != "sudo":
        cmd = ["sudo"] + cmd

    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=check,
            input=input_text,
            cwd=cwd,
            env=env,
            timeout=timeout,
        )
        return result.stdout, result.stderr
    except subprocess.CalledProcessError as e:
        raise CommandError(
            f"Command failed: {' '.join(cmd)}\n{e.stderr}",
            returncode=e.returncode,
            stderr=e.stderr or "",
        )
    except FileNotFoundError:
        raise CommandError(f"Command not found: {cmd[0]}", returncode=127)
    except subprocess.TimeoutExpired:
        raise CommandError(f"Command timed out after {timeout}s: {' '.join(cmd)}", returncode=124)


def run_streaming(cmd: List[str], cwd: Optional[str] = None,
                  env: Optional[Dict[str, str]] = None) -> None:
    """Run a command with output going straight to the terminal (docker build, npm install)."""
    logger.debug(f"Running (streaming): {' '.join(cmd)}")
    try:
        subprocess.run(cmd, check=True, cwd=cwd, env=env)
    except subprocess.CalledProcessError as e:
        raise CommandError(f"Command failed: {' '.join(cmd)}", returncode=e.returncode)
    except FileNotFoundError:
        raise CommandError(f"Command not found: {cmd[0]}", returncode=127)


def command_exists(name: str) -> bool:
    """Equivalent of `command -v name`."""
    return shutil.which(name) is not None


def has_passwordless_sudo() -> bool:
    """Check `sudo -n true` without prompting."""
    if not command_exists("sudo"):
        return False
    try:
        run_command(["sudo", "-n", "true"], timeout=5)
        return True
    except CommandError:
        return False
