"""Detached child processes for the Flask backend, worker and Vite dev server."""

import logging
import os
import subprocess
import sys
from collections import deque
from pathlib import Path
from typing import Dict, List, Optional

import psutil
from dotenv import dotenv_values

from thakii_ops.exceptions import ServiceStartError
from thakii_ops.utils.console import print_info, print_success, print_warning
from thakii_ops.utils.shell import command_exists, run_streaming

logger = logging.getLogger(__name__)

VIRTUALENV_DIRS = (".venv", "venv")


class ManagedProcess:
    """
    A background service started like `nohup cmd > log 2>&1 &`.

    The child runs in its own session so it outlives the CLI. When a pid_file is
    given the PID is recorded there and later commands can find the process
    again without holding a handle to it.
    """

    def __init__(self, name: str, command: List[str], cwd: Path, log_file: Path,
                 env: Optional[Dict[str, str]] = None, pid_file: Optional[Path] = None):
        self.name = name
        self.command = command
        self.cwd = Path(cwd)
        self.log_file = Path(log_file)
        self.env = env
        self.pid_file = Path(pid_file) if pid_file else None
        self.pid: Optional[int] = None

    def start(self) -> int:
        if not self.cwd.is_dir():
            raise ServiceStartError(f"{self.name}: directory not found: {self.cwd}")

        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        child_env = dict(os.environ)
        if self.env:
            child_env.update(self.env)

        logger.info(f"Starting {self.name}: {' '.join(self.command)} (cwd={self.cwd})")
        with open(self.log_file, "a") as log:
            try:
                process = subprocess.Popen(
                    self.command,
                    cwd=str(self.cwd),
                    env=child_env,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    stdin=subprocess.DEVNULL,
                    start_new_session=True,
                )
            except FileNotFoundError:
                raise ServiceStartError(f"{self.name}: command not found: {self.command[0]}")

        self.pid = process.pid
        if self.pid_file:
            self.pid_file.write_text(f"{self.pid}\n")
        return self.pid

    def read_pid(self) -> Optional[int]:
        if self.pid is not None:
            return self.pid
        if self.pid_file and self.pid_file.is_file():
            try:
                return int(self.pid_file.read_text().strip())
            except ValueError:
                logger.warning(f"Ignoring malformed PID file {self.pid_file}")
        return None

    def is_running(self) -> bool:
        """Equivalent of `kill -0 $(cat pid_file)`."""
        pid = self.read_pid()
        if pid is None:
            return False
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False

    def stop(self, timeout: float = 5.0) -> bool:
        """Terminate the process and its children. Returns True if something was stopped."""
        pid = self.read_pid()
        stopped = False
        if pid is not None:
            try:
                parent = psutil.Process(pid)
                procs = parent.children(recursive=True) + [parent]
                for proc in procs:
                    try:
                        proc.terminate()
                    except psutil.NoSuchProcess:
                        continue
                _, alive = psutil.wait_procs(procs, timeout=timeout)
                for proc in alive:
                    proc.kill()
                stopped = True
                logger.info(f"Stopped {self.name} (PID: {pid})")
            except psutil.NoSuchProcess:
                logger.info(f"{self.name} (PID: {pid}) was not running")

        if self.pid_file and self.pid_file.exists():
            self.pid_file.unlink()
        self.pid = None
        return stopped

    def tail_log(self, lines: int = 10) -> List[str]:
        if not self.log_file.is_file():
            return []
        with open(self.log_file, "r", errors="replace") as f:
            return [line.rstrip("\n") for line in deque(f, maxlen=lines)]


def find_virtualenv_python(directory: Path) -> Optional[Path]:
    """Interpreter of `.venv` or `venv` inside the directory, if either exists."""
    bin_dir = "Scripts" if sys.platform == "win32" else "bin"
    for name in VIRTUALENV_DIRS:
        python = Path(directory) / name / bin_dir / "python"
        if python.exists():
            return python
    return None


def ensure_virtualenv(directory: Path) -> Path:
    """Reuse an existing virtualenv or create `.venv` and install requirements.txt."""
    directory = Path(directory)
    python = find_virtualenv_python(directory)
    if python:
        print_success("Found existing virtual environment")
        return python

    print_warning("Creating new virtual environment...")
    run_streaming([sys.executable, "-m", "venv", ".venv"], cwd=str(directory))
    python = find_virtualenv_python(directory)
    if python is None:
        raise ServiceStartError(f"Virtual environment creation failed in {directory}")

    requirements = directory / "requirements.txt"
    if requirements.is_file():
        print_info("Installing Python dependencies...")
        run_streaming([str(python), "-m", "pip", "install", "-r", str(requirements)], cwd=str(directory))
        print_success("Python dependencies installed")
    return python


def ensure_node_modules(directory: Path) -> None:
    directory = Path(directory)
    if (directory / "node_modules").is_dir():
        return
    if not command_exists("npm"):
        raise ServiceStartError("npm is not installed")
    print_info("Installing frontend dependencies...")
    run_streaming(["npm", "install"], cwd=str(directory))


def write_frontend_env(path: Path, api_url: str, extra: Optional[Dict[str, str]] = None) -> Path:
    """
    Point the frontend's Vite env file at the backend.

    Keys already in the file (Firebase config and the like) are kept. VITE_*
    variables from the current environment override them, and
    VITE_API_BASE_URL is always set to `api_url`.
    """
    path = Path(path)
    existing = dotenv_values(path) if path.is_file() else {}

    values = {"VITE_API_BASE_URL": api_url}
    for key, value in existing.items():
        if key != "VITE_API_BASE_URL" and value is not None:
            values[key] = value
    for key, value in sorted(os.environ.items()):
        if key.startswith("VITE_") and key != "VITE_API_BASE_URL":
            values[key] = value
    if extra:
        values.update(extra)

    path.write_text("".join(f"{key}={value}\n" for key, value in values.items()))
    print_info(f"Configured API endpoint: {api_url}")
    return path
