"""
Local development stack runners.

Four ways of bringing the stack up, matching how the team works day to day:

* FullStackRunner: local Vite frontend against the deployed remote backend,
  kept in the foreground until Ctrl+C.
* start_simple: same pairing, but returns as soon as the frontend answers.
* start_all / stop_all: Flask backend, worker and frontend all local.
* validate_and_run: local backend and frontend with endpoint validation.
"""

import logging
import os
import signal
import socket
import time
from pathlib import Path
from typing import Dict, List, Optional

import click

from thakii_ops.config.settings import Settings, get_settings
from thakii_ops.exceptions import ConfigurationError, ServiceStartError, ThakiiOpsError
from thakii_ops.local.health import (
    is_reachable,
    first_open_port,
    test_backend,
    test_frontend,
    validate_backend,
    validate_web,
    wait_for_service,
)
from thakii_ops.local.ports import find_pids_on_port, kill_port, kill_process, wait_for_port
from thakii_ops.local.services import (
    ManagedProcess,
    ensure_node_modules,
    ensure_virtualenv,
    write_frontend_env,
)
from thakii_ops.utils.console import (
    print_error,
    print_field,
    print_header,
    print_info,
    print_step,
    print_success,
    print_warning,
)
from thakii_ops.utils.decorators import log_operation
from thakii_ops.utils.log_setup import configure_file_logging

logger = logging.getLogger(__name__)

WEB_PORT_CANDIDATES = (3000, 5173, 3001, 3002)
STALE_WEB_PORTS = (5173, 3000, 3001, 3002)
STOP_WEB_PORTS = (3000, 3001, 3002, 3003)
STACK_LOG_FILES = ("backend.log", "worker.log", "web-interface.log", "nohup.out")
MONITOR_INTERVAL = 10


def local_network_address() -> Optional[str]:
    """Primary outbound IPv4 address, like `hostname -I | awk '{print $1}'`."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            # No packet is sent for a UDP connect
            sock.connect(("10.255.255.255", 1))
            return sock.getsockname()[0]
    except OSError:
        return None


def follow_file(path: Path, interval: float = 0.5) -> None:
    """Print the file and keep printing appended lines until interrupted (tail -f)."""
    if not path.is_file():
        click.echo(f"No logs found at {path}")
        return
    with open(path, "r", errors="replace") as f:
        try:
            while True:
                line = f.readline()
                if line:
                    click.echo(line, nl=False)
                else:
                    time.sleep(interval)
        except KeyboardInterrupt:
            click.echo()


class FullStackRunner:
    """Local frontend plus the remote backend, with start, test, stop and status."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.root = self.settings.root_path
        self.web_dir = self.root / "web"
        self.backend_url = self.settings.remote_backend_url
        self.frontend_url = self.settings.web_url
        self.frontend = ManagedProcess(
            name="Frontend",
            command=["npm", "run", "dev"],
            cwd=self.web_dir,
            log_file=self.root / "frontend.log",
            pid_file=self.root / "frontend.pid",
        )
        self._stop_requested = False

    def check_backend_status(self) -> bool:
        print_info(f"Checking backend status at {self.backend_url}...")
        if is_reachable(f"{self.backend_url}{self.settings.health_endpoint}"):
            print_success("Backend is healthy and responding")
            return True
        print_error("Backend is not responding to health checks")
        print_info("You may need to deploy the backend first")
        return False

    def start_frontend(self) -> bool:
        port = self.settings.web_port
        print_info(f"Starting frontend on port {port}...")

        if not (self.web_dir / "package.json").is_file():
            print_error("web/package.json not found. Please run this from the project root.")
            return False

        if find_pids_on_port(port):
            print_warning(f"Port {port} is occupied. Killing existing processes...")
            kill_port(port, "Frontend", graceful=False)

        ensure_node_modules(self.web_dir)
        write_frontend_env(self.web_dir / ".env", self.backend_url)

        print_info("Starting Vite development server...")
        pid = self.frontend.start()

        if wait_for_service(self.frontend_url, "Frontend"):
            print_success(f"Frontend started successfully (PID: {pid})")
            return True
        print_error("Frontend failed to start")
        return False

    def show_services(self) -> None:
        click.echo()
        print_info("Running Services:")
        click.echo("=" * 18)

        if is_reachable(f"{self.backend_url}{self.settings.health_endpoint}"):
            print_success(f"Backend: {self.backend_url} (Remote)")
        else:
            print_error("Backend: Not responding")

        if self.frontend.is_running():
            print_success(f"Frontend: {self.frontend_url} (Local)")
            address = local_network_address()
            if address:
                print_success(f"Network: http://{address}:{self.settings.web_port}")
        else:
            print_error("Frontend: Not running")

        click.echo()
        print_info("Logs:")
        click.echo(f"- Frontend: tail -f {self.frontend.log_file}")
        click.echo("- Backend: SSH to server and check logs")
        click.echo()

    def start(self, monitor: bool = True) -> bool:
        print_info("Starting full stack application...")
        if not self.check_backend_status():
            raise ServiceStartError("Backend check failed. Please ensure backend is deployed and running.")
        if not self.start_frontend():
            raise ServiceStartError("Failed to start frontend")

        self.show_services()
        print_success("Full stack application is running!")
        print_info(f"Open your browser and go to: {self.frontend_url}")

        if monitor:
            self.monitor()
        return True

    def _request_stop(self, signum, frame) -> None:
        self._stop_requested = True

    def monitor(self, interval: float = MONITOR_INTERVAL) -> None:
        """Block until Ctrl+C, SIGTERM or frontend death, stopping services on signals."""
        previous = signal.signal(signal.SIGTERM, self._request_stop)
        print_info("Services are running. Press Ctrl+C to stop all services.")
        try:
            while not self._stop_requested:
                self._sleep(interval)
                if self._stop_requested:
                    break
                if not self.frontend.is_running():
                    print_error("Frontend process died unexpectedly")
                    return
            self.stop()
        except KeyboardInterrupt:
            click.echo()
            self.stop()
        finally:
            signal.signal(signal.SIGTERM, previous)

    def _sleep(self, interval: float) -> None:
        deadline = time.monotonic() + interval
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.5, interval))

    def run_tests(self) -> bool:
        print_info("Running full test suite...")
        click.echo()
        backend_ok = test_backend(self.backend_url, self.settings.health_endpoint)
        click.echo()
        frontend_ok = test_frontend(self.frontend_url)
        click.echo()

        print_info("Test Results Summary:")
        click.echo("=" * 20)
        click.echo(f"Backend Tests:  {'PASSED' if backend_ok else 'FAILED'}")
        click.echo(f"Frontend Tests: {'PASSED' if frontend_ok else 'FAILED'}")
        click.echo()

        if backend_ok and frontend_ok:
            print_success("All tests passed! 🎉")
            return True
        print_error("Some tests failed!")
        return False

    def stop(self) -> None:
        print_info("Stopping services...")
        pid = self.frontend.read_pid()
        if self.frontend.stop():
            print_success(f"Frontend stopped (PID: {pid})")
        kill_port(self.settings.web_port, "Frontend", graceful=False)
        print_success("Services stopped")

    def status(self) -> None:
        self.show_services()

    def restart(self, monitor: bool = True) -> bool:
        self.stop()
        time.sleep(2)
        return self.start(monitor=monitor)

    def logs(self) -> None:
        print_info("Showing frontend logs (Ctrl+C to exit):")
        follow_file(self.frontend.log_file)


@log_operation("simple frontend start")
def start_simple(settings: Optional[Settings] = None, startup_delay: float = 5) -> int:
    """Start the frontend against the remote backend and return without monitoring."""
    settings = settings or get_settings()
    runner = FullStackRunner(settings)

    print_info("Starting Thakii Services...")
    print_info("Checking backend health...")
    if not is_reachable(f"{runner.backend_url}{settings.health_endpoint}"):
        raise ServiceStartError("Backend is not responding")
    print_success("Backend is healthy")

    print_info("Cleaning up existing processes...")
    kill_process("npm run dev", "npm dev server")
    kill_process("vite", "Vite Dev Server")
    kill_port(settings.web_port, "Frontend", graceful=False)

    ensure_node_modules(runner.web_dir)
    print_info("Configuring environment...")
    write_frontend_env(runner.web_dir / ".env", runner.backend_url)

    print_info("Starting frontend...")
    pid = runner.frontend.start()
    time.sleep(startup_delay)

    if not is_reachable(runner.frontend_url):
        raise ServiceStartError("Frontend failed to start")

    print_success(f"Frontend started successfully (PID: {pid})")
    print_success(f"Backend: {runner.backend_url}")
    print_success(f"Frontend: {runner.frontend_url}")
    print_info(f"Frontend logs: tail -f {runner.frontend.log_file}")
    print_success("Services started successfully!")
    return pid


def lecture2pdf_candidates(settings: Settings) -> List[Path]:
    """Places a Lecture-Video-to-PDF checkout is looked for, in order."""
    root = settings.root_path
    candidates = []
    configured = os.environ.get("LECTURE2PDF_PATH")
    if configured:
        candidates.append(Path(configured).expanduser())
    candidates += [
        root / "backend" / "lecture2pdf-external",
        root / "lecture2pdf-external",
        root.parent / "Lecture-Video-to-PDF",
        Path.home() / "Lecture-Video-to-PDF",
    ]
    return candidates


def find_lecture2pdf(settings: Settings) -> Path:
    for path in lecture2pdf_candidates(settings):
        if path.is_dir():
            print_success(f"Found lecture2pdf at: {path}")
            return path
    print_warning("Please clone https://github.com/oudaykhaled/Lecture-Video-to-PDF")
    raise ConfigurationError("Could not find lecture2pdf repository in any of the expected locations")


def _backend_env(settings: Settings, extra: Optional[Dict[str, str]] = None,
                 lecture2pdf_path: Optional[str] = None) -> Dict[str, str]:
    env = settings.export_environment_variables(lecture2pdf_path)
    existing = os.environ.get("PYTHONPATH")
    env["PYTHONPATH"] = f"{settings.root_path}{os.pathsep}{existing}" if existing else str(settings.root_path)
    if extra:
        env.update(extra)
    return env


def _show_log_tail(process: ManagedProcess, lines: int = 10) -> None:
    print_info(f"Last {lines} lines of {process.log_file.name}:")
    for line in process.tail_log(lines):
        click.echo(line)


@log_operation("local stack start")
def start_all(settings: Optional[Settings] = None) -> Dict[str, Optional[int]]:
    """Run backend, worker and frontend locally. Returns their PIDs and the web port."""
    settings = settings or get_settings()
    root = settings.root_path
    backend_dir = root / "backend"
    web_dir = root / "web"
    health_url = f"{settings.backend_url}{settings.health_endpoint}"

    print_header("🚀 Thakii Lecture2PDF Service Startup", f"Project root: {root}")

    print_step("🧹 STEP 1: Cleaning up existing services...")
    kill_port(settings.backend_port, "Flask Backend")
    for port in STALE_WEB_PORTS:
        kill_port(port, "Web Interface")
    kill_process("worker.py", "Worker Process")
    kill_process("vite", "Vite Dev Server")

    print_step("🔍 STEP 2: Finding lecture2pdf repository...")
    lecture2pdf_path = find_lecture2pdf(settings)

    print_step("⚙️ STEP 3: Setting up environment variables...")
    env = _backend_env(settings, lecture2pdf_path=str(lecture2pdf_path))
    print_success("Environment variables set:")
    for key in ("S3_BUCKET_NAME", "AWS_DEFAULT_REGION", "LECTURE2PDF_PATH", "GOOGLE_APPLICATION_CREDENTIALS"):
        click.echo(f"   {key}: {env.get(key)}")

    print_step("🐍 STEP 4: Setting up Backend...")
    python = ensure_virtualenv(backend_dir)
    print_success("Python virtual environment ready")
    click.echo(f"   Python: {python}")

    print_step("🖥️ STEP 5: Starting Flask Backend Service...")
    backend = ManagedProcess("Backend", [str(python), "api/app.py"], backend_dir, root / "backend.log", env=env)
    backend_pid = backend.start()
    time.sleep(3)
    if not is_reachable(health_url):
        print_error("Backend service failed to start")
        _show_log_tail(backend)
        raise ServiceStartError("Backend service failed to start, check backend.log for details")
    print_success(f"Backend service started successfully (PID: {backend_pid})")

    print_step("⚙️ STEP 6: Starting Worker Process...")
    worker = ManagedProcess("Worker", [str(python), "worker/worker.py"], backend_dir, root / "worker.log", env=env)
    worker_pid = worker.start()
    time.sleep(2)
    if worker.is_running():
        print_success(f"Worker process started successfully (PID: {worker_pid})")
    else:
        print_error("Worker process failed to start")
        _show_log_tail(worker)

    print_step("🌐 STEP 7: Starting Web Interface...")
    ensure_node_modules(web_dir)
    web = ManagedProcess("Web Interface", ["npm", "run", "dev"], web_dir, root / "web-interface.log")
    web_pid = web.start()
    time.sleep(5)
    web_port = first_open_port("localhost", WEB_PORT_CANDIDATES)
    if web_port:
        print_success(f"Web interface started successfully on port {web_port} (PID: {web_pid})")
    else:
        print_error("Web interface failed to start")
        _show_log_tail(web)

    print_step("📊 FINAL STATUS")
    if is_reachable(health_url):
        print_success(f"🖥️  Backend Service: Running on {settings.backend_url}")
    else:
        print_error("🖥️  Backend Service: Not responding")
    if worker.is_running():
        print_success(f"⚙️  Worker Process: Running (PID: {worker_pid})")
    else:
        print_error("⚙️  Worker Process: Not running")
    if web_port:
        print_success(f"🌐 Web Interface: Running on http://localhost:{web_port}")
    else:
        print_error("🌐 Web Interface: Not running")

    click.echo()
    print_info("Quick links:")
    click.echo(f"   Health: {health_url}")
    if web_port:
        click.echo(f"   Web:    http://localhost:{web_port}")
    print_info("Log files:")
    for name in STACK_LOG_FILES[:3]:
        click.echo(f"   {root / name}")
    print_info("To stop all services run: thakii-ops stack stop-all")

    return {"backend": backend_pid, "worker": worker_pid, "web": web_pid, "web_port": web_port}


def stop_all(settings: Optional[Settings] = None) -> List[str]:
    """Stop every local stack process and remove its log files. Returns removed files."""
    settings = settings or get_settings()
    print_header("🛑 Thakii Lecture2PDF Service Stop")

    for port in STOP_WEB_PORTS:
        kill_port(port, "Web Interface", graceful=False)
    kill_process("vite", "Vite Dev Server")

    kill_port(settings.backend_port, "Flask Backend", graceful=False)
    kill_process("app.py", "Flask Backend")
    kill_process("worker.py", "Worker Process")

    print_step("🧹 Cleaning up log files...")
    removed = []
    for name in STACK_LOG_FILES:
        path = settings.root_path / name
        if path.exists():
            path.unlink()
            removed.append(name)
    print_success("Log files cleaned up")

    click.echo()
    print_success("🎉 All services stopped successfully!")
    print_info("To start services again, run: thakii-ops stack start-all")
    return removed


def _start_validation_backend(settings: Settings, log_file: Path) -> int:
    print_step("🖥️ STARTING BACKEND SERVICE")
    backend_dir = settings.root_path / "backend"
    if not backend_dir.is_dir():
        raise ServiceStartError(f"Could not find backend directory at {backend_dir}")

    python = ensure_virtualenv(backend_dir)
    if not (backend_dir / "firebase" / "firebase-service-account.json").is_file():
        print_warning("Firebase service account not found - some features may not work")

    env = _backend_env(settings, extra={
        "FLASK_ENV": "development",
        "FLASK_RUN_PORT": str(settings.backend_port),
        "PORT": str(settings.backend_port),
    })

    print_info(f"Starting Flask backend on port {settings.backend_port}...")
    backend = ManagedProcess("Backend", [str(python), "api/app.py"], backend_dir, log_file, env=env)
    pid = backend.start()
    print_info(f"Backend started with PID: {pid}")

    if not wait_for_port(settings.backend_port, "Backend", settings.backend_startup_timeout):
        _show_log_tail(backend)
        raise ServiceStartError("Backend failed to start")
    print_success("Backend service started successfully")
    return pid


def _start_validation_web(settings: Settings, log_file: Path) -> int:
    print_step("🌐 STARTING WEB INTERFACE")
    web_dir = settings.root_path / "web"
    if not web_dir.is_dir():
        raise ServiceStartError(f"Could not find web directory at {web_dir}")

    ensure_node_modules(web_dir)
    write_frontend_env(web_dir / ".env.local", settings.backend_url)

    print_info(f"Starting web interface on port {settings.web_port}...")
    web = ManagedProcess(
        "Web Interface",
        ["npx", "vite", "--port", str(settings.web_port), "--host", "0.0.0.0"],
        web_dir,
        log_file,
    )
    pid = web.start()
    print_info(f"Web interface started with PID: {pid}")

    if not wait_for_port(settings.web_port, "Web Interface", settings.web_startup_timeout):
        _show_log_tail(web)
        raise ServiceStartError("Web interface failed to start")
    print_success("Web interface started successfully")
    return pid


@log_operation("stack validation")
def validate_and_run(settings: Optional[Settings] = None) -> Dict[str, object]:
    """Start backend and web locally, validating each; ports are freed again on failure."""
    settings = settings or get_settings()
    log_dir = settings.log_path
    backend_log = log_dir / "backend_validation.log"
    web_log = log_dir / "web_validation.log"
    script_log = log_dir / "validation_script.log"
    handler = configure_file_logging(script_log, "thakii_ops")

    print_header(
        "🚀 THAKII LECTURE2PDF VALIDATION SUITE",
        f"Backend Port: {settings.backend_port}",
        f"Web Port: {settings.web_port}",
    )

    try:
        print_step("🧹 CLEANUP PHASE")
        kill_port(settings.backend_port, "Backend")
        kill_port(settings.web_port, "Web Interface")
        print_success("Cleanup completed")

        _start_validation_backend(settings, backend_log)
        print_step("🔍 VALIDATING BACKEND SERVICE")
        if not validate_backend(settings.backend_url, settings.web_url, settings.health_endpoint):
            raise ServiceStartError("Backend validation failed")

        _start_validation_web(settings, web_log)
        print_step("🔍 VALIDATING WEB INTERFACE")
        if not validate_web(settings.web_url):
            raise ServiceStartError("Web interface validation failed")
    except (ThakiiOpsError, KeyboardInterrupt):
        print_error("Script execution failed")
        print_warning("Cleaning up any started processes...")
        kill_port(settings.backend_port, "Backend", graceful=False)
        kill_port(settings.web_port, "Web Interface", graceful=False)
        raise
    finally:
        logging.getLogger("thakii_ops").removeHandler(handler)
        handler.close()

    backend_pids = find_pids_on_port(settings.backend_port)
    web_pids = find_pids_on_port(settings.web_port)

    print_step("🎉 VALIDATION COMPLETE")
    print_success(f"Backend: {settings.backend_url}{settings.health_endpoint}")
    print_success(f"Web Interface: {settings.web_url}")
    print_success("All services validated and running successfully!")

    click.secho("\n📋 Process Information:", fg="cyan")
    print_field("Backend PID", " ".join(map(str, backend_pids)) or "Not found")
    print_field("Web PID", " ".join(map(str, web_pids)) or "Not found")

    click.secho("\n📁 Log Files:", fg="cyan")
    print_field("Script Log", script_log)
    print_field("Backend Log", backend_log)
    print_field("Web Log", web_log)

    click.secho("\n🛑 To stop services:", fg="yellow")
    click.secho("thakii-ops stack stop-all", fg="yellow")

    return {
        "backend_pids": backend_pids,
        "web_pids": web_pids,
        "logs": [str(script_log), str(backend_log), str(web_log)],
    }
