import os
import signal
from pathlib import Path
from unittest.mock import patch

import pytest

from thakii_ops.config.settings import Settings
from thakii_ops.exceptions import ConfigurationError, ServiceStartError
from thakii_ops.local.services import ManagedProcess
from thakii_ops.local.stack import (
    STACK_LOG_FILES,
    FullStackRunner,
    find_lecture2pdf,
    start_all,
    start_simple,
    stop_all,
    validate_and_run,
)


@pytest.fixture
def stack_settings(tmp_path):
    return Settings(project_root=str(tmp_path), remote_backend_host="backend.test", _env_file=None)


def test_stop_all_kills_ports_and_removes_logs(stack_settings, tmp_path):
    for name in STACK_LOG_FILES:
        (tmp_path / name).write_text("log")
    (tmp_path / "keep.txt").write_text("keep")

    with patch("thakii_ops.local.stack.kill_port") as kill_port, \
            patch("thakii_ops.local.stack.kill_process") as kill_process:
        removed = stop_all(stack_settings)

    assert sorted(removed) == sorted(STACK_LOG_FILES)
    assert (tmp_path / "keep.txt").exists()
    killed_ports = [c.args[0] for c in kill_port.call_args_list]
    assert killed_ports == [3000, 3001, 3002, 3003, 5001]
    patterns = [c.args[0] for c in kill_process.call_args_list]
    assert patterns == ["vite", "app.py", "worker.py"]


def test_find_lecture2pdf_prefers_env(stack_settings, tmp_path, monkeypatch):
    checkout = tmp_path / "custom-lecture2pdf"
    checkout.mkdir()
    (tmp_path / "lecture2pdf-external").mkdir()
    monkeypatch.setenv("LECTURE2PDF_PATH", str(checkout))

    assert find_lecture2pdf(stack_settings) == checkout


def test_find_lecture2pdf_falls_back_to_candidates(stack_settings, tmp_path, monkeypatch):
    monkeypatch.delenv("LECTURE2PDF_PATH", raising=False)
    external = tmp_path / "backend" / "lecture2pdf-external"
    external.mkdir(parents=True)

    assert find_lecture2pdf(stack_settings) == external


def test_find_lecture2pdf_missing(stack_settings, monkeypatch):
    monkeypatch.delenv("LECTURE2PDF_PATH", raising=False)
    with patch("thakii_ops.local.stack.lecture2pdf_candidates", return_value=[]):
        with pytest.raises(ConfigurationError):
            find_lecture2pdf(stack_settings)


def test_runner_start_fails_when_backend_down(stack_settings):
    runner = FullStackRunner(stack_settings)
    with patch("thakii_ops.local.stack.is_reachable", return_value=False):
        with pytest.raises(ServiceStartError, match="Backend check failed"):
            runner.start(monitor=False)


def test_runner_start_requires_package_json(stack_settings):
    runner = FullStackRunner(stack_settings)
    with patch("thakii_ops.local.stack.is_reachable", return_value=True):
        with pytest.raises(ServiceStartError, match="Failed to start frontend"):
            runner.start(monitor=False)


def test_run_tests_summary(stack_settings, capsys):
    runner = FullStackRunner(stack_settings)
    with patch("thakii_ops.local.stack.test_backend", return_value=True), \
            patch("thakii_ops.local.stack.test_frontend", return_value=False):
        assert runner.run_tests() is False

    output = capsys.readouterr().out
    assert "Backend Tests:  PASSED" in output
    assert "Frontend Tests: FAILED" in output


def test_validate_and_run_cleans_up_on_failure(stack_settings):
    with patch("thakii_ops.local.stack.kill_port") as kill_port:
        with pytest.raises(ServiceStartError, match="backend directory"):
            validate_and_run(stack_settings)

    # Two cleanup calls before the start, two after the failure
    ports = [c.args[0] for c in kill_port.call_args_list]
    assert ports == [5001, 3000, 5001, 3000]
    assert (stack_settings.log_path / "validation_script.log").exists()


def test_monitor_stops_on_sigterm(stack_settings):
    runner = FullStackRunner(stack_settings)
    previous = signal.getsignal(signal.SIGTERM)

    def deliver_sigterm(interval):
        os.kill(os.getpid(), signal.SIGTERM)

    with patch.object(runner, "_sleep", side_effect=deliver_sigterm), \
            patch.object(runner, "stop") as stop, \
            patch.object(runner.frontend, "is_running", return_value=True):
        runner.monitor(interval=0)

    stop.assert_called_once_with()
    assert signal.getsignal(signal.SIGTERM) == previous


def test_monitor_returns_when_frontend_dies(stack_settings, capsys):
    runner = FullStackRunner(stack_settings)

    with patch.object(runner, "_sleep"), \
            patch.object(runner, "stop") as stop, \
            patch.object(runner.frontend, "is_running", return_value=False):
        runner.monitor(interval=0)

    stop.assert_not_called()
    assert "Frontend process died unexpectedly" in capsys.readouterr().out


def test_monitor_stops_on_ctrl_c(stack_settings):
    runner = FullStackRunner(stack_settings)

    with patch.object(runner, "_sleep", side_effect=KeyboardInterrupt), \
            patch.object(runner, "stop") as stop:
        runner.monitor(interval=0)

    stop.assert_called_once_with()


def test_start_simple(stack_settings, tmp_path):
    (tmp_path / "web" / "node_modules").mkdir(parents=True)

    with patch("thakii_ops.local.stack.is_reachable", return_value=True) as reachable, \
            patch("thakii_ops.local.stack.kill_process") as kill_process, \
            patch("thakii_ops.local.stack.kill_port") as kill_port, \
            patch.object(ManagedProcess, "start", return_value=4242):
        assert start_simple(stack_settings, startup_delay=0) == 4242

    urls = [c.args[0] for c in reachable.call_args_list]
    assert urls == ["http://backend.test:5001/health", "http://localhost:3000"]
    assert [c.args[0] for c in kill_process.call_args_list] == ["npm run dev", "vite"]
    kill_port.assert_called_once_with(3000, "Frontend", graceful=False)
    assert "VITE_API_BASE_URL=http://backend.test:5001" in (tmp_path / "web" / ".env").read_text()


def test_start_simple_requires_backend(stack_settings):
    with patch("thakii_ops.local.stack.is_reachable", return_value=False), \
            patch.object(ManagedProcess, "start") as start:
        with pytest.raises(ServiceStartError, match="Backend is not responding"):
            start_simple(stack_settings, startup_delay=0)

    start.assert_not_called()


@pytest.fixture
def local_stack(tmp_path):
    """Everything start_all touches outside the project directory."""
    with patch("thakii_ops.local.stack.kill_port") as kill_port, \
            patch("thakii_ops.local.stack.kill_process"), \
            patch("thakii_ops.local.stack.find_lecture2pdf", return_value=tmp_path / "lecture2pdf"), \
            patch("thakii_ops.local.stack._backend_env", return_value={"S3_BUCKET_NAME": "thakii-test"}), \
            patch("thakii_ops.local.stack.ensure_virtualenv", return_value=Path("/venv/bin/python")), \
            patch("thakii_ops.local.stack.ensure_node_modules"), \
            patch("thakii_ops.local.stack.time.sleep"), \
            patch.object(ManagedProcess, "start", side_effect=[101, 102, 103]) as start, \
            patch.object(ManagedProcess, "is_running", return_value=True):
        yield kill_port, start


def test_start_all(stack_settings, local_stack, capsys):
    kill_port, start = local_stack

    with patch("thakii_ops.local.stack.is_reachable", return_value=True), \
            patch("thakii_ops.local.stack.first_open_port", return_value=5173) as first_open_port:
        pids = start_all(stack_settings)

    assert pids == {"backend": 101, "worker": 102, "web": 103, "web_port": 5173}
    assert [c.args[0] for c in kill_port.call_args_list] == [5001, 5173, 3000, 3001, 3002]
    first_open_port.assert_called_once_with("localhost", (3000, 5173, 3001, 3002))
    assert start.call_count == 3
    output = capsys.readouterr().out
    assert "Web interface started successfully on port 5173 (PID: 103)" in output
    assert "Web:    http://localhost:5173" in output


def test_start_all_stops_when_backend_fails(stack_settings, local_stack):
    _, start = local_stack

    with patch("thakii_ops.local.stack.is_reachable", return_value=False):
        with pytest.raises(ServiceStartError, match="Backend service failed to start"):
            start_all(stack_settings)

    assert start.call_count == 1
