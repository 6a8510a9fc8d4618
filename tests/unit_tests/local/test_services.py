import os
import sys
import time

from thakii_ops.local.services import ManagedProcess, find_virtualenv_python, write_frontend_env


def test_managed_process_lifecycle(tmp_path):
    pid_file = tmp_path / "sleeper.pid"
    log_file = tmp_path / "logs" / "sleeper.log"
    process = ManagedProcess(
        name="Sleeper",
        command=[sys.executable, "-c", "import time; print('ready', flush=True); time.sleep(60)"],
        cwd=tmp_path,
        log_file=log_file,
        pid_file=pid_file,
    )

    pid = process.start()
    try:
        assert pid_file.read_text().strip() == str(pid)
        assert process.is_running()

        deadline = time.monotonic() + 5
        while not process.tail_log() and time.monotonic() < deadline:
            time.sleep(0.1)
        assert process.tail_log() == ["ready"]

        # A fresh handle finds the process through the PID file
        other = ManagedProcess("Sleeper", [], tmp_path, log_file, pid_file=pid_file)
        assert other.is_running()
        assert other.stop() is True
    finally:
        process.stop()

    assert not pid_file.exists()
    assert not process.is_running()


def test_managed_process_stop_without_pid(tmp_path):
    process = ManagedProcess("Nothing", ["true"], tmp_path, tmp_path / "x.log", pid_file=tmp_path / "x.pid")
    assert process.stop() is False
    assert process.tail_log() == []


def test_find_virtualenv_python(tmp_path):
    assert find_virtualenv_python(tmp_path) is None

    python = tmp_path / "venv" / "bin" / "python"
    python.parent.mkdir(parents=True)
    python.touch()
    assert find_virtualenv_python(tmp_path) == python

    dot_python = tmp_path / ".venv" / "bin" / "python"
    dot_python.parent.mkdir(parents=True)
    dot_python.touch()
    assert find_virtualenv_python(tmp_path) == dot_python


def test_write_frontend_env_takes_vite_vars_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("VITE_FIREBASE_PROJECT_ID", "thakii-test")
    monkeypatch.setenv("VITE_API_BASE_URL", "http://ignored:1")
    monkeypatch.setenv("UNRELATED", "value")

    path = write_frontend_env(tmp_path / ".env", "http://backend.test:5001")
    lines = path.read_text().splitlines()

    assert lines[0] == "VITE_API_BASE_URL=http://backend.test:5001"
    assert "VITE_FIREBASE_PROJECT_ID=thakii-test" in lines
    assert not any(line.startswith("UNRELATED") for line in lines)
    assert len([line for line in lines if line.startswith("VITE_API_BASE_URL")]) == 1


def test_write_frontend_env_keeps_existing_keys(tmp_path, monkeypatch):
    for key in [k for k in os.environ if k.startswith("VITE_")]:
        monkeypatch.delenv(key)
    env_file = tmp_path / ".env"
    env_file.write_text(
        "VITE_API_BASE_URL=http://old:5001\n"
        "VITE_FIREBASE_API_KEY=abc\n"
        "VITE_FIREBASE_AUTH_DOMAIN=thakii.firebaseapp.com\n"
    )

    write_frontend_env(env_file, "http://new:5001")

    assert env_file.read_text().splitlines() == [
        "VITE_API_BASE_URL=http://new:5001",
        "VITE_FIREBASE_API_KEY=abc",
        "VITE_FIREBASE_AUTH_DOMAIN=thakii.firebaseapp.com",
    ]


def test_write_frontend_env_environment_overrides_file(tmp_path, monkeypatch):
    monkeypatch.setenv("VITE_FIREBASE_API_KEY", "from-shell")
    env_file = tmp_path / ".env"
    env_file.write_text("VITE_FIREBASE_API_KEY=from-file\n")

    write_frontend_env(env_file, "http://new:5001")

    lines = env_file.read_text().splitlines()
    assert "VITE_FIREBASE_API_KEY=from-shell" in lines
    assert "VITE_FIREBASE_API_KEY=from-file" not in lines
