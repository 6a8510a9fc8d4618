"""Port and process cleanup for the local development stack."""

import logging
import os
import re
import time
from typing import List

import psutil

from thakii_ops.utils.console import print_error, print_info, print_success, print_warning

logger = logging.getLogger(__name__)


def find_pids_on_port(port: int) -> List[int]:
    """PIDs holding a local inet socket on the port, like `lsof -ti :port`."""
    pids = set()
    try:
        for conn in psutil.net_connections(kind='inet'):
            if conn.laddr and conn.laddr.port == port and conn.pid:
                pids.add(conn.pid)
    except psutil.AccessDenied:
        # Some platforms only expose connections per process
        for proc in psutil.process_iter(['pid']):
            try:
                for conn in proc.net_connections(kind='inet'):
                    if conn.laddr and conn.laddr.port == port:
                        pids.add(proc.pid)
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
    pids.discard(os.getpid())
    return sorted(pids)


def is_port_free(port: int) -> bool:
    return not find_pids_on_port(port)


def find_pids_by_pattern(pattern: str) -> List[int]:
    """PIDs whose full command line matches the regex, like `pgrep -f`."""
    regex = re.compile(pattern)
    own_pid = os.getpid()
    pids = []
    for proc in psutil.process_iter(['pid', 'cmdline']):
        try:
            cmdline = ' '.join(proc.info.get('cmdline') or [])
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        if proc.info['pid'] != own_pid and cmdline and regex.search(cmdline):
            pids.append(proc.info['pid'])
    return pids


def _signal_pids(pids: List[int], force: bool) -> None:
    for pid in pids:
        try:
            proc = psutil.Process(pid)
            if force:
                proc.kill()
            else:
                proc.terminate()
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied:
            logger.warning(f"Not permitted to signal PID {pid}")


def kill_port(port: int, service_name: str, graceful: bool = True,
              grace_period: float = 2.0) -> List[int]:
    """
    Free a port by killing whatever holds it.

    Sends SIGTERM first when graceful, then SIGKILL to anything left after the
    grace period. Persistent holders are reported but do not raise.

    Args:
        port: TCP port to free
        service_name: Label used in output
        graceful: Try SIGTERM before SIGKILL
        grace_period: Seconds to wait between the two signals

    Returns:
        PIDs that were signalled
    """
    print_info(f"Checking for processes on port {port} ({service_name})...")

    pids = find_pids_on_port(port)
    if not pids:
        print_success(f"Port {port} is free")
        return []

    print_warning(f"Killing existing processes on port {port}: {' '.join(map(str, pids))}")
    if graceful:
        _signal_pids(pids, force=False)
        psutil.wait_procs(_existing(pids), timeout=grace_period)
        remaining = find_pids_on_port(port)
        if remaining:
            print_info("Processes still running, force killing...")
            _signal_pids(remaining, force=True)
            psutil.wait_procs(_existing(remaining), timeout=grace_period)
    else:
        _signal_pids(pids, force=True)
        psutil.wait_procs(_existing(pids), timeout=grace_period)

    remaining = find_pids_on_port(port)
    if remaining:
        print_warning(f"Some processes on port {port} are persistent, continuing anyway")
        print_info(f"Remaining PIDs: {' '.join(map(str, remaining))}")
    else:
        print_success(f"Port {port} cleanup completed")
    return pids


def kill_process(pattern: str, service_name: str, grace_period: float = 1.0) -> List[int]:
    """Terminate every process whose command line matches, like `pkill -f`."""
    print_info(f"Checking for existing {service_name} processes...")

    pids = find_pids_by_pattern(pattern)
    if not pids:
        print_success(f"No existing {service_name} processes found")
        return []

    print_warning(f"Killing existing {service_name} processes: {' '.join(map(str, pids))}")
    _signal_pids(pids, force=False)
    psutil.wait_procs(_existing(pids), timeout=grace_period)
    print_success(f"Stopped {service_name}")
    return pids


def wait_for_port(port: int, service_name: str, timeout: int) -> bool:
    """Poll once a second until something listens on the port."""
    print_info(f"Waiting for {service_name} on port {port} (timeout: {timeout}s)...")

    for elapsed in range(1, timeout + 1):
        if find_pids_on_port(port):
            print_success(f"{service_name} is listening on port {port}")
            return True
        time.sleep(1)
        if elapsed % 5 == 0:
            print_info(f"Still waiting... ({elapsed}s elapsed)")

    print_error(f"{service_name} failed to start on port {port} within {timeout}s")
    return False


def _existing(pids: List[int]) -> List[psutil.Process]:
    procs = []
    for pid in pids:
        try:
            procs.append(psutil.Process(pid))
        except psutil.NoSuchProcess:
            continue
    return procs
