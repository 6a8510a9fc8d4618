"""Public IP, DNS and throughput checks used to confirm the tunnel."""

import logging
import socket
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from thakii_ops.utils.decorators import log_execution_time

logger = logging.getLogger(__name__)

IP_INFO_URL = "https://ipinfo.io/json"
PUBLIC_IP_URL = "https://ipinfo.io/ip"
DNS_LEAK_URL = "https://www.dnsleaktest.com/api/ping"
SPEED_TEST_URL = "http://speedtest.ftp.otenet.gr/files/test1Mb.db"

IP_INFO_ERROR = {"error": "Could not fetch IP information"}
PIA_MARKERS = ("PIA", "Private Internet Access")


@dataclass
class IPInfo:
    ip: str = "Unknown"
    city: str = "Unknown"
    region: str = "Unknown"
    country: str = "Unknown"
    org: str = "Unknown"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IPInfo":
        return cls(**{
            name: str(data[name]) for name in ("ip", "city", "region", "country", "org")
            if data.get(name)
        })

    @property
    def known(self) -> bool:
        return self.ip != "Unknown"

    @property
    def location(self) -> str:
        return f"{self.city}, {self.region}, {self.country}"


def get_ip_info(timeout: float = 10) -> Dict[str, Any]:
    """ipinfo.io JSON for the current public address, or an error dict."""
    try:
        response = requests.get(IP_INFO_URL, timeout=timeout)
        response.raise_for_status()
        return response.json()
    except (requests.exceptions.RequestException, ValueError) as e:
        logger.debug(f"IP info lookup failed: {e}")
        return dict(IP_INFO_ERROR)


def current_ip_info(timeout: float = 10) -> IPInfo:
    return IPInfo.from_dict(get_ip_info(timeout))


def get_public_ip(timeout: float = 5) -> Optional[str]:
    try:
        response = requests.get(PUBLIC_IP_URL, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        logger.debug(f"Public IP lookup failed: {e}")
        return None
    return response.text.strip() or None


def dns_leak_test(timeout: float = 10) -> bool:
    """True when the resolver seen by dnsleaktest belongs to PIA."""
    try:
        body = requests.get(DNS_LEAK_URL, timeout=timeout).text
    except requests.exceptions.RequestException as e:
        logger.debug(f"DNS leak test failed: {e}")
        return False
    return any(marker in body for marker in PIA_MARKERS)


@log_execution_time
def speed_test(url: str = SPEED_TEST_URL, timeout: float = 10) -> Optional[float]:
    """Download throughput in Mbps, or None when nothing was downloaded."""
    start = time.monotonic()
    received = 0
    try:
        with requests.get(url, timeout=timeout, stream=True) as response:
            response.raise_for_status()
            for chunk in response.iter_content(chunk_size=64 * 1024):
                received += len(chunk)
                if time.monotonic() - start > timeout:
                    break
    except requests.exceptions.RequestException as e:
        logger.debug(f"Speed test failed: {e}")
        if not received:
            return None

    elapsed = time.monotonic() - start
    if not received or elapsed <= 0:
        return None
    return received / elapsed / 1024 / 1024 * 8


def resolve_dns(host: str = "google.com") -> bool:
    try:
        socket.getaddrinfo(host, None)
        return True
    except socket.gaierror:
        return False


def https_reachable(url: str = "https://www.google.com", timeout: float = 5) -> bool:
    try:
        requests.get(url, timeout=timeout)
        return True
    except requests.exceptions.RequestException:
        return False
