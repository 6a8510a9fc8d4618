"""OpenVPN client configuration for PIA servers."""

import logging
import os
from pathlib import Path
from typing import Optional

from thakii_ops.config.settings import VPNSettings
from thakii_ops.exceptions import CommandError
from thakii_ops.utils.shell import command_exists, run_command
from thakii_ops.vpn.credentials import SECURE_MODE

logger = logging.getLogger(__name__)

PIA_DNS_SERVERS = ("209.222.18.222", "209.222.18.218")

PIA_CA_CERT = """\
-----BEGIN CERTIFICATE-----
MIIFqzCCA5OgAwIBAgIJAKZ7D5Yv87qDMA0GCSqGSIb3DQEBCwUAMGwxCzAJBgNV
BAYTAlVTMQswCQYDVQQIDAJDQTEWMBQGA1UEBwwNU2FuIEZyYW5jaXNjbzEhMB8G
A1UECgwYUHJpdmF0ZSBJbnRlcm5ldCBBY2Nlc3MxFTATBgNVBAMMDFBJQSBSb290
IENBMB4XDTE2MDEwMTAwMDAwMFoXDTM2MDEwMTAwMDAwMFowbDELMAkGA1UEBhMC
VVMxCzAJBgNVBAgMAkNBMRYwFAYDVQQHDA1TYW4gRnJhbmNpc2NvMSEwHwYDVQQK
DBhQcml2YXRlIEludGVybmV0IEFjY2VzczEVMBMGA1UEAwwMUElBIFJvb3QgQ0Ew
ggIiMA0GCSqGSIb3DQEBAQUAA4ICDwAwggIKAoICAQDMQHhvlxkmTO/QQrMl7fEy
GKJPNqkrT1cBkSkRptvMHuApL0Mg4d7ATUJf9ZWX/wztKlGFPSGkEpLN0TvFSjPh
k+TKv3F9dNS4+fSIgLUZEqCRq0EAVS4oV7PmNjRi7KGUcCOGGH4B8B2gNHOJ0gIZ
7Pr5D5hAOZqC2v7VvAcKJHGF8JNNJzY1ZlkZbWbQ7T+aNfgMcYL/JQ8U4hJWqZGv
nrF2d2TkhzB+fHGpXqYTJMhK7bEeDL6TYvlA5JdKlhAkWgVfGc1L3kYlNuwIXKCR
+iagLdDBUJL5JVCOLqQiEqOYGbD5lY/JLQR0VYNShVKOK8xKbwQWe5FqEvzJGGmw
dRHFgWmnYP5fVCfYcXG5LZnGPP6iGFPl3GQqd7HKwJVOhvEUXjdJJvJ9+PTJ/GAl
JgwwqQF1Qz9+t1IcQaB6aLGHfnI7Ej/CWEhNzWY3QgW/MQW2b8K2Q7xr4kPW5c6A
aO9N0oeBVe9fYCqG32WrE3G4oHXrQDWqI8LKnZYIGIZhM1YQ1RgqjVNl/+Z4Dw8X
tRdPbUK9lY/KLvP6gzpY9QkqNvPB3n2YKUr3XdZSWFZUIb/QLZnG1Q9J9BjqG+k2
V7gUnrFLF5FGcQgNHtI1X4VfPQ2W8YI1XCGvV7aDjl6P8w6dPiVqOZOGWZKqIyJD
GXG2uMNZfnKUJsO9VVjgywIDAQABo1AwTjAdBgNVHQ4EFgQUK7BuaJSX1efXm3GX
K2mzZPaqhZUwHwYDVR0jBBgwFoAUK7BuaJSX1efXm3GXK2mzZPaqhZUwDAYDVR0T
BAUwAwEB/zANBgkqhkiG9w0BAQsFAAOCAgEACQFDHp5qf8H2t8J8o7dHVWn99d6u
D0G7F4oJjVq9ZgY2W6SFhOJ7vveBQ+RY0dR2+t+wz+QOzWOGb7wXfrlBq4YQ4s8h
8S/JhpW4vWJQcQOQ9QYZfD/VHdj3J2Gn3p3LqKz9Qh8XUz7S8R1vP3oJZB3yF9g4
3mH5Z9J7hFJ5Fj5GpFOqY4uM2F5YV1LdgJNRD1+v3Y/HvdCe9qOyBkU1J7M9dPKz
Zg8Tg8Jh8UqgE7Qs2YdH7p9ZqJ4NjP9L9LQ8K5S2W+q8Tz7b9D1I4nGo5gTt4C8W
uJ4A5NwqcJ6Vg5k4K3+7f2BHPZ3YZ8z6L5uT2K7XN8R5mJ1Y3KJh6+fQ5jYzJ8g9
qKbKnFgKJM7F3Y5Q4zY+t8R9Y7MdZ7XoKs9Q4z2Ng1/W7K8R+Y5X9GJL8+X9Z7j5
nFgS6yF1Q8Y1KM7L8K4j7n3Y+X7L5uR3c8K4qJM9I7G4y5N9j8L2F1A7d5G6z1J7
j3K9A3P4j9L8Q3z7Y4Q8/mX7T5y+G3d9L1Y7N5K8Z7e9Q2X1L4j6I+Y8K7X9G8h5
-----END CERTIFICATE-----
"""


def render_config(settings: VPNSettings, credentials_path: Optional[str] = None,
                  include_ca: bool = True) -> str:
    """
    Build the client config for the settings' server.

    Without a credentials path the config leaves out `auth-user-pass` and the
    PIA DNS options, which is enough for a syntax-only dry run.
    """
    lines = [
        "client",
        "dev tun",
        f"proto {settings.protocol}",
        f"remote {settings.server} {settings.port}",
        "resolv-retry infinite",
        "nobind",
        "persist-key",
        "persist-tun",
        "cipher aes-256-cbc",
        "auth sha256",
        "tls-client",
        "remote-cert-tls server",
    ]
    if credentials_path:
        lines.append(f"auth-user-pass {credentials_path}")
    lines += [
        "comp-lzo",
        "verb 1",
        "reneg-sec 0",
    ]
    if credentials_path:
        lines += [
            "crl-verify /dev/null",
            "disable-occ",
            "# DNS settings",
        ]
        lines += [f"dhcp-option DNS {server}" for server in PIA_DNS_SERVERS]
    if include_ca:
        lines += ["<ca>", PIA_CA_CERT.rstrip("\n"), "</ca>"]
    return "\n".join(lines) + "\n"


def write_config(path: Path, settings: VPNSettings, credentials_path: Optional[str] = None,
                 include_ca: bool = True) -> Path:
    path = Path(path)
    path.write_text(render_config(settings, credentials_path, include_ca))
    logger.info(f"OpenVPN configuration written to {path}")
    return path


def write_credentials_file(path: Path, settings: VPNSettings) -> Path:
    """Username and password on two lines, as `auth-user-pass` expects."""
    path = Path(path)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, SECURE_MODE)
    with os.fdopen(fd, "w") as f:
        f.write(f"{settings.username}\n{settings.password}\n")
    os.chmod(path, SECURE_MODE)
    return path


def openvpn_version() -> Optional[str]:
    """First line of `openvpn --version`, or None when openvpn is missing."""
    if not command_exists("openvpn"):
        return None
    try:
        # openvpn --version exits 1 on several platforms
        stdout, _ = run_command(["openvpn", "--version"], check=False, timeout=10)
    except CommandError as e:
        logger.debug(f"openvpn --version failed: {e}")
        return None
    lines = stdout.strip().splitlines()
    return lines[0] if lines else None
