"""Custom exceptions for deployment, local stack and VPN tooling."""


class ThakiiOpsError(Exception):
    """Base exception for all tooling errors."""
    pass


class ConfigurationError(ThakiiOpsError):
    """Raised when a required file or setting is missing or invalid"""
    pass


class CredentialsError(ConfigurationError):
    """Raised when VPN credentials cannot be loaded"""
    pass


class PrerequisiteError(ThakiiOpsError):
    """Raised when a required external tool is not installed"""
    pass


class CommandError(ThakiiOpsError):
    """Raised when an external command exits with a non-zero status"""

    def __init__(self, message: str, returncode: int = 1, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class DeploymentError(ThakiiOpsError):
    """Raised when an AWS deployment step cannot complete"""
    pass


class ServiceStartError(ThakiiOpsError):
    """Raised when a local service fails to start or become healthy"""
    pass


class VPNConnectionError(ThakiiOpsError):
    """Raised when the VPN tunnel does not come up"""
    pass
