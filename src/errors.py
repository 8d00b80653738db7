"""
Error hierarchy for the provisioning toolkit.

Library code raises these; the CLI catches ProvisioningError at the command
boundary and turns it into a non-zero exit.
"""

from typing import Optional


class ProvisioningError(Exception):
    """Base class for every failure surfaced by the toolkit."""

    def __init__(self, message: str, address: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.address = address

    def __str__(self) -> str:
        if self.address:
            return f"{self.address}: {self.message}"
        return self.message


class ConfigurationError(ProvisioningError):
    """Configuration could not be loaded or failed schema validation."""


class AuthenticationError(ProvisioningError):
    """Credentials for AWS or GitHub are missing or were rejected."""


class MissingTokenError(AuthenticationError):
    """The secret store token is not present in the environment."""


class AuthorizationError(ProvisioningError):
    """The caller is authenticated but lacks permission for the operation."""


class ResourceConflictError(ProvisioningError):
    """A resource already exists under a name the toolkit does not track."""


class ProviderError(ProvisioningError):
    """Any other failure reported by the AWS or GitHub APIs."""
