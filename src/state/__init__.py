"""
Persistence of the provisioning state document.
"""

from .backends import LocalStateBackend, S3StateBackend, StateBackend, get_state_backend
from .document import (
    ACCESS_KEY_ADDRESS,
    ATTACHMENT_ADDRESS,
    USER_ADDRESS,
    ProvisioningState,
    secret_address,
)

__all__ = [
    "ACCESS_KEY_ADDRESS",
    "ATTACHMENT_ADDRESS",
    "USER_ADDRESS",
    "LocalStateBackend",
    "ProvisioningState",
    "S3StateBackend",
    "StateBackend",
    "get_state_backend",
    "secret_address",
]
