"""
Provisioning state document.

The state records every resource the toolkit created so that re-running an
apply after a partial failure only does the remaining work.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sensitive import Sensitive, reveal

STATE_FORMAT_VERSION = 1

# Attribute names whose values are wrapped as Sensitive when loaded
SENSITIVE_ATTRIBUTES = {"secret_access_key"}

USER_ADDRESS = "iam_user"
ACCESS_KEY_ADDRESS = "iam_access_key"
ATTACHMENT_ADDRESS = "iam_policy_attachment"
SECRET_ADDRESS_PREFIX = "github_secret."


def secret_address(name: str) -> str:
    return f"{SECRET_ADDRESS_PREFIX}{name}"


def _wrap(attributes: Dict[str, Any]) -> Dict[str, Any]:
    return {
        k: Sensitive(v) if k in SENSITIVE_ATTRIBUTES and v is not None else v
        for k, v in attributes.items()
    }


def _unwrap(attributes: Dict[str, Any]) -> Dict[str, Any]:
    return {k: reveal(v) for k, v in attributes.items()}


@dataclass
class ProvisioningState:
    """Recorded resources and outputs of the last apply."""

    serial: int = 0
    lineage: str = field(default_factory=lambda: str(uuid.uuid4()))
    resources: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    outputs: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    version: int = STATE_FORMAT_VERSION

    def get(self, address: str) -> Optional[Dict[str, Any]]:
        return self.resources.get(address)

    def set(self, address: str, attributes: Dict[str, Any]) -> None:
        self.resources[address] = dict(attributes)

    def remove(self, address: str) -> None:
        self.resources.pop(address, None)

    def secret_addresses(self) -> Dict[str, Dict[str, Any]]:
        return {
            address: attrs for address, attrs in self.resources.items()
            if address.startswith(SECRET_ADDRESS_PREFIX)
        }

    def is_empty(self) -> bool:
        return not self.resources

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the on-disk layout. Sensitive values are written in plaintext."""
        return {
            "version": self.version,
            "serial": self.serial,
            "lineage": self.lineage,
            "resources": {
                address: _unwrap(attrs)
                for address, attrs in sorted(self.resources.items())
            },
            "outputs": {
                name: {"value": reveal(out["value"]), "sensitive": out.get("sensitive", False)}
                for name, out in sorted(self.outputs.items())
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProvisioningState":
        version = data.get("version", STATE_FORMAT_VERSION)
        if version > STATE_FORMAT_VERSION:
            raise ValueError(
                f"State format version {version} is newer than supported ({STATE_FORMAT_VERSION})"
            )

        outputs = {}
        for name, out in data.get("outputs", {}).items():
            value = out.get("value")
            if out.get("sensitive") and value is not None:
                value = Sensitive(value)
            outputs[name] = {"value": value, "sensitive": bool(out.get("sensitive"))}

        return cls(
            serial=data.get("serial", 0),
            lineage=data.get("lineage") or str(uuid.uuid4()),
            resources={
                address: _wrap(attrs)
                for address, attrs in data.get("resources", {}).items()
            },
            outputs=outputs,
            version=version,
        )
