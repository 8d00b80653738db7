"""
Reusable IAM user unit: one user, one access key, one policy attachment.
"""

from dataclasses import dataclass, field
from typing import Dict

from config import ProvisioningConfig

# Least-privilege fallback when the module is used on its own. Callers that
# need write access must pass their policy ARN explicitly.
MODULE_DEFAULT_POLICY_ARN = "arn:aws:iam::aws:policy/AmazonS3ReadOnlyAccess"


@dataclass
class IAMUserModule:
    """Desired state of the CI/CD IAM user."""

    user_name: str
    policy_arn: str = MODULE_DEFAULT_POLICY_ARN
    tags: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: ProvisioningConfig) -> "IAMUserModule":
        """Build the module from root inputs; the root policy ARN always wins."""
        return cls(
            user_name=config.iam_user_name,
            policy_arn=config.policy_arn,
            tags=dict(config.tags),
        )

    def user_arn(self, account_id: str) -> str:
        return f"arn:aws:iam::{account_id}:user/{self.user_name}"
