"""
IAM management for the CI/CD user, its access key and policy attachment.
"""

from .cicd_manager import AccessKeyPair, CICDUserManager, translate_client_error
from .user_module import MODULE_DEFAULT_POLICY_ARN, IAMUserModule

__all__ = [
    "AccessKeyPair",
    "CICDUserManager",
    "IAMUserModule",
    "MODULE_DEFAULT_POLICY_ARN",
    "translate_client_error",
]
