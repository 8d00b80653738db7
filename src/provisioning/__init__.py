"""
Credential provisioning: plan and apply the IAM user to repository secret handoff.
"""

from .apply import ApplyResult, Provisioner
from .plan import Action, Plan, Planner, ResourceChange

__all__ = [
    "Action",
    "ApplyResult",
    "Plan",
    "Planner",
    "Provisioner",
    "ResourceChange",
]
