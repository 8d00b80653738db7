"""
Plan computation.

Compares the recorded state with the desired inputs and the live AWS and GitHub
resources, and produces the ordered list of changes an apply will make.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from config import ProvisioningConfig
from errors import ResourceConflictError
from github_secrets import GitHubSecretsClient
from iam import CICDUserManager, IAMUserModule
from state import (
    ACCESS_KEY_ADDRESS,
    ATTACHMENT_ADDRESS,
    USER_ADDRESS,
    ProvisioningState,
    secret_address,
)

logger = logging.getLogger(__name__)

KNOWN_AFTER_APPLY = "(known after apply)"


class Action(Enum):
    """Change applied to a single resource."""

    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    NOOP = "no-op"


@dataclass
class ResourceChange:
    """Planned change for one resource address."""

    address: str
    action: Action
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    reason: str = ""


@dataclass
class Plan:
    """Ordered set of resource changes."""

    changes: List[ResourceChange] = field(default_factory=list)

    def add(self, change: ResourceChange) -> None:
        self.changes.append(change)

    def get(self, address: str) -> Optional[ResourceChange]:
        for change in self.changes:
            if change.address == address:
                return change
        return None

    def _count(self, *actions: Action) -> int:
        return sum(1 for c in self.changes if c.action in actions)

    @property
    def to_add(self) -> int:
        return self._count(Action.CREATE, Action.REPLACE)

    @property
    def to_change(self) -> int:
        return self._count(Action.UPDATE)

    @property
    def to_destroy(self) -> int:
        return self._count(Action.DELETE, Action.REPLACE)

    @property
    def has_changes(self) -> bool:
        return any(c.action is not Action.NOOP for c in self.changes)

    def summary(self) -> str:
        return f"Plan: {self.to_add} to add, {self.to_change} to change, {self.to_destroy} to destroy."


class Planner:
    """Compute the plan that converges live resources to the desired inputs."""

    def __init__(
        self,
        config: ProvisioningConfig,
        state: ProvisioningState,
        iam_manager: CICDUserManager,
        secrets_client: GitHubSecretsClient,
    ):
        self.config = config
        self.state = state
        self.iam_manager = iam_manager
        self.secrets_client = secrets_client
        self.module = IAMUserModule.from_config(config)
        self.account_id: Optional[str] = None

    def plan(self) -> Plan:
        plan = Plan()
        self.account_id = self.iam_manager.get_caller_account()
        logger.info(f"Planning against AWS account {self.account_id}")

        user_change = self._plan_user()
        plan.add(user_change)
        user_is_new = user_change.action in (Action.CREATE, Action.REPLACE)

        plan.add(self._plan_access_key(user_is_new))
        plan.add(self._plan_attachment(user_is_new))

        for change in self._plan_secrets():
            plan.add(change)

        logger.info(plan.summary())
        return plan

    def _plan_user(self) -> ResourceChange:
        recorded = self.state.get(USER_ADDRESS)
        desired = {
            "user_name": self.module.user_name,
            "arn": self.module.user_arn(self.account_id),
            "tags": self.module.tags,
        }

        if recorded is None:
            if self.iam_manager.get_user(self.module.user_name) is not None:
                raise ResourceConflictError(
                    f"IAM user {self.module.user_name} already exists but is not "
                    "tracked in state; delete it or choose another iam_user_name",
                    address=USER_ADDRESS,
                )
            return ResourceChange(USER_ADDRESS, Action.CREATE, None, desired)

        if recorded["user_name"] != self.module.user_name:
            if self.iam_manager.get_user(self.module.user_name) is not None:
                raise ResourceConflictError(
                    f"Cannot rename to {self.module.user_name}: an untracked IAM "
                    "user with that name already exists",
                    address=USER_ADDRESS,
                )
            return ResourceChange(
                USER_ADDRESS, Action.REPLACE, recorded, desired,
                reason="user name changed",
            )

        live_user = self.iam_manager.get_user(recorded["user_name"])
        if live_user is None:
            return ResourceChange(
                USER_ADDRESS, Action.CREATE, None, desired,
                reason="user no longer exists in AWS",
            )

        # GetUser reports tags when the user has any; fall back to the recorded set
        if "Tags" in live_user:
            current_tags = {t["Key"]: t["Value"] for t in live_user["Tags"]}
        else:
            current_tags = dict(recorded.get("tags") or {})
        if current_tags != self.module.tags:
            before = dict(recorded, tags=current_tags)
            return ResourceChange(
                USER_ADDRESS, Action.UPDATE, before, desired,
                reason="tags changed",
            )

        return ResourceChange(USER_ADDRESS, Action.NOOP, recorded, recorded)

    def _plan_access_key(self, user_is_new: bool) -> ResourceChange:
        recorded = self.state.get(ACCESS_KEY_ADDRESS)
        desired = {
            "user_name": self.module.user_name,
            "access_key_id": KNOWN_AFTER_APPLY,
        }

        if user_is_new:
            action = Action.REPLACE if recorded else Action.CREATE
            return ResourceChange(
                ACCESS_KEY_ADDRESS, action, recorded, desired,
                reason="owning user is created",
            )

        if recorded is None:
            return ResourceChange(ACCESS_KEY_ADDRESS, Action.CREATE, None, desired)

        if not self.iam_manager.access_key_exists(recorded["user_name"], recorded["access_key_id"]):
            return ResourceChange(
                ACCESS_KEY_ADDRESS, Action.CREATE, None, desired,
                reason="access key no longer exists in AWS",
            )

        return ResourceChange(ACCESS_KEY_ADDRESS, Action.NOOP, recorded, recorded)

    def _plan_attachment(self, user_is_new: bool) -> ResourceChange:
        recorded = self.state.get(ATTACHMENT_ADDRESS)
        desired = {"user_name": self.module.user_name, "policy_arn": self.module.policy_arn}

        if user_is_new:
            action = Action.REPLACE if recorded else Action.CREATE
            return ResourceChange(
                ATTACHMENT_ADDRESS, action, recorded, desired,
                reason="owning user is created",
            )

        if recorded is None:
            return ResourceChange(ATTACHMENT_ADDRESS, Action.CREATE, None, desired)

        if recorded["policy_arn"] != self.module.policy_arn:
            return ResourceChange(
                ATTACHMENT_ADDRESS, Action.UPDATE, recorded, desired,
                reason="policy ARN changed",
            )

        attached = self.iam_manager.list_attached_policy_arns(recorded["user_name"])
        if recorded["policy_arn"] not in attached:
            return ResourceChange(
                ATTACHMENT_ADDRESS, Action.CREATE, None, desired,
                reason="policy is no longer attached",
            )

        return ResourceChange(ATTACHMENT_ADDRESS, Action.NOOP, recorded, recorded)

    def _plan_secrets(self) -> List[ResourceChange]:
        changes = []
        desired_addresses = set()

        for purpose, name in self.config.secret_names.items():
            address = secret_address(name)
            desired_addresses.add(address)
            recorded = self.state.get(address)
            desired = {
                "repository": self.config.repository_slug,
                "secret_name": name,
                "source": purpose,
                "value": KNOWN_AFTER_APPLY,
            }

            # Both secrets are overwritten on every apply with the live key pair
            if self.secrets_client.get_secret(name) is None:
                reason = "secret missing from repository" if recorded else ""
                changes.append(ResourceChange(address, Action.CREATE, recorded, desired, reason))
            else:
                changes.append(ResourceChange(
                    address, Action.UPDATE, recorded, desired,
                    reason="overwritten with the current key pair",
                ))

        for address, recorded in sorted(self.state.secret_addresses().items()):
            if address not in desired_addresses:
                changes.append(ResourceChange(
                    address, Action.DELETE, recorded, None,
                    reason="secret name no longer configured",
                ))

        return changes
