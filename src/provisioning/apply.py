"""
Apply and destroy the credential handoff.

The apply order is fixed: IAM user, access key, policy attachment, then the
two repository secrets. The key and the attachment need the user to exist,
and the secrets need the key. State is written after every resource, so a
failed run can simply be re-run.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import boto3

from config import ProvisioningConfig
from errors import ProviderError, ProvisioningError
from github_secrets import GitHubSecretsClient
from iam import AccessKeyPair, CICDUserManager, IAMUserModule
from sensitive import Sensitive, register_secret
from state import (
    ACCESS_KEY_ADDRESS,
    ATTACHMENT_ADDRESS,
    USER_ADDRESS,
    ProvisioningState,
    S3StateBackend,
    StateBackend,
    get_state_backend,
)
from state.document import SECRET_ADDRESS_PREFIX

from .plan import Action, Plan, Planner, ResourceChange

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    """Counts of resources touched by an apply or destroy."""

    added: int = 0
    changed: int = 0
    destroyed: int = 0

    def record(self, action: Action) -> None:
        if action is Action.CREATE:
            self.added += 1
        elif action is Action.UPDATE:
            self.changed += 1
        elif action is Action.REPLACE:
            self.added += 1
            self.destroyed += 1
        elif action is Action.DELETE:
            self.destroyed += 1

    def summary(self) -> str:
        return f"Resources: {self.added} added, {self.changed} changed, {self.destroyed} destroyed."


class Provisioner:
    """Converge the IAM user, its key and the repository secrets to the config."""

    def __init__(
        self,
        config: ProvisioningConfig,
        backend: Optional[StateBackend] = None,
        iam_manager: Optional[CICDUserManager] = None,
        secrets_client: Optional[GitHubSecretsClient] = None,
        session: Optional[boto3.Session] = None,
    ):
        """
        Initialize the provisioner.

        Args:
            config: Resolved provisioning configuration
            backend: State backend (defaults to the configured one)
            iam_manager: IAM manager (created lazily from the config)
            secrets_client: GitHub secrets client (created lazily from the config)
            session: boto3 session shared by the IAM manager and S3 backend
        """
        self.config = config
        self.module = IAMUserModule.from_config(config)
        self._session = session
        self.backend = backend or get_state_backend(config, session=session)
        self._iam_manager = iam_manager
        self._secrets_client = secrets_client

    @property
    def iam_manager(self) -> CICDUserManager:
        if self._iam_manager is None:
            self._iam_manager = CICDUserManager(
                region=self.config.aws_region,
                profile=self.config.aws_profile,
                session=self._session,
            )
        return self._iam_manager

    @property
    def secrets_client(self) -> GitHubSecretsClient:
        if self._secrets_client is None:
            self._secrets_client = GitHubSecretsClient(
                owner=self.config.github_owner,
                repository=self.config.github_repository,
                token=self.config.github_token,
                api_url=self.config.github_api_url,
                token_env=self.config.github_token_env,
            )
        return self._secrets_client

    def preflight(self) -> None:
        """
        Check secret store access before touching AWS.

        A missing, invalid or under-privileged token fails here, so no IAM
        resource is ever created that could not be handed off.
        """
        logger.info(f"Checking secret store access for {self.config.repository_slug}")
        self.secrets_client.verify_access()
        self.secrets_client.get_public_key()

    def plan(self, state: Optional[ProvisioningState] = None) -> Plan:
        self.preflight()
        if state is None:
            state = self.backend.read()
        return Planner(self.config, state, self.iam_manager, self.secrets_client).plan()

    def apply(self, plan: Optional[Plan] = None) -> ApplyResult:
        """Apply a plan (computed now if not given) and persist state."""
        self.preflight()
        if isinstance(self.backend, S3StateBackend):
            self.backend.check_versioning()
        state = self.backend.read()
        if plan is None:
            plan = Planner(self.config, state, self.iam_manager, self.secrets_client).plan()

        result = ApplyResult()
        for change in plan.changes:
            if change.action is Action.NOOP:
                continue
            self._run_step(change.address, self._apply_change, change, state)
            self._persist(state, change)
            result.record(change.action)

        state.outputs = self._outputs_from_state(state)
        self.backend.write(state)

        logger.info(f"Apply complete! {result.summary()}")
        return result

    def destroy(self) -> ApplyResult:
        """Remove every tracked resource in reverse dependency order."""
        state = self.backend.read()
        result = ApplyResult()

        if state.secret_addresses():
            self.preflight()

        for address, recorded in sorted(state.secret_addresses().items()):
            self._run_step(address, self.secrets_client.delete_secret, recorded["secret_name"])
            self._forget(state, address, result)

        attachment = state.get(ATTACHMENT_ADDRESS)
        if attachment:
            self._run_step(
                ATTACHMENT_ADDRESS, self.iam_manager.detach_policy,
                attachment["user_name"], attachment["policy_arn"],
            )
            self._forget(state, ATTACHMENT_ADDRESS, result)

        key = state.get(ACCESS_KEY_ADDRESS)
        if key:
            self._run_step(
                ACCESS_KEY_ADDRESS, self.iam_manager.delete_access_key,
                key["user_name"], key["access_key_id"],
            )
            self._forget(state, ACCESS_KEY_ADDRESS, result)

        user = state.get(USER_ADDRESS)
        if user:
            self._run_step(USER_ADDRESS, self.iam_manager.delete_user, user["user_name"])
            self._forget(state, USER_ADDRESS, result)

        state.outputs = {}
        self.backend.write(state)

        logger.info(f"Destroy complete! {result.summary()}")
        return result

    def outputs(self) -> Dict[str, Dict[str, Any]]:
        """Outputs recorded by the last apply."""
        return self.backend.read().outputs

    # Internals

    @staticmethod
    def _run_step(address: str, func, *args: Any) -> Any:
        try:
            return func(*args)
        except ProvisioningError as e:
            if e.address is None:
                e.address = address
            logger.error(f"Aborting: {e}")
            raise

    def _persist(self, state: ProvisioningState, change: ResourceChange) -> None:
        try:
            self.backend.write(state)
        except ProvisioningError as e:
            if change.address.startswith(SECRET_ADDRESS_PREFIX):
                recovery = "re-running will overwrite the secret"
            else:
                recovery = (
                    "it now exists in AWS but is not tracked; delete it manually "
                    "before re-running"
                )
            error = ProviderError(
                f"{change.action.value} succeeded but state could not be saved to "
                f"{self.backend.location} ({e.message}); {recovery}",
                address=change.address,
            )
            logger.error(f"Aborting: {error}")
            raise error from e

    def _forget(self, state: ProvisioningState, address: str, result: ApplyResult) -> None:
        state.remove(address)
        self.backend.write(state)
        result.record(Action.DELETE)

    def _apply_change(self, change: ResourceChange, state: ProvisioningState) -> None:
        if change.address == USER_ADDRESS:
            self._apply_user(change, state)
        elif change.address == ACCESS_KEY_ADDRESS:
            self._apply_access_key(change, state)
        elif change.address == ATTACHMENT_ADDRESS:
            self._apply_attachment(change, state)
        elif change.address.startswith(SECRET_ADDRESS_PREFIX):
            self._apply_secret(change, state)
        else:
            raise ProvisioningError(f"Unknown resource address {change.address}")

    def _apply_user(self, change: ResourceChange, state: ProvisioningState) -> None:
        if change.action is Action.UPDATE:
            user_name = change.before["user_name"]
            stale = set(change.before.get("tags") or {}) - set(self.module.tags)
            self.iam_manager.untag_user(user_name, sorted(stale))
            self.iam_manager.tag_user(user_name, self.module.tags)
            state.set(USER_ADDRESS, dict(state.get(USER_ADDRESS), tags=dict(self.module.tags)))
            return

        if change.action is Action.REPLACE:
            # Dependents of the old user have to go before the user itself
            old_name = change.before["user_name"]
            key = state.get(ACCESS_KEY_ADDRESS)
            if key:
                self.iam_manager.delete_access_key(key["user_name"], key["access_key_id"])
                state.remove(ACCESS_KEY_ADDRESS)
            attachment = state.get(ATTACHMENT_ADDRESS)
            if attachment:
                self.iam_manager.detach_policy(attachment["user_name"], attachment["policy_arn"])
                state.remove(ATTACHMENT_ADDRESS)
            self.iam_manager.delete_user(old_name)
            state.remove(USER_ADDRESS)
            self.backend.write(state)

        user = self.iam_manager.create_user(self.module.user_name, self.module.tags)
        state.set(USER_ADDRESS, {
            "user_name": user["UserName"],
            "arn": user["Arn"],
            "user_id": user.get("UserId"),
            "tags": dict(self.module.tags),
        })

    def _apply_access_key(self, change: ResourceChange, state: ProvisioningState) -> None:
        recorded = state.get(ACCESS_KEY_ADDRESS)
        if recorded and change.action is Action.REPLACE:
            self.iam_manager.delete_access_key(recorded["user_name"], recorded["access_key_id"])
            state.remove(ACCESS_KEY_ADDRESS)

        key_pair = self.iam_manager.create_access_key(self.module.user_name)
        self._record_key(state, key_pair)

    def _record_key(self, state: ProvisioningState, key_pair: AccessKeyPair) -> None:
        state.set(ACCESS_KEY_ADDRESS, {
            "user_name": key_pair.user_name,
            "access_key_id": key_pair.access_key_id,
            "secret_access_key": key_pair.secret_access_key,
            "status": key_pair.status,
        })

    def _apply_attachment(self, change: ResourceChange, state: ProvisioningState) -> None:
        self.iam_manager.attach_policy(self.module.user_name, self.module.policy_arn)

        recorded = change.before
        if (
            change.action is Action.UPDATE
            and recorded
            and recorded["policy_arn"] != self.module.policy_arn
        ):
            self.iam_manager.detach_policy(recorded["user_name"], recorded["policy_arn"])

        state.set(ATTACHMENT_ADDRESS, {
            "user_name": self.module.user_name,
            "policy_arn": self.module.policy_arn,
        })

    def _apply_secret(self, change: ResourceChange, state: ProvisioningState) -> None:
        if change.action is Action.DELETE:
            self.secrets_client.delete_secret(change.before["secret_name"])
            state.remove(change.address)
            return

        key = state.get(ACCESS_KEY_ADDRESS)
        if key is None:
            raise ProvisioningError("no access key is recorded to publish", address=change.address)

        source = change.after["source"]
        if source == "access_key_id":
            value = Sensitive(key["access_key_id"])
        else:
            value = key["secret_access_key"]
            register_secret(value)

        name = change.after["secret_name"]
        self.secrets_client.put_secret(name, value)
        state.set(change.address, {
            "repository": self.config.repository_slug,
            "secret_name": name,
            "source": source,
            "access_key_id": key["access_key_id"],
        })

    def _outputs_from_state(self, state: ProvisioningState) -> Dict[str, Dict[str, Any]]:
        user = state.get(USER_ADDRESS) or {}
        key = state.get(ACCESS_KEY_ADDRESS) or {}
        attachment = state.get(ATTACHMENT_ADDRESS) or {}
        return {
            "iam_user_name": {"value": user.get("user_name"), "sensitive": False},
            "iam_user_arn": {"value": user.get("arn"), "sensitive": False},
            "policy_arn": {"value": attachment.get("policy_arn"), "sensitive": False},
            "access_key_id": {"value": key.get("access_key_id"), "sensitive": False},
            "secret_access_key": {"value": key.get("secret_access_key"), "sensitive": True},
        }
