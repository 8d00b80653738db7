"""
CI/CD IAM user management.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from errors import (
    AuthenticationError,
    AuthorizationError,
    ProviderError,
    ProvisioningError,
    ResourceConflictError,
)
from sensitive import Sensitive, register_secret

logger = logging.getLogger(__name__)

AUTHENTICATION_CODES = {
    "InvalidClientTokenId",
    "SignatureDoesNotMatch",
    "ExpiredToken",
    "UnrecognizedClientException",
}
AUTHORIZATION_CODES = {"AccessDenied", "AccessDeniedException", "UnauthorizedOperation"}


@dataclass
class AccessKeyPair:
    """IAM access key pair. The secret is only known right after creation."""
    access_key_id: str
    secret_access_key: Sensitive
    user_name: str
    status: str = "Active"


def translate_client_error(error: Exception, action: str) -> ProvisioningError:
    """Map a botocore error to the toolkit's error taxonomy."""
    if isinstance(error, NoCredentialsError):
        return AuthenticationError(f"{action}: no AWS credentials found")

    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "")
        message = error.response.get("Error", {}).get("Message", str(error))
        if code == "EntityAlreadyExists":
            return ResourceConflictError(f"{action}: {message}")
        if code in AUTHENTICATION_CODES:
            return AuthenticationError(f"{action}: {message}")
        if code in AUTHORIZATION_CODES:
            return AuthorizationError(f"{action}: {message}")
        return ProviderError(f"{action}: {code or 'error'}: {message}")

    return ProviderError(f"{action}: {error}")


def _is_not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == "NoSuchEntity"


class CICDUserManager:
    """Manage the IAM user, access key and policy attachment used by CI/CD."""

    def __init__(
        self,
        region: str = "us-east-1",
        profile: Optional[str] = None,
        session: Optional[boto3.Session] = None,
    ):
        """
        Initialize the IAM user manager.

        Args:
            region: AWS region for the session
            profile: AWS profile to use
            session: Pre-built boto3 session (takes precedence over profile)
        """
        if session is None:
            session_args = {"region_name": region}
            if profile:
                session_args["profile_name"] = profile
            session = boto3.Session(**session_args)

        self.iam = session.client("iam")
        self.sts = session.client("sts")

    def get_caller_account(self) -> str:
        """Get AWS account ID of the caller."""
        try:
            response = self.sts.get_caller_identity()
            return response["Account"]
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, "GetCallerIdentity") from e

    # Users

    def get_user(self, user_name: str) -> Optional[Dict[str, Any]]:
        """Return the user record, or None if it does not exist."""
        try:
            return self.iam.get_user(UserName=user_name)["User"]
        except ClientError as e:
            if _is_not_found(e):
                return None
            raise translate_client_error(e, f"GetUser {user_name}") from e
        except BotoCoreError as e:
            raise translate_client_error(e, f"GetUser {user_name}") from e

    def create_user(self, user_name: str, tags: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Create an IAM user."""
        params: Dict[str, Any] = {"UserName": user_name}
        if tags:
            params["Tags"] = [{"Key": k, "Value": v} for k, v in sorted(tags.items())]

        try:
            user = self.iam.create_user(**params)["User"]
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, f"CreateUser {user_name}") from e

        logger.info(f"Created IAM user {user_name}")
        return user

    def delete_user(self, user_name: str) -> bool:
        """Delete an IAM user. Returns False if it was already gone."""
        try:
            self.iam.delete_user(UserName=user_name)
        except ClientError as e:
            if _is_not_found(e):
                logger.warning(f"IAM user {user_name} already deleted")
                return False
            raise translate_client_error(e, f"DeleteUser {user_name}") from e

        logger.info(f"Deleted IAM user {user_name}")
        return True

    def tag_user(self, user_name: str, tags: Dict[str, str]) -> None:
        """Add or overwrite tags on an IAM user."""
        if not tags:
            return
        try:
            self.iam.tag_user(
                UserName=user_name,
                Tags=[{"Key": k, "Value": v} for k, v in sorted(tags.items())],
            )
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, f"TagUser {user_name}") from e

        logger.info(f"Tagged IAM user {user_name}: {', '.join(sorted(tags))}")

    def untag_user(self, user_name: str, tag_keys: List[str]) -> None:
        """Remove tags from an IAM user."""
        if not tag_keys:
            return
        try:
            self.iam.untag_user(UserName=user_name, TagKeys=sorted(tag_keys))
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, f"UntagUser {user_name}") from e

        logger.info(f"Removed tags from IAM user {user_name}: {', '.join(sorted(tag_keys))}")

    # Access keys

    def list_access_keys(self, user_name: str) -> List[Dict[str, Any]]:
        """List access key metadata for a user. A missing user has no keys."""
        try:
            response = self.iam.list_access_keys(UserName=user_name)
        except ClientError as e:
            if _is_not_found(e):
                return []
            raise translate_client_error(e, f"ListAccessKeys {user_name}") from e
        return response["AccessKeyMetadata"]

    def access_key_exists(self, user_name: str, access_key_id: str) -> bool:
        return any(
            key["AccessKeyId"] == access_key_id
            for key in self.list_access_keys(user_name)
        )

    def create_access_key(self, user_name: str) -> AccessKeyPair:
        """Create an access key for a user."""
        try:
            response = self.iam.create_access_key(UserName=user_name)
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, f"CreateAccessKey {user_name}") from e

        access_key = response["AccessKey"]
        secret = Sensitive(access_key["SecretAccessKey"])
        register_secret(secret)

        logger.info(f"Created access key {access_key['AccessKeyId']} for {user_name}")
        return AccessKeyPair(
            access_key_id=access_key["AccessKeyId"],
            secret_access_key=secret,
            user_name=user_name,
            status=access_key.get("Status", "Active"),
        )

    def delete_access_key(self, user_name: str, access_key_id: str) -> bool:
        """Delete an access key. Returns False if it was already gone."""
        try:
            self.iam.delete_access_key(UserName=user_name, AccessKeyId=access_key_id)
        except ClientError as e:
            if _is_not_found(e):
                logger.warning(f"Access key {access_key_id} already deleted")
                return False
            raise translate_client_error(e, f"DeleteAccessKey {access_key_id}") from e

        logger.info(f"Deleted access key {access_key_id}")
        return True

    # Policy attachments

    def list_attached_policy_arns(self, user_name: str) -> List[str]:
        """List managed policy ARNs attached to a user."""
        try:
            response = self.iam.list_attached_user_policies(UserName=user_name)
        except ClientError as e:
            if _is_not_found(e):
                return []
            raise translate_client_error(e, f"ListAttachedUserPolicies {user_name}") from e
        return [p["PolicyArn"] for p in response["AttachedPolicies"]]

    def attach_policy(self, user_name: str, policy_arn: str) -> None:
        """Attach a managed policy to a user. Attaching twice is a no-op on AWS."""
        try:
            self.iam.attach_user_policy(UserName=user_name, PolicyArn=policy_arn)
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, f"AttachUserPolicy {policy_arn}") from e

        logger.info(f"Attached policy {policy_arn} to {user_name}")

    def detach_policy(self, user_name: str, policy_arn: str) -> bool:
        """Detach a managed policy. Returns False if it was not attached."""
        try:
            self.iam.detach_user_policy(UserName=user_name, PolicyArn=policy_arn)
        except ClientError as e:
            if _is_not_found(e):
                logger.warning(f"Policy {policy_arn} was not attached to {user_name}")
                return False
            raise translate_client_error(e, f"DetachUserPolicy {policy_arn}") from e

        logger.info(f"Detached policy {policy_arn} from {user_name}")
        return True
