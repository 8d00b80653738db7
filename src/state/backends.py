"""
State backends: an encrypted S3 object or a local file.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config import ProvisioningConfig, StateBackendConfig
from errors import ConfigurationError, ProviderError
from iam.cicd_manager import translate_client_error

from .document import ProvisioningState

logger = logging.getLogger(__name__)


class StateBackend:
    """Base class for state persistence."""

    def read(self) -> ProvisioningState:
        raise NotImplementedError

    def write(self, state: ProvisioningState) -> None:
        raise NotImplementedError

    @property
    def location(self) -> str:
        raise NotImplementedError

    @staticmethod
    def _encode(state: ProvisioningState) -> bytes:
        return json.dumps(state.to_dict(), indent=2, sort_keys=True).encode("utf-8")

    @staticmethod
    def _decode(body: bytes, location: str) -> ProvisioningState:
        try:
            return ProvisioningState.from_dict(json.loads(body))
        except (ValueError, TypeError) as e:
            raise ProviderError(f"State at {location} is unreadable: {e}") from e


class S3StateBackend(StateBackend):
    """
    State stored as a single object in a versioned S3 bucket.

    Every write is server-side encrypted: SSE-KMS when a key id is configured,
    SSE-S3 (AES256) otherwise.
    """

    def __init__(
        self,
        bucket: str,
        key: str,
        region: str = "us-east-1",
        encrypt: bool = True,
        kms_key_id: Optional[str] = None,
        session: Optional[boto3.Session] = None,
    ):
        self.bucket = bucket
        self.key = key
        self.encrypt = encrypt
        self.kms_key_id = kms_key_id
        session = session or boto3.Session(region_name=region)
        self.s3 = session.client("s3", region_name=region)

    @property
    def location(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    def _encryption_args(self) -> Dict[str, Any]:
        if not self.encrypt:
            return {}
        if self.kms_key_id:
            return {"ServerSideEncryption": "aws:kms", "SSEKMSKeyId": self.kms_key_id}
        return {"ServerSideEncryption": "AES256"}

    def check_versioning(self) -> bool:
        """Return True when bucket versioning is enabled; warn otherwise."""
        try:
            response = self.s3.get_bucket_versioning(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as e:
            raise translate_client_error(e, f"GetBucketVersioning {self.bucket}") from e

        if response.get("Status") != "Enabled":
            logger.warning(
                f"Versioning is not enabled on state bucket {self.bucket}; "
                "previous state versions will not be recoverable"
            )
            return False
        return True

    def read(self) -> ProvisioningState:
        try:
            response = self.s3.get_object(Bucket=self.bucket, Key=self.key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                logger.info(f"No state at {self.location}, starting empty")
                return ProvisioningState()
            raise translate_client_error(e, f"GetObject {self.location}") from e
        except BotoCoreError as e:
            raise translate_client_error(e, f"GetObject {self.location}") from e

        return self._decode(response["Body"].read(), self.location)

    def write(self, state: ProvisioningState) -> None:
        state.serial += 1
        try:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=self.key,
                Body=self._encode(state),
                ContentType="application/json",
                **self._encryption_args(),
            )
        except (ClientError, BotoCoreError) as e:
            state.serial -= 1
            raise translate_client_error(e, f"PutObject {self.location}") from e

        logger.debug(f"Wrote state serial {state.serial} to {self.location}")


class LocalStateBackend(StateBackend):
    """State stored in a local JSON file, readable only by the owner."""

    def __init__(self, path: str):
        self.path = Path(path)

    @property
    def location(self) -> str:
        return str(self.path)

    def read(self) -> ProvisioningState:
        if not self.path.exists():
            logger.info(f"No state at {self.location}, starting empty")
            return ProvisioningState()
        return self._decode(self.path.read_bytes(), self.location)

    def write(self, state: ProvisioningState) -> None:
        state.serial += 1
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(self._encode(state))
            os.replace(tmp_path, self.path)
        except OSError as e:
            state.serial -= 1
            raise ProviderError(f"Cannot write state to {self.location}: {e}") from e

        logger.debug(f"Wrote state serial {state.serial} to {self.location}")


def get_state_backend(
    config: ProvisioningConfig,
    session: Optional[boto3.Session] = None,
) -> StateBackend:
    """Create the configured state backend."""
    state_config: StateBackendConfig = config.state

    if state_config.backend == "local":
        return LocalStateBackend(state_config.path)

    if state_config.backend == "s3":
        if not state_config.bucket:
            raise ConfigurationError("state.bucket is required for the s3 backend")
        return S3StateBackend(
            bucket=state_config.bucket,
            key=state_config.key,
            region=state_config.region or config.aws_region,
            encrypt=state_config.encrypt,
            kms_key_id=state_config.kms_key_id,
            session=session,
        )

    raise ConfigurationError(f"Unknown state backend: {state_config.backend}")
