"""
Verification of AWS access from the CI side of the handoff.

Runs the same check as the workflow's ``aws s3 ls`` step, using only the
credentials available in the environment.
"""

import logging
import os
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from iam.cicd_manager import translate_client_error
from sensitive import Sensitive, register_secret

logger = logging.getLogger(__name__)

ACCESS_KEY_ID_PATTERN = re.compile(r"^(AKIA|ASIA)[A-Z0-9]{16}$")
SECRET_ACCESS_KEY_LENGTH = 40


class CheckFailed(Exception):
    """Raised by a check whose precondition does not hold."""


class CheckStatus(Enum):
    """Check execution status."""

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class CheckResult:
    """Result of a single verification check."""

    name: str
    status: CheckStatus
    message: str
    duration: float = 0.0
    details: Optional[Dict[str, Any]] = None


@dataclass
class VerificationResult:
    """Combined result of all checks."""

    checks: List[CheckResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return bool(self.checks) and all(
            c.status is CheckStatus.PASSED for c in self.checks
        )

    @property
    def failed_checks(self) -> List[CheckResult]:
        return [c for c in self.checks if c.status is CheckStatus.FAILED]


class CredentialVerifier:
    """Check that a key pair is present, well formed and can list S3."""

    def __init__(
        self,
        access_key_id: Optional[str],
        secret_access_key: Optional[Any],
        region: str = "us-east-1",
        session_factory: Callable[..., boto3.Session] = boto3.Session,
    ):
        self.access_key_id = access_key_id or None
        self.secret_access_key = Sensitive(secret_access_key) if secret_access_key else None
        self.region = region
        self.session_factory = session_factory
        self._session: Optional[boto3.Session] = None
        if self.secret_access_key:
            register_secret(self.secret_access_key)

    @classmethod
    def from_environment(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        region: Optional[str] = None,
    ) -> "CredentialVerifier":
        """Build a verifier from the ambient AWS credential variables."""
        environ = os.environ if environ is None else environ
        return cls(
            access_key_id=environ.get("AWS_ACCESS_KEY_ID"),
            secret_access_key=environ.get("AWS_SECRET_ACCESS_KEY"),
            region=region
            or environ.get("AWS_REGION")
            or environ.get("AWS_DEFAULT_REGION")
            or "us-east-1",
        )

    @property
    def session(self) -> boto3.Session:
        if self._session is None:
            self._session = self.session_factory(
                aws_access_key_id=self.access_key_id,
                aws_secret_access_key=self.secret_access_key.reveal(),
                region_name=self.region,
            )
        return self._session

    def run(self) -> VerificationResult:
        """Run checks in order; the first failure skips the rest."""
        result = VerificationResult()
        checks = [
            ("credentials_present", self.check_credentials_present),
            ("credentials_well_formed", self.check_credentials_well_formed),
            ("caller_identity", self.check_caller_identity),
            ("storage_listing", self.check_storage_listing),
        ]

        failed = False
        for name, check in checks:
            if failed:
                result.checks.append(CheckResult(name, CheckStatus.SKIPPED, "Skipped after failure"))
                continue
            check_result = self._run_check(name, check)
            result.checks.append(check_result)
            failed = check_result.status is CheckStatus.FAILED

        return result

    def _run_check(self, name: str, check: Callable[[], Optional[Dict[str, Any]]]) -> CheckResult:
        start_time = time.time()
        try:
            details = check()
        except CheckFailed as e:
            logger.error(f"Check {name} failed: {e}")
            return CheckResult(name, CheckStatus.FAILED, str(e), time.time() - start_time)
        except (ClientError, BotoCoreError) as e:
            error = translate_client_error(e, name)
            logger.error(f"Check {name} failed: {error}")
            return CheckResult(name, CheckStatus.FAILED, str(error), time.time() - start_time)

        return CheckResult(name, CheckStatus.PASSED, "Check passed", time.time() - start_time, details)

    def check_credentials_present(self) -> None:
        missing = []
        if not self.access_key_id:
            missing.append("AWS_ACCESS_KEY_ID")
        if not self.secret_access_key:
            missing.append("AWS_SECRET_ACCESS_KEY")
        if missing:
            raise CheckFailed(f"Missing credentials: {', '.join(missing)}")

    def check_credentials_well_formed(self) -> None:
        if not ACCESS_KEY_ID_PATTERN.match(self.access_key_id):
            raise CheckFailed("AWS_ACCESS_KEY_ID does not look like an access key id")
        if len(self.secret_access_key) != SECRET_ACCESS_KEY_LENGTH:
            raise CheckFailed(
                f"AWS_SECRET_ACCESS_KEY must be {SECRET_ACCESS_KEY_LENGTH} characters"
            )

    def check_caller_identity(self) -> Dict[str, Any]:
        identity = self.session.client("sts").get_caller_identity()
        return {"account": identity["Account"], "arn": identity["Arn"]}

    def check_storage_listing(self) -> Dict[str, Any]:
        response = self.session.client("s3").list_buckets()
        return {"bucket_count": len(response.get("Buckets", []))}
