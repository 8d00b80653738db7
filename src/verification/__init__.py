"""
Credential verification for CI runs.
"""

from .access_check import CheckResult, CheckStatus, CredentialVerifier, VerificationResult

__all__ = ["CheckResult", "CheckStatus", "CredentialVerifier", "VerificationResult"]
