"""
Shared fixtures for provisioning tests.
"""

import os
from typing import Any, Dict, List, Optional

import pytest
from moto import mock_aws

from config import ProvisioningConfig, StateBackendConfig
from errors import ProvisioningError
from sensitive import Sensitive, reveal


class FakeSecretsClient:
    """In-memory stand-in for GitHubSecretsClient."""

    def __init__(self, owner: str = "acme", repository: str = "app"):
        self.owner = owner
        self.repository = repository
        self.secrets: Dict[str, str] = {}
        self.calls: List[str] = []
        self.fail_on_put: Optional[str] = None
        self.verify_error: Optional[ProvisioningError] = None

    def verify_access(self) -> Dict[str, Any]:
        self.calls.append("verify_access")
        if self.verify_error:
            raise self.verify_error
        return {"full_name": f"{self.owner}/{self.repository}"}

    def get_public_key(self) -> Dict[str, str]:
        self.calls.append("get_public_key")
        return {"key_id": "test-key-id", "key": "unused"}

    def put_secret(self, name: str, value: Any) -> str:
        self.calls.append(f"put_secret:{name}")
        if self.fail_on_put == name:
            raise ProvisioningError(f"PUT secret {name} failed: 502 Bad Gateway")
        outcome = "updated" if name in self.secrets else "created"
        self.secrets[name] = reveal(value)
        return outcome

    def get_secret(self, name: str) -> Optional[Dict[str, Any]]:
        if name in self.secrets:
            return {"name": name}
        return None

    def delete_secret(self, name: str) -> bool:
        self.calls.append(f"delete_secret:{name}")
        return self.secrets.pop(name, None) is not None

    def list_secret_names(self) -> List[str]:
        return sorted(self.secrets)


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mocked AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    # moto 5 only knows AWS managed policies when asked to load them
    monkeypatch.setenv("MOTO_IAM_LOAD_MANAGED_POLICIES", "true")


@pytest.fixture
def mocked_aws(aws_credentials):
    with mock_aws():
        yield


@pytest.fixture
def state_path(tmp_path):
    return tmp_path / "state" / "gha-iam.tfstate"


@pytest.fixture
def make_config(state_path):
    """Factory for provisioning configs backed by a local state file."""

    def _make(**overrides) -> ProvisioningConfig:
        values = {
            "github_owner": "acme",
            "github_repository": "app",
            "github_token": None,
            "state": StateBackendConfig(backend="local", path=str(state_path)),
        }
        token = overrides.pop("token", "ghp_testtoken")
        values.update(overrides)
        config = ProvisioningConfig(**values)
        if token:
            config.github_token = Sensitive(token)
        return config

    return _make


@pytest.fixture
def fake_secrets():
    return FakeSecretsClient()


@pytest.fixture
def clean_env(monkeypatch):
    """Environment without a GitHub token."""
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    return os.environ
