"""
Configuration management for credential provisioning.

Resolves the root inputs (IAM user name, policy ARN, target repository, state
backend) from built-in defaults, an optional YAML file and command line
overrides. The secret store token is only ever read from the environment.
"""

import copy
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import jsonschema
import yaml
from deepmerge import always_merger

from errors import ConfigurationError
from sensitive import Sensitive

logger = logging.getLogger(__name__)

# Root composition default; the IAM user module carries its own narrower default.
ROOT_DEFAULT_POLICY_ARN = "arn:aws:iam::aws:policy/AmazonS3FullAccess"

DEFAULT_CONFIG_FILE = "gha-iam.yaml"
DEFAULT_TOKEN_ENV = "GITHUB_TOKEN"
DEFAULT_STATE_KEY = "github-actions-iam/terraform.tfstate"

DEFAULTS: Dict[str, Any] = {
    "iam_user_name": "github-actions-user",
    "policy_arn": ROOT_DEFAULT_POLICY_ARN,
    "aws_region": "us-east-1",
    "aws_profile": None,
    "github_owner": None,
    "github_repository": None,
    "github_api_url": "https://api.github.com",
    "github_token_env": DEFAULT_TOKEN_ENV,
    "access_key_id_secret_name": "AWS_ACCESS_KEY_ID",
    "secret_access_key_secret_name": "AWS_SECRET_ACCESS_KEY",
    "tags": {"ManagedBy": "gha-iam"},
    "state": {
        "backend": "s3",
        "bucket": None,
        "key": DEFAULT_STATE_KEY,
        "region": None,
        "encrypt": True,
        "kms_key_id": None,
        "path": "gha-iam.tfstate",
    },
}

SECRET_NAME_PATTERN = "^[A-Za-z_][A-Za-z0-9_]*$"

CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "required": ["iam_user_name", "policy_arn", "github_owner", "github_repository"],
    "properties": {
        "iam_user_name": {"type": "string", "pattern": "^[\\w+=,.@-]{1,64}$"},
        "policy_arn": {"type": "string", "pattern": "^arn:aws[a-z-]*:iam::(aws|\\d{12}):policy/.+$"},
        "aws_region": {"type": "string", "minLength": 1},
        "aws_profile": {"type": ["string", "null"]},
        "github_owner": {"type": "string", "minLength": 1},
        "github_repository": {"type": "string", "minLength": 1},
        "github_api_url": {"type": "string", "pattern": "^https?://"},
        "github_token_env": {"type": "string", "minLength": 1},
        "access_key_id_secret_name": {"type": "string", "pattern": SECRET_NAME_PATTERN},
        "secret_access_key_secret_name": {"type": "string", "pattern": SECRET_NAME_PATTERN},
        "tags": {"type": "object", "additionalProperties": {"type": "string"}},
        "state": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "backend": {"enum": ["s3", "local"]},
                "bucket": {"type": ["string", "null"]},
                "key": {"type": "string", "minLength": 1},
                "region": {"type": ["string", "null"]},
                "encrypt": {"type": "boolean"},
                "kms_key_id": {"type": ["string", "null"]},
                "path": {"type": "string", "minLength": 1},
            },
        },
    },
}


@dataclass
class StateBackendConfig:
    """Where the provisioning state document is persisted."""

    backend: str = "s3"
    bucket: Optional[str] = None
    key: str = DEFAULT_STATE_KEY
    region: Optional[str] = None
    encrypt: bool = True
    kms_key_id: Optional[str] = None
    path: str = "gha-iam.tfstate"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StateBackendConfig":
        return cls(**data)


@dataclass
class ProvisioningConfig:
    """Root inputs for the credential provisioning flow."""

    github_owner: str
    github_repository: str
    iam_user_name: str = "github-actions-user"
    policy_arn: str = ROOT_DEFAULT_POLICY_ARN
    aws_region: str = "us-east-1"
    aws_profile: Optional[str] = None
    github_api_url: str = "https://api.github.com"
    github_token_env: str = DEFAULT_TOKEN_ENV
    github_token: Optional[Sensitive] = None
    access_key_id_secret_name: str = "AWS_ACCESS_KEY_ID"
    secret_access_key_secret_name: str = "AWS_SECRET_ACCESS_KEY"
    tags: Dict[str, str] = field(default_factory=dict)
    state: StateBackendConfig = field(default_factory=StateBackendConfig)

    @property
    def repository_slug(self) -> str:
        """Repository coordinate as owner/name."""
        return f"{self.github_owner}/{self.github_repository}"

    @property
    def secret_names(self) -> Dict[str, str]:
        """Map of secret purpose to configured secret name."""
        return {
            "access_key_id": self.access_key_id_secret_name,
            "secret_access_key": self.secret_access_key_secret_name,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to a plain dictionary. The token is never included."""
        data = {
            k: copy.deepcopy(v) for k, v in self.__dict__.items()
            if k not in ("github_token", "state")
        }
        data["state"] = dict(self.state.__dict__)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], token: Optional[str] = None) -> "ProvisioningConfig":
        """Create config from a validated dictionary."""
        values = dict(data)
        state = StateBackendConfig.from_dict(values.pop("state", {}) or {})
        return cls(
            **values,
            state=state,
            github_token=Sensitive(token) if token else None,
        )


def validate_config_data(data: Dict[str, Any]) -> None:
    """Validate a merged configuration document against the schema."""
    if "github_token" in data:
        raise ConfigurationError(
            "github_token must not be stored in configuration files; "
            "export it in the environment instead"
        )
    try:
        jsonschema.validate(data, CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        path = " -> ".join(str(x) for x in e.absolute_path)
        location = f" (at {path})" if path else ""
        raise ConfigurationError(f"Configuration validation failed: {e.message}{location}") from e

    if data.get("access_key_id_secret_name") == data.get("secret_access_key_secret_name"):
        raise ConfigurationError(
            "access_key_id_secret_name and secret_access_key_secret_name must differ"
        )

    state = data.get("state", {})
    if state.get("backend") == "s3" and not state.get("bucket"):
        raise ConfigurationError("state.bucket is required when state.backend is 's3'")


def load_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a YAML configuration file."""
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    with open(config_path, "r") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")
    return data


def _schema_for(parts: List[str]) -> Dict[str, Any]:
    schema = CONFIG_SCHEMA
    for part in parts:
        properties = schema.get("properties", {})
        if part in properties:
            schema = properties[part]
        elif isinstance(schema.get("additionalProperties"), dict):
            schema = schema["additionalProperties"]
        else:
            return {}
    return schema


def _coerce_scalar(parts: List[str], value: str) -> Any:
    types = _schema_for(parts).get("type", [])
    if isinstance(types, str):
        types = [types]
    if "string" in types:
        # String fields keep the raw text, so owner "2024" stays a string
        if "null" in types and value in ("", "null", "~"):
            return None
        return value

    # Let YAML decide booleans, nulls and numbers for everything else
    try:
        return yaml.safe_load(value)
    except yaml.YAMLError:
        return value


def parse_overrides(pairs: Iterable[str]) -> Dict[str, Any]:
    """
    Turn ``key=value`` strings into a nested override dictionary.

    Dotted keys address nested sections, e.g. ``state.bucket=my-bucket``.
    """
    overrides: Dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ConfigurationError(f"Invalid override {pair!r}, expected KEY=VALUE")
        key, raw_value = pair.split("=", 1)
        key = key.strip()
        if not key:
            raise ConfigurationError(f"Invalid override {pair!r}, empty key")

        target = overrides
        parts = key.split(".")
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = _coerce_scalar(parts, raw_value)
    return overrides


def load_provisioning_config(
    path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ProvisioningConfig:
    """
    Resolve the provisioning configuration.

    Args:
        path: YAML config file; defaults to ``gha-iam.yaml`` in the cwd if present
        overrides: Nested overrides applied last (root inputs win)
        environ: Environment mapping used to read the secret store token

    Returns:
        Validated provisioning configuration
    """
    environ = os.environ if environ is None else environ
    merged = copy.deepcopy(DEFAULTS)

    if path is None:
        default_path = Path.cwd() / DEFAULT_CONFIG_FILE
        if default_path.exists():
            path = default_path

    if path is not None:
        logger.info(f"Loading configuration: {path}")
        always_merger.merge(merged, load_config_file(path))

    if overrides:
        always_merger.merge(merged, overrides)

    validate_config_data(merged)

    token_env = merged["github_token_env"]
    token = environ.get(token_env) or None
    if token is None:
        logger.debug(f"Environment variable {token_env} is not set")

    return ProvisioningConfig.from_dict(merged, token=token)
