"""
GitHub Actions workflow that consumes the provisioned secrets.

The workflow is the CI half of the handoff: it never talks to the
provisioning state, only to the repository secrets written by an apply.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from config import ProvisioningConfig

logger = logging.getLogger(__name__)

WORKFLOW_FILE = ".github/workflows/verify-aws-access.yml"
WORKFLOW_NAME = "Verify AWS Access"
JOB_ID = "verify-aws-access"

CHECKOUT_ACTION = "actions/checkout@v4"
CONFIGURE_CREDENTIALS_ACTION = "aws-actions/configure-aws-credentials@v4"
VERIFY_COMMAND = "aws s3 ls"


def _secret_ref(name: str) -> str:
    return "${{ secrets." + name + " }}"


def build_verify_workflow(config: ProvisioningConfig) -> Dict[str, Any]:
    """
    Build the verification workflow document.

    Triggers on pushes to any branch, pull requests targeting any branch and
    manual dispatch. One job, three ordered steps. No retries and no timeout
    override: the exit status of the listing call is the job result.
    """
    return {
        "name": WORKFLOW_NAME,
        "on": {
            "push": {"branches": ["**"]},
            "pull_request": {"branches": ["**"]},
            "workflow_dispatch": {},
        },
        "jobs": {
            JOB_ID: {
                "runs-on": "ubuntu-latest",
                "steps": [
                    {
                        "name": "Checkout",
                        "uses": CHECKOUT_ACTION,
                    },
                    {
                        "name": "Configure AWS credentials",
                        "uses": CONFIGURE_CREDENTIALS_ACTION,
                        "with": {
                            "aws-access-key-id": _secret_ref(config.access_key_id_secret_name),
                            "aws-secret-access-key": _secret_ref(config.secret_access_key_secret_name),
                            "aws-region": config.aws_region,
                        },
                    },
                    {
                        "name": "List S3 buckets",
                        "run": VERIFY_COMMAND,
                    },
                ],
            },
        },
    }


def render_workflow(config: ProvisioningConfig) -> str:
    """Render the verification workflow as YAML."""
    return yaml.safe_dump(
        build_verify_workflow(config),
        sort_keys=False,
        default_flow_style=False,
        width=120,
    )


def write_workflow(config: ProvisioningConfig, repo_root: Union[str, Path] = ".") -> Path:
    """Write the workflow file under the repository root."""
    path = Path(repo_root) / WORKFLOW_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_workflow(config))
    logger.info(f"Wrote workflow {path}")
    return path
