"""
CI workflow definitions.
"""

from .github_actions import (
    WORKFLOW_FILE,
    build_verify_workflow,
    render_workflow,
    write_workflow,
)

__all__ = ["WORKFLOW_FILE", "build_verify_workflow", "render_workflow", "write_workflow"]
