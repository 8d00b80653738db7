"""
GitHub repository secret store access.
"""

from .client import GitHubSecretsClient

__all__ = ["GitHubSecretsClient"]
