"""
GitHub Actions IAM credentials - provision an AWS IAM user and hand its access
key to a repository's Actions secrets.
"""

__version__ = "1.0.0"
