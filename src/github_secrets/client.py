"""
GitHub Actions repository secrets client.
"""

import logging
from base64 import b64encode
from typing import Any, Dict, List, Optional, Union

import requests
from nacl import encoding, public

from errors import (
    AuthenticationError,
    AuthorizationError,
    MissingTokenError,
    ProviderError,
)
from sensitive import Sensitive, reveal

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class GitHubSecretsClient:
    """Read and write Actions secrets for a single repository."""

    def __init__(
        self,
        owner: str,
        repository: str,
        token: Optional[Union[str, Sensitive]],
        api_url: str = "https://api.github.com",
        token_env: str = "GITHUB_TOKEN",
        timeout: int = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the secrets client.

        Args:
            owner: Repository owner (user or organization)
            repository: Repository name
            token: Bearer token with access to the repository's secrets
            api_url: GitHub API base URL
            token_env: Environment variable the token is expected in (for errors)
            timeout: Request timeout in seconds
            session: Optional requests session
        """
        if not token:
            raise MissingTokenError(
                f"GitHub token not found; export {token_env} before provisioning"
            )

        self.owner = owner
        self.repository = repository
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._token = Sensitive(token)
        self._session = session or requests.Session()
        self._public_key: Optional[Dict[str, str]] = None

    @property
    def repository_slug(self) -> str:
        return f"{self.owner}/{self.repository}"

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token.reveal()}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _url(self, path: str) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repository}{path}"

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = self._url(path)
        try:
            response = self._session.request(
                method, url, headers=self._headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise ProviderError(f"{method} {url} failed: {e}") from e

        if response.status_code == 401:
            raise AuthenticationError(
                f"GitHub rejected the token for {self.repository_slug} (401)"
            )
        if response.status_code == 403:
            raise AuthorizationError(
                f"Token is not allowed to {method} {path or '/'} on {self.repository_slug} (403)"
            )
        return response

    def _raise_for_status(self, response: requests.Response, action: str) -> None:
        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise ProviderError(f"{action} failed: {e}") from e

    def verify_access(self) -> Dict[str, Any]:
        """Check that the token can see the repository."""
        response = self._request("GET", "")
        if response.status_code == 404:
            # GitHub answers 404 for private repositories the token cannot see
            raise AuthorizationError(
                f"Repository {self.repository_slug} not found or not accessible"
            )
        self._raise_for_status(response, f"GET repository {self.repository_slug}")
        return response.json()

    def get_public_key(self) -> Dict[str, str]:
        """Get the repository public key used to seal secrets."""
        if self._public_key is None:
            response = self._request("GET", "/actions/secrets/public-key")
            self._raise_for_status(response, "GET secrets public key")
            data = response.json()
            self._public_key = {"key_id": data["key_id"], "key": data["key"]}
        return self._public_key

    def encrypt(self, value: Union[str, Sensitive]) -> str:
        """Encrypt a secret value with the repository public key."""
        key = self.get_public_key()["key"]
        public_key_obj = public.PublicKey(key.encode("utf-8"), encoding.Base64Encoder())
        sealed_box = public.SealedBox(public_key_obj)
        encrypted = sealed_box.encrypt(reveal(value).encode("utf-8"))
        return b64encode(encrypted).decode("utf-8")

    def put_secret(self, name: str, value: Union[str, Sensitive]) -> str:
        """
        Create or overwrite a repository secret.

        Returns:
            "created" or "updated"
        """
        data = {
            "encrypted_value": self.encrypt(value),
            "key_id": self.get_public_key()["key_id"],
        }
        response = self._request("PUT", f"/actions/secrets/{name}", json=data)
        self._raise_for_status(response, f"PUT secret {name}")

        outcome = "created" if response.status_code == 201 else "updated"
        logger.info(f"Secret {name} {outcome} in {self.repository_slug}")
        return outcome

    def get_secret(self, name: str) -> Optional[Dict[str, Any]]:
        """Get secret metadata (never the value), or None if absent."""
        response = self._request("GET", f"/actions/secrets/{name}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response, f"GET secret {name}")
        return response.json()

    def delete_secret(self, name: str) -> bool:
        """Delete a secret. Returns False if it did not exist."""
        response = self._request("DELETE", f"/actions/secrets/{name}")
        if response.status_code == 404:
            logger.warning(f"Secret {name} already absent from {self.repository_slug}")
            return False
        self._raise_for_status(response, f"DELETE secret {name}")

        logger.info(f"Secret {name} deleted from {self.repository_slug}")
        return True

    def list_secret_names(self) -> List[str]:
        """List the names of all repository secrets."""
        names: List[str] = []
        page = 1
        while True:
            response = self._request(
                "GET", "/actions/secrets", params={"per_page": 100, "page": page}
            )
            self._raise_for_status(response, "GET secrets")
            data = response.json()
            names.extend(s["name"] for s in data.get("secrets", []))
            if len(names) >= data.get("total_count", 0) or not data.get("secrets"):
                break
            page += 1
        return names
