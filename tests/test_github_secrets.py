"""
Tests for the GitHub repository secrets client.
"""

import json
from base64 import b64decode
from unittest.mock import Mock

import pytest
import requests
from nacl import encoding, public

from errors import (
    AuthenticationError,
    AuthorizationError,
    MissingTokenError,
    ProviderError,
)
from github_secrets import GitHubSecretsClient
from sensitive import Sensitive

API = "https://api.github.com/repos/acme/app"


def make_response(status_code, payload=None, url=API):
    response = requests.Response()
    response.status_code = status_code
    response.url = url
    response._content = json.dumps(payload).encode("utf-8") if payload is not None else b""
    return response


@pytest.fixture
def keypair():
    private_key = public.PrivateKey.generate()
    public_b64 = private_key.public_key.encode(encoding.Base64Encoder).decode("utf-8")
    return private_key, public_b64


@pytest.fixture
def session(keypair):
    """Mock requests session answering like the GitHub API."""
    _, public_b64 = keypair
    session = Mock()
    store = {}

    def handler(method, url, headers=None, timeout=None, json=None, params=None):
        path = url[len(API):]
        if path == "/actions/secrets/public-key":
            return make_response(200, {"key_id": "568250167242549743", "key": public_b64})
        if path == "" and method == "GET":
            return make_response(200, {"full_name": "acme/app"})
        if path.startswith("/actions/secrets/"):
            name = path.rsplit("/", 1)[-1]
            if method == "PUT":
                status = 204 if name in store else 201
                store[name] = json
                return make_response(status)
            if method == "GET":
                if name in store:
                    return make_response(200, {"name": name})
                return make_response(404, {"message": "Not Found"})
            if method == "DELETE":
                if store.pop(name, None) is None:
                    return make_response(404, {"message": "Not Found"})
                return make_response(204)
        if path == "/actions/secrets":
            secrets = [{"name": n} for n in sorted(store)]
            return make_response(200, {"total_count": len(secrets), "secrets": secrets})
        return make_response(500, {"message": "unexpected"})

    session.request.side_effect = handler
    session.store = store
    return session


def make_client(session, token="ghp_test"):
    return GitHubSecretsClient("acme", "app", token, session=session)


class TestGitHubSecretsClient:
    """Test secret store operations."""

    def test_missing_token_fails_before_any_request(self):
        session = Mock()

        with pytest.raises(MissingTokenError, match="GITHUB_TOKEN"):
            GitHubSecretsClient("acme", "app", None, session=session)

        session.request.assert_not_called()

    def test_empty_sensitive_token_rejected(self):
        with pytest.raises(MissingTokenError):
            GitHubSecretsClient("acme", "app", Sensitive(""), session=Mock())

    def test_bearer_header(self, session):
        client = make_client(session, token=Sensitive("ghp_secret"))
        client.verify_access()

        headers = session.request.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer ghp_secret"

    def test_encrypt_round_trips_with_private_key(self, session, keypair):
        private_key, _ = keypair
        client = make_client(session)

        encrypted = client.encrypt(Sensitive("wJalrXUtnFEMI/K7MDENG"))

        plaintext = public.SealedBox(private_key).decrypt(b64decode(encrypted))
        assert plaintext == b"wJalrXUtnFEMI/K7MDENG"

    def test_put_secret_created_then_updated(self, session):
        client = make_client(session)

        assert client.put_secret("AWS_ACCESS_KEY_ID", "AKIAEXAMPLE") == "created"
        assert client.put_secret("AWS_ACCESS_KEY_ID", "AKIAEXAMPLE2") == "updated"

        body = session.store["AWS_ACCESS_KEY_ID"]
        assert body["key_id"] == "568250167242549743"
        assert "AKIAEXAMPLE2" not in body["encrypted_value"]

    def test_public_key_is_cached(self, session):
        client = make_client(session)
        client.put_secret("A", "1")
        client.put_secret("B", "2")

        key_calls = [
            c for c in session.request.call_args_list
            if c.args[1].endswith("/public-key")
        ]
        assert len(key_calls) == 1

    def test_get_and_delete_secret(self, session):
        client = make_client(session)
        assert client.get_secret("AWS_SECRET_ACCESS_KEY") is None

        client.put_secret("AWS_SECRET_ACCESS_KEY", "value")
        assert client.get_secret("AWS_SECRET_ACCESS_KEY") == {"name": "AWS_SECRET_ACCESS_KEY"}

        assert client.delete_secret("AWS_SECRET_ACCESS_KEY") is True
        assert client.delete_secret("AWS_SECRET_ACCESS_KEY") is False

    def test_list_secret_names(self, session):
        client = make_client(session)
        client.put_secret("AWS_SECRET_ACCESS_KEY", "v")
        client.put_secret("AWS_ACCESS_KEY_ID", "v")

        assert client.list_secret_names() == ["AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY"]

    def test_unauthorized_token(self):
        session = Mock()
        session.request.return_value = make_response(401, {"message": "Bad credentials"})

        with pytest.raises(AuthenticationError):
            make_client(session).verify_access()

    def test_forbidden_public_key(self):
        session = Mock()
        session.request.return_value = make_response(403, {"message": "Resource not accessible"})

        with pytest.raises(AuthorizationError):
            make_client(session).get_public_key()

    def test_repository_not_visible(self):
        session = Mock()
        session.request.return_value = make_response(404, {"message": "Not Found"})

        with pytest.raises(AuthorizationError, match="acme/app"):
            make_client(session).verify_access()

    def test_server_error(self):
        session = Mock()
        session.request.return_value = make_response(502, {"message": "Bad Gateway"})

        with pytest.raises(ProviderError):
            make_client(session).get_public_key()

    def test_network_error(self):
        session = Mock()
        session.request.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(ProviderError, match="connection refused"):
            make_client(session).verify_access()
