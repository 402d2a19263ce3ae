"""
Shared pytest fixtures for testing.

This module provides reusable fixtures for kubeconfig files, synthetic
OIDC id-tokens, environment isolation and the mock token server.
"""

import base64
import json
import time
from collections.abc import Callable, Generator
from pathlib import Path
from unittest.mock import Mock

import pytest
import yaml

ISSUER_URL = "https://issuer"
CA_DATA = "LS0tLS1CRUdJTiBDRVJUSUZJQ0FURS0tLS0t"


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode().rstrip("=")


@pytest.fixture
def make_id_token() -> Callable[..., str]:
    """Build unsigned JWTs with a chosen ``exp`` claim.

    Example:
        >>> def test_token(make_id_token):
        ...     token = make_id_token(expires_in=3600)
    """

    def _make(expires_in: int | None = 3600, claims: dict | None = None) -> str:
        payload = dict(claims or {"sub": "user-1"})
        if expires_in is not None:
            payload["exp"] = int(time.time()) + expires_in
        header = _b64url(json.dumps({"alg": "none", "typ": "JWT"}).encode())
        body = _b64url(json.dumps(payload).encode())
        return f"{header}.{body}.signature"

    return _make


@pytest.fixture
def kubeconfig_data() -> dict:
    """Kubeconfig with an OIDC user on "prod" and a static token user on "staging".

    The OIDC user has no id-token yet, so the first connection refreshes it.
    """
    return {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [
            {
                "name": "c1",
                "cluster": {
                    "server": "https://api.example.com",
                    "certificate-authority-data": CA_DATA,
                },
            },
            {
                "name": "c2",
                "cluster": {
                    "server": "https://staging.example.com:6443",
                    "insecure-skip-tls-verify": True,
                },
            },
        ],
        "users": [
            {
                "name": "u1",
                "user": {
                    "auth-provider": {
                        "name": "oidc",
                        "config": {
                            "client-id": "test-client",
                            "client-secret": "test-secret",
                            "idp-issuer-url": ISSUER_URL,
                            "refresh-token": "refresh-1",
                            "extra-scopes": "groups",
                        },
                    }
                },
            },
            {"name": "u2", "user": {"token": "static-token"}},
        ],
        "contexts": [
            {"name": "prod", "context": {"cluster": "c1", "user": "u1", "namespace": "apps"}},
            {"name": "staging", "context": {"cluster": "c2", "user": "u2"}},
        ],
        "current-context": "prod",
    }


@pytest.fixture
def write_kubeconfig(tmp_path: Path) -> Callable[..., Path]:
    """Write a kubeconfig dictionary to a temporary file.

    Example:
        >>> def test_file(write_kubeconfig, kubeconfig_data):
        ...     path = write_kubeconfig(kubeconfig_data)
    """

    def _write(data: dict, name: str = ".kubeconfig") -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(data, sort_keys=False))
        return path

    return _write


@pytest.fixture
def staging_handle(write_kubeconfig, kubeconfig_data):
    """ConnectionHandle for the "staging" context (static token, no TLS verify)."""
    from kube_connect.config import CredentialSource
    from kube_connect.handle import build_handle
    from kube_connect.kubeconfig import load_snapshot
    from kube_connect.providers import default_providers

    snapshot = load_snapshot(CredentialSource(path=str(write_kubeconfig(kubeconfig_data))))
    return build_handle(snapshot, "staging", default_providers())


@pytest.fixture
def token_response() -> Callable[..., Mock]:
    """Build a mocked requests.Response for the token endpoint."""

    def _response(payload: dict | None = None, status_code: int = 200) -> Mock:
        response = Mock()
        response.status_code = status_code
        response.ok = 200 <= status_code < 300
        response.json.return_value = payload or {}
        response.text = json.dumps(payload or {})
        return response

    return _response


@pytest.fixture
def mock_env_vars(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Clear all credential-related environment variables.

    This ensures tests start with a clean slate and don't inherit
    environment variables from the test runner's environment.
    """
    for var in ["KUBE_CONNECT_KUBECONFIG", "KUBECONFIG"]:
        monkeypatch.delenv(var, raising=False)

    yield


# Integration testing fixtures

@pytest.fixture(scope="session")
def mock_token_server():
    """Start an in-process token endpoint for integration tests.

    The server implements ``/connect/token`` for the refresh_token grant on
    an ephemeral localhost port.
    """
    from mock_oauth_server import MockTokenServer

    server = MockTokenServer(host="localhost", port=0)
    server.start()

    yield server

    server.stop()


# Pytest markers for different test levels
def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that use mock servers"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take longer to run"
    )
