"""Shared pytest fixtures for all tests."""

import os
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from publisher.config import PublishConfig
from publisher.credentials import masker
from publisher.identity import OIDCIdentity, RunContext

AUDIENCE = "api://AzureADTokenExchange"
API_URL = "https://api.cloudsmith.io"
UPLOAD_URL = "https://upload.cloudsmith.io"
EXCHANGED_KEY = "ck_live_5f0e8a1b2c3d4e5f60718293a4b5c6d7"


def make_token(**overrides):
    """Mint a GitHub Actions style OIDC JWT (HS256, test only)."""
    now = datetime.now(timezone.utc)
    payload = {
        "iss": "https://token.actions.githubusercontent.com",
        "sub": "repo:owner/repo:ref:refs/heads/main",
        "aud": AUDIENCE,
        "exp": int((now + timedelta(minutes=5)).timestamp()),
        "iat": int(now.timestamp()),
        "nbf": int(now.timestamp()),
        "jti": "6f1c3a2e-token-id",
        "repository": "owner/repo",
        "repository_owner": "owner",
        "repository_id": "123456",
        "ref": "refs/heads/main",
        "ref_type": "branch",
        "sha": "abc123def456789",
        "event_name": "push",
        "workflow": "Publish to Cloudsmith",
        "run_id": "987654321",
        "actor": "bot-user",
    }
    payload.update(overrides)
    return jwt.encode(payload, "secret", algorithm="HS256"), payload


@pytest.fixture
def token_factory():
    """Mint OIDC tokens with overridden claims."""
    return make_token


@pytest.fixture
def mock_oidc_token():
    """Generate a mock GitHub Actions OIDC JWT token."""
    return make_token()


@pytest.fixture
def identity(mock_oidc_token):
    """Fresh OIDC identity for the default audience."""
    token, _ = mock_oidc_token
    return OIDCIdentity.from_token(token, audience=AUDIENCE)


@pytest.fixture
def mock_github_env(monkeypatch):
    """Set up GitHub Actions environment variables."""
    monkeypatch.setenv(
        "ACTIONS_ID_TOKEN_REQUEST_URL", "https://token.example.com/id?api-version=2.0"
    )
    monkeypatch.setenv("ACTIONS_ID_TOKEN_REQUEST_TOKEN", "request-token-123")
    monkeypatch.setenv("GITHUB_REPOSITORY", "owner/repo")
    monkeypatch.setenv("GITHUB_REPOSITORY_OWNER", "owner")
    monkeypatch.setenv("GITHUB_REF", "refs/heads/main")
    monkeypatch.setenv("GITHUB_SHA", "abc123def456789")
    monkeypatch.setenv("GITHUB_EVENT_NAME", "push")
    monkeypatch.setenv("GITHUB_RUN_ID", "987654321")
    monkeypatch.setenv("GITHUB_SERVER_URL", "https://github.com")


@pytest.fixture
def registry_env(monkeypatch):
    """Registry identifiers as the workflow sets them."""
    monkeypatch.setenv("CLOUDSMITH_NAMESPACE", "acme")
    monkeypatch.setenv("CLOUDSMITH_REPOSITORY", "python")
    monkeypatch.setenv("CLOUDSMITH_SERVICE_SLUG", "acme-publisher")


@pytest.fixture
def publish_config():
    """Publish configuration with registry identifiers set."""
    return PublishConfig(
        {
            "registry": {
                "namespace": "acme",
                "repository": "python",
                "service_slug": "acme-publisher",
            },
        }
    )


@pytest.fixture
def run_context(tmp_path):
    """Run context for a push to main."""
    return RunContext(
        repository="owner/repo",
        repository_owner="owner",
        ref="refs/heads/main",
        sha="abc123def456789",
        event_name="push",
        workspace=str(tmp_path),
        run_id="987654321",
        namespace="acme",
        registry_repository="python",
        service_slug="acme-publisher",
    )


@pytest.fixture
def built_dist(tmp_path):
    """A dist/ directory holding one sdist and one wheel."""
    dist = tmp_path / "dist"
    dist.mkdir()
    sdist = dist / "example-1.0.0.tar.gz"
    sdist.write_bytes(b"sdist contents")
    (dist / "example-1.0.0-py3-none-any.whl").write_bytes(b"wheel contents")
    return dist


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch):
    """Isolate tests from the CI environment they may be running in."""
    for name in list(os.environ):
        if name.startswith(("GITHUB_", "ACTIONS_", "CLOUDSMITH_", "PUBLISHER_")):
            monkeypatch.delenv(name, raising=False)

    masker.clear()
    yield
    masker.clear()
