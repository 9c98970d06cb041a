"""Run context and OIDC identity models for publish runs."""

import base64
import json
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional
import requests

from .errors import IdentityError

DEFAULT_AUDIENCE = "api://AzureADTokenExchange"

# Claims that change on every token and carry no identity information
EPHEMERAL_CLAIMS = ("iat", "nbf", "exp", "jti")


@dataclass
class RunContext:
    """Everything a single pipeline run knows about itself."""

    repository: str
    repository_owner: str
    ref: str
    sha: str
    event_name: str
    workspace: str
    server_url: str = "https://github.com"
    run_id: str = ""
    namespace: str = ""
    registry_repository: str = ""
    service_slug: str = ""

    @property
    def branch(self) -> str:
        """Branch name of the triggering ref, or empty for tags and detached refs."""
        prefix = "refs/heads/"
        if self.ref.startswith(prefix):
            return self.ref[len(prefix):]
        return ""

    @property
    def workflow_run_url(self) -> str:
        """URL of the CI run, empty when not running under CI."""
        if not self.repository or not self.run_id:
            return ""
        return f"{self.server_url}/{self.repository}/actions/runs/{self.run_id}"

    @classmethod
    def from_environment(
        cls, registry: Optional[Dict[str, Any]] = None
    ) -> "RunContext":
        """
        Build run context from GitHub Actions environment variables.

        Args:
            registry: Registry section of the publish configuration, supplying
                namespace, repository and service slug

        Returns:
            RunContext for the current run
        """
        registry = registry or {}
        repository = os.getenv("GITHUB_REPOSITORY", "")
        owner = os.getenv("GITHUB_REPOSITORY_OWNER", "")
        if not owner and "/" in repository:
            owner = repository.split("/", 1)[0]

        return cls(
            repository=repository,
            repository_owner=owner,
            ref=os.getenv("GITHUB_REF", ""),
            sha=os.getenv("GITHUB_SHA", ""),
            event_name=os.getenv("GITHUB_EVENT_NAME", ""),
            workspace=os.getenv("GITHUB_WORKSPACE", str(Path.cwd())),
            server_url=os.getenv("GITHUB_SERVER_URL", "https://github.com"),
            run_id=os.getenv("GITHUB_RUN_ID", ""),
            namespace=registry.get("namespace", "") or "",
            registry_repository=registry.get("repository", "") or "",
            service_slug=registry.get("service_slug", "") or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for the run report."""
        return {
            "repository": self.repository,
            "ref": self.ref,
            "sha": self.sha,
            "event_name": self.event_name,
            "namespace": self.namespace,
            "registry_repository": self.registry_repository,
            "service_slug": self.service_slug,
        }


def decode_claims(token: str) -> Dict[str, Any]:
    """
    Decode the payload of a JWT without verifying it.

    The registry verifies the signature during the exchange; the claims are
    only read locally for the trust pre-flight and the run report.

    Raises:
        IdentityError: If the token is not a well-formed JWT
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise IdentityError("Identity token is not a JWT", step="identity")

    claims_b64 = parts[1]
    # Add padding if needed
    claims_b64 += "=" * (-len(claims_b64) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(claims_b64))
    except (ValueError, TypeError) as e:
        raise IdentityError(f"Identity token payload is unreadable: {e}", step="identity")

    if not isinstance(claims, dict):
        raise IdentityError("Identity token payload is not an object", step="identity")
    return claims


@dataclass
class OIDCIdentity:
    """Short-lived identity token issued by the CI provider for this run."""

    token: str = field(repr=False)
    issuer: str
    subject: str
    audience: str = DEFAULT_AUDIENCE
    claims: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_token(cls, token: str, audience: str = DEFAULT_AUDIENCE) -> "OIDCIdentity":
        """Create identity from a raw JWT."""
        claims = decode_claims(token)
        return cls(
            token=token,
            issuer=claims.get("iss", ""),
            subject=claims.get("sub", ""),
            audience=audience,
            claims=claims,
        )

    @classmethod
    def from_github_actions(
        cls, audience: str = DEFAULT_AUDIENCE, timeout: float = 10
    ) -> "OIDCIdentity":
        """
        Request an identity token from the GitHub Actions token endpoint.

        Args:
            audience: Audience claim identifying the registry's exchange service
            timeout: HTTP timeout in seconds

        Returns:
            OIDCIdentity with token and decoded claims

        Raises:
            IdentityError: If not running in GitHub Actions, the job lacks the
                id-token permission, or the endpoint fails
        """
        token_url = os.getenv("ACTIONS_ID_TOKEN_REQUEST_URL")
        token_bearer = os.getenv("ACTIONS_ID_TOKEN_REQUEST_TOKEN")

        if not token_url or not token_bearer:
            raise IdentityError(
                "Not running in GitHub Actions or id-token permission not granted",
                step="identity",
            )

        try:
            response = requests.get(
                f"{token_url}&audience={audience}",
                headers={"Authorization": f"bearer {token_bearer}"},
                timeout=timeout,
            )
        except requests.RequestException as e:
            raise IdentityError(
                f"Identity endpoint unreachable: {type(e).__name__}", step="identity"
            )

        if response.status_code != 200:
            raise IdentityError(
                f"Identity endpoint returned HTTP {response.status_code}",
                step="identity",
            )

        try:
            token = response.json()["value"]
        except (ValueError, KeyError, TypeError):
            raise IdentityError(
                "Identity endpoint response has no token value", step="identity"
            )
        if not isinstance(token, str) or not token:
            raise IdentityError(
                "Identity endpoint returned an empty or non-string token", step="identity"
            )

        return cls.from_token(token, audience=audience)

    @property
    def expires_at(self) -> Optional[int]:
        """Expiry as a unix timestamp, if the token carries one."""
        exp = self.claims.get("exp")
        return int(exp) if exp is not None else None

    def is_fresh(self, now: Optional[float] = None) -> bool:
        """
        Check the token is unexpired and issued for the expected audience.

        Args:
            now: Unix time to check against (default: current time)
        """
        now = time.time() if now is None else now
        if self.expires_at is None or self.expires_at <= now:
            return False

        aud = self.claims.get("aud")
        if aud is None:
            return False
        if isinstance(aud, list):
            return self.audience in aud
        return aud == self.audience

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for the run report. Never includes the token."""
        return {
            "type": "oidc",
            "issuer": self.issuer,
            "subject": self.subject,
            "claims": {
                k: v for k, v in self.claims.items() if k not in EPHEMERAL_CLAIMS
            },
        }
