"""OIDC credential exchange with the package registry."""

import os
import time
from typing import Dict, Any, Optional, Set
import requests

from .errors import AuthenticationError, ExchangeError
from .identity import OIDCIdentity

MASK = "***"


class SecretMasker:
    """Tracks secret values and keeps them out of printed output."""

    def __init__(self):
        self._secrets: Set[str] = set()

    def add(self, secret: str) -> None:
        """
        Register a secret value.

        Under GitHub Actions this also emits an ``add-mask`` workflow command
        so the runner scrubs the value from the job log.
        """
        if not secret or secret in self._secrets:
            return
        self._secrets.add(secret)
        if os.getenv("GITHUB_ACTIONS") == "true":
            print(f"::add-mask::{secret}")

    def redact(self, text: str) -> str:
        """Replace every registered secret in text."""
        # Longest first so a secret containing another is fully replaced
        for secret in sorted(self._secrets, key=len, reverse=True):
            text = text.replace(secret, MASK)
        return text

    def clear(self) -> None:
        """Forget all registered secrets."""
        self._secrets.clear()

    def __contains__(self, secret: str) -> bool:
        return secret in self._secrets

    def __len__(self) -> int:
        return len(self._secrets)


masker = SecretMasker()


def redact(text: str) -> str:
    """Redact all registered secrets from text."""
    return masker.redact(text)


class ExchangeCredential:
    """Registry API key obtained through OIDC exchange, held in memory only."""

    def __init__(self, token: str, service_slug: str, namespace: str):
        self._token = token
        self.service_slug = service_slug
        self.namespace = namespace
        self.obtained_at = time.time()
        masker.add(token)

    @property
    def api_key(self) -> str:
        return self._token

    def headers(self) -> Dict[str, str]:
        """Authentication headers for registry API calls."""
        return {"X-Api-Key": self._token}

    def __repr__(self) -> str:
        return (
            f"ExchangeCredential(service_slug={self.service_slug!r}, "
            f"namespace={self.namespace!r}, token={MASK!r})"
        )

    __str__ = __repr__


def error_detail(response: requests.Response) -> str:
    """Pull a human-readable error message out of a registry response."""
    try:
        body = response.json()
    except ValueError:
        return redact(response.text.strip()[:200])

    if isinstance(body, dict):
        detail = body.get("detail") or body.get("error") or body.get("message")
        if detail:
            return redact(str(detail))
        fields = body.get("fields")
        if fields:
            return redact(str(fields))
    return redact(str(body)[:200])


class CredentialExchanger:
    """Trades a CI identity token for a registry credential."""

    def __init__(
        self,
        api_url: str = "https://api.cloudsmith.io",
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize exchanger.

        Args:
            api_url: Registry API base URL
            timeout: HTTP timeout in seconds
            session: Optional requests session (no retry adapter is mounted)
        """
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def exchange(
        self, identity: OIDCIdentity, namespace: str, service_slug: str
    ) -> ExchangeCredential:
        """
        Present the identity token to the registry's OIDC endpoint.

        Args:
            identity: Freshly issued identity token for this run
            namespace: Registry organization slug
            service_slug: Service account to act as

        Returns:
            ExchangeCredential scoped to the service account

        Raises:
            ExchangeError: If the token is stale or the registry rejects it
        """
        if not identity.is_fresh():
            raise ExchangeError(
                "Identity token is expired or not issued for this audience",
                step="exchange",
            )
        if not namespace or not service_slug:
            raise ExchangeError(
                "Registry namespace and service slug are required", step="exchange"
            )

        masker.add(identity.token)
        url = f"{self.api_url}/openid/{namespace}/"

        try:
            response = self.session.post(
                url,
                json={"oidc_token": identity.token, "service_slug": service_slug},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ExchangeError(
                f"Exchange endpoint unreachable: {type(e).__name__}", step="exchange"
            )

        if response.status_code not in (200, 201):
            raise ExchangeError(
                f"Registry rejected OIDC exchange for service '{service_slug}' "
                f"(HTTP {response.status_code}): {error_detail(response)}",
                step="exchange",
            )

        try:
            token = response.json()["token"]
        except (ValueError, KeyError, TypeError):
            raise ExchangeError(
                "Exchange response has no token field", step="exchange"
            )
        if not isinstance(token, str) or not token:
            raise ExchangeError("Exchange returned an empty token", step="exchange")

        return ExchangeCredential(token, service_slug=service_slug, namespace=namespace)

    def whoami(self, credential: ExchangeCredential) -> Dict[str, Any]:
        """
        Ask the registry who the credential authenticates as.

        Returns:
            Identity document from the registry

        Raises:
            AuthenticationError: If the credential is not accepted
        """
        try:
            response = self.session.get(
                f"{self.api_url}/v1/user/self/",
                headers=credential.headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise AuthenticationError(
                f"Registry unreachable: {type(e).__name__}", step="verify"
            )

        if response.status_code != 200:
            raise AuthenticationError(
                f"Registry did not accept credential (HTTP {response.status_code}): "
                f"{error_detail(response)}",
                step="verify",
            )

        try:
            data = response.json()
        except ValueError:
            raise AuthenticationError("Registry identity response is not JSON", step="verify")

        if not isinstance(data, dict) or not data.get("authenticated"):
            raise AuthenticationError(
                "Registry reports the credential as unauthenticated", step="verify"
            )
        return data
