"""Identity, exchange and verification steps."""

from typing import Callable, Optional

from ..credentials import CredentialExchanger, masker
from ..errors import ExchangeError
from ..identity import OIDCIdentity
from .base import Step, RunState

IdentityProvider = Callable[[str, float], OIDCIdentity]


def github_actions_provider(audience: str, timeout: float) -> OIDCIdentity:
    return OIDCIdentity.from_github_actions(audience=audience, timeout=timeout)


class IdentityStep(Step):
    """Request a signed identity token for the registry's audience."""

    name = "identity"
    exit_code = 13
    requires_network = True

    def __init__(self, provider: Optional[IdentityProvider] = None):
        """
        Initialize identity step.

        Args:
            provider: Callable(audience, timeout) returning an OIDCIdentity;
                defaults to the GitHub Actions token endpoint
        """
        self.provider = provider or github_actions_provider

    def execute(self, state: RunState) -> str:
        audience = state.config.oidc["audience"]
        identity = self.provider(audience, state.config.registry["timeout"])
        masker.add(identity.token)
        state.identity = identity
        return f"identity {identity.subject} (audience {audience})"


class ExchangeStep(Step):
    """Trade the identity token for a registry credential."""

    name = "exchange"
    exit_code = 14
    requires_network = True

    def execute(self, state: RunState) -> str:
        if state.identity is None:
            raise ExchangeError("No identity token for this run", step=self.name)

        trust = state.config.get_trust_policy().evaluate(state.identity.claims)
        if not trust.trusted:
            raise ExchangeError(
                "Identity token does not satisfy the trust policy: "
                + "; ".join(trust.violations),
                step=self.name,
            )

        registry = state.config.registry
        exchanger = CredentialExchanger(
            api_url=registry["api_url"], timeout=registry["timeout"]
        )
        state.credential = exchanger.exchange(
            state.identity,
            namespace=state.context.namespace,
            service_slug=state.context.service_slug,
        )
        return f"credential issued for service {state.context.service_slug}"


class VerifyStep(Step):
    """Ask the registry who the exchanged credential belongs to."""

    name = "verify"
    exit_code = 15
    requires_network = True

    def enabled(self, state: RunState) -> bool:
        return state.config.registry["verify_identity"]

    def execute(self, state: RunState) -> str:
        if state.credential is None:
            raise ExchangeError("No registry credential for this run", step=self.name)

        registry = state.config.registry
        exchanger = CredentialExchanger(
            api_url=registry["api_url"], timeout=registry["timeout"]
        )
        state.registry_identity = exchanger.whoami(state.credential)
        who = state.registry_identity.get("slug") or state.registry_identity.get("name", "")
        return f"authenticated as {who}"
