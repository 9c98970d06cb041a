"""Trigger gating and identity-claim trust checks."""

import fnmatch
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .identity import RunContext


@dataclass
class TriggerPolicy:
    """Decides whether a run qualifies for publishing."""

    events: List[str] = field(default_factory=lambda: ["push"])
    branches: List[str] = field(default_factory=lambda: ["main"])  # glob patterns

    def matches(self, context: "RunContext") -> bool:
        """
        Check the run's event and branch against the policy.

        Args:
            context: Run context

        Returns:
            True if the publish sequence should execute
        """
        return self.explain(context) is None

    def explain(self, context: "RunContext") -> Optional[str]:
        """
        Describe why a run does not qualify.

        Returns:
            Reason string, or None if the run qualifies
        """
        if context.event_name not in self.events:
            return (
                f"event '{context.event_name or 'unknown'}' is not one of "
                f"{', '.join(self.events)}"
            )

        branch = context.branch
        if not branch:
            return f"ref '{context.ref or 'unknown'}' is not a branch"

        if not any(fnmatch.fnmatchcase(branch, pattern) for pattern in self.branches):
            return f"branch '{branch}' is not one of {', '.join(self.branches)}"

        return None


@dataclass
class TrustResult:
    """Result of checking identity claims against a trust policy."""

    trusted: bool
    checked_claims: List[str]  # claim names that were evaluated
    violations: List[str]  # human-readable mismatches


class TrustPolicy:
    """
    Local mirror of the claim rules configured on the registry's OIDC provider.

    The registry remains the authority; this check fails closed before the
    token ever leaves the runner.
    """

    def __init__(self, expected_claims: Optional[Dict[str, Any]] = None):
        """
        Initialize trust policy.

        Args:
            expected_claims: Claim name to glob pattern (or list of patterns)
        """
        self.expected_claims = expected_claims or {}

    def _patterns(self, claim: str) -> List[str]:
        value = self.expected_claims[claim]
        if isinstance(value, (list, tuple)):
            return [str(v) for v in value]
        return [str(value)]

    def evaluate(self, claims: Dict[str, Any]) -> TrustResult:
        """
        Evaluate decoded token claims.

        Args:
            claims: Decoded identity token claims

        Returns:
            TrustResult listing every violated claim
        """
        violations = []
        for claim in sorted(self.expected_claims):
            patterns = self._patterns(claim)
            if claim not in claims:
                violations.append(f"claim '{claim}' is missing")
                continue

            actual = str(claims[claim])
            if not any(fnmatch.fnmatchcase(actual, p) for p in patterns):
                violations.append(
                    f"claim '{claim}' is '{actual}', expected {' or '.join(patterns)}"
                )

        return TrustResult(
            trusted=not violations,
            checked_claims=sorted(self.expected_claims),
            violations=violations,
        )
