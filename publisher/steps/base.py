"""Base publish step interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..config import PublishConfig
    from ..credentials import ExchangeCredential
    from ..identity import OIDCIdentity, RunContext
    from ..registry import BuildArtifact

PASSED = "passed"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class StepResult:
    """Outcome of one step in a publish run."""

    name: str
    status: str  # passed, failed, skipped
    message: str = ""
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "message": self.message,
            "duration": round(self.duration, 3),
        }


@dataclass
class RunState:
    """State shared by the steps of one run. Discarded when the run ends."""

    context: "RunContext"
    config: "PublishConfig"
    dry_run: bool = False
    identity: Optional["OIDCIdentity"] = None
    credential: Optional["ExchangeCredential"] = None
    artifacts: List["BuildArtifact"] = field(default_factory=list)
    registry_identity: Dict[str, Any] = field(default_factory=dict)


class Step(ABC):
    """Abstract base class for publish steps."""

    name = "step"
    exit_code = 1
    # Steps that talk to the identity endpoint or the registry
    requires_network = False

    def enabled(self, state: RunState) -> bool:
        """
        Check whether the step runs for this configuration.

        Returns:
            True unless the configuration turns the step off
        """
        return True

    @abstractmethod
    def execute(self, state: RunState) -> str:
        """
        Run the step.

        Args:
            state: Run-scoped state, updated in place

        Returns:
            One-line summary for the run log

        Raises:
            PublishError: If the step fails; the run is aborted
        """
        pass
