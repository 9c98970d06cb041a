"""Run report for publish runs."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List, Optional, TYPE_CHECKING

from .credentials import redact
from .steps.base import StepResult, FAILED

if TYPE_CHECKING:
    from .identity import OIDCIdentity, RunContext
    from .registry import BuildArtifact

SUCCEEDED = "succeeded"
RUN_FAILED = "failed"
RUN_SKIPPED = "skipped"
DRY_RUN = "dry-run"


class RunReport:
    """Per-step record of a publish run. Never holds tokens or credentials."""

    def __init__(self, context: "RunContext"):
        """
        Initialize run report.

        Args:
            context: Context of the run being reported
        """
        self.context = context
        self.timestamp = datetime.now(timezone.utc)
        self.steps: List[StepResult] = []
        self.artifacts: List["BuildArtifact"] = []
        self.identity: Optional["OIDCIdentity"] = None
        self.status = SUCCEEDED
        self.exit_code = 0
        self.reason = ""
        self.failure: Optional[Dict[str, str]] = None

    def add(self, result: StepResult) -> None:
        """Append a step result."""
        self.steps.append(result)

    def record_failure(self, step_name: str, category: str, message: str, exit_code: int) -> None:
        """Mark the run failed at step_name. Only the first failure counts."""
        if self.failure is not None:
            return
        self.status = RUN_FAILED
        self.exit_code = exit_code
        self.failure = {"step": step_name, "category": category, "message": redact(message)}

    def record_skip(self, reason: str) -> None:
        """Mark the whole run as not applicable."""
        self.status = RUN_SKIPPED
        self.reason = reason

    @property
    def failed_step(self) -> Optional[str]:
        return self.failure["step"] if self.failure else None

    @property
    def succeeded(self) -> bool:
        return self.status != RUN_FAILED

    def step(self, name: str) -> Optional[StepResult]:
        """Find a step result by name."""
        for result in self.steps:
            if result.name == name:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert run report to dictionary."""
        report = {
            "report_version": "1.0",
            "timestamp": self.timestamp.isoformat(),
            "status": self.status,
            "exit_code": self.exit_code,
            "run": self.context.to_dict(),
            "workflow_run": self.context.workflow_run_url,
            "steps": [result.to_dict() for result in self.steps],
            "artifacts": [artifact.to_dict() for artifact in self.artifacts],
        }

        if self.identity is not None:
            report["identity"] = self.identity.to_dict()
        if self.reason:
            report["reason"] = self.reason
        if self.failure:
            report["failure"] = self.failure

        return report

    def to_json(self, indent: int = 2) -> str:
        """
        Convert run report to JSON string.

        Args:
            indent: JSON indentation level

        Returns:
            JSON string with registered secrets redacted
        """
        return json.dumps(_redact_values(self.to_dict()), indent=indent)

    def save(self, output_path: str) -> str:
        """
        Save run report to file.

        Args:
            output_path: Destination path

        Returns:
            Path to saved file
        """
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            f.write(self.to_json())
        return str(path)

    def summary_lines(self) -> List[str]:
        """Human-readable per-step lines for the run log."""
        marks = {"passed": "✅", "failed": "❌", "skipped": "⏭️ "}
        lines = []
        for result in self.steps:
            line = f"{marks.get(result.status, '-')} {result.name}"
            if result.message:
                line += f": {result.message}"
            lines.append(line)
        return lines


def _redact_values(value: Any) -> Any:
    """Redact registered secrets from every string in a report structure."""
    if isinstance(value, str):
        return redact(value)
    if isinstance(value, dict):
        return {redact(str(k)): _redact_values(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_redact_values(v) for v in value]
    return value


def load_report(report_path: str) -> Dict[str, Any]:
    """
    Load a saved run report.

    Args:
        report_path: Path to report JSON

    Returns:
        Report dictionary
    """
    with open(report_path, "r") as f:
        return json.load(f)


def failed_steps(report: Dict[str, Any]) -> List[str]:
    """Names of failed steps in a loaded report."""
    return [s["name"] for s in report.get("steps", []) if s.get("status") == FAILED]
