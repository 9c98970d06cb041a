"""Publish sequencer: runs the publish steps in order, fail-fast."""

import time
from typing import List, Optional

from .config import PublishConfig
from .credentials import redact
from .errors import PublishError
from .identity import RunContext
from .report import RunReport, DRY_RUN
from .steps import Step, StepResult, RunState, PASSED, FAILED, SKIPPED, default_steps


class PublishSequencer:
    """Coordinates the ordered publish steps for one run."""

    def __init__(self, config: PublishConfig, steps: Optional[List[Step]] = None):
        """
        Initialize sequencer.

        Args:
            config: Publish configuration
            steps: Steps to run in order (default: the standard sequence)
        """
        self.config = config
        self.steps = steps if steps is not None else default_steps()

    def should_run(self, context: RunContext) -> bool:
        """Check whether the run's trigger qualifies for publishing."""
        return self.config.get_trigger_policy().matches(context)

    def run(
        self,
        context: RunContext,
        dry_run: bool = False,
        ignore_trigger: bool = False,
    ) -> RunReport:
        """
        Execute the publish sequence.

        Any failing step aborts the run; later steps are recorded as
        skipped. Nothing is retried.

        Args:
            context: Run context
            dry_run: Stop before contacting the identity endpoint or registry
            ignore_trigger: Run even if the trigger policy does not match

        Returns:
            RunReport describing every step
        """
        report = RunReport(context)

        if not ignore_trigger:
            reason = self.config.get_trigger_policy().explain(context)
            if reason:
                print(f"⏭️  Not publishing: {reason}")
                report.record_skip(reason)
                for step in self.steps:
                    report.add(StepResult(step.name, SKIPPED, "trigger not matched"))
                return report

        state = RunState(context=context, config=self.config, dry_run=dry_run)
        aborted = False

        for step in self.steps:
            if aborted:
                report.add(StepResult(step.name, SKIPPED, "previous step failed"))
                continue
            if dry_run and step.requires_network:
                report.add(StepResult(step.name, SKIPPED, "dry run"))
                continue
            if not step.enabled(state):
                report.add(StepResult(step.name, SKIPPED, "disabled"))
                continue

            print(f"▶ {step.name}")
            started = time.monotonic()
            try:
                message = step.execute(state)
            except Exception as e:
                if isinstance(e, PublishError):
                    category, message = e.category, redact(str(e))
                else:
                    category = "internal"
                    message = redact(f"{type(e).__name__}: {e}")
                report.add(StepResult(step.name, FAILED, message, time.monotonic() - started))
                report.record_failure(step.name, category, message, step.exit_code)
                print(f"❌ {step.name} failed: {message}")
                aborted = True
                continue

            report.add(StepResult(step.name, PASSED, message, time.monotonic() - started))
            print(f"✅ {step.name}: {message}")

        report.artifacts = state.artifacts
        report.identity = state.identity
        if dry_run and not aborted:
            report.status = DRY_RUN
        return report
