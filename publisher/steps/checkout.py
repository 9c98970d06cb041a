"""Checkout step: put the workspace at the triggering commit."""

import subprocess
from pathlib import Path
from typing import List

from ..errors import InfrastructureError
from .base import Step, RunState


class CheckoutStep(Step):
    """Make sure the workspace reflects the commit that triggered the run."""

    name = "checkout"
    exit_code = 10

    def _git(self, args: List[str], cwd: Path) -> str:
        """Run a git command in the workspace and return its stdout."""
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=str(cwd),
                capture_output=True,
                text=True,
            )
        except FileNotFoundError:
            raise InfrastructureError("git executable not found", step=self.name)

        if result.returncode != 0:
            raise InfrastructureError(
                f"git {args[0]} failed: {result.stderr.strip()}", step=self.name
            )
        return result.stdout.strip()

    def execute(self, state: RunState) -> str:
        """
        Check out the run's commit.

        If HEAD already matches nothing is fetched. Without a commit sha
        (local runs) the current HEAD is used and recorded.
        """
        workspace = Path(state.context.workspace)
        if not (workspace / ".git").exists():
            raise InfrastructureError(
                f"Workspace is not a git checkout: {workspace}", step=self.name
            )

        head = self._git(["rev-parse", "HEAD"], workspace)
        sha = state.context.sha

        if not sha:
            state.context.sha = head
            return f"using local HEAD {head[:12]}"

        if head == sha:
            return f"workspace at {sha[:12]}"

        self._git(["fetch", "--depth=1", "origin", sha], workspace)
        self._git(["checkout", "--detach", sha], workspace)

        head = self._git(["rev-parse", "HEAD"], workspace)
        if head != sha:
            raise InfrastructureError(
                f"Checkout ended at {head[:12]}, expected {sha[:12]}", step=self.name
            )
        return f"checked out {sha[:12]}"
