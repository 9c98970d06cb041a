"""Build step: produce distributions with the build frontend."""

import fnmatch
import shutil
import subprocess
import sys
from pathlib import Path
from typing import List

from ..errors import BuildError
from ..registry import BuildArtifact
from .base import Step, RunState


def collect_artifacts(directory: Path, pattern: str) -> List[BuildArtifact]:
    """
    Collect files in directory whose names match pattern.

    Args:
        directory: Build output directory
        pattern: Filename glob (e.g. "*.tar.gz")

    Returns:
        Artifacts sorted by filename
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []

    try:
        return [
            BuildArtifact.from_path(path)
            for path in sorted(directory.iterdir())
            if path.is_file() and fnmatch.fnmatch(path.name, pattern)
        ]
    except OSError as e:
        raise BuildError(f"Could not read artifacts in {directory}: {e}", step="build")


class BuildStep(Step):
    """Run ``python -m build`` and collect the resulting artifacts."""

    name = "build"
    exit_code = 12

    def build_command(self, project_dir: Path, output_dir: Path, distributions: List[str]) -> List[str]:
        cmd = [sys.executable, "-m", "build", "--outdir", str(output_dir)]
        for dist in distributions:
            cmd.append(f"--{dist}")
        cmd.append(str(project_dir))
        return cmd

    def execute(self, state: RunState) -> str:
        build = state.config.build
        project_dir = (Path(state.context.workspace) / build["project_dir"]).resolve()
        output_dir = (project_dir / build["output_dir"]).resolve()
        pattern = build["artifact_pattern"]

        if not project_dir.is_dir():
            raise BuildError(f"Project directory not found: {project_dir}", step=self.name)

        if project_dir not in output_dir.parents:
            raise BuildError(
                f"Output directory {output_dir} is not inside {project_dir}; refusing to clean it",
                step=self.name,
            )

        # Stale files from an earlier build must never be uploaded
        if output_dir.exists():
            try:
                shutil.rmtree(output_dir)
            except OSError as e:
                raise BuildError(
                    f"Could not clean output directory {output_dir}: {e}", step=self.name
                )

        cmd = self.build_command(project_dir, output_dir, build["distributions"])
        print(f"Running: {' '.join(cmd)}")
        result = subprocess.run(cmd, capture_output=True, text=True, cwd=str(project_dir))

        if result.returncode != 0:
            output = result.stderr.strip() or result.stdout.strip()
            raise BuildError(
                f"Build failed with exit code {result.returncode}:\n{output}",
                step=self.name,
            )

        artifacts = collect_artifacts(output_dir, pattern)
        if not artifacts:
            raise BuildError(
                f"Build produced no artifacts matching {pattern} in {output_dir}",
                step=self.name,
            )

        state.artifacts = artifacts
        for artifact in artifacts:
            print(f"  Built {artifact.filename} ({artifact.size} bytes)")
        return f"{len(artifacts)} artifact(s) matching {pattern}"


class CollectStep(Step):
    """Pick up artifacts that were built earlier, without building."""

    name = "collect"
    exit_code = 12

    def execute(self, state: RunState) -> str:
        build = state.config.build
        output_dir = Path(state.context.workspace) / build["project_dir"] / build["output_dir"]
        pattern = build["artifact_pattern"]

        artifacts = collect_artifacts(output_dir, pattern)
        if not artifacts:
            raise BuildError(
                f"No artifacts matching {pattern} in {output_dir}", step=self.name
            )
        state.artifacts = artifacts
        return f"{len(artifacts)} artifact(s) matching {pattern}"
