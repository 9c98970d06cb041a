"""Toolchain step: interpreter version and build frontend."""

import importlib.util
import platform
import subprocess
import sys

from ..errors import InfrastructureError
from .base import Step, RunState


def version_matches(current: str, required: str) -> bool:
    """
    Check an interpreter version against a required prefix.

    "3.11" matches 3.11.x, "3" matches any 3.x, and "x" is a wildcard
    component ("3.x").
    """
    current_parts = current.split(".")
    required_parts = [p for p in required.strip().split(".") if p]
    if not required_parts or len(required_parts) > len(current_parts):
        return False
    for have, want in zip(current_parts, required_parts):
        if want in ("x", "*"):
            continue
        if have != want:
            return False
    return True


class ToolchainStep(Step):
    """Verify the Python runtime and provision the build frontend."""

    name = "toolchain"
    exit_code = 11

    def execute(self, state: RunState) -> str:
        toolchain = state.config.toolchain
        current = platform.python_version()

        required = toolchain["python_version"]
        if required and not version_matches(current, required):
            raise InfrastructureError(
                f"Python {required} required, running {current}", step=self.name
            )

        if importlib.util.find_spec("build") is not None:
            return f"python {current}, build available"

        if not toolchain["install_build"]:
            raise InfrastructureError(
                "The 'build' package is not installed and install_build is disabled",
                step=self.name,
            )

        print("Installing build frontend...")
        result = subprocess.run(
            [sys.executable, "-m", "pip", "install", "--quiet", "build"],
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            raise InfrastructureError(
                f"pip install build failed: {result.stderr.strip()}", step=self.name
            )
        return f"python {current}, build installed"
