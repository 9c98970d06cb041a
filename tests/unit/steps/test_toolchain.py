"""Unit tests for the toolchain step."""

import pytest
from unittest.mock import Mock

from publisher.config import PublishConfig
from publisher.errors import InfrastructureError
from publisher.steps.base import RunState
from publisher.steps.toolchain import ToolchainStep, version_matches


@pytest.mark.parametrize(
    "current,required,expected",
    [
        ("3.11.4", "3.11", True),
        ("3.11.4", "3", True),
        ("3.11.4", "3.x", True),
        ("3.11.4", "3.11.4", True),
        ("3.10.2", "3.11", False),
        ("3.1.0", "3.11", False),
        ("3.11.4", "3.11.4.1", False),
        ("3.11.4", "", False),
    ],
)
def test_version_matches(current, required, expected):
    assert version_matches(current, required) is expected


def make_state(run_context, **toolchain):
    config = PublishConfig({"toolchain": toolchain})
    return RunState(context=run_context, config=config)


class TestToolchainStep:
    """Tests for ToolchainStep class."""

    def test_build_available(self, mocker, run_context):
        """Test nothing is installed when build is importable."""
        mocker.patch("publisher.steps.toolchain.importlib.util.find_spec", return_value=Mock())
        run = mocker.patch("publisher.steps.toolchain.subprocess.run")

        message = ToolchainStep().execute(make_state(run_context))

        assert "build available" in message
        run.assert_not_called()

    def test_wrong_python_version(self, mocker, run_context):
        """Test an unavailable interpreter version fails."""
        mocker.patch("publisher.steps.toolchain.platform.python_version", return_value="3.9.18")

        with pytest.raises(InfrastructureError, match="Python 3.11 required, running 3.9.18"):
            ToolchainStep().execute(make_state(run_context, python_version="3.11"))

    def test_installs_build(self, mocker, run_context):
        """Test the build frontend is installed when missing."""
        mocker.patch("publisher.steps.toolchain.importlib.util.find_spec", return_value=None)
        result = Mock(returncode=0, stdout="", stderr="")
        run = mocker.patch("publisher.steps.toolchain.subprocess.run", return_value=result)

        message = ToolchainStep().execute(make_state(run_context))

        assert "build installed" in message
        cmd = run.call_args[0][0]
        assert cmd[1:] == ["-m", "pip", "install", "--quiet", "build"]

    def test_install_failure(self, mocker, run_context):
        """Test a failed install aborts."""
        mocker.patch("publisher.steps.toolchain.importlib.util.find_spec", return_value=None)
        result = Mock(returncode=1, stdout="", stderr="No matching distribution")
        mocker.patch("publisher.steps.toolchain.subprocess.run", return_value=result)

        with pytest.raises(InfrastructureError, match="No matching distribution"):
            ToolchainStep().execute(make_state(run_context))

    def test_install_disabled(self, mocker, run_context):
        """Test a missing frontend fails when installs are disabled."""
        mocker.patch("publisher.steps.toolchain.importlib.util.find_spec", return_value=None)

        with pytest.raises(InfrastructureError, match="install_build is disabled"):
            ToolchainStep().execute(make_state(run_context, install_build=False))
