"""Unit tests for the checkout step."""

import pytest
from unittest.mock import Mock

from publisher.errors import InfrastructureError
from publisher.steps.base import RunState
from publisher.steps.checkout import CheckoutStep


def git_result(stdout="", returncode=0, stderr=""):
    result = Mock()
    result.returncode = returncode
    result.stdout = stdout
    result.stderr = stderr
    return result


@pytest.fixture
def state(run_context, publish_config, tmp_path):
    (tmp_path / ".git").mkdir()
    return RunState(context=run_context, config=publish_config)


class TestCheckoutStep:
    """Tests for CheckoutStep class."""

    def test_head_already_at_sha(self, mocker, state):
        """Test nothing is fetched when HEAD matches."""
        run = mocker.patch(
            "publisher.steps.checkout.subprocess.run",
            return_value=git_result("abc123def456789\n"),
        )

        message = CheckoutStep().execute(state)

        assert message == "workspace at abc123def456"
        assert run.call_count == 1
        assert run.call_args[0][0] == ["git", "rev-parse", "HEAD"]

    def test_fetches_and_checks_out_sha(self, mocker, state):
        """Test a different HEAD is moved to the run's commit."""
        run = mocker.patch(
            "publisher.steps.checkout.subprocess.run",
            side_effect=[
                git_result("0000000000000000\n"),
                git_result(),
                git_result(),
                git_result("abc123def456789\n"),
            ],
        )

        message = CheckoutStep().execute(state)

        assert message == "checked out abc123def456"
        commands = [call[0][0] for call in run.call_args_list]
        assert commands[1] == ["git", "fetch", "--depth=1", "origin", "abc123def456789"]
        assert commands[2] == ["git", "checkout", "--detach", "abc123def456789"]

    def test_local_run_records_head(self, mocker, state):
        """Test runs without a sha use and record the local HEAD."""
        state.context.sha = ""
        mocker.patch(
            "publisher.steps.checkout.subprocess.run",
            return_value=git_result("feedface12345678\n"),
        )

        CheckoutStep().execute(state)

        assert state.context.sha == "feedface12345678"

    def test_not_a_git_checkout(self, run_context, publish_config):
        """Test a workspace without .git fails."""
        state = RunState(context=run_context, config=publish_config)

        with pytest.raises(InfrastructureError, match="not a git checkout"):
            CheckoutStep().execute(state)

    def test_fetch_failure(self, mocker, state):
        """Test git errors abort with git's message."""
        mocker.patch(
            "publisher.steps.checkout.subprocess.run",
            side_effect=[
                git_result("0000000000000000\n"),
                git_result(returncode=128, stderr="fatal: could not read from remote"),
            ],
        )

        with pytest.raises(InfrastructureError) as exc_info:
            CheckoutStep().execute(state)

        assert "could not read from remote" in str(exc_info.value)
        assert exc_info.value.step == "checkout"

    def test_git_missing(self, mocker, state):
        """Test a missing git executable is reported."""
        mocker.patch(
            "publisher.steps.checkout.subprocess.run", side_effect=FileNotFoundError
        )

        with pytest.raises(InfrastructureError, match="git executable not found"):
            CheckoutStep().execute(state)
