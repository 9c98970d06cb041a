"""Integration tests for the end-to-end publish flow."""

import json
import re
import pytest
import responses
from pathlib import Path
from unittest.mock import Mock

from publisher.config import PublishConfig
from publisher.identity import RunContext
from publisher.report import SUCCEEDED, RUN_FAILED
from publisher.sequencer import PublishSequencer

API_URL = "https://api.cloudsmith.io"
EXCHANGED_KEY = "ck_live_5f0e8a1b2c3d4e5f60718293a4b5c6d7"
UPLOAD_URL = "https://upload.cloudsmith.io"
TOKEN_ENDPOINT = re.compile(r"https://token\.example\.com/id.*")
EXCHANGE_URL = f"{API_URL}/openid/acme/"
WHOAMI_URL = f"{API_URL}/v1/user/self/"
FILE_URL = f"{UPLOAD_URL}/acme/python/example-1.0.0.tar.gz"
PACKAGE_URL = f"{API_URL}/v1/packages/acme/python/upload/python/"


def fake_subprocess(sha):
    """Stand in for git and the build frontend."""

    def run(cmd, **kwargs):
        if cmd[0] == "git":
            return Mock(returncode=0, stdout=f"{sha}\n", stderr="")
        if "pip" in cmd:
            return Mock(returncode=0, stdout="", stderr="")
        outdir = Path(cmd[cmd.index("--outdir") + 1])
        outdir.mkdir(parents=True, exist_ok=True)
        (outdir / "example-1.0.0.tar.gz").write_bytes(b"sdist contents")
        (outdir / "example-1.0.0-py3-none-any.whl").write_bytes(b"wheel contents")
        return Mock(returncode=0, stdout="", stderr="")

    return run


@pytest.mark.integration
class TestPublishFlow:
    """Integration tests for the full publish sequence."""

    @pytest.fixture
    def workspace(self, tmp_path, mock_github_env, registry_env, monkeypatch, mocker):
        (tmp_path / ".git").mkdir()
        monkeypatch.setenv("GITHUB_WORKSPACE", str(tmp_path))
        mocker.patch("subprocess.run", side_effect=fake_subprocess("abc123def456789"))
        return tmp_path

    def make_run(self, **registry):
        config = PublishConfig({"registry": registry}).apply_environment_overrides()
        return PublishSequencer(config), RunContext.from_environment(config.registry)

    def add_auth_responses(self, token):
        responses.add(responses.GET, TOKEN_ENDPOINT, json={"value": token})
        responses.add(responses.POST, EXCHANGE_URL, json={"token": EXCHANGED_KEY})
        responses.add(
            responses.GET, WHOAMI_URL, json={"authenticated": True, "slug": "acme-publisher"}
        )

    @responses.activate
    def test_push_to_main_publishes(self, workspace, mock_oidc_token, capsys):
        """Test a push to main builds and publishes the sdist only."""
        token, _ = mock_oidc_token
        self.add_auth_responses(token)
        responses.add(responses.PUT, FILE_URL, json={"identifier": "file-1"})
        responses.add(responses.POST, PACKAGE_URL, json={"slug_perm": "pkg-1"}, status=201)

        sequencer, context = self.make_run()
        report = sequencer.run(context)

        assert report.status == SUCCEEDED, report.failure
        assert [a.filename for a in report.artifacts] == ["example-1.0.0.tar.gz"]
        assert report.artifacts[0].package_slug == "pkg-1"

        exchange_body = json.loads(responses.calls[1].request.body)
        assert exchange_body["service_slug"] == "acme-publisher"
        assert responses.calls[3].request.headers["X-Api-Key"] == EXCHANGED_KEY

        output = capsys.readouterr().out + report.to_json()
        assert EXCHANGED_KEY not in output
        assert token not in output

    @responses.activate
    def test_republish_same_version(self, workspace, mock_oidc_token):
        """Test publishing an unchanged version twice succeeds with republish on."""
        token, _ = mock_oidc_token
        self.add_auth_responses(token)
        responses.add(responses.PUT, FILE_URL, json={"identifier": "file-1"})
        responses.add(responses.POST, PACKAGE_URL, json={"slug_perm": "pkg-1"}, status=201)

        for _ in range(2):
            sequencer, context = self.make_run()
            assert sequencer.run(context).status == SUCCEEDED

        bodies = [
            json.loads(call.request.body)
            for call in responses.calls
            if call.request.url == PACKAGE_URL
        ]
        assert [body["republish"] for body in bodies] == [True, True]

    @responses.activate
    def test_conflict_without_republish(self, workspace, mock_oidc_token):
        """Test an existing version fails the publish step when republish is off."""
        token, _ = mock_oidc_token
        self.add_auth_responses(token)
        responses.add(responses.PUT, FILE_URL, json={"identifier": "file-1"})
        responses.add(responses.POST, PACKAGE_URL, json={"detail": "already exists"}, status=409)

        sequencer, context = self.make_run(republish=False)
        report = sequencer.run(context)

        assert report.status == RUN_FAILED
        assert report.failed_step == "publish"
        assert report.exit_code == 16

    @responses.activate
    def test_exchange_refused_stops_before_upload(self, workspace, mock_oidc_token):
        """Test no upload is attempted when the exchange fails."""
        token, _ = mock_oidc_token
        responses.add(responses.GET, TOKEN_ENDPOINT, json={"value": token})
        responses.add(
            responses.POST, EXCHANGE_URL, json={"detail": "claims mismatch"}, status=401
        )

        sequencer, context = self.make_run()
        report = sequencer.run(context)

        assert report.exit_code == 14
        assert report.step("publish").status == "skipped"
        assert all(UPLOAD_URL not in call.request.url for call in responses.calls)

    @responses.activate
    def test_feature_branch_does_nothing(self, workspace, monkeypatch):
        """Test a push to a feature branch makes no calls at all."""
        monkeypatch.setenv("GITHUB_REF", "refs/heads/feature/x")

        sequencer, context = self.make_run()
        report = sequencer.run(context)

        assert report.succeeded
        assert report.exit_code == 0
        assert len(responses.calls) == 0
        assert not (workspace / "dist").exists()
