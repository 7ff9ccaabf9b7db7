"""Tests for the command-line front-end."""

import os
from unittest.mock import AsyncMock, patch

import pytest

# Set test environment variables before imports that might trigger Settings
os.environ.setdefault("GITHUB_TOKEN", "test")
os.environ.setdefault("SAVE_FOLDER_PATH", "/tmp/shared-save-lock-tests")

from src.coordination import (
    AcquireResult,
    AcquireStatus,
    LockStatus,
    RejectReason,
    ReleaseResult,
    ReleaseStatus,
    SyncFailedError,
    SyncFailure,
    SyncResult,
    SyncStatus,
)
from src.orchestrator import main as cli_main
from src.orchestrator.main import (
    EXIT_FAILED,
    EXIT_OK,
    EXIT_REFUSED,
    build_parser,
    report_acquire,
    report_release,
    report_status,
    report_sync,
)


class TestParser:
    """Command and alias parsing."""

    @pytest.mark.parametrize(
        "argv, action",
        [
            (["start"], "acquire"),
            (["acquire"], "acquire"),
            (["end"], "release"),
            (["release"], "release"),
            (["status"], "status"),
            (["recover"], "recover"),
        ],
    )
    def test_aliases(self, argv, action):
        assert build_parser().parse_args(argv).action == action

    def test_setup_replace(self):
        args = build_parser().parse_args(["setup", "--replace"])

        assert args.action == "setup"
        assert args.replace

    def test_collaborators_remove(self):
        args = build_parser().parse_args(["collaborators", "remove", "2"])

        assert args.collaborators_command == "remove"
        assert args.login_or_number == "2"


class TestReports:
    """Outcomes map to messages and exit codes."""

    def test_acquired(self, capsys):
        assert report_acquire(AcquireResult(status=AcquireStatus.ACQUIRED, holder="alice")) == EXIT_OK
        assert "Run started." in capsys.readouterr().out

    def test_already_held_names_holder(self, capsys):
        result = AcquireResult(status=AcquireStatus.ALREADY_HELD, holder="alice")

        assert report_acquire(result) == EXIT_REFUSED
        assert "alice is currently running" in capsys.readouterr().out

    def test_lost_race(self, capsys):
        result = AcquireResult(status=AcquireStatus.REJECTED, reason=RejectReason.LOST_RACE)

        assert report_acquire(result) == EXIT_REFUSED
        assert "already been started by another user" in capsys.readouterr().out

    def test_transient_acquire_failure(self, capsys):
        result = AcquireResult(
            status=AcquireStatus.REJECTED,
            reason=RejectReason.TRANSIENT,
            error="could not resolve host",
        )

        assert report_acquire(result) == EXIT_FAILED
        assert "could not resolve host" in capsys.readouterr().out

    def test_release_outcomes(self, capsys):
        assert report_release(ReleaseResult(status=ReleaseStatus.RELEASED)) == EXIT_OK
        assert report_release(ReleaseResult(status=ReleaseStatus.NOT_HOLDER)) == EXIT_REFUSED
        assert report_release(ReleaseResult(status=ReleaseStatus.NOTHING_TO_COMMIT)) == EXIT_REFUSED
        failed = ReleaseResult(
            status=ReleaseStatus.REJECTED, reason=RejectReason.TRANSIENT, error="offline"
        )
        assert report_release(failed) == EXIT_FAILED
        assert "kept locally" in capsys.readouterr().out

    def test_status(self, capsys):
        report_status(LockStatus())
        report_status(LockStatus(holder="alice"))

        out = capsys.readouterr().out
        assert "Unlocked" in out
        assert "Held by alice" in out

    def test_sync_failure(self, capsys):
        result = SyncResult(
            status=SyncStatus.FAILED, reason=SyncFailure.NETWORK, error="offline"
        )

        assert report_sync(result) == EXIT_FAILED
        assert "offline" in capsys.readouterr().out


class TestMain:
    """Configuration and failure handling around a command."""

    @pytest.fixture(autouse=True)
    def quiet_logging(self, monkeypatch):
        monkeypatch.setattr(cli_main, "configure_logging", lambda level: None)

    def test_missing_configuration(self, monkeypatch, tmp_path, capsys):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        monkeypatch.delenv("SAVE_FOLDER_PATH", raising=False)

        assert cli_main.main(["status"]) == EXIT_FAILED
        assert "Configuration error" in capsys.readouterr().out

    def test_sync_failure_exits_failed(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SAVE_FOLDER_PATH", str(tmp_path))
        failure = SyncFailedError(
            SyncResult(status=SyncStatus.FAILED, reason=SyncFailure.AUTH, error="denied")
        )

        with patch.object(cli_main, "run_command", new=AsyncMock(side_effect=failure)):
            assert cli_main.main(["start"]) == EXIT_FAILED

    def test_command_exit_code_is_returned(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SAVE_FOLDER_PATH", str(tmp_path))

        with patch.object(cli_main, "run_command", new=AsyncMock(return_value=EXIT_REFUSED)) as run:
            assert cli_main.main(["end"]) == EXIT_REFUSED

        args, _ = run.call_args
        assert args[0].action == "release"
