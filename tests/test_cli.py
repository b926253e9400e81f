"""Tests for the canonicalization CLI."""

import json

import pytest
from sqlalchemy.orm import Session

from mixcatalog.db import session as session_module
from mixcatalog.models import RawMix, RawMixStatus
from mixcatalog.scripts.canonicalize import build_options, build_parser, main, run_command


@pytest.fixture
def cli_db(db: Session, monkeypatch) -> Session:
    """Route the CLI's sessions to the test session."""
    monkeypatch.setattr(session_module, "SessionLocal", lambda: db)
    return db


def run(*argv: str) -> int:
    return run_command(build_parser().parse_args(list(argv)))


class TestRun:
    def test_run_processes_batch(self, cli_db: Session, make_raw_mix, capsys):
        raw_mix = make_raw_mix(tracks=[("Deadmau5 - Strobe", None, None)])
        raw_mix_id = raw_mix.id

        assert run("run", "--batch-size", "5") == 0

        out = capsys.readouterr().out
        assert "Processed 1 mix(es): 1 succeeded" in out
        status = cli_db.query(RawMix).filter(RawMix.id == raw_mix_id).one().status
        assert status == RawMixStatus.CANONICALIZED.value

    def test_fatal_error_exits_nonzero(self, cli_db: Session, monkeypatch, capsys):
        def broken(self, limit):
            raise RuntimeError("database unreachable")

        monkeypatch.setattr(
            "mixcatalog.services.job_runner.CanonicalizationJobRunner.get_pending_raw_mix_ids",
            broken,
        )

        assert run("run") == 1
        assert "database unreachable" in capsys.readouterr().err

    def test_invalid_threshold_exits_nonzero(self, cli_db: Session, capsys):
        assert run("run", "--auto-verify-threshold", "1.5") == 1
        assert "Invalid options" in capsys.readouterr().err


class TestOptions:
    def test_flags_override_settings(self):
        args = build_parser().parse_args(
            ["run", "--mode", "rolling", "--auto-verify-threshold", "0.6", "--system-user-id", "7"]
        )
        options = build_options(args)
        assert options.mode == "rolling"
        assert options.auto_verify_threshold == 0.6
        assert options.system_user_id == "7"

    def test_defaults_from_settings(self):
        options = build_options(build_parser().parse_args(["run"]))
        assert options.mode == "backfill"
        assert options.auto_verify_threshold == 0.9

    def test_unknown_mode_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["run", "--mode", "turbo"])


class TestRetryAndStats:
    def test_retry(self, cli_db: Session, make_raw_mix, capsys):
        make_raw_mix(status=RawMixStatus.FAILED.value, error_message="timeout")

        assert run("retry", "--max-age-hours", "24") == 0
        assert "1 succeeded" in capsys.readouterr().out

    def test_stats_json(self, cli_db: Session, make_raw_mix, capsys):
        make_raw_mix()
        make_raw_mix(status=RawMixStatus.CANONICALIZED.value)

        assert run("stats", "--json") == 0

        stats = json.loads(capsys.readouterr().out)
        assert stats["pending"] == 1
        assert stats["canonicalized"] == 1
        assert stats["total"] == 2
        assert stats["completion_rate"] == 50.0

    def test_main_exits_with_status(self, cli_db: Session, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["stats"])
        assert exc_info.value.code == 0
        assert "total:" in capsys.readouterr().out
