"""Summary: Tests for the command-line entry point.

Importance: Confirms the local workflow runs end to end from defaults.
Alternatives: Exercise only the HTTP API.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from ticketdesk.cli import build_parser, run_cli
from ticketdesk.errors import ValidationError


ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture()
def desk_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(ROOT)
    db_path = tmp_path / "cli.db"
    monkeypatch.setenv("TICKETDESK_DB_PATH", str(db_path))
    monkeypatch.setenv("TICKETDESK_ORACLE_PROVIDER", "mock")
    monkeypatch.setenv("TICKETDESK_MAIL_PROVIDER", "mock")
    return db_path


def test_parser_rejects_unknown_tab() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["list", "--tab", "archived"])


def test_cli_sync_classify_and_stats(desk_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Summary: Verify sync, bulk classify, and stats share one stored desk.

    Importance: Each CLI call restores the snapshot the previous call saved.
    Alternatives: Keep CLI state in memory only.
    """

    run_cli(["sync"])
    assert "Added 3 tickets." in capsys.readouterr().out

    run_cli(["classify"])
    assert "Classified 3 tickets, 0 failed." in capsys.readouterr().out

    run_cli(["list", "--tab", "in_progress"])
    listing = capsys.readouterr().out
    assert "init_2 [info_missing]" in listing
    assert "init_3 [in_progress]" in listing

    run_cli(["stats"])
    stats = capsys.readouterr().out
    assert "total: 3" in stats
    assert "new: 0" in stats


def test_cli_rejects_unknown_model(desk_env: Path) -> None:
    with pytest.raises(ValidationError):
        run_cli(["set-model", "gpt-2"])
