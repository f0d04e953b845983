"""Summary: Tests for configuration loading.

Importance: Ensures defaults, .env, and environment overrides behave correctly.
Alternatives: Validate configuration manually during runtime.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from ticketdesk.config import AppConfig, load_defaults, load_dotenv


DEFAULTS = {
    "db_path": "test.db",
    "oracle_provider": "mock",
    "active_model": "gemini-3-flash-preview",
    "gemini_api_key": "",
    "gemini_base_url": "https://generativelanguage.googleapis.com/v1beta",
    "openai_api_key": "",
    "openai_model": "gpt-4o-mini",
    "ollama_url": "http://localhost:11434",
    "ollama_model": "llama3",
    "mail_provider": "mock",
    "gmail_access_token": "",
    "gmail_base_url": "https://gmail.googleapis.com/gmail/v1",
    "mail_fixture_path": "data/mock_messages.json",
    "database_fixture_path": "data/mock_database_tickets.json",
    "fetch_limit": "20",
    "api_host": "127.0.0.1",
    "api_port": "8000",
    "api_key": "",
}


def _write_defaults(root: Path) -> None:
    (root / "config").mkdir()
    (root / "config" / "defaults.json").write_text(json.dumps(DEFAULTS), encoding="utf-8")


def test_load_defaults_reads_json(tmp_path: Path) -> None:
    """Summary: Verify defaults are parsed from JSON.

    Importance: Confirms config file is the source of truth for variables.
    Alternatives: Hardcode defaults in the test.
    """

    defaults_path = tmp_path / "defaults.json"
    defaults_path.write_text("{\"db_path\": \"test.db\"}", encoding="utf-8")
    defaults = load_defaults(defaults_path)
    assert defaults["db_path"] == "test.db"


def test_load_defaults_requires_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_defaults(tmp_path / "missing.json")


def test_load_dotenv_sets_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Ensure .env values populate environment variables.

    Importance: Validates local secret loading without external tools.
    Alternatives: Assume OS environment is always set.
    """

    env_path = tmp_path / ".env"
    env_path.write_text("# comment\nTICKETDESK_ORACLE_PROVIDER=ollama\n", encoding="utf-8")
    monkeypatch.delenv("TICKETDESK_ORACLE_PROVIDER", raising=False)
    load_dotenv(env_path)
    assert os.getenv("TICKETDESK_ORACLE_PROVIDER") == "ollama"


def test_load_dotenv_keeps_existing_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_path = tmp_path / ".env"
    env_path.write_text("TICKETDESK_ORACLE_PROVIDER=ollama\n", encoding="utf-8")
    monkeypatch.setenv("TICKETDESK_ORACLE_PROVIDER", "gemini")
    load_dotenv(env_path)
    assert os.getenv("TICKETDESK_ORACLE_PROVIDER") == "gemini"


def test_app_config_uses_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Summary: Verify AppConfig honors defaults when env is absent.

    Importance: Confirms config file remains the baseline for variables.
    Alternatives: Inline defaults directly in the AppConfig class.
    """

    _write_defaults(tmp_path)
    monkeypatch.chdir(tmp_path)
    for name in ("TICKETDESK_DB_PATH", "TICKETDESK_ORACLE_PROVIDER", "GEMINI_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("TICKETDESK_FETCH_LIMIT", raising=False)
    config = AppConfig.from_env()
    assert config.db_path == "test.db"
    assert config.oracle_provider == "mock"
    assert config.gemini_api_key is None
    assert config.fetch_limit == 20
    assert config.api_port == 8000


def test_app_config_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_defaults(tmp_path)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TICKETDESK_ACTIVE_MODEL", "gemini-3-pro-preview")
    monkeypatch.setenv("TICKETDESK_FETCH_LIMIT", "5")
    monkeypatch.setenv("GEMINI_API_KEY", "key-123")
    config = AppConfig.from_env()
    assert config.active_model == "gemini-3-pro-preview"
    assert config.fetch_limit == 5
    assert config.gemini_api_key == "key-123"
