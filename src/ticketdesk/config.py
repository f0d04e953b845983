"""Summary: Application configuration for TicketDesk.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from dataclasses import dataclass


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for collaborators and storage.

    Importance: Ensures all services derive settings from a single source of truth.
    Alternatives: Store settings in a shared config file and parse at startup.
    """

    db_path: str
    oracle_provider: str
    active_model: str
    gemini_api_key: str | None
    gemini_base_url: str
    openai_api_key: str | None
    openai_model: str
    ollama_url: str
    ollama_model: str
    mail_provider: str
    gmail_access_token: str | None
    gmail_base_url: str
    mail_fixture_path: str
    database_fixture_path: str
    fetch_limit: int
    api_host: str
    api_port: int
    api_key: str

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        return AppConfig(
            db_path=os.getenv("TICKETDESK_DB_PATH", defaults["db_path"]),
            oracle_provider=os.getenv("TICKETDESK_ORACLE_PROVIDER", defaults["oracle_provider"]),
            active_model=os.getenv("TICKETDESK_ACTIVE_MODEL", defaults["active_model"]),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or defaults["gemini_api_key"] or None,
            gemini_base_url=os.getenv("GEMINI_BASE_URL", defaults["gemini_base_url"]),
            openai_api_key=os.getenv("OPENAI_API_KEY") or defaults["openai_api_key"] or None,
            openai_model=os.getenv("OPENAI_MODEL", defaults["openai_model"]),
            ollama_url=os.getenv("OLLAMA_URL", defaults["ollama_url"]),
            ollama_model=os.getenv("OLLAMA_MODEL", defaults["ollama_model"]),
            mail_provider=os.getenv("TICKETDESK_MAIL_PROVIDER", defaults["mail_provider"]),
            gmail_access_token=os.getenv("GMAIL_ACCESS_TOKEN")
            or defaults["gmail_access_token"]
            or None,
            gmail_base_url=os.getenv("GMAIL_BASE_URL", defaults["gmail_base_url"]),
            mail_fixture_path=os.getenv(
                "TICKETDESK_MAIL_FIXTURE", defaults["mail_fixture_path"]
            ),
            database_fixture_path=os.getenv(
                "TICKETDESK_DATABASE_FIXTURE", defaults["database_fixture_path"]
            ),
            fetch_limit=int(os.getenv("TICKETDESK_FETCH_LIMIT", defaults["fetch_limit"])),
            api_host=os.getenv("TICKETDESK_API_HOST", defaults["api_host"]),
            api_port=int(os.getenv("TICKETDESK_API_PORT", defaults["api_port"])),
            api_key=os.getenv("TICKETDESK_API_KEY", defaults["api_key"]),
        )


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps secrets out of code while supporting local workflows.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())
