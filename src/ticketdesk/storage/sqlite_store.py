"""Summary: SQLite storage implementation for TicketDesk.

Importance: Persists the ticket set, templates, and settings between sessions.
Alternatives: Use an ORM or an external database immediately.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from ticketdesk.models import (
    Template,
    Ticket,
    template_from_dict,
    template_to_dict,
    ticket_from_dict,
    ticket_to_dict,
)


@dataclass(frozen=True)
class Snapshot:
    """Summary: Everything a desk session needs to resume.

    Importance: Stored and restored as one unit so views never see a half-written state.
    Alternatives: Persist each collection on its own schedule.
    """

    tickets: list[Ticket] = field(default_factory=list)
    templates: list[Template] | None = None
    settings: dict[str, str] = field(default_factory=dict)


class SqliteStore:
    """Summary: SQLite-backed snapshot storage for TicketDesk.

    Importance: Enables local-first persistence with minimal dependencies.
    Alternatives: Use Postgres and SQLAlchemy from day one.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Summary: Create tables if they do not exist.

        Importance: Ensures the database is ready before the first snapshot.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS tickets (
                    id TEXT PRIMARY KEY,
                    position INTEGER NOT NULL,
                    source TEXT NOT NULL,
                    payload TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS templates (
                    id TEXT PRIMARY KEY,
                    position INTEGER NOT NULL,
                    payload TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            connection.commit()

    def load_snapshot(self) -> Snapshot:
        """Summary: Read the stored snapshot.

        Importance: Templates stay None when never saved so callers can seed defaults.
        Alternatives: Seed default templates inside the storage layer.
        """

        with self._connection() as connection:
            ticket_rows = connection.execute(
                "SELECT payload FROM tickets ORDER BY position"
            ).fetchall()
            template_rows = connection.execute(
                "SELECT payload FROM templates ORDER BY position"
            ).fetchall()
            setting_rows = connection.execute("SELECT key, value FROM settings").fetchall()
        templates = [template_from_dict(json.loads(row[0])) for row in template_rows]
        return Snapshot(
            tickets=[ticket_from_dict(json.loads(row[0])) for row in ticket_rows],
            templates=templates or None,
            settings={key: value for key, value in setting_rows},
        )

    def save_snapshot(self, snapshot: Snapshot) -> None:
        """Summary: Replace the stored snapshot in a single transaction."""

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute("DELETE FROM tickets")
            cursor.executemany(
                "INSERT INTO tickets (id, position, source, payload) VALUES (?, ?, ?, ?)",
                [
                    (ticket.id, position, ticket.source, json.dumps(ticket_to_dict(ticket)))
                    for position, ticket in enumerate(snapshot.tickets)
                ],
            )
            if snapshot.templates is not None:
                cursor.execute("DELETE FROM templates")
                cursor.executemany(
                    "INSERT INTO templates (id, position, payload) VALUES (?, ?, ?)",
                    [
                        (template.id, position, json.dumps(template_to_dict(template)))
                        for position, template in enumerate(snapshot.templates)
                    ],
                )
            cursor.executemany(
                "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
                list(snapshot.settings.items()),
            )
            connection.commit()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Summary: Context manager for SQLite connections.

        Importance: Ensures connections are closed cleanly after use.
        Alternatives: Keep a single long-lived connection.
        """

        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
        finally:
            connection.close()
