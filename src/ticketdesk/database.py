"""Summary: Backend ticket database source.

Importance: Feeds database tickets into the same triage flow as inbox mail.
Alternatives: Keep a separate workflow for backend tickets.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path

from ticketdesk.models import Attachment, DatabaseTicket, Ticket, TicketStatus, parse_timestamp


DATABASE_SOURCE = "database"

_STATUS_MAP = {
    "pending": TicketStatus.NEW,
    "processing": TicketStatus.IN_PROGRESS,
    "resolved": TicketStatus.RESOLVED,
    "closed": TicketStatus.RESOLVED,
}


class DatabaseTicketSource(ABC):
    """Summary: Abstract interface for the backend ticket database."""

    @abstractmethod
    async def fetch_by_date(self, day: date) -> list[DatabaseTicket]:
        """Summary: Fetch tickets created on the given day."""


class MockDatabaseSource(DatabaseTicketSource):
    """Summary: Serves database tickets from a JSON fixture.

    Importance: Rows are re-stamped onto the requested day so demos always return data.
    Alternatives: Ship dated fixtures per day.
    """

    def __init__(self, fixture_path: Path) -> None:
        self._fixture_path = fixture_path

    async def fetch_by_date(self, day: date) -> list[DatabaseTicket]:
        data = json.loads(self._fixture_path.read_text(encoding="utf-8"))
        return [_restamp(_row_from_fixture(item), day) for item in data]


def database_ticket_to_ticket(row: DatabaseTicket) -> Ticket:
    """Summary: Convert a database row into a workspace ticket.

    Importance: Lets the triage engine, dispatcher, and stats treat both sources alike.
    Alternatives: Give the triage engine a second input type.
    """

    body = f"[DB TICKET] UID: {row.user_id} Method: {row.payment_method}"
    attachments = [
        Attachment(id=f"{row.id}_proof_{index}", filename=url, mime_type="image/png")
        for index, url in enumerate(row.proof_of_payment)
    ]
    status = _STATUS_MAP.get(row.status.lower(), TicketStatus.NEW)
    return Ticket(
        id=row.id,
        thread_id=row.id,
        sender=row.email,
        subject=row.subject,
        body=body,
        timestamp=row.created_date,
        status=status,
        attachments=attachments,
        agent_notes=row.agent_notes,
        is_read=status is not TicketStatus.NEW,
        source=DATABASE_SOURCE,
    )


def _row_from_fixture(item: dict) -> DatabaseTicket:
    return DatabaseTicket(
        id=item["id"],
        user_id=item["user_id"],
        email=item["email"],
        subject=item["subject"],
        payment_method=item["payment_method"],
        proof_of_payment=list(item.get("proof_of_payment", [])),
        status=item.get("status", "pending"),
        created_date=parse_timestamp(item["created_date"]),
        updated_date=parse_timestamp(item["updated_date"]),
        agent_notes=item.get("agent_notes", ""),
    )


def _restamp(row: DatabaseTicket, day: date) -> DatabaseTicket:
    def on_day(value: datetime) -> datetime:
        return value.replace(year=day.year, month=day.month, day=day.day)

    return replace(
        row, created_date=on_day(row.created_date), updated_date=on_day(row.updated_date)
    )
