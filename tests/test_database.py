"""Summary: Tests for the backend database ticket source.

Importance: Database rows must enter the same ticket flow as inbox mail.
Alternatives: Keep database tickets in a separate workspace.
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from pathlib import Path

from ticketdesk.database import DATABASE_SOURCE, MockDatabaseSource, database_ticket_to_ticket
from ticketdesk.models import DatabaseTicket, TicketStatus


FIXTURE = Path(__file__).resolve().parents[1] / "data" / "mock_database_tickets.json"


def _row(status: str = "pending") -> DatabaseTicket:
    created = datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)
    return DatabaseTicket(
        id="db_1",
        user_id="772102",
        email="payer@gmail.com",
        subject="No Pro status",
        payment_method="Stripe",
        proof_of_payment=["https://example.com/a.png", "https://example.com/b.png"],
        status=status,
        created_date=created,
        updated_date=created,
        agent_notes="Backend investigation: fixed.",
    )


def test_database_ticket_to_ticket_maps_fields() -> None:
    """Summary: Verify a database row becomes a workspace ticket.

    Importance: Proofs become image attachments so completeness checks see them.
    Alternatives: Keep proof URLs in the body text.
    """

    ticket = database_ticket_to_ticket(_row())
    assert ticket.source == DATABASE_SOURCE
    assert ticket.thread_id == "db_1"
    assert ticket.body == "[DB TICKET] UID: 772102 Method: Stripe"
    assert [item.id for item in ticket.attachments] == ["db_1_proof_0", "db_1_proof_1"]
    assert all(item.is_image for item in ticket.attachments)
    assert ticket.agent_notes == "Backend investigation: fixed."
    assert ticket.status is TicketStatus.NEW
    assert not ticket.is_read


def test_database_status_mapping() -> None:
    assert database_ticket_to_ticket(_row("processing")).status is TicketStatus.IN_PROGRESS
    assert database_ticket_to_ticket(_row("closed")).status is TicketStatus.RESOLVED
    assert database_ticket_to_ticket(_row("unknown")).status is TicketStatus.NEW


def test_mock_database_source_restamps_rows() -> None:
    rows = asyncio.run(MockDatabaseSource(FIXTURE).fetch_by_date(date(2025, 2, 3)))
    assert [row.id for row in rows] == ["db_99812", "db_99813"]
    assert all(row.created_date.date() == date(2025, 2, 3) for row in rows)
    assert rows[0].created_date.hour == 10
