"""Summary: Tests for SQLite snapshot storage.

Importance: Ensures a desk session survives a restart unchanged.
Alternatives: Rely on manual testing for storage operations.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from ticketdesk.models import (
    Attachment,
    ClassificationResult,
    SupportCategory,
    Template,
    Ticket,
    TicketMetadata,
    TicketStatus,
)
from ticketdesk.storage.sqlite_store import Snapshot, SqliteStore


def _store(tmp_path: Path) -> SqliteStore:
    store = SqliteStore(str(tmp_path / "test.db"))
    store.initialize()
    return store


def test_empty_store_has_no_templates(tmp_path: Path) -> None:
    snapshot = _store(tmp_path).load_snapshot()
    assert snapshot.tickets == []
    assert snapshot.templates is None
    assert snapshot.settings == {}


def test_store_round_trips_snapshot_in_order(tmp_path: Path) -> None:
    """Summary: Verify tickets, templates, and settings are restored as saved.

    Importance: Ticket order drives the inbox listing after a restart.
    Alternatives: Re-sync everything from the mailbox on startup.
    """

    classified = Ticket(
        id="b",
        thread_id="t",
        sender="sara@example.com",
        subject="I paid",
        body="Stripe",
        timestamp=datetime(2024, 1, 2, tzinfo=timezone.utc),
        status=TicketStatus.INFO_MISSING,
        attachments=[Attachment(id="a1", filename="r.png", mime_type="image/png", size=3)],
        classification=ClassificationResult(
            category=SupportCategory.SUBSCRIPTION_MISSING_INFO,
            confidence=0.4,
            should_auto_send=False,
            reply_email="Please send your UID.",
            metadata=TicketMetadata(
                has_payment_proof=True,
                is_info_complete=False,
                missing_fields=["user_id"],
                user_id="MISSING",
                payment_method="Stripe",
            ),
            selected_template_id="T1",
            summary="Waiting on UID",
        ),
        draft_reply="Edited reply",
        selected=True,
    )
    plain = Ticket(
        id="a",
        thread_id="a",
        sender="john@example.com",
        subject="Delete my data",
        body="Please",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    template = Template(id="T9", name="Custom", body="Hello", category=SupportCategory.OTHER)
    store = _store(tmp_path)
    store.save_snapshot(
        Snapshot(tickets=[classified, plain], templates=[template], settings={"active_model": "m"})
    )

    restored = store.load_snapshot()
    assert restored.tickets == [classified, plain]
    assert restored.templates == [template]
    assert restored.settings == {"active_model": "m"}


def test_save_snapshot_replaces_previous_contents(tmp_path: Path) -> None:
    store = _store(tmp_path)
    ticket = Ticket(
        id="a",
        thread_id="a",
        sender="a@example.com",
        subject="s",
        body="b",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    store.save_snapshot(Snapshot(tickets=[ticket], templates=[]))
    store.save_snapshot(Snapshot(tickets=[], templates=[]))
    snapshot = store.load_snapshot()
    assert snapshot.tickets == []
    assert snapshot.templates is None
