"""Summary: Tests for the id-keyed ticket collection.

Importance: Merge-by-id is what keeps batch updates from clobbering each other.
Alternatives: Replace the whole ticket list on every change.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from ticketdesk.errors import ValidationError
from ticketdesk.models import Ticket, TicketStatus
from ticketdesk.ticket_set import TicketSet


BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _ticket(ticket_id: str, minutes: int = 0, **fields: object) -> Ticket:
    values: dict[str, object] = {
        "thread_id": f"thread_{ticket_id}",
        "sender": f"{ticket_id}@example.com",
        "subject": f"Subject {ticket_id}",
        "body": "Body",
        "timestamp": BASE + timedelta(minutes=minutes),
    }
    values.update(fields)
    return Ticket(id=ticket_id, **values)


def test_merge_new_prepends_unseen_tickets_selected() -> None:
    """Summary: Verify sync merges only new ids and pre-selects them.

    Importance: Re-syncing must never duplicate or overwrite triaged tickets.
    Alternatives: Replace existing tickets with fetched copies.
    """

    tickets = TicketSet([_ticket("a", status=TicketStatus.RESOLVED)])
    added = tickets.merge_new([_ticket("a"), _ticket("b"), _ticket("b")])
    assert [ticket.id for ticket in added] == ["b"]
    assert [ticket.id for ticket in tickets.all()] == ["b", "a"]
    assert tickets.get("b").selected
    assert tickets.get("a").status is TicketStatus.RESOLVED


def test_apply_skips_removed_tickets() -> None:
    tickets = TicketSet([_ticket("a"), _ticket("b")])
    tickets.remove_where(lambda ticket: ticket.id == "b")
    applied = tickets.apply([replace(_ticket("a"), subject="new"), _ticket("b")])
    assert applied == ["a"]
    assert "b" not in tickets
    assert tickets.get("a").subject == "new"


def test_get_and_replace_unknown_raise_key_error() -> None:
    tickets = TicketSet()
    with pytest.raises(KeyError):
        tickets.get("missing")
    with pytest.raises(KeyError):
        tickets.replace(_ticket("missing"))


def test_thread_history_excludes_ticket_and_orders_newest_first() -> None:
    first = _ticket("a", 0, thread_id="t")
    second = _ticket("b", 5, thread_id="t")
    third = _ticket("c", 10, thread_id="t")
    tickets = TicketSet([first, second, third, _ticket("d", 20)])
    assert [ticket.id for ticket in tickets.thread_history(first)] == ["c", "b"]


def test_listing_filters_by_tab_and_query() -> None:
    """Summary: Verify tabs group processing statuses and search spans text fields.

    Importance: Backs both the inbox list and the select-all action.
    Alternatives: Filter in the client.
    """

    tickets = TicketSet(
        [
            _ticket("a", 0, subject="Refund please"),
            _ticket("b", 5, status=TicketStatus.INFO_MISSING, body="Stripe receipt"),
            _ticket("c", 10, status=TicketStatus.READY_TO_RESOLVE),
            _ticket("d", 15, status=TicketStatus.RESOLVED),
        ]
    )
    assert [ticket.id for ticket in tickets.listing("in_progress")] == ["c", "b"]
    assert [ticket.id for ticket in tickets.listing("new")] == ["a"]
    assert [ticket.id for ticket in tickets.listing(None, "STRIPE")] == ["b"]
    assert len(tickets.listing("all")) == 4
    with pytest.raises(ValidationError):
        tickets.listing("archived")


def test_toggle_and_set_selected() -> None:
    tickets = TicketSet([_ticket("a"), _ticket("b")])
    assert tickets.toggle("a").selected
    assert tickets.set_selected(["a", "b"], True) == 2
    assert [ticket.id for ticket in tickets.selected()] == ["a", "b"]
    tickets.set_selected(["a"], False)
    assert [ticket.id for ticket in tickets.selected()] == ["b"]


def test_apply_is_commutative_per_ticket() -> None:
    """Summary: Verify concurrent results land identically in either completion order.

    Importance: Bulk classification applies results as they settle.
    Alternatives: Serialize every classification call.
    """

    first = TicketSet([_ticket("a"), _ticket("b")])
    second = TicketSet([_ticket("a"), _ticket("b")])
    update_a = replace(_ticket("a"), status=TicketStatus.INFO_MISSING)
    update_b = replace(_ticket("b"), status=TicketStatus.READY_TO_RESOLVE)
    first.apply([update_a])
    first.apply([update_b])
    second.apply([update_b])
    second.apply([update_a])
    assert first.all() == second.all()
