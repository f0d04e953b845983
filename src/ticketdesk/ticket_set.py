"""Summary: In-memory ticket collection with merge-by-id semantics.

Importance: Every mutation replaces tickets by id so concurrent batches cannot lose updates.
Alternatives: Replace the whole list on each update.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable

from ticketdesk.errors import ValidationError
from ticketdesk.models import PROCESSING_STATUSES, Ticket, TicketStatus


logger = logging.getLogger(__name__)

LISTING_TABS: dict[str, frozenset[TicketStatus]] = {
    "new": frozenset({TicketStatus.NEW}),
    "in_progress": PROCESSING_STATUSES,
    "resolved": frozenset({TicketStatus.RESOLVED}),
}


class TicketSet:
    """Summary: Ordered, id-keyed collection of tickets.

    Importance: Single source of truth that derived views are recomputed from.
    Alternatives: Persist every change straight to the database.
    """

    def __init__(self, tickets: Iterable[Ticket] | None = None) -> None:
        self._tickets: dict[str, Ticket] = {}
        for ticket in tickets or []:
            self._tickets[ticket.id] = ticket

    def __len__(self) -> int:
        return len(self._tickets)

    def __contains__(self, ticket_id: object) -> bool:
        return ticket_id in self._tickets

    def all(self) -> list[Ticket]:
        return list(self._tickets.values())

    def get(self, ticket_id: str) -> Ticket:
        try:
            return self._tickets[ticket_id]
        except KeyError:
            raise KeyError(f"Ticket {ticket_id} not found") from None

    def replace(self, ticket: Ticket) -> None:
        """Summary: Replace the stored ticket that shares the given ticket's id."""

        if ticket.id not in self._tickets:
            raise KeyError(f"Ticket {ticket.id} not found")
        self._tickets[ticket.id] = ticket

    def apply(self, tickets: Iterable[Ticket]) -> list[str]:
        """Summary: Merge a batch of updated tickets in one step.

        Importance: Tickets removed while a batch was in flight are skipped, not resurrected.
        Alternatives: Fail the whole batch on the first unknown id.
        """

        applied: list[str] = []
        for ticket in tickets:
            if ticket.id not in self._tickets:
                logger.warning("Dropping update for removed ticket %s.", ticket.id)
                continue
            self._tickets[ticket.id] = ticket
            applied.append(ticket.id)
        return applied

    def merge_new(self, incoming: Iterable[Ticket]) -> list[Ticket]:
        """Summary: Prepend tickets whose ids are not yet known.

        Importance: Sync never duplicates tickets and newly arrived work is pre-selected.
        Alternatives: Overwrite existing tickets with the fetched copies.
        """

        fresh: dict[str, Ticket] = {}
        for ticket in incoming:
            if ticket.id in self._tickets or ticket.id in fresh:
                continue
            fresh[ticket.id] = replace(ticket, selected=True)
        if fresh:
            self._tickets = {**fresh, **self._tickets}
        return list(fresh.values())

    def remove_where(self, predicate) -> list[str]:
        removed = [ticket_id for ticket_id, ticket in self._tickets.items() if predicate(ticket)]
        for ticket_id in removed:
            del self._tickets[ticket_id]
        return removed

    def thread_history(self, ticket: Ticket) -> list[Ticket]:
        """Summary: Other tickets in the same thread, newest first."""

        history = [
            item
            for item in self._tickets.values()
            if item.thread_id == ticket.thread_id and item.id != ticket.id
        ]
        return sorted(history, key=lambda item: item.timestamp, reverse=True)

    def selected(self) -> list[Ticket]:
        return [ticket for ticket in self._tickets.values() if ticket.selected]

    def toggle(self, ticket_id: str) -> Ticket:
        ticket = self.get(ticket_id)
        updated = replace(ticket, selected=not ticket.selected)
        self._tickets[ticket_id] = updated
        return updated

    def set_selected(self, ticket_ids: Iterable[str], selected: bool) -> int:
        count = 0
        for ticket_id in ticket_ids:
            ticket = self.get(ticket_id)
            self._tickets[ticket_id] = replace(ticket, selected=selected)
            count += 1
        return count

    def listing(self, tab: str | None = None, query: str = "") -> list[Ticket]:
        """Summary: Filter tickets by status tab and free-text query, newest first.

        Importance: Backs the inbox list and the select-all action.
        Alternatives: Filter in the presentation layer.
        """

        statuses = None
        if tab and tab != "all":
            if tab not in LISTING_TABS:
                raise ValidationError(f"Unknown listing tab {tab}")
            statuses = LISTING_TABS[tab]
        needle = query.strip().lower()
        matches = [
            ticket
            for ticket in self._tickets.values()
            if (statuses is None or ticket.status in statuses) and _matches(ticket, needle)
        ]
        return sorted(matches, key=lambda item: item.timestamp, reverse=True)


def _matches(ticket: Ticket, needle: str) -> bool:
    if not needle:
        return True
    haystack = f"{ticket.subject}\n{ticket.sender}\n{ticket.sender_name}\n{ticket.body}".lower()
    return needle in haystack
