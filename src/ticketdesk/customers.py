"""Summary: Customer roster derived from the ticket set.

Importance: Groups tickets by sender so operators see each customer's history at once.
Alternatives: Maintain a customer table updated on ingestion.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from ticketdesk.errors import ValidationError
from ticketdesk.models import (
    UNLINKED_USER_ID,
    Customer,
    ThreadSummary,
    Ticket,
    TicketStatus,
    is_present,
)


FREQUENT_THRESHOLD = 3

CUSTOMER_TABS: dict[str, tuple[str, ...]] = {
    "ALL": (),
    "VIP_READY": ("VERIFIED",),
    "SUBSCRIPTION": ("SUBSCRIPTION",),
    "ACCOUNT": ("ACCOUNT",),
    "NSFW_ISSUE": ("NSFW",),
    "DELETION": ("DELETION",),
}


@dataclass
class _CustomerDraft:
    email: str
    name: str = ""
    user_id: str = UNLINKED_USER_ID
    latest_category: str = "OTHER"
    threads: list[ThreadSummary] = field(default_factory=list)
    resolved_count: int = 0
    last_active: datetime | None = None


def build_customers(tickets: list[Ticket]) -> list[Customer]:
    """Summary: Aggregate tickets into one record per lowercased sender.

    Importance: Processing is chronological so the result does not depend on storage order.
    Alternatives: Keep the first ticket seen per sender.
    """

    ordered = sorted(tickets, key=lambda ticket: (ticket.timestamp, ticket.id))
    drafts: dict[str, _CustomerDraft] = {}
    for ticket in ordered:
        key = ticket.customer_key
        draft = drafts.setdefault(key, _CustomerDraft(email=key))
        draft.name = ticket.sender_name or ticket.sender
        draft.last_active = ticket.timestamp
        draft.latest_category = ticket.category.value if ticket.category else "OTHER"
        if ticket.classification is not None:
            user_id = ticket.classification.metadata.user_id
            if draft.user_id == UNLINKED_USER_ID and is_present(user_id):
                draft.user_id = user_id
        if ticket.status is TicketStatus.RESOLVED:
            draft.resolved_count += 1
        draft.threads.append(
            ThreadSummary(
                id=ticket.id,
                source=ticket.source,
                subject=ticket.subject,
                status=ticket.status,
                timestamp=ticket.timestamp,
                category=ticket.category,
            )
        )
    return [_finalize(draft) for draft in drafts.values()]


def derive_tags(user_id: str, latest_category: str, total_tickets: int) -> list[str]:
    """Summary: Compute roster tags for a customer."""

    tags: list[str] = []
    linked = user_id != UNLINKED_USER_ID
    if linked:
        tags.append("VERIFIED_UID")
    if any(word in latest_category for word in ("SUBSCRIPTION", "BILLING", "POWER")):
        tags.append("PAID")
    if linked and "VERIFIED" in latest_category:
        tags.append("VIP_READY")
    if total_tickets > FREQUENT_THRESHOLD:
        tags.append("FREQUENT")
    return tags


def filter_customers(customers: list[Customer], search: str = "", tab: str = "ALL") -> list[Customer]:
    """Summary: Filter and sort the roster for display.

    Importance: VIP-ready customers come first, then the most recently active.
    Alternatives: Sort alphabetically by email.
    """

    if tab not in CUSTOMER_TABS:
        raise ValidationError(f"Unknown customer tab {tab}")
    needle = search.strip().lower()
    words = CUSTOMER_TABS[tab]
    matches = [
        customer
        for customer in customers
        if (
            not needle
            or needle in customer.email
            or needle in customer.name.lower()
            or needle in customer.user_id.lower()
        )
        and all(word in customer.latest_category for word in words)
    ]
    by_recent = sorted(matches, key=lambda customer: customer.last_active, reverse=True)
    return sorted(by_recent, key=lambda customer: "VIP_READY" not in customer.tags)


def _finalize(draft: _CustomerDraft) -> Customer:
    total = len(draft.threads)
    return Customer(
        email=draft.email,
        name=draft.name,
        user_id=draft.user_id,
        latest_category=draft.latest_category,
        tags=derive_tags(draft.user_id, draft.latest_category, total),
        threads=list(draft.threads),
        total_tickets=total,
        resolved_count=draft.resolved_count,
        last_active=draft.last_active,
    )
