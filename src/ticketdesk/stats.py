"""Summary: Dashboard statistics projected from the ticket set.

Importance: Gives operators workload and extraction-quality counters.
Alternatives: Maintain counters incrementally on every mutation.
"""

from __future__ import annotations

from ticketdesk.database import DATABASE_SOURCE
from ticketdesk.models import PROCESSING_STATUSES, DashboardStats, Ticket, TicketStatus


def project_stats(tickets: list[Ticket]) -> DashboardStats:
    """Summary: Count tickets by status and by extracted metadata.

    Importance: A ticket counts as perfect once it is ready to resolve or resolved.
    Alternatives: Count only ready-to-resolve tickets as perfect.
    """

    uid_count = method_count = proof_count = 0
    for ticket in tickets:
        if ticket.classification is None:
            continue
        metadata = ticket.classification.metadata
        uid_count += metadata.has_user_id
        method_count += metadata.has_payment_method
        proof_count += metadata.has_payment_proof
    database_count = sum(1 for ticket in tickets if ticket.source == DATABASE_SOURCE)
    return DashboardStats(
        total=len(tickets),
        mail_count=len(tickets) - database_count,
        database_count=database_count,
        new=sum(1 for ticket in tickets if ticket.status is TicketStatus.NEW),
        in_progress=sum(1 for ticket in tickets if ticket.status in PROCESSING_STATUSES),
        resolved=sum(1 for ticket in tickets if ticket.status is TicketStatus.RESOLVED),
        uid_count=uid_count,
        payment_method_count=method_count,
        proof_count=proof_count,
        perfect_count=sum(
            1
            for ticket in tickets
            if ticket.status in (TicketStatus.READY_TO_RESOLVE, TicketStatus.RESOLVED)
        ),
    )
