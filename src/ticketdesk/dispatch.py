"""Summary: Bulk classify and bulk send orchestration.

Importance: Isolates per-item failures so one bad ticket never sinks a batch.
Alternatives: Loop over tickets in the HTTP handler and stop at the first error.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable

from ticketdesk.errors import AuthExpired, BatchFailure, OracleFailure, SendFailed, ValidationError
from ticketdesk.gateway import MailGateway
from ticketdesk.models import Template, Ticket, TicketStatus
from ticketdesk.ticket_set import TicketSet
from ticketdesk.triage import TriageEngine


logger = logging.getLogger(__name__)

MIN_REPLY_LENGTH = 10
STALE_REASON = "Ticket changed while classification was in flight"

ProgressCallback = Callable[[int], None]


@dataclass(frozen=True)
class BulkClassifyResult:
    """Summary: Outcome of a concurrent classification batch."""

    updated: list[Ticket]
    failures: dict[str, str] = field(default_factory=dict)
    skipped_resolved: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class BulkSendResult:
    """Summary: Outcome of a sequential send batch.

    Importance: Partial failure is reported, never raised.
    Alternatives: Raise on the first failed send.
    """

    success_count: int
    failed_count: int
    sent_ids: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    needs_review: list[str] = field(default_factory=list)
    auth_expired: bool = False

    @property
    def all_failed(self) -> bool:
        return self.success_count == 0 and self.failed_count > 0


def is_ready_to_send(ticket: Ticket) -> bool:
    return (
        ticket.status is not TicketStatus.RESOLVED
        and len(ticket.reply_draft.strip()) > MIN_REPLY_LENGTH
    )


def partition_for_send(tickets: list[Ticket]) -> tuple[list[Ticket], list[Ticket]]:
    """Summary: Split tickets into ready-to-send and needs-review groups."""

    ready = [ticket for ticket in tickets if is_ready_to_send(ticket)]
    review = [ticket for ticket in tickets if not is_ready_to_send(ticket)]
    return ready, review


def progress_percent(completed: int, total: int) -> int:
    return math.floor(completed / total * 100 + 0.5)


class BulkDispatcher:
    """Summary: Runs batch classification and batch sending over the ticket set.

    Importance: Owns concurrency for classify and strict ordering for send.
    Alternatives: Use a task queue such as Celery.
    """

    def __init__(self, engine: TriageEngine, gateway: MailGateway, tickets: TicketSet) -> None:
        self._engine = engine
        self._gateway = gateway
        self._tickets = tickets

    async def bulk_classify(
        self,
        selected: list[Ticket],
        templates: list[Template],
        model_id: str | None = None,
    ) -> BulkClassifyResult:
        """Summary: Classify all eligible tickets concurrently and merge the results once.

        Importance: Results are merged by id after every call settles, so no update is lost.
        A ticket that was sent or edited while its call was in flight keeps its stored state
        and is reported as a failure. Every selected ticket is unselected when the batch ends.
        Alternatives: Classify sequentially and write after each call.
        """

        eligible = [ticket for ticket in selected if ticket.status is not TicketStatus.RESOLVED]
        skipped = [ticket.id for ticket in selected if ticket.status is TicketStatus.RESOLVED]
        if not eligible:
            raise ValidationError("No eligible tickets selected for classification")
        outcomes = await asyncio.gather(
            *(
                self._engine.classify(
                    ticket,
                    self._tickets.thread_history(ticket),
                    templates=templates,
                    model_id=model_id,
                )
                for ticket in eligible
            ),
            return_exceptions=True,
        )
        updated: list[Ticket] = []
        failures: dict[str, str] = {}
        for ticket, outcome in zip(eligible, outcomes):
            if isinstance(outcome, OracleFailure):
                failures[ticket.id] = outcome.reason
            elif isinstance(outcome, BaseException):
                raise outcome
            elif not self.is_unchanged(ticket):
                failures[ticket.id] = STALE_REASON
                logger.warning(
                    "Dropped classification for ticket %s: %s", ticket.id, STALE_REASON
                )
            else:
                updated.append(outcome)
        if not updated:
            self._clear_selection(ticket.id for ticket in selected)
            raise BatchFailure("Every ticket in the batch failed to classify", failures)
        applied = set(self._tickets.apply(updated))
        updated = [ticket for ticket in updated if ticket.id in applied]
        self._clear_selection(ticket.id for ticket in selected)
        logger.info(
            "Bulk classify finished: %s updated, %s failed.", len(updated), len(failures)
        )
        return BulkClassifyResult(updated=updated, failures=failures, skipped_resolved=skipped)

    async def bulk_send(
        self,
        selected: list[Ticket],
        on_progress: ProgressCallback | None = None,
    ) -> BulkSendResult:
        """Summary: Send ready replies one at a time in selection order.

        Importance: Sequential sends make the reported progress deterministic. Each ticket is
        re-read before its send, so the reply that goes out is the current draft.
        Alternatives: Send concurrently and report progress out of order.
        """

        ready, review = partition_for_send([self._current(ticket) for ticket in selected])
        if not ready:
            raise ValidationError("No tickets are ready to send")
        success = 0
        sent_ids: list[str] = []
        failures: dict[str, str] = {}
        needs_review = [ticket.id for ticket in review]
        auth_expired = False
        for index, queued in enumerate(ready):
            ticket = self._current(queued)
            if not is_ready_to_send(ticket):
                needs_review.append(ticket.id)
            else:
                try:
                    await self._gateway.send_reply(
                        ticket.sender,
                        ticket.subject,
                        ticket.thread_id,
                        ticket.message_id,
                        ticket.reply_draft,
                    )
                except (SendFailed, AuthExpired) as exc:
                    failures[ticket.id] = exc.reason
                    auth_expired = auth_expired or isinstance(exc, AuthExpired)
                    logger.warning("Send failed for ticket %s: %s", ticket.id, exc.reason)
                else:
                    self._mark_sent(ticket, ticket.reply_draft)
                    sent_ids.append(ticket.id)
                    success += 1
            if on_progress is not None:
                on_progress(progress_percent(index + 1, len(ready)))
        self._clear_selection(ticket.id for ticket in selected)
        logger.info("Bulk send finished: %s sent, %s failed.", success, len(failures))
        return BulkSendResult(
            success_count=success,
            failed_count=len(failures),
            sent_ids=sent_ids,
            failures=failures,
            needs_review=needs_review,
            auth_expired=auth_expired,
        )

    async def send_one(self, ticket: Ticket, body: str | None = None) -> Ticket:
        """Summary: Send a single reply and resolve the ticket.

        Importance: Errors propagate so the operator sees the exact failure.
        Alternatives: Reuse the bulk path with a one-item batch.
        """

        ticket = self._current(ticket)
        text = ticket.reply_draft if body is None else body
        if not text.strip():
            raise ValidationError("Reply body is empty")
        await self._gateway.send_reply(
            ticket.sender, ticket.subject, ticket.thread_id, ticket.message_id, text
        )
        return self._mark_sent(ticket, text)

    def is_unchanged(self, snapshot: Ticket) -> bool:
        """Summary: Check that the stored ticket still matches a snapshot, ignoring selection."""

        if snapshot.id not in self._tickets:
            return True
        stored = self._tickets.get(snapshot.id)
        return replace(stored, selected=snapshot.selected) == snapshot

    def _current(self, ticket: Ticket) -> Ticket:
        return self._tickets.get(ticket.id) if ticket.id in self._tickets else ticket

    def _clear_selection(self, ticket_ids: Iterable[str]) -> None:
        present = [ticket_id for ticket_id in ticket_ids if ticket_id in self._tickets]
        self._tickets.set_selected(present, False)

    def _mark_sent(self, ticket: Ticket, body: str) -> Ticket:
        updated = replace(
            self._current(ticket),
            status=TicketStatus.RESOLVED,
            is_read=True,
            selected=False,
            sent_reply=body,
        )
        self._tickets.apply([updated])
        return updated
