"""Summary: Triage engine that classifies tickets and derives their status.

Importance: Combines oracle output, operator overrides, and thread context into one update.
Alternatives: Let callers invoke the oracle and patch tickets themselves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from ticketdesk.errors import OracleFailure
from ticketdesk.models import (
    ClassificationResult,
    Template,
    Ticket,
    TicketStatus,
    is_present,
)
from ticketdesk.oracle import (
    MANDATORY_FIELDS,
    SUBSCRIPTION_CATEGORIES,
    ClassificationOracle,
    ClassificationRequest,
)
from ticketdesk.templates import select_template


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriageOverrides:
    """Summary: Operator-supplied facts that count as present during classification.

    Importance: Lets an operator complete a ticket the customer left incomplete.
    Alternatives: Edit the ticket body directly.
    """

    user_id: str | None = None
    payment_method: str | None = None
    supplement: str | None = None
    payment_proof: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.agent_notes()

    def agent_notes(self) -> str:
        """Summary: Render overrides as labelled note lines, one per supplied value."""

        lines: list[str] = []
        if self.user_id and self.user_id.strip():
            lines.append(f"[USER ID]: {self.user_id.strip()}")
        if self.payment_method and self.payment_method.strip():
            lines.append(f"[PAYMENT METHOD]: {self.payment_method.strip()}")
        if self.payment_proof:
            lines.append("[PAYMENT PROOF]: provided")
        if self.supplement and self.supplement.strip():
            lines.append(f"[HUMAN SUPPLEMENT]: {self.supplement.strip()}")
        return "\n".join(lines)


def derive_status(result: ClassificationResult) -> TicketStatus:
    """Summary: Map a classification to the ticket's next status.

    Importance: The completeness flag wins over the category.
    Alternatives: Derive status from the category alone.
    """

    if result.metadata.is_info_complete:
        return TicketStatus.READY_TO_RESOLVE
    if "MISSING_INFO" in result.category.value:
        return TicketStatus.INFO_MISSING
    return TicketStatus.IN_PROGRESS


def latest_summary(history: list[Ticket]) -> str | None:
    """Summary: Summary carried by the most recent classified thread entry."""

    summarized = [
        ticket
        for ticket in history
        if ticket.classification is not None and ticket.classification.summary.strip()
    ]
    if not summarized:
        return None
    latest = max(summarized, key=lambda ticket: ticket.timestamp)
    return latest.classification.summary


def apply_overrides(result: ClassificationResult, overrides: TriageOverrides) -> ClassificationResult:
    """Summary: Force operator-supplied values into the oracle's metadata.

    Importance: Completeness for subscription categories is recomputed from the merged fields.
    Alternatives: Trust the oracle to honour the notes.
    """

    metadata = result.metadata
    if overrides.user_id and overrides.user_id.strip():
        metadata = replace(metadata, user_id=overrides.user_id.strip())
    if overrides.payment_method and overrides.payment_method.strip():
        metadata = replace(metadata, payment_method=overrides.payment_method.strip())
    if overrides.payment_proof:
        metadata = replace(metadata, has_payment_proof=True)
    if result.category in SUBSCRIPTION_CATEGORIES:
        present = {
            "user_id": is_present(metadata.user_id),
            "payment_method": is_present(metadata.payment_method),
            "payment_proof": metadata.has_payment_proof,
        }
        missing = [name for name in MANDATORY_FIELDS if not present[name]]
        metadata = replace(metadata, missing_fields=missing, is_info_complete=not missing)
    return replace(result, metadata=metadata)


class TriageEngine:
    """Summary: Classifies single tickets through the oracle.

    Importance: Central place where a classification becomes a ticket update.
    Alternatives: Embed classification logic in HTTP handlers.
    """

    def __init__(self, oracle: ClassificationOracle) -> None:
        self._oracle = oracle

    async def classify(
        self,
        ticket: Ticket,
        thread_history: list[Ticket],
        overrides: TriageOverrides | None = None,
        templates: list[Template] | None = None,
        model_id: str | None = None,
    ) -> Ticket:
        """Summary: Classify a ticket and return its updated copy.

        Importance: The input ticket is never mutated, so a failure leaves it untouched.
        Alternatives: Update the ticket in place and roll back on error.
        """

        overrides = overrides or TriageOverrides()
        notes = overrides.agent_notes()
        request = ClassificationRequest(
            subject=ticket.subject,
            body=ticket.body,
            attachments=list(ticket.attachments),
            previous_summary=latest_summary(thread_history),
            agent_notes=notes,
            templates=list(templates or []),
            model_id=model_id,
        )
        try:
            result = await self._oracle.classify(request)
        except OracleFailure:
            logger.warning("Classification failed for ticket %s.", ticket.id)
            raise
        except Exception as exc:
            logger.warning("Classification failed for ticket %s: %s", ticket.id, exc)
            raise OracleFailure(str(exc)) from exc
        result = apply_overrides(result, overrides)
        status = derive_status(result)
        logger.info(
            "Classified ticket %s as %s (%s).", ticket.id, result.category.value, status.value
        )
        return replace(
            ticket,
            classification=result,
            status=status,
            selected=False,
            draft_reply=None,
            agent_notes=notes or ticket.agent_notes,
        )

    def select_template(self, ticket: Ticket, template_id: str, templates: list[Template]) -> str:
        return select_template(ticket, template_id, templates)
