"""Summary: Domain model dataclasses for TicketDesk.

Importance: Defines the ticket, template, and derived view entities shared across services.
Alternatives: Use Pydantic models or ORM classes directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


MISSING_MARKER = "MISSING"
UNLINKED_USER_ID = "UNLINKED"


class SupportCategory(str, Enum):
    """Summary: Fixed support categories a ticket can be classified into.

    Importance: Keeps the category set exhaustive so template mapping stays total.
    Alternatives: Accept free-form category strings from the oracle.
    """

    SUBSCRIPTION_MISSING_INFO = "SUBSCRIPTION_MISSING_INFO"
    SUBSCRIPTION_VERIFIED = "SUBSCRIPTION_VERIFIED"
    NSFW_ISSUE = "NSFW_ISSUE"
    ACCOUNT_USAGE_ERROR = "ACCOUNT_USAGE_ERROR"
    ACCOUNT_DELETION = "ACCOUNT_DELETION"
    POST_DELETION_BILLING = "POST_DELETION_BILLING"
    BOT_POWER_ISSUE = "BOT_POWER_ISSUE"
    OTHER = "OTHER"


class TicketStatus(str, Enum):
    """Summary: Lifecycle states of a ticket.

    Importance: Drives listing tabs, bulk eligibility, and statistics.
    Alternatives: Track status as plain strings.
    """

    NEW = "new"
    IN_PROGRESS = "in_progress"
    INFO_MISSING = "info_missing"
    READY_TO_RESOLVE = "ready_to_resolve"
    RESOLVED = "resolved"


PROCESSING_STATUSES = frozenset(
    {TicketStatus.IN_PROGRESS, TicketStatus.INFO_MISSING, TicketStatus.READY_TO_RESOLVE}
)


@dataclass(frozen=True)
class Attachment:
    """Summary: Describes a file attached to a ticket.

    Importance: Image attachments count as potential payment proof.
    Alternatives: Store raw MIME parts on the ticket.
    """

    id: str
    filename: str
    mime_type: str
    size: int = 0

    @property
    def is_image(self) -> bool:
        return self.mime_type.lower().startswith("image/")


@dataclass(frozen=True)
class TicketMetadata:
    """Summary: Structured fields extracted from a ticket by the oracle.

    Importance: The completeness flag drives the status transition.
    Alternatives: Keep extraction results inside the reply text.
    """

    has_payment_proof: bool
    is_info_complete: bool
    missing_fields: list[str] = field(default_factory=list)
    branch_path: list[str] = field(default_factory=list)
    user_id: str | None = None
    payment_method: str | None = None

    @property
    def has_user_id(self) -> bool:
        return is_present(self.user_id)

    @property
    def has_payment_method(self) -> bool:
        return is_present(self.payment_method)


@dataclass(frozen=True)
class ClassificationResult:
    """Summary: Validated output of one classification oracle call.

    Importance: Carries the category, reply draft, and rolling thread summary.
    Alternatives: Pass loosely-typed JSON dictionaries around.
    """

    category: SupportCategory
    confidence: float
    should_auto_send: bool
    reply_email: str
    metadata: TicketMetadata
    selected_template_id: str
    summary: str = ""
    reasoning_summary: str = ""


@dataclass(frozen=True)
class Ticket:
    """Summary: Represents one inbound support item tracked through triage.

    Importance: Core unit for classification, replies, and derived views.
    Alternatives: Keep separate types for mail and database items.
    """

    id: str
    thread_id: str
    sender: str
    subject: str
    body: str
    timestamp: datetime
    message_id: str = ""
    sender_name: str = ""
    status: TicketStatus = TicketStatus.NEW
    attachments: list[Attachment] = field(default_factory=list)
    classification: ClassificationResult | None = None
    draft_reply: str | None = None
    sent_reply: str | None = None
    agent_notes: str = ""
    is_read: bool = False
    selected: bool = False
    source: str = "gmail"

    @property
    def customer_key(self) -> str:
        return self.sender.strip().lower()

    @property
    def category(self) -> SupportCategory | None:
        return self.classification.category if self.classification else None

    @property
    def reply_draft(self) -> str:
        if self.draft_reply is not None:
            return self.draft_reply
        return self.classification.reply_email if self.classification else ""


@dataclass(frozen=True)
class Template:
    """Summary: Reply template with a selection rule for the oracle.

    Importance: Templates are copied verbatim into reply drafts.
    Alternatives: Generate every reply free-form with the LLM.
    """

    id: str
    name: str
    body: str
    rule_description: str = ""
    category: SupportCategory | None = None


@dataclass(frozen=True)
class ThreadSummary:
    """Summary: Compact view of one ticket inside a customer record."""

    id: str
    source: str
    subject: str
    status: TicketStatus
    timestamp: datetime
    category: SupportCategory | None = None


@dataclass(frozen=True)
class Customer:
    """Summary: Derived aggregate of all tickets sharing a sender identity.

    Importance: Powers the customer roster without separate storage.
    Alternatives: Maintain a customer table updated on ingestion.
    """

    email: str
    name: str
    user_id: str
    latest_category: str
    tags: list[str]
    threads: list[ThreadSummary]
    total_tickets: int
    resolved_count: int
    last_active: datetime


@dataclass(frozen=True)
class DashboardStats:
    """Summary: Counters shown on the dashboard.

    Importance: Summarises workload and extraction quality at a glance.
    Alternatives: Compute counts in the presentation layer.
    """

    total: int
    mail_count: int
    database_count: int
    new: int
    in_progress: int
    resolved: int
    uid_count: int
    payment_method_count: int
    proof_count: int
    perfect_count: int


@dataclass(frozen=True)
class ImageAnalysis:
    """Summary: Oracle findings for an image attachment."""

    summary: str
    detected_issues: list[str]
    recommendation: str
    extracted_uid: str | None = None
    extracted_payment_platform: str | None = None


@dataclass(frozen=True)
class DatabaseTicket:
    """Summary: Row of the backend ticket database.

    Importance: Feeds the secondary workspace that mirrors the inbox triage flow.
    Alternatives: Query the backend tables directly from the workspace.
    """

    id: str
    user_id: str
    email: str
    subject: str
    payment_method: str
    proof_of_payment: list[str]
    status: str
    created_date: datetime
    updated_date: datetime
    agent_notes: str = ""


def is_present(value: str | None) -> bool:
    """Summary: Check whether an extracted field carries a real value.

    Importance: The oracle marks absent fields with a MISSING placeholder.
    Alternatives: Require the oracle to omit absent fields entirely.
    """

    return bool(value) and MISSING_MARKER not in value.upper()


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def ticket_to_dict(ticket: Ticket) -> dict[str, Any]:
    """Summary: Serialise a ticket into JSON-compatible data.

    Importance: Snapshots are persisted between sessions.
    Alternatives: Pickle the dataclasses.
    """

    classification = ticket.classification
    return {
        "id": ticket.id,
        "thread_id": ticket.thread_id,
        "message_id": ticket.message_id,
        "sender": ticket.sender,
        "sender_name": ticket.sender_name,
        "subject": ticket.subject,
        "body": ticket.body,
        "timestamp": ticket.timestamp.isoformat(),
        "status": ticket.status.value,
        "attachments": [
            {
                "id": attachment.id,
                "filename": attachment.filename,
                "mime_type": attachment.mime_type,
                "size": attachment.size,
            }
            for attachment in ticket.attachments
        ],
        "classification": classification_to_dict(classification) if classification else None,
        "draft_reply": ticket.draft_reply,
        "sent_reply": ticket.sent_reply,
        "agent_notes": ticket.agent_notes,
        "is_read": ticket.is_read,
        "selected": ticket.selected,
        "source": ticket.source,
    }


def ticket_from_dict(data: dict[str, Any]) -> Ticket:
    classification = data.get("classification")
    return Ticket(
        id=data["id"],
        thread_id=data["thread_id"],
        message_id=data.get("message_id", ""),
        sender=data["sender"],
        sender_name=data.get("sender_name", ""),
        subject=data["subject"],
        body=data["body"],
        timestamp=parse_timestamp(data["timestamp"]),
        status=TicketStatus(data.get("status", TicketStatus.NEW.value)),
        attachments=[Attachment(**item) for item in data.get("attachments", [])],
        classification=classification_from_dict(classification) if classification else None,
        draft_reply=data.get("draft_reply"),
        sent_reply=data.get("sent_reply"),
        agent_notes=data.get("agent_notes", ""),
        is_read=data.get("is_read", False),
        selected=data.get("selected", False),
        source=data.get("source", "gmail"),
    )


def classification_to_dict(result: ClassificationResult) -> dict[str, Any]:
    metadata = result.metadata
    return {
        "category": result.category.value,
        "confidence": result.confidence,
        "should_auto_send": result.should_auto_send,
        "reply_email": result.reply_email,
        "selected_template_id": result.selected_template_id,
        "summary": result.summary,
        "reasoning_summary": result.reasoning_summary,
        "extracted_metadata": {
            "user_id": metadata.user_id,
            "payment_method": metadata.payment_method,
            "has_payment_proof": metadata.has_payment_proof,
            "is_info_complete": metadata.is_info_complete,
            "missing_fields": list(metadata.missing_fields),
            "branch_path": list(metadata.branch_path),
        },
    }


def classification_from_dict(data: dict[str, Any]) -> ClassificationResult:
    metadata = data["extracted_metadata"]
    return ClassificationResult(
        category=SupportCategory(data["category"]),
        confidence=float(data["confidence"]),
        should_auto_send=bool(data["should_auto_send"]),
        reply_email=data["reply_email"],
        selected_template_id=data.get("selected_template_id", ""),
        summary=data.get("summary", ""),
        reasoning_summary=data.get("reasoning_summary", ""),
        metadata=TicketMetadata(
            user_id=metadata.get("user_id"),
            payment_method=metadata.get("payment_method"),
            has_payment_proof=bool(metadata["has_payment_proof"]),
            is_info_complete=bool(metadata["is_info_complete"]),
            missing_fields=list(metadata.get("missing_fields", [])),
            branch_path=list(metadata.get("branch_path", [])),
        ),
    )


def template_to_dict(template: Template) -> dict[str, Any]:
    return {
        "id": template.id,
        "name": template.name,
        "body": template.body,
        "rule_description": template.rule_description,
        "category": template.category.value if template.category else None,
    }


def template_from_dict(data: dict[str, Any]) -> Template:
    category = data.get("category")
    return Template(
        id=data["id"],
        name=data["name"],
        body=data["body"],
        rule_description=data.get("rule_description", ""),
        category=SupportCategory(category) if category else None,
    )
