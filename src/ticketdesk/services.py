"""Summary: Core application services for TicketDesk.

Importance: Orchestrates sync, triage, dispatch, and derived views over one shared desk state.
Alternatives: Build a full service layer with dependency injection framework.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date

from ticketdesk.customers import build_customers, filter_customers
from ticketdesk.database import DatabaseTicketSource, database_ticket_to_ticket
from ticketdesk.dispatch import BulkClassifyResult, BulkDispatcher, BulkSendResult, ProgressCallback
from ticketdesk.errors import ValidationError
from ticketdesk.gateway import GuardedMailGateway, MailGateway
from ticketdesk.models import (
    Customer,
    DashboardStats,
    ImageAnalysis,
    SupportCategory,
    Template,
    Ticket,
)
from ticketdesk.oracle import ClassificationOracle
from ticketdesk.stats import project_stats
from ticketdesk.storage.sqlite_store import Snapshot, SqliteStore
from ticketdesk.templates import TemplateStore
from ticketdesk.ticket_set import TicketSet
from ticketdesk.triage import TriageEngine, TriageOverrides


logger = logging.getLogger(__name__)

KNOWN_MODELS = (
    "gemini-flash-lite-latest",
    "gemini-3-flash-preview",
    "gemini-3-pro-preview",
)
ACTIVE_MODEL_KEY = "active_model"


@dataclass
class DeskState:
    """Summary: Mutable session state shared by every service.

    Importance: One ticket set and template store back all views and batch operations.
    Alternatives: Reload state from storage on every request.
    """

    tickets: TicketSet
    templates: TemplateStore
    active_model: str

    @staticmethod
    def from_snapshot(snapshot: Snapshot, default_model: str) -> "DeskState":
        return DeskState(
            tickets=TicketSet(snapshot.tickets),
            templates=TemplateStore(snapshot.templates),
            active_model=snapshot.settings.get(ACTIVE_MODEL_KEY, default_model),
        )

    def to_snapshot(self) -> Snapshot:
        return Snapshot(
            tickets=self.tickets.all(),
            templates=self.templates.all(),
            settings={ACTIVE_MODEL_KEY: self.active_model},
        )


def persist(store: SqliteStore, state: DeskState) -> None:
    store.save_snapshot(state.to_snapshot())


@dataclass(frozen=True)
class InboxService:
    """Summary: Syncs the mailbox and manages the inbox listing and selection.

    Importance: Entry point for new work arriving from the mail system.
    Alternatives: Poll the mailbox from a background worker.
    """

    state: DeskState
    store: SqliteStore
    gateway: GuardedMailGateway
    fetch_limit: int

    async def sync(self, limit: int | None = None) -> list[Ticket]:
        """Summary: Fetch recent mail and prepend unseen tickets.

        Importance: Known ids are never duplicated or overwritten by a re-sync.
        Alternatives: Replace the inbox with the fetched page.
        """

        fetched = await self.gateway.fetch_recent(limit or self.fetch_limit)
        added = self.state.tickets.merge_new(fetched)
        if added:
            persist(self.store, self.state)
        logger.info("Inbox sync fetched %s messages, %s new.", len(fetched), len(added))
        return added

    def list_tickets(self, tab: str | None = None, query: str = "") -> list[Ticket]:
        return self.state.tickets.listing(tab, query)

    def get(self, ticket_id: str) -> Ticket:
        return self.state.tickets.get(ticket_id)

    def toggle(self, ticket_id: str) -> Ticket:
        ticket = self.state.tickets.toggle(ticket_id)
        persist(self.store, self.state)
        return ticket

    def select(self, ticket_ids: list[str], selected: bool = True) -> int:
        count = self.state.tickets.set_selected(ticket_ids, selected)
        persist(self.store, self.state)
        return count

    def select_listing(self, tab: str | None, query: str, selected: bool = True) -> int:
        """Summary: Select or clear every ticket in the filtered listing."""

        ids = [ticket.id for ticket in self.state.tickets.listing(tab, query)]
        return self.select(ids, selected)

    def reauthorize(self, gateway: MailGateway | None = None) -> None:
        self.gateway.reauthorize(gateway)


@dataclass(frozen=True)
class TriageService:
    """Summary: Classifies tickets and manages their reply drafts.

    Importance: Wraps the triage engine with persistence and thread context.
    Alternatives: Call the engine directly from the API layer.
    """

    state: DeskState
    store: SqliteStore
    engine: TriageEngine
    dispatcher: BulkDispatcher
    oracle: ClassificationOracle
    gateway: MailGateway

    async def triage(self, ticket_id: str, overrides: TriageOverrides | None = None) -> Ticket:
        """Summary: Classify one ticket on operator request.

        Importance: Resolved tickets may be re-triaged here, unlike the bulk path. A ticket
        sent or edited while the oracle was answering is left untouched.
        Alternatives: Refuse manual triage of resolved tickets.
        """

        ticket = self.state.tickets.get(ticket_id)
        updated = await self.engine.classify(
            ticket,
            self.state.tickets.thread_history(ticket),
            overrides=overrides,
            templates=self.state.templates.all(),
            model_id=self.state.active_model,
        )
        if not self.dispatcher.is_unchanged(ticket):
            raise ValidationError(f"Ticket {ticket_id} changed while it was being classified")
        self.state.tickets.apply([updated])
        persist(self.store, self.state)
        return updated

    async def classify_selected(self, ticket_ids: list[str] | None = None) -> BulkClassifyResult:
        try:
            return await self.dispatcher.bulk_classify(
                _pick(self.state.tickets, ticket_ids),
                self.state.templates.all(),
                self.state.active_model,
            )
        finally:
            persist(self.store, self.state)

    def apply_template(self, ticket_id: str, template_id: str) -> Ticket:
        """Summary: Replace the draft with the chosen template's text."""

        ticket = self.state.tickets.get(ticket_id)
        draft = self.engine.select_template(ticket, template_id, self.state.templates.all())
        return self._store_draft(ticket, draft)

    def update_draft(self, ticket_id: str, body: str) -> Ticket:
        ticket = self.state.tickets.get(ticket_id)
        return self._store_draft(ticket, body)

    async def analyze_attachment(self, ticket_id: str, attachment_id: str) -> ImageAnalysis:
        """Summary: Ask the oracle to inspect one image attachment.

        Importance: Helps operators spot user ids and payment platforms in screenshots.
        Alternatives: Open every attachment manually.
        """

        ticket = self.state.tickets.get(ticket_id)
        attachment = next((item for item in ticket.attachments if item.id == attachment_id), None)
        if attachment is None:
            raise KeyError(f"Attachment {attachment_id} not found")
        if not attachment.is_image:
            raise ValidationError(f"Attachment {attachment.filename} is not an image")
        data = await self.gateway.fetch_attachment_bytes(ticket.id, attachment.id)
        context = f"{ticket.subject}\n{ticket.body}"
        return await self.oracle.classify_image(
            data, attachment.mime_type, context, self.state.active_model
        )

    def _store_draft(self, ticket: Ticket, draft: str) -> Ticket:
        updated = replace(ticket, draft_reply=draft)
        self.state.tickets.replace(updated)
        persist(self.store, self.state)
        return updated


@dataclass(frozen=True)
class DispatchService:
    """Summary: Sends replies for single tickets and selections."""

    state: DeskState
    store: SqliteStore
    dispatcher: BulkDispatcher

    async def send(self, ticket_id: str, body: str | None = None) -> Ticket:
        ticket = self.state.tickets.get(ticket_id)
        updated = await self.dispatcher.send_one(ticket, body)
        persist(self.store, self.state)
        logger.info("Resolved ticket %s.", ticket_id)
        return updated

    async def send_selected(
        self,
        ticket_ids: list[str] | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BulkSendResult:
        """Summary: Send every ready reply in the selection.

        Importance: State is persisted even when part of the batch failed.
        Alternatives: Persist only after a fully successful batch.
        """

        try:
            return await self.dispatcher.bulk_send(
                _pick(self.state.tickets, ticket_ids), on_progress
            )
        finally:
            persist(self.store, self.state)


@dataclass(frozen=True)
class CustomerService:
    """Summary: Serves the derived customer roster and customer-level edits.

    Importance: Customers are recomputed from tickets, so edits rewrite tickets.
    Alternatives: Store customers in their own table.
    """

    state: DeskState
    store: SqliteStore

    def roster(self, search: str = "", tab: str = "ALL") -> list[Customer]:
        return filter_customers(build_customers(self.state.tickets.all()), search, tab)

    def get(self, email: str) -> Customer:
        key = email.strip().lower()
        for customer in build_customers(self.state.tickets.all()):
            if customer.email == key:
                return customer
        raise KeyError(f"Customer {email} not found")

    def rename(self, email: str, name: str) -> int:
        if not name.strip():
            raise ValidationError("Customer name is required")
        key = email.strip().lower()
        matches = [ticket for ticket in self.state.tickets.all() if ticket.customer_key == key]
        if not matches:
            raise KeyError(f"Customer {email} not found")
        self.state.tickets.apply(replace(ticket, sender_name=name.strip()) for ticket in matches)
        persist(self.store, self.state)
        logger.info("Renamed customer %s on %s tickets.", key, len(matches))
        return len(matches)

    def delete(self, email: str) -> int:
        key = email.strip().lower()
        removed = self.state.tickets.remove_where(lambda ticket: ticket.customer_key == key)
        if not removed:
            raise KeyError(f"Customer {email} not found")
        persist(self.store, self.state)
        logger.info("Deleted customer %s with %s tickets.", key, len(removed))
        return len(removed)


@dataclass(frozen=True)
class StatsService:
    """Summary: Provides dashboard counters."""

    state: DeskState

    def snapshot(self) -> DashboardStats:
        return project_stats(self.state.tickets.all())


@dataclass(frozen=True)
class TemplateService:
    state: DeskState
    store: SqliteStore

    def list_templates(self) -> list[Template]:
        return self.state.templates.all()

    def add(
        self,
        name: str,
        body: str,
        rule_description: str = "",
        category: SupportCategory | None = None,
    ) -> Template:
        template = self.state.templates.add(name, body, rule_description, category)
        persist(self.store, self.state)
        return template

    def edit(
        self, template_id: str, name: str, body: str, rule_description: str | None = None
    ) -> Template:
        template = self.state.templates.edit(template_id, name, body, rule_description)
        persist(self.store, self.state)
        return template


@dataclass(frozen=True)
class SettingsService:
    """Summary: Manages the active classification engine.

    Importance: Unknown engine ids are rejected before any oracle call uses them.
    Alternatives: Pass the model id on every request.
    """

    state: DeskState
    store: SqliteStore

    def active_model(self) -> str:
        return self.state.active_model

    def set_active_model(self, model_id: str) -> str:
        if model_id not in KNOWN_MODELS:
            raise ValidationError(f"Unknown engine {model_id}")
        self.state.active_model = model_id
        persist(self.store, self.state)
        logger.info("Active engine set to %s.", model_id)
        return model_id


@dataclass(frozen=True)
class DatabaseQueueService:
    """Summary: Pulls backend database tickets into the shared ticket set.

    Importance: Database tickets get the same triage, dispatch, and views as mail.
    Alternatives: Keep a separate queue with its own triage flow.
    """

    state: DeskState
    store: SqliteStore
    source: DatabaseTicketSource
    oracle: ClassificationOracle

    async def sync(self, day: date) -> list[Ticket]:
        rows = await self.source.fetch_by_date(day)
        added = self.state.tickets.merge_new(database_ticket_to_ticket(row) for row in rows)
        if added:
            persist(self.store, self.state)
        logger.info("Database sync for %s fetched %s rows, %s new.", day, len(rows), len(added))
        return added

    async def reply_from_notes(self, ticket_id: str) -> Ticket:
        """Summary: Draft a customer reply from the ticket's internal notes.

        Importance: Backend findings reach the customer without internal wording.
        Alternatives: Make operators rewrite notes by hand.
        """

        ticket = self.state.tickets.get(ticket_id)
        if not ticket.agent_notes.strip():
            raise ValidationError(f"Ticket {ticket_id} has no agent notes")
        draft = await self.oracle.draft_from_notes(
            ticket.subject, ticket.agent_notes, self.state.active_model
        )
        updated = replace(ticket, draft_reply=draft)
        self.state.tickets.apply([updated])
        persist(self.store, self.state)
        return updated


def _pick(tickets: TicketSet, ticket_ids: list[str] | None) -> list[Ticket]:
    if ticket_ids is None:
        return tickets.selected()
    return [tickets.get(ticket_id) for ticket_id in ticket_ids]
