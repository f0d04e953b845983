"""Summary: FastAPI application for TicketDesk.

Importance: Exposes the operator workflow to dashboards and integrations over HTTP.
Alternatives: Use a CLI-only workflow or a different web framework.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import date
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ticketdesk.app import build_gateway, build_services
from ticketdesk.config import AppConfig
from ticketdesk.database import DatabaseTicketSource
from ticketdesk.dispatch import BulkSendResult
from ticketdesk.errors import (
    AuthExpired,
    BatchFailure,
    OracleFailure,
    SendFailed,
    ValidationError,
)
from ticketdesk.gateway import MailGateway
from ticketdesk.models import (
    Customer,
    SupportCategory,
    Ticket,
    classification_to_dict,
    template_to_dict,
)
from ticketdesk.oracle import ClassificationOracle
from ticketdesk.triage import TriageOverrides


class SyncRequest(BaseModel):
    limit: int | None = Field(default=None, ge=1, le=500)


class SelectRequest(BaseModel):
    """Summary: Request payload for selecting tickets.

    Importance: Supports both explicit ids and select-all over the current listing.
    Alternatives: Toggle tickets one by one.
    """

    ids: list[str] | None = None
    tab: str | None = None
    query: str = ""
    selected: bool = True


class TriageRequest(BaseModel):
    """Summary: Request payload for single-ticket triage with overrides.

    Importance: Operator-supplied values count as present for completeness.
    Alternatives: Edit the ticket body before triage.
    """

    user_id: str | None = None
    payment_method: str | None = None
    supplement: str | None = None
    payment_proof: bool = False


class BatchRequest(BaseModel):
    ids: list[str] | None = None


class TemplateChoiceRequest(BaseModel):
    template_id: str


class DraftUpdateRequest(BaseModel):
    body: str


class SendRequest(BaseModel):
    body: str | None = None


class CustomerRenameRequest(BaseModel):
    name: str


class TemplateCreateRequest(BaseModel):
    """Summary: Request payload for template creation."""

    name: str
    body: str
    rule_description: str = ""
    category: SupportCategory | None = None


class TemplateUpdateRequest(BaseModel):
    name: str
    body: str
    rule_description: str | None = None


class ModelRequest(BaseModel):
    model_id: str


class DatabaseSyncRequest(BaseModel):
    day: date


class ReauthorizeRequest(BaseModel):
    access_token: str | None = None


def ticket_payload(ticket: Ticket) -> dict[str, Any]:
    """Summary: Render a ticket for JSON responses."""

    return {
        "id": ticket.id,
        "thread_id": ticket.thread_id,
        "source": ticket.source,
        "sender": ticket.sender,
        "sender_name": ticket.sender_name,
        "subject": ticket.subject,
        "body": ticket.body,
        "timestamp": ticket.timestamp.isoformat(),
        "status": ticket.status.value,
        "is_read": ticket.is_read,
        "selected": ticket.selected,
        "agent_notes": ticket.agent_notes,
        "reply_draft": ticket.reply_draft,
        "sent_reply": ticket.sent_reply,
        "attachments": [
            {
                "id": item.id,
                "filename": item.filename,
                "mime_type": item.mime_type,
                "size": item.size,
            }
            for item in ticket.attachments
        ],
        "classification": (
            classification_to_dict(ticket.classification) if ticket.classification else None
        ),
    }


def customer_payload(customer: Customer) -> dict[str, Any]:
    return {
        "email": customer.email,
        "name": customer.name,
        "user_id": customer.user_id,
        "latest_category": customer.latest_category,
        "tags": customer.tags,
        "total_tickets": customer.total_tickets,
        "resolved_count": customer.resolved_count,
        "last_active": customer.last_active.isoformat(),
        "threads": [
            {
                "id": thread.id,
                "source": thread.source,
                "subject": thread.subject,
                "status": thread.status.value,
                "timestamp": thread.timestamp.isoformat(),
                "category": thread.category.value if thread.category else None,
            }
            for thread in customer.threads
        ],
    }


def send_payload(result: BulkSendResult) -> dict[str, Any]:
    return {
        "success_count": result.success_count,
        "failed_count": result.failed_count,
        "sent_ids": result.sent_ids,
        "failures": result.failures,
        "needs_review": result.needs_review,
        "auth_expired": result.auth_expired,
        "all_failed": result.all_failed,
    }


def create_app(
    config: AppConfig,
    oracle: ClassificationOracle | None = None,
    gateway: MailGateway | None = None,
    database_source: DatabaseTicketSource | None = None,
) -> FastAPI:
    """Summary: Create a FastAPI app wired to TicketDesk services.

    Importance: Ensures the API layer shares the same configuration and storage.
    Alternatives: Instantiate services globally outside the factory.
    """

    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    app = FastAPI(title="TicketDesk API", version="0.1.0")
    services = build_services(config, oracle, gateway, database_source)

    def _error(status_code: int, detail: str) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"detail": detail})

    @app.exception_handler(ValidationError)
    async def on_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(AuthExpired)
    async def on_auth_expired(request: Request, exc: AuthExpired) -> JSONResponse:
        return _error(401, exc.reason)

    @app.exception_handler(KeyError)
    async def on_not_found(request: Request, exc: KeyError) -> JSONResponse:
        return _error(404, exc.args[0] if exc.args else "Not found")

    @app.exception_handler(OracleFailure)
    @app.exception_handler(SendFailed)
    async def on_upstream_failure(request: Request, exc: OracleFailure | SendFailed) -> JSONResponse:
        return _error(502, exc.reason)

    @app.exception_handler(BatchFailure)
    async def on_batch_failure(request: Request, exc: BatchFailure) -> JSONResponse:
        return JSONResponse(
            status_code=502, content={"detail": exc.reason, "failures": exc.failures}
        )

    def require_api_key(x_api_key: str | None = Header(default=None)) -> None:
        """Summary: Enforce API key authentication when configured.

        Importance: Adds a minimal security layer for local and private deployments.
        Alternatives: Use OAuth or session-based authentication.
        """

        if not config.api_key:
            return
        if x_api_key != config.api_key:
            raise HTTPException(status_code=401, detail="Invalid API key")

    secured = [Depends(require_api_key)]

    @app.get("/health")
    def health() -> dict[str, Any]:
        """Summary: Health check endpoint.

        Importance: Also reports whether mail access needs re-authorization.
        Alternatives: Use a metrics endpoint only.
        """

        return {"status": "ok", "mail_auth_expired": services.inbox.gateway.expired}

    @app.post("/auth/reauthorize", dependencies=secured)
    async def reauthorize(payload: ReauthorizeRequest) -> dict[str, Any]:
        replacement = None
        if payload.access_token:
            replacement = build_gateway(config, payload.access_token)
        services.inbox.reauthorize(replacement)
        return {"mail_auth_expired": services.inbox.gateway.expired}

    @app.post("/inbox/sync", dependencies=secured)
    async def sync_inbox(payload: SyncRequest | None = None) -> dict[str, Any]:
        """Summary: Pull recent mail into the ticket set."""

        added = await services.inbox.sync(payload.limit if payload else None)
        return {"added": [ticket.id for ticket in added]}

    @app.get("/tickets", dependencies=secured)
    def list_tickets(tab: str | None = None, q: str = "") -> list[dict[str, Any]]:
        return [ticket_payload(ticket) for ticket in services.inbox.list_tickets(tab, q)]

    @app.get("/tickets/{ticket_id}", dependencies=secured)
    def get_ticket(ticket_id: str) -> dict[str, Any]:
        return ticket_payload(services.inbox.get(ticket_id))

    @app.post("/tickets/{ticket_id}/toggle", dependencies=secured)
    async def toggle_ticket(ticket_id: str) -> dict[str, Any]:
        return ticket_payload(services.inbox.toggle(ticket_id))

    @app.post("/tickets/select", dependencies=secured)
    async def select_tickets(payload: SelectRequest) -> dict[str, int]:
        """Summary: Select or clear explicit ids or the whole filtered listing."""

        if payload.ids is not None:
            count = services.inbox.select(payload.ids, payload.selected)
        else:
            count = services.inbox.select_listing(payload.tab, payload.query, payload.selected)
        return {"count": count}

    @app.post("/tickets/classify", dependencies=secured)
    async def classify_tickets(payload: BatchRequest | None = None) -> dict[str, Any]:
        """Summary: Classify the selection concurrently.

        Importance: Partial failures are reported alongside the applied results.
        Alternatives: Classify tickets one request at a time.
        """

        result = await services.triage.classify_selected(payload.ids if payload else None)
        return {
            "updated": [ticket_payload(ticket) for ticket in result.updated],
            "failures": result.failures,
            "skipped_resolved": result.skipped_resolved,
        }

    @app.post("/tickets/send", dependencies=secured)
    async def send_tickets(payload: BatchRequest | None = None) -> dict[str, Any]:
        progress: list[int] = []
        result = await services.dispatch.send_selected(
            payload.ids if payload else None, progress.append
        )
        return {**send_payload(result), "progress": progress}

    @app.post("/tickets/{ticket_id}/triage", dependencies=secured)
    async def triage_ticket(ticket_id: str, payload: TriageRequest | None = None) -> dict[str, Any]:
        overrides = TriageOverrides(**payload.model_dump()) if payload else None
        return ticket_payload(await services.triage.triage(ticket_id, overrides))

    @app.post("/tickets/{ticket_id}/template", dependencies=secured)
    async def choose_template(ticket_id: str, payload: TemplateChoiceRequest) -> dict[str, Any]:
        return ticket_payload(services.triage.apply_template(ticket_id, payload.template_id))

    @app.put("/tickets/{ticket_id}/draft", dependencies=secured)
    async def update_draft(ticket_id: str, payload: DraftUpdateRequest) -> dict[str, Any]:
        return ticket_payload(services.triage.update_draft(ticket_id, payload.body))

    @app.post("/tickets/{ticket_id}/send", dependencies=secured)
    async def send_ticket(ticket_id: str, payload: SendRequest | None = None) -> dict[str, Any]:
        body = payload.body if payload else None
        return ticket_payload(await services.dispatch.send(ticket_id, body))

    @app.post("/tickets/{ticket_id}/attachments/{attachment_id}/analyze", dependencies=secured)
    async def analyze_attachment(ticket_id: str, attachment_id: str) -> dict[str, Any]:
        analysis = await services.triage.analyze_attachment(ticket_id, attachment_id)
        return {
            "summary": analysis.summary,
            "detected_issues": analysis.detected_issues,
            "recommendation": analysis.recommendation,
            "extracted_uid": analysis.extracted_uid,
            "extracted_payment_platform": analysis.extracted_payment_platform,
        }

    @app.get("/customers", dependencies=secured)
    def list_customers(q: str = "", tab: str = "ALL") -> list[dict[str, Any]]:
        return [customer_payload(customer) for customer in services.customers.roster(q, tab)]

    @app.patch("/customers/{email}", dependencies=secured)
    async def rename_customer(email: str, payload: CustomerRenameRequest) -> dict[str, int]:
        return {"updated": services.customers.rename(email, payload.name)}

    @app.delete("/customers/{email}", dependencies=secured)
    async def delete_customer(email: str) -> dict[str, int]:
        return {"removed": services.customers.delete(email)}

    @app.get("/stats", dependencies=secured)
    def stats() -> dict[str, int]:
        """Summary: Return dashboard counters.

        Importance: Provides lightweight analytics for dashboards.
        Alternatives: Build a separate analytics service.
        """

        return asdict(services.stats.snapshot())

    @app.get("/templates", dependencies=secured)
    def list_templates() -> list[dict[str, Any]]:
        return [template_to_dict(template) for template in services.templates.list_templates()]

    @app.post("/templates", dependencies=secured)
    async def create_template(payload: TemplateCreateRequest) -> dict[str, Any]:
        template = services.templates.add(
            payload.name, payload.body, payload.rule_description, payload.category
        )
        return template_to_dict(template)

    @app.put("/templates/{template_id}", dependencies=secured)
    async def update_template(template_id: str, payload: TemplateUpdateRequest) -> dict[str, Any]:
        template = services.templates.edit(
            template_id, payload.name, payload.body, payload.rule_description
        )
        return template_to_dict(template)

    @app.get("/settings/model", dependencies=secured)
    def get_model() -> dict[str, str]:
        return {"model_id": services.settings.active_model()}

    @app.put("/settings/model", dependencies=secured)
    async def set_model(payload: ModelRequest) -> dict[str, str]:
        return {"model_id": services.settings.set_active_model(payload.model_id)}

    @app.post("/database/sync", dependencies=secured)
    async def sync_database(payload: DatabaseSyncRequest) -> dict[str, Any]:
        added = await services.database.sync(payload.day)
        return {"added": [ticket.id for ticket in added]}

    @app.post("/database/{ticket_id}/reply-from-notes", dependencies=secured)
    async def reply_from_notes(ticket_id: str) -> dict[str, Any]:
        return ticket_payload(await services.database.reply_from_notes(ticket_id))

    return app


def create_app_from_env() -> FastAPI:
    """Summary: Build the app from environment configuration.

    Importance: Entry point for `uvicorn --factory ticketdesk.api:create_app_from_env`.
    Alternatives: Create a module-level app at import time.
    """

    return create_app(AppConfig.from_env())
