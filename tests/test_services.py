"""Summary: Tests for the service layer wiring.

Importance: Covers flows that combine the ticket set, oracle, gateway, and storage.
Alternatives: Test every flow through the HTTP API.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from pathlib import Path

import pytest

from ticketdesk.app import AppServices, build_services
from ticketdesk.config import AppConfig
from ticketdesk.errors import ValidationError
from ticketdesk.models import Attachment, TicketStatus


DATA_DIR = Path(__file__).resolve().parents[1] / "data"


def _services(tmp_path: Path) -> AppServices:
    config = AppConfig(
        db_path=str(tmp_path / "services.db"),
        oracle_provider="mock",
        active_model="gemini-3-flash-preview",
        gemini_api_key=None,
        gemini_base_url="https://generativelanguage.googleapis.com/v1beta",
        openai_api_key=None,
        openai_model="gpt-4o-mini",
        ollama_url="http://localhost:11434",
        ollama_model="llama3",
        mail_provider="mock",
        gmail_access_token=None,
        gmail_base_url="https://gmail.googleapis.com/gmail/v1",
        mail_fixture_path=str(DATA_DIR / "mock_messages.json"),
        database_fixture_path=str(DATA_DIR / "mock_database_tickets.json"),
        fetch_limit=20,
        api_host="127.0.0.1",
        api_port=8000,
        api_key="",
    )
    services = build_services(config)
    asyncio.run(services.inbox.sync())
    return services


def test_select_listing_clears_and_selects_filtered_tickets(tmp_path: Path) -> None:
    services = _services(tmp_path)
    assert services.inbox.select_listing(None, "", selected=False) == 3
    assert services.state.tickets.selected() == []
    assert services.inbox.select_listing("new", "stripe") == 1
    assert [ticket.id for ticket in services.state.tickets.selected()] == ["init_2"]


def test_analyze_attachment_checks_type(tmp_path: Path) -> None:
    """Summary: Verify only image attachments reach the oracle.

    Importance: Non-image files cannot be inspected by a vision model.
    Alternatives: Send every attachment and let the oracle fail.
    """

    services = _services(tmp_path)
    ticket = services.state.tickets.get("init_2")
    services.state.tickets.replace(
        replace(
            ticket,
            body="My uid is 123456, paid with Stripe.",
            attachments=[
                Attachment(id="img", filename="receipt.png", mime_type="image/png"),
                Attachment(id="doc", filename="invoice.pdf", mime_type="application/pdf"),
            ],
        )
    )

    analysis = asyncio.run(services.triage.analyze_attachment("init_2", "img"))
    assert analysis.extracted_uid == "123456"
    assert analysis.extracted_payment_platform == "Stripe"
    with pytest.raises(ValidationError):
        asyncio.run(services.triage.analyze_attachment("init_2", "doc"))
    with pytest.raises(KeyError):
        asyncio.run(services.triage.analyze_attachment("init_2", "missing"))


def test_customer_rename_rewrites_every_ticket(tmp_path: Path) -> None:
    services = _services(tmp_path)
    assert services.customers.rename("Sara.W@outlook.com", "Sara Williams") == 1
    assert services.customers.get("sara.w@outlook.com").name == "Sara Williams"
    with pytest.raises(ValidationError):
        services.customers.rename("sara.w@outlook.com", "  ")


def test_reply_from_notes_requires_notes(tmp_path: Path) -> None:
    services = _services(tmp_path)
    with pytest.raises(ValidationError):
        asyncio.run(services.database.reply_from_notes("init_1"))


def test_triage_leaves_ticket_resolved_during_classification(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Summary: Verify a manual triage does not overwrite a reply sent meanwhile.

    Importance: The operator's send is the newer fact and must survive.
    Alternatives: Lock the ticket for the duration of the oracle call.
    """

    services = _services(tmp_path)
    tickets = services.state.tickets

    async def classify_while_sent(ticket, history, **kwargs):
        tickets.replace(replace(ticket, status=TicketStatus.RESOLVED, sent_reply="Sent already"))
        return replace(ticket, status=TicketStatus.IN_PROGRESS)

    monkeypatch.setattr(services.triage.engine, "classify", classify_while_sent)
    with pytest.raises(ValidationError):
        asyncio.run(services.triage.triage("init_1"))
    assert tickets.get("init_1").status is TicketStatus.RESOLVED
    assert tickets.get("init_1").sent_reply == "Sent already"
