"""Summary: Tests for the reply template store.

Importance: Template text must reach the draft byte-for-byte.
Alternatives: Inspect templates manually in the dashboard.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ticketdesk.errors import ValidationError
from ticketdesk.models import (
    ClassificationResult,
    SupportCategory,
    Ticket,
    TicketMetadata,
)
from ticketdesk.templates import (
    AI_TEMPLATE_ID,
    DEFAULT_TEMPLATES,
    TemplateStore,
    recommended_template_id,
    select_template,
)


def _ticket(reply: str | None = None) -> Ticket:
    classification = None
    if reply is not None:
        classification = ClassificationResult(
            category=SupportCategory.OTHER,
            confidence=0.4,
            should_auto_send=False,
            reply_email=reply,
            metadata=TicketMetadata(has_payment_proof=False, is_info_complete=False),
            selected_template_id=AI_TEMPLATE_ID,
        )
    return Ticket(
        id="t1",
        thread_id="th1",
        sender="a@example.com",
        subject="Question",
        body="Hello",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        classification=classification,
    )


def test_every_category_has_a_default_template() -> None:
    """Summary: Verify the category mapping is total.

    Importance: Every classification must map to an existing template.
    Alternatives: Fall back to free-form replies silently.
    """

    ids = {template.id for template in DEFAULT_TEMPLATES}
    for category in SupportCategory:
        assert recommended_template_id(category) in ids
    assert recommended_template_id(None) == AI_TEMPLATE_ID
    assert recommended_template_id("NOT_A_CATEGORY") == AI_TEMPLATE_ID


def test_select_template_copies_body_verbatim() -> None:
    body = "Line one.\n\n{{not interpolated}}\nLine three."
    store = TemplateStore()
    template = store.add("Custom", body)
    assert select_template(_ticket("Oracle text"), template.id, store.all()) == body


def test_select_free_form_template_uses_oracle_draft() -> None:
    templates = TemplateStore().all()
    assert select_template(_ticket("Oracle text"), AI_TEMPLATE_ID, templates) == "Oracle text"
    assert select_template(_ticket(), AI_TEMPLATE_ID, templates) == "[AI CONTEXT-AWARE DRAFT]"


def test_select_unknown_template_raises() -> None:
    with pytest.raises(KeyError):
        select_template(_ticket(), "T99", TemplateStore().all())


def test_add_generates_suffixed_id() -> None:
    """Summary: Verify new templates get T<n>_<4 digits> ids.

    Importance: Ids stay unique and ordered after the defaults.
    Alternatives: Use UUIDs.
    """

    store = TemplateStore()
    template = store.add("Refund", "We processed your refund.", "Use for refunds")
    prefix, suffix = template.id.split("_")
    assert prefix == f"T{len(DEFAULT_TEMPLATES) + 1}"
    assert len(suffix) == 4 and suffix.isdigit()
    assert store.get(template.id).rule_description == "Use for refunds"


def test_edit_keeps_position_and_rule() -> None:
    store = TemplateStore()
    original = store.get("T3")
    updated = store.edit("T3", "Diagnostics", "New body")
    assert updated.rule_description == original.rule_description
    assert [item.id for item in store.all()].index("T3") == 2
    assert store.get("T3").body == "New body"


def test_add_and_edit_reject_empty_fields() -> None:
    store = TemplateStore()
    with pytest.raises(ValidationError):
        store.add("  ", "body")
    with pytest.raises(ValidationError):
        store.edit("T1", "Name", "")
    with pytest.raises(KeyError):
        store.edit("T404", "Name", "Body")
