"""Summary: Tests for the classification oracle layer.

Importance: Malformed oracle output must fail loudly instead of being coerced.
Alternatives: Trust LLM JSON and patch gaps downstream.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from ticketdesk.ai import AiProvider
from ticketdesk.errors import OracleFailure
from ticketdesk.models import Attachment, SupportCategory
from ticketdesk.oracle import (
    NO_PRIOR_CONTEXT,
    ClassificationRequest,
    LlmClassificationOracle,
    RuleBasedOracle,
    parse_classification,
    parse_image_analysis,
)
from ticketdesk.templates import DEFAULT_TEMPLATES


def _payload(**overrides: Any) -> dict[str, Any]:
    payload = {
        "category": "SUBSCRIPTION_MISSING_INFO",
        "confidence": 0.82,
        "should_auto_send": True,
        "reply_email": "Please send your UID.",
        "selected_template_id": "T1",
        "summary": "Paid via Stripe, no UID yet.",
        "extracted_metadata": {
            "user_id": "MISSING",
            "payment_method": "Stripe",
            "has_payment_proof": False,
            "is_info_complete": False,
            "missing_fields": ["user_id", "payment_proof"],
            "branch_path": ["SUBSCRIPTION", "missing_info"],
        },
    }
    payload.update(overrides)
    return payload


class _FakeProvider(AiProvider):
    def __init__(self, answer: str = "", error: Exception | None = None) -> None:
        self.answer = answer
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def generate_text(
        self,
        prompt: str,
        purpose: str,
        system: str = "",
        model: str | None = None,
        response_schema: dict[str, Any] | None = None,
    ) -> tuple[str, int]:
        self.calls.append(
            {"prompt": prompt, "purpose": purpose, "system": system, "model": model}
        )
        if self.error is not None:
            raise self.error
        return self.answer, 12


def test_parse_classification_accepts_complete_payload() -> None:
    """Summary: Verify a complete response becomes a typed result.

    Importance: Confirms the happy path of strict validation.
    Alternatives: Parse into plain dictionaries.
    """

    result = parse_classification(json.dumps(_payload()))
    assert result.category is SupportCategory.SUBSCRIPTION_MISSING_INFO
    assert result.metadata.payment_method == "Stripe"
    assert not result.metadata.has_user_id
    assert result.summary == "Paid via Stripe, no UID yet."


def test_parse_classification_strips_code_fences() -> None:
    text = "```json\n" + json.dumps(_payload()) + "\n```"
    assert parse_classification(text).selected_template_id == "T1"


@pytest.mark.parametrize(
    "payload",
    [
        {key: value for key, value in _payload().items() if key != "summary"},
        {key: value for key, value in _payload().items() if key != "extracted_metadata"},
        _payload(category="REFUND_REQUEST"),
        _payload(confidence=1.5),
        _payload(should_auto_send="yes"),
    ],
)
def test_parse_classification_rejects_malformed_payloads(payload: dict[str, Any]) -> None:
    """Summary: Verify missing or ill-typed fields raise OracleFailure.

    Importance: Bad output must fail like a transport error, never default.
    Alternatives: Fill in missing fields with defaults.
    """

    with pytest.raises(OracleFailure):
        parse_classification(json.dumps(payload))


def test_parse_classification_rejects_non_json() -> None:
    with pytest.raises(OracleFailure):
        parse_classification("I think this is a billing issue.")


def test_parse_image_analysis_requires_summary() -> None:
    analysis = parse_image_analysis(
        json.dumps(
            {
                "summary": "Stripe receipt",
                "detected_issues": [],
                "recommendation": "Verify payment",
                "extracted_uid": "882731",
            }
        )
    )
    assert analysis.extracted_uid == "882731"
    with pytest.raises(OracleFailure):
        parse_image_analysis(json.dumps({"detected_issues": []}))


def test_llm_oracle_builds_prompt_with_context() -> None:
    """Summary: Verify the prompt carries notes, templates, and the continuity marker.

    Importance: The LLM sees overrides and the previous thread summary.
    Alternatives: Send only the email body.
    """

    provider = _FakeProvider(json.dumps(_payload()))
    oracle = LlmClassificationOracle(provider, "gemini")
    request = ClassificationRequest(
        subject="I paid but no credits",
        body="Bought the plan via Stripe",
        agent_notes="[USER ID]: 123456",
        templates=list(DEFAULT_TEMPLATES),
        model_id="gemini-3-pro-preview",
    )
    result = asyncio.run(oracle.classify(request))
    assert result.category is SupportCategory.SUBSCRIPTION_MISSING_INFO
    call = provider.calls[0]
    assert call["model"] == "gemini-3-pro-preview"
    assert NO_PRIOR_CONTEXT in call["prompt"]
    assert "[USER ID]: 123456" in call["prompt"]
    assert "[T8] Verification Confirmed" in call["prompt"]
    assert "SUBSCRIPTION_VERIFIED" in call["system"]


def test_llm_oracle_wraps_provider_errors() -> None:
    oracle = LlmClassificationOracle(_FakeProvider(error=RuntimeError("timeout")), "gemini")
    request = ClassificationRequest(subject="s", body="b")
    with pytest.raises(OracleFailure, match="timeout"):
        asyncio.run(oracle.classify(request))


def test_llm_oracle_draft_from_notes_returns_text() -> None:
    provider = _FakeProvider("  Dear customer, your Pro status is active.  ")
    oracle = LlmClassificationOracle(provider, "gemini")
    reply = asyncio.run(oracle.draft_from_notes("No Pro status", "Backend investigation: fixed"))
    assert reply == "Dear customer, your Pro status is active."
    assert provider.calls[0]["purpose"] == "feedback_translation"


def test_rule_based_oracle_flags_missing_subscription_fields() -> None:
    """Summary: Verify the offline oracle lists missing mandatory fields.

    Importance: Incomplete payment tickets must route to information recovery.
    Alternatives: Always mark subscription tickets complete.
    """

    request = ClassificationRequest(
        subject="I paid but no credits",
        body="I bought the monthly plan via Stripe but my balance is 0.",
        templates=list(DEFAULT_TEMPLATES),
    )
    result = asyncio.run(RuleBasedOracle().classify(request))
    assert result.category is SupportCategory.SUBSCRIPTION_MISSING_INFO
    assert result.metadata.missing_fields == ["user_id", "payment_proof"]
    assert not result.metadata.is_info_complete
    assert result.selected_template_id == "T1"
    assert result.reply_email == DEFAULT_TEMPLATES[0].body


def test_rule_based_oracle_marks_complete_subscription_verified() -> None:
    request = ClassificationRequest(
        subject="Payment issue",
        body="My uid is 882731, I paid with PayPal.",
        attachments=[Attachment(id="a1", filename="receipt.png", mime_type="image/png")],
        previous_summary="Earlier: asked for UID",
        templates=list(DEFAULT_TEMPLATES),
    )
    result = asyncio.run(RuleBasedOracle().classify(request))
    assert result.category is SupportCategory.SUBSCRIPTION_VERIFIED
    assert result.metadata.is_info_complete
    assert result.metadata.user_id == "882731"
    assert result.metadata.payment_method == "PayPal"
    assert result.selected_template_id == "T8"
    assert result.summary.startswith("Earlier: asked for UID")


def test_rule_based_oracle_draft_from_notes_drops_internal_prefix() -> None:
    reply = asyncio.run(
        RuleBasedOracle().draft_from_notes("No Pro", "Backend investigation: Status fixed.")
    )
    assert "Backend investigation" not in reply
    assert "Status fixed." in reply
