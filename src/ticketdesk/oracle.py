"""Summary: Classification oracle interface and implementations.

Importance: Turns ticket text into a strictly validated classification record.
Alternatives: Call the LLM inline from the triage engine and trust its JSON.
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from pydantic import BaseModel, Field, StrictBool, StrictStr
from pydantic import ValidationError as PydanticValidationError

from ticketdesk.ai import AiProvider, estimate_tokens
from ticketdesk.classifier import RuleBasedClassifier, extract_payment_method, extract_user_id
from ticketdesk.errors import OracleFailure
from ticketdesk.models import (
    Attachment,
    ClassificationResult,
    ImageAnalysis,
    SupportCategory,
    Template,
    TicketMetadata,
)
from ticketdesk.templates import AI_TEMPLATE_ID, recommended_template_id


logger = logging.getLogger(__name__)

NO_PRIOR_CONTEXT = "NO PRIOR CONTEXT"
SUBSCRIPTION_CATEGORIES = frozenset(
    {SupportCategory.SUBSCRIPTION_MISSING_INFO, SupportCategory.SUBSCRIPTION_VERIFIED}
)
MANDATORY_FIELDS = ("user_id", "payment_method", "payment_proof")

SYSTEM_INSTRUCTION = """
You are the triage engine for a customer support desk.
Classify the ticket into exactly one category and draft the reply.

Categories:
- SUBSCRIPTION_MISSING_INFO: payment or subscription problem where the user id, the payment
  method, or the payment proof is missing.
- SUBSCRIPTION_VERIFIED: payment or subscription problem with all three items present.
- NSFW_ISSUE: complaints about NSFW content or bots limited on the basic plan.
- ACCOUNT_USAGE_ERROR: error messages, bugs, login failures, features not working.
- ACCOUNT_DELETION: requests to delete the account or personal data.
- POST_DELETION_BILLING: still charged after deleting the account.
- BOT_POWER_ISSUE: complaints about energy or power deducted by bots.
- OTHER: anything else.

Agent notes are operator overrides: a value given there counts as PRESENT even when the
email text lacks it. Image attachments may count as payment proof.

Pick the template whose rule fits best and copy its body verbatim into reply_email.
For the free-form template write a context-aware reply instead.
Write a short rolling summary of the whole thread, continuing the previous summary if given.
Set should_auto_send to true only when confidence >= 0.75. Return JSON only.
""".strip()

CLASSIFICATION_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "category": {"type": "STRING", "enum": [item.value for item in SupportCategory]},
        "confidence": {"type": "NUMBER"},
        "should_auto_send": {"type": "BOOLEAN"},
        "reply_email": {"type": "STRING"},
        "reasoning_summary": {"type": "STRING"},
        "summary": {"type": "STRING"},
        "selected_template_id": {"type": "STRING"},
        "extracted_metadata": {
            "type": "OBJECT",
            "properties": {
                "user_id": {"type": "STRING"},
                "payment_method": {"type": "STRING"},
                "has_payment_proof": {"type": "BOOLEAN"},
                "is_info_complete": {"type": "BOOLEAN"},
                "missing_fields": {"type": "ARRAY", "items": {"type": "STRING"}},
                "branch_path": {"type": "ARRAY", "items": {"type": "STRING"}},
            },
            "required": ["has_payment_proof", "is_info_complete", "missing_fields", "branch_path"],
        },
    },
    "required": [
        "category",
        "confidence",
        "should_auto_send",
        "reply_email",
        "extracted_metadata",
        "selected_template_id",
        "summary",
    ],
}

IMAGE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "summary": {"type": "STRING"},
        "detected_issues": {"type": "ARRAY", "items": {"type": "STRING"}},
        "recommendation": {"type": "STRING"},
        "extracted_uid": {"type": "STRING"},
        "extracted_payment_platform": {"type": "STRING"},
    },
    "required": ["summary", "detected_issues", "recommendation"],
}

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$")


@dataclass(frozen=True)
class ClassificationRequest:
    """Summary: Everything the oracle needs to classify one ticket.

    Importance: Makes the oracle contract explicit and testable.
    Alternatives: Pass the whole ticket and let the oracle pick fields.
    """

    subject: str
    body: str
    attachments: list[Attachment] = field(default_factory=list)
    previous_summary: str | None = None
    agent_notes: str = ""
    templates: list[Template] = field(default_factory=list)
    model_id: str | None = None


class MetadataPayload(BaseModel):
    """Summary: Validation schema for extracted metadata."""

    user_id: StrictStr | None = None
    payment_method: StrictStr | None = None
    has_payment_proof: StrictBool
    is_info_complete: StrictBool
    missing_fields: list[StrictStr]
    branch_path: list[StrictStr]


class ClassificationPayload(BaseModel):
    """Summary: Validation schema for the oracle's classification JSON.

    Importance: Responses missing required fields are rejected, never coerced.
    Alternatives: Fill gaps with default values.
    """

    category: SupportCategory
    confidence: float = Field(ge=0.0, le=1.0)
    should_auto_send: StrictBool
    reply_email: StrictStr
    extracted_metadata: MetadataPayload
    selected_template_id: StrictStr
    summary: StrictStr
    reasoning_summary: StrictStr = ""


class ImagePayload(BaseModel):
    summary: StrictStr
    detected_issues: list[StrictStr]
    recommendation: StrictStr
    extracted_uid: StrictStr | None = None
    extracted_payment_platform: StrictStr | None = None


class ClassificationOracle(ABC):
    """Summary: Abstract interface for the classification oracle.

    Importance: Lets the triage engine run against real LLMs or test doubles.
    Alternatives: Use a module-level singleton client.
    """

    @abstractmethod
    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        """Summary: Classify one ticket and draft its reply."""

    @abstractmethod
    async def classify_image(
        self, image: bytes, mime_type: str, context: str, model_id: str | None = None
    ) -> ImageAnalysis:
        """Summary: Inspect an image attachment for payment or error evidence."""

    @abstractmethod
    async def draft_from_notes(
        self, subject: str, backend_notes: str, model_id: str | None = None
    ) -> str:
        """Summary: Turn an internal investigation note into a customer reply."""


def parse_classification(text: str) -> ClassificationResult:
    """Summary: Validate raw oracle output into a ClassificationResult.

    Importance: Malformed output fails exactly like a transport error.
    Alternatives: Substitute a default OTHER classification.
    """

    cleaned = _strip_fences(text)
    try:
        payload = ClassificationPayload.model_validate_json(cleaned)
    except PydanticValidationError as exc:
        raise OracleFailure(f"Malformed classification response: {exc.error_count()} errors") from exc
    metadata = payload.extracted_metadata
    return ClassificationResult(
        category=payload.category,
        confidence=payload.confidence,
        should_auto_send=payload.should_auto_send,
        reply_email=payload.reply_email,
        selected_template_id=payload.selected_template_id,
        summary=payload.summary,
        reasoning_summary=payload.reasoning_summary,
        metadata=TicketMetadata(
            user_id=metadata.user_id,
            payment_method=metadata.payment_method,
            has_payment_proof=metadata.has_payment_proof,
            is_info_complete=metadata.is_info_complete,
            missing_fields=list(metadata.missing_fields),
            branch_path=list(metadata.branch_path),
        ),
    )


def parse_image_analysis(text: str) -> ImageAnalysis:
    try:
        payload = ImagePayload.model_validate_json(_strip_fences(text))
    except PydanticValidationError as exc:
        raise OracleFailure(f"Malformed image analysis response: {exc.error_count()} errors") from exc
    return ImageAnalysis(
        summary=payload.summary,
        detected_issues=list(payload.detected_issues),
        recommendation=payload.recommendation,
        extracted_uid=payload.extracted_uid,
        extracted_payment_platform=payload.extracted_payment_platform,
    )


def build_classification_prompt(request: ClassificationRequest) -> str:
    """Summary: Render the classification prompt for an LLM.

    Importance: Keeps subject, notes, context, and templates in one consistent layout.
    Alternatives: Send a chat transcript with one message per field.
    """

    attachments = ", ".join(
        f"{item.filename} ({item.mime_type})" for item in request.attachments
    ) or "None"
    templates = "\n\n".join(
        f"[{item.id}] {item.name}\nRule: {item.rule_description}\nBody:\n{item.body}"
        for item in request.templates
    )
    return (
        "TICKET ANALYSIS TASK\n\n"
        f"SUBJECT: {request.subject}\n"
        f"BODY: {request.body}\n"
        f"ATTACHMENTS: {attachments}\n"
        f"AGENT_NOTES_OVERRIDE: {request.agent_notes or 'None'}\n"
        f"PREVIOUS_SUMMARY: {request.previous_summary or NO_PRIOR_CONTEXT}\n\n"
        f"AVAILABLE TEMPLATES (free-form template id: {AI_TEMPLATE_ID}):\n{templates}\n"
    )


class LlmClassificationOracle(ClassificationOracle):
    """Summary: Oracle backed by an AI provider with JSON output.

    Importance: Production oracle for Gemini, OpenAI, or Ollama.
    Alternatives: Use a fine-tuned classifier model.
    """

    def __init__(self, provider: AiProvider, provider_name: str) -> None:
        self._provider = provider
        self._provider_name = provider_name

    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        prompt = build_classification_prompt(request)
        text = await self._call(
            self._provider.generate_text,
            prompt,
            "classification",
            SYSTEM_INSTRUCTION,
            request.model_id,
            CLASSIFICATION_SCHEMA,
        )
        return parse_classification(text)

    async def classify_image(
        self, image: bytes, mime_type: str, context: str, model_id: str | None = None
    ) -> ImageAnalysis:
        prompt = (
            "Analyze this support attachment. Extract the user id, transaction id, payment "
            f"platform (Stripe/PayPal), and status. Context: {context}"
        )
        text = await self._call(
            self._provider.describe_image, image, mime_type, prompt, model_id, IMAGE_SCHEMA
        )
        return parse_image_analysis(text)

    async def draft_from_notes(
        self, subject: str, backend_notes: str, model_id: str | None = None
    ) -> str:
        prompt = (
            "Rewrite the internal investigation note below as a polite, professional reply to "
            "the customer. Do not mention internal systems or promise refunds.\n\n"
            f"Ticket subject: {subject}\n"
            f"Internal note: {backend_notes}\n"
        )
        text = await self._call(
            self._provider.generate_text, prompt, "feedback_translation", "", model_id, None
        )
        if not text.strip():
            raise OracleFailure("Empty reply from oracle")
        return text.strip()

    async def _call(self, func, *args) -> str:
        try:
            text, latency_ms = await asyncio.to_thread(func, *args)
        except (
            RuntimeError,
            OSError,
            NotImplementedError,
            KeyError,
            IndexError,
            ValueError,
        ) as exc:
            raise OracleFailure(str(exc)) from exc
        logger.info(
            "Oracle %s answered in %s ms (~%s tokens).",
            self._provider_name,
            latency_ms,
            estimate_tokens(text),
        )
        return text


class RuleBasedOracle(ClassificationOracle):
    """Summary: Deterministic oracle built on keyword rules.

    Importance: Enables offline demos and repeatable tests without an LLM.
    Alternatives: Use fixture-based responses loaded from files.
    """

    def __init__(self, classifier: RuleBasedClassifier | None = None) -> None:
        self._classifier = classifier or RuleBasedClassifier()

    async def classify(self, request: ClassificationRequest) -> ClassificationResult:
        text = f"{request.body}\n{request.agent_notes}"
        category = self._classifier.suggest(request.subject, text)
        branch_path = [category.value]
        user_id = extract_user_id(text)
        payment_method = extract_payment_method(text)
        has_proof = any(item.is_image for item in request.attachments) or _mentions_proof(
            request.agent_notes
        )
        missing: list[str] = []
        is_complete = False
        if category in SUBSCRIPTION_CATEGORIES:
            present = {
                "user_id": user_id is not None,
                "payment_method": payment_method is not None,
                "payment_proof": has_proof,
            }
            missing = [name for name in MANDATORY_FIELDS if not present[name]]
            is_complete = not missing
            category = (
                SupportCategory.SUBSCRIPTION_VERIFIED
                if is_complete
                else SupportCategory.SUBSCRIPTION_MISSING_INFO
            )
            branch_path.append("complete" if is_complete else "missing_info")
        template_id = recommended_template_id(category)
        confidence = 0.8 if category is SupportCategory.SUBSCRIPTION_VERIFIED else 0.6
        if category is SupportCategory.OTHER:
            confidence = 0.3
        summary = f"[{category.value}] {request.subject}"
        if request.previous_summary:
            summary = f"{request.previous_summary}\n{summary}"
        return ClassificationResult(
            category=category,
            confidence=confidence,
            should_auto_send=confidence >= 0.75,
            reply_email=self._reply_for(template_id, request),
            selected_template_id=template_id,
            summary=summary,
            reasoning_summary=f"Keyword match on branch {' > '.join(branch_path)}",
            metadata=TicketMetadata(
                user_id=user_id or "MISSING",
                payment_method=payment_method or "MISSING",
                has_payment_proof=has_proof,
                is_info_complete=is_complete,
                missing_fields=missing,
                branch_path=branch_path,
            ),
        )

    async def classify_image(
        self, image: bytes, mime_type: str, context: str, model_id: str | None = None
    ) -> ImageAnalysis:
        return ImageAnalysis(
            summary=f"{mime_type} attachment of {len(image)} bytes",
            detected_issues=[],
            recommendation="Review the attachment manually.",
            extracted_uid=extract_user_id(context),
            extracted_payment_platform=extract_payment_method(context),
        )

    async def draft_from_notes(
        self, subject: str, backend_notes: str, model_id: str | None = None
    ) -> str:
        note = re.sub(r"^\s*backend investigation:\s*", "", backend_notes, flags=re.IGNORECASE)
        return (
            "Dear Customer,\n\n"
            f"Thank you for your patience regarding \"{subject}\".\n\n"
            f"Our team has looked into your case. {note.strip()}\n\n"
            "Best regards,\nSupport Team"
        )

    def _reply_for(self, template_id: str, request: ClassificationRequest) -> str:
        template = next((item for item in request.templates if item.id == template_id), None)
        if template is not None and template.id != AI_TEMPLATE_ID:
            return template.body
        return (
            "Dear Customer,\n\n"
            f"Thank you for contacting us about \"{request.subject}\". "
            "We are looking into your request and will follow up shortly.\n\n"
            "Best regards,\nSupport Team"
        )


def _mentions_proof(notes: str) -> bool:
    lowered = notes.lower()
    return any(word in lowered for word in ("proof", "receipt", "screenshot"))


def _strip_fences(text: str) -> str:
    return _FENCE_PATTERN.sub("", text.strip()).strip()
