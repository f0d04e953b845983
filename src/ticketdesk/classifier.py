"""Summary: Keyword-based support classification helpers.

Importance: Provides deterministic triage for offline runs and tests.
Alternatives: Use an LLM-based classifier for every ticket.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from ticketdesk.models import SupportCategory


DEFAULT_KEYWORDS: dict[SupportCategory, list[str]] = {
    SupportCategory.POST_DELETION_BILLING: [
        "deleted my account but",
        "still charged",
        "still being charged",
        "cancel subscription after delete",
    ],
    SupportCategory.ACCOUNT_DELETION: [
        "delete my account",
        "delete my data",
        "remove my data",
        "close my account",
        "gdpr",
    ],
    SupportCategory.NSFW_ISSUE: ["nsfw", "censor", "basic plan", "cant use bot", "can't use bot"],
    SupportCategory.BOT_POWER_ISSUE: ["energy", "power usage", "deducted", "consum"],
    SupportCategory.SUBSCRIPTION_MISSING_INFO: [
        "paid",
        "payment",
        "subscription",
        "recharge",
        "credits",
        "charged",
        "refund",
        "pro plan",
    ],
    SupportCategory.ACCOUNT_USAGE_ERROR: [
        "error",
        "bug",
        "not working",
        "not responding",
        "login failed",
        "rate limit",
    ],
}

_UID_PATTERN = re.compile(r"\b(?:uid|user id|user_id)\s*(?:is|:|#)?\s*(\d{4,})", re.IGNORECASE)
_NOTE_UID_PATTERN = re.compile(r"\[USER ID\]:\s*(\S+)")
_NOTE_METHOD_PATTERN = re.compile(r"\[PAYMENT METHOD\]:\s*(.+)")
_PAYMENT_PLATFORMS = ("stripe", "paypal", "apple pay", "google pay", "credit card")


@dataclass(frozen=True)
class RuleBasedClassifier:
    """Summary: Simple keyword-based support category classifier.

    Importance: Offers deterministic, fast categorization without AI.
    Alternatives: Use a supervised ML classifier or LLM-based categorizer.
    """

    keywords: dict[SupportCategory, list[str]] = field(default_factory=lambda: DEFAULT_KEYWORDS)

    def suggest(self, subject: str, body: str) -> SupportCategory:
        """Summary: Suggest a category based on keyword matches.

        Importance: Categories are checked in priority order, first hit wins.
        Alternatives: Score every category and pick the highest.
        """

        text = f"{subject} {body}".lower()
        for category, keywords in self.keywords.items():
            if any(keyword in text for keyword in keywords):
                return category
        return SupportCategory.OTHER


def extract_user_id(text: str) -> str | None:
    """Summary: Find a user id in free text or agent notes."""

    note_match = _NOTE_UID_PATTERN.search(text)
    if note_match:
        return note_match.group(1).strip()
    match = _UID_PATTERN.search(text)
    return match.group(1) if match else None


def extract_payment_method(text: str) -> str | None:
    note_match = _NOTE_METHOD_PATTERN.search(text)
    if note_match:
        return note_match.group(1).strip()
    lowered = text.lower()
    for platform in _PAYMENT_PLATFORMS:
        if platform in lowered:
            return platform.title().replace("Paypal", "PayPal")
    return None
