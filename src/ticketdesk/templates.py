"""Summary: Reply template store and template selection.

Importance: Templates are the verbatim source of every non-free-form reply draft.
Alternatives: Store templates in JSON files outside the codebase.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace

from ticketdesk.errors import ValidationError
from ticketdesk.models import SupportCategory, Template, Ticket


logger = logging.getLogger(__name__)

AI_TEMPLATE_ID = "T7"

_SIGNATURE = "Best regards,\nMyShell Support Team"

DEFAULT_TEMPLATES: list[Template] = [
    Template(
        id="T1",
        name="Information Recovery",
        category=SupportCategory.SUBSCRIPTION_MISSING_INFO,
        rule_description=(
            "Use when a user asks about subscription/recharge issues but lacks full info "
            "(missing UID, payment method, or receipt)."
        ),
        body=(
            "Dear Customer,\n\nThank you for contacting MyShell.\n\n"
            "To investigate your transaction, we require the following missing details:\n\n"
            "- Your unique User ID\n"
            "- Payment platform used (e.g., Stripe/PayPal)\n"
            "- A clear screenshot of the receipt/confirmation\n\n"
            "Once provided, our team will manually verify and update your balance.\n\n"
            f"{_SIGNATURE}"
        ),
    ),
    Template(
        id="T2",
        name="NSFW Policy Notice",
        category=SupportCategory.NSFW_ISSUE,
        rule_description=(
            "Use when a user complains about NSFW content being locked or bots being limited "
            "after policy changes."
        ),
        body=(
            "Dear Customer,\n\nThank you for your inquiry. Please be advised that NSFW content "
            "and associated bots are now a Pro-exclusive feature.\n\n"
            "To unlock these capabilities, consider upgrading your account. We currently have a "
            "promotion: Use code UPGRADEPRO for 50% off yearly plans.\n\n"
            f"{_SIGNATURE}"
        ),
    ),
    Template(
        id="T3",
        name="Technical Diagnostics",
        category=SupportCategory.ACCOUNT_USAGE_ERROR,
        rule_description=(
            "Use for account-related technical bugs, 500 errors, or usage failures where we "
            "need the UID to check the backend."
        ),
        body=(
            "Dear Customer,\n\nWe are sorry to hear you're experiencing technical difficulties.\n\n"
            "We have logged this issue with our engineering team. To expedite the fix, please "
            "confirm:\n- Your UID\n- Your device OS version\n\n"
            "Expect a follow-up within 72 hours.\n\n"
            f"{_SIGNATURE}"
        ),
    ),
    Template(
        id="T4",
        name="Account Deletion Guide",
        category=SupportCategory.ACCOUNT_DELETION,
        rule_description="Use when a user explicitly requests to delete their account or personal data.",
        body=(
            "Dear Customer,\n\nYou can delete your account via My Profile > Settings > "
            "Delete Account.\n\nPlease note that this action is permanent and all data will be "
            "erased.\n\n"
            f"{_SIGNATURE}"
        ),
    ),
    Template(
        id="T5",
        name="Energy Consumption Explained",
        category=SupportCategory.BOT_POWER_ISSUE,
        rule_description="Use when a user complains about a bot consuming too much energy/power per task.",
        body=(
            "Dear Customer,\n\nOur power system is dynamic. Consumption is calculated post-task "
            "based on complexity.\n\nWe are working on detailed usage logs to improve "
            "transparency.\n\n"
            f"{_SIGNATURE}"
        ),
    ),
    Template(
        id="T6",
        name="Subscription Reminder",
        category=SupportCategory.POST_DELETION_BILLING,
        rule_description=(
            "Use when a user is still being charged by PayPal/Stripe after deleting their "
            "MyShell account."
        ),
        body=(
            "Dear Customer,\n\nNote that deleting your MyShell account does not automatically "
            "cancel third-party billing cycles (Stripe/PayPal).\n\n"
            "Please cancel your active subscription in your payment portal to prevent future "
            "charges.\n\n"
            f"{_SIGNATURE}"
        ),
    ),
    Template(
        id=AI_TEMPLATE_ID,
        name="AI INTELLIGENT REPLY",
        category=SupportCategory.OTHER,
        rule_description=(
            "DEFAULT: Use for general queries or when subscription info is already complete. "
            "Generate a smart context-aware reply."
        ),
        body="[AI CONTEXT-AWARE DRAFT]",
    ),
    Template(
        id="T8",
        name="Verification Confirmed",
        category=SupportCategory.SUBSCRIPTION_VERIFIED,
        rule_description=(
            "Use when a subscription/recharge issue already carries the UID, payment method, "
            "and payment proof."
        ),
        body=(
            "Dear Customer,\n\nThank you for providing the requested details.\n\n"
            "We have successfully verified your User ID, Payment Method, and Payment Proof. "
            "Your case has been escalated to our billing team for manual review and "
            "processing.\n\nPlease allow up to one week for us to complete this request. We "
            "will notify you as soon as it is resolved.\n\n"
            f"{_SIGNATURE}"
        ),
    ),
]

CATEGORY_TEMPLATE_IDS: dict[SupportCategory, str] = {
    SupportCategory.SUBSCRIPTION_MISSING_INFO: "T1",
    SupportCategory.NSFW_ISSUE: "T2",
    SupportCategory.ACCOUNT_USAGE_ERROR: "T3",
    SupportCategory.ACCOUNT_DELETION: "T4",
    SupportCategory.BOT_POWER_ISSUE: "T5",
    SupportCategory.POST_DELETION_BILLING: "T6",
    SupportCategory.OTHER: AI_TEMPLATE_ID,
    SupportCategory.SUBSCRIPTION_VERIFIED: "T8",
}


def recommended_template_id(category: SupportCategory | str | None) -> str:
    """Summary: Map a category to its default template id.

    Importance: Gives the operator a template default independent of the oracle's pick.
    Alternatives: Always trust the oracle's selected template id.
    """

    if category is None:
        return AI_TEMPLATE_ID
    try:
        return CATEGORY_TEMPLATE_IDS[SupportCategory(category)]
    except ValueError:
        return AI_TEMPLATE_ID


class TemplateStore:
    """Summary: Ordered, editable collection of reply templates.

    Importance: The oracle reads templates as context; operators maintain them.
    Alternatives: Hardcode templates in the prompt.
    """

    def __init__(self, templates: list[Template] | None = None) -> None:
        source = DEFAULT_TEMPLATES if templates is None else templates
        self._templates: list[Template] = list(source)

    def all(self) -> list[Template]:
        return list(self._templates)

    def get(self, template_id: str) -> Template:
        for template in self._templates:
            if template.id == template_id:
                return template
        raise KeyError(f"Template {template_id} not found")

    def add(
        self,
        name: str,
        body: str,
        rule_description: str = "",
        category: SupportCategory | None = None,
    ) -> Template:
        """Summary: Create a template with a generated id.

        Importance: Lets operators extend the reply catalogue.
        Alternatives: Require callers to supply ids.
        """

        _require_fields(name, body)
        suffix = str(int(time.time() * 1000))[-4:]
        template = Template(
            id=f"T{len(self._templates) + 1}_{suffix}",
            name=name,
            body=body,
            rule_description=rule_description,
            category=category,
        )
        self._templates.append(template)
        logger.info("Created template %s.", template.id)
        return template

    def edit(
        self,
        template_id: str,
        name: str,
        body: str,
        rule_description: str | None = None,
    ) -> Template:
        """Summary: Replace the editable fields of an existing template.

        Importance: Keeps template order and id stable across edits.
        Alternatives: Delete and recreate the template.
        """

        _require_fields(name, body)
        current = self.get(template_id)
        updated = replace(
            current,
            name=name,
            body=body,
            rule_description=current.rule_description if rule_description is None else rule_description,
        )
        self._templates = [updated if item.id == template_id else item for item in self._templates]
        logger.info("Updated template %s.", template_id)
        return updated


def select_template(ticket: Ticket, template_id: str, templates: list[Template]) -> str:
    """Summary: Produce the reply draft for a chosen template.

    Importance: Non-free-form templates are copied byte-for-byte with no interpolation.
    Alternatives: Let the oracle rewrite every template.
    """

    template = next((item for item in templates if item.id == template_id), None)
    if template is None:
        raise KeyError(f"Template {template_id} not found")
    if template.id == AI_TEMPLATE_ID:
        if ticket.classification is not None:
            return ticket.classification.reply_email
        return template.body
    return template.body


def _require_fields(name: str, body: str) -> None:
    if not name.strip() or not body.strip():
        raise ValidationError("Template name and body are required")
