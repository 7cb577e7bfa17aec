"""Message template store using Jinja2.

Templates are plain strings with {{variable}} placeholders. Only plain
identifier placeholders are substituted; each one is evaluated on its own
through a sandboxed Jinja2 environment. Placeholders without a value, and
anything that is not a plain identifier ({{promo-code}}, {{event.name}},
a stray "{{"), are left exactly as written.

Built-in templates cover every id referenced by the workflow tables
(newsletter, behavioral sequences, re-engagement, drip campaigns,
acknowledgment, onboarding and events). Hosts may register more.

Usage:
    from charityflow.engine.templates import TemplateStore, render_text

    store = TemplateStore()
    template = store.get("reengagement_gentle")
    text = render_text(template.subject, {"member_name": "Ada Lovelace"})
"""

import re
import threading
from dataclasses import replace
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Mapping, Optional

from jinja2.sandbox import ImmutableSandboxedEnvironment

from charityflow.core.exceptions import TemplateNotFoundError, ValidationError
from charityflow.core.logging import get_logger
from charityflow.db.models import Channel, CommunicationTemplate

logger = get_logger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

_env = ImmutableSandboxedEnvironment(autoescape=False, keep_trailing_newline=True)


@lru_cache(maxsize=256)
def _expression(name: str) -> Callable[..., Any]:
    return _env.compile_expression(name, undefined_to_none=False)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def render_text(text: str, variables: Mapping[str, Any]) -> str:
    """Substitute {{key}} placeholders in text.

    Every placeholder whose key has a value is replaced, everywhere it
    occurs. The rest of the text, including placeholders without a value,
    is returned untouched.

    Args:
        text: Template text
        variables: Values to merge; enums are rendered by value

    Returns:
        Rendered text
    """
    if "{{" not in text:
        return text

    values = {k: _plain(v) for k, v in variables.items()}

    def substitute(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name not in values:
            return match.group(0)
        return str(_expression(name)(**{name: values[name]}))

    return PLACEHOLDER_PATTERN.sub(substitute, text)


def find_variables(text: str) -> set[str]:
    """Names of placeholders used in text."""
    return set(PLACEHOLDER_PATTERN.findall(text))


def _builtin(
    template_id: str,
    name: str,
    subject: str,
    content: str,
    category: str,
    channel: Channel = Channel.EMAIL,
) -> CommunicationTemplate:
    return CommunicationTemplate(
        id=template_id,
        name=name,
        subject=subject,
        content=content,
        type=channel,
        category=category,
    )


BUILTIN_TEMPLATES: tuple[CommunicationTemplate, ...] = (
    # Newsletter
    _builtin(
        "newsletter_general",
        "General Newsletter",
        "{{organization_name}} Monthly Update - {{month_year}}",
        "{{organization_name}} Newsletter\n\n"
        "Dear {{member_name}},\n\n"
        "{{tier_message}}\n\n"
        "{{newsletter_body}}\n\n"
        "Thank you for being a valued {{member_tier}} member!\n\n"
        "Best regards,\nThe {{organization_name}} Team\n",
        "newsletter",
    ),
    # Behavioral
    _builtin(
        "behavioral_donation_followup",
        "Post-Donation Follow-up",
        "Your impact matters, {{member_name}}",
        "Dear {{member_name}},\n\n"
        "Thank you so much for your recent donation of ${{donation_amount}}!\n\n"
        "{{impact_message}}\n\n"
        "Your generosity is making a real difference in our community.\n",
        "behavioral",
    ),
    _builtin(
        "donation_thank_you",
        "Donation Thank You",
        "Thank you, {{first_name}}!",
        "Dear {{member_name}},\n\n"
        "Thank you for your gift to {{organization_name}}. "
        "Your support keeps our programs running.\n",
        "behavioral",
    ),
    _builtin(
        "impact_story",
        "Impact Story",
        "See what your gift made possible",
        "Hi {{first_name}},\n\n"
        "Here is a story from the people your donation reached this month.\n",
        "behavioral",
    ),
    _builtin(
        "community_spotlight",
        "Community Spotlight",
        "Meet the {{organization_name}} community",
        "Hi {{first_name}},\n\n"
        "This week we are shining a light on the volunteers and donors "
        "who make our work possible.\n",
        "behavioral",
    ),
    _builtin(
        "registration_confirmation",
        "Registration Confirmation",
        "You're registered, {{first_name}}!",
        "Hi {{first_name}},\n\nYour registration is confirmed. We look forward to seeing you.\n",
        "behavioral",
    ),
    _builtin(
        "event_reminder_week",
        "Event Reminder (1 week)",
        "One week to go!",
        "Hi {{first_name}},\n\nA friendly reminder that your event is one week away.\n",
        "behavioral",
    ),
    _builtin(
        "event_reminder_day",
        "Event Reminder (1 day)",
        "See you tomorrow!",
        "Hi {{first_name}},\n\nYour event is tomorrow. We can't wait to see you.\n",
        "behavioral",
    ),
    # Re-engagement
    _builtin(
        "reengagement_gentle",
        "Gentle Re-engagement",
        "We miss you, {{member_name}}!",
        "Hi {{member_name}},\n\n"
        "We noticed you haven't been as active lately, and we wanted to reach "
        "out because we miss you!\n\n"
        "Your support means everything to our mission, and we'd love to have "
        "you back in our community.\n",
        "re-engagement",
    ),
    _builtin(
        "reengagement_update",
        "Re-engagement Update",
        "Here's what you've missed",
        "Hi {{first_name}},\n\nHere's what's been happening at {{organization_name}}.\n",
        "re-engagement",
    ),
    _builtin(
        "reengagement_special_offer",
        "Re-engagement Special Offer",
        "Exclusive invitation for you",
        "Hi {{first_name}},\n\nAs a valued {{member_tier}} member you're invited to "
        "an exclusive supporter gathering.\n",
        "re-engagement",
    ),
    _builtin(
        "reengagement_value",
        "Membership Value",
        "Your membership matters",
        "Dear {{member_name}},\n\n"
        "Your membership with {{organization_name}} is valuable to us and to "
        "the community we serve together.\n",
        "re-engagement",
    ),
    _builtin(
        "reengagement_success_stories",
        "Success Stories",
        "Amazing things happening",
        "Hi {{first_name}},\n\nHere are a few of the successes our members made possible.\n",
        "re-engagement",
    ),
    _builtin(
        "reengagement_last_chance",
        "Last Chance",
        "Don't miss out",
        "Hi {{first_name}},\n\nWe'd hate for you to miss what's coming up next.\n",
        "re-engagement",
    ),
    _builtin(
        "reengagement_simple",
        "Quick Check-in",
        "Quick check-in",
        "Hi {{first_name}},\n\nJust checking in. Is there anything we can do for you?\n",
        "re-engagement",
    ),
    _builtin(
        "reengagement_benefits",
        "Benefits Reminder",
        "Member benefits reminder",
        "Hi {{first_name}},\n\nA reminder of the benefits that come with your "
        "{{member_tier}} membership.\n",
        "re-engagement",
    ),
    # Drip: new member onboarding
    _builtin(
        "welcome",
        "Welcome",
        "Welcome to {{organization_name}}, {{first_name}}!",
        "Hi {{first_name}},\n\nWelcome aboard! We're glad you joined us.\n",
        "drip",
    ),
    _builtin(
        "getting_started",
        "Getting Started",
        "Getting started with your membership",
        "Hi {{first_name}},\n\nHere are three easy ways to get involved this month.\n",
        "drip",
    ),
    _builtin(
        "community_intro",
        "Community Introduction",
        "Meet your community",
        "Hi {{first_name}},\n\nLet us introduce you to the people behind {{organization_name}}.\n",
        "drip",
    ),
    _builtin(
        "first_donation_prompt",
        "First Donation Prompt",
        "Make your first gift count",
        "Hi {{first_name}},\n\nEvery gift, large or small, helps us reach more people.\n",
        "drip",
    ),
    _builtin(
        "event_invitation",
        "Event Invitation",
        "You're invited!",
        "Hi {{first_name}},\n\nJoin us at our next community event.\n",
        "drip",
    ),
    _builtin(
        "onboarding_complete",
        "Onboarding Complete",
        "Your first month with us",
        "Hi {{first_name}},\n\nThank you for a wonderful first month as a member.\n",
        "drip",
    ),
    # Drip: donor stewardship
    _builtin(
        "donation_thanks",
        "Stewardship Thanks",
        "Thank you for giving, {{first_name}}",
        "Dear {{member_name}},\n\nYour gift has been received with gratitude.\n",
        "drip",
    ),
    _builtin(
        "impact_report",
        "Impact Report",
        "Your impact report",
        "Hi {{first_name}},\n\nHere's how your support has been put to work.\n",
        "drip",
    ),
    _builtin(
        "community_update",
        "Community Update",
        "News from {{organization_name}}",
        "Hi {{first_name}},\n\nA quick update on what the community has been up to.\n",
        "drip",
    ),
    _builtin(
        "giving_opportunity",
        "Giving Opportunity",
        "A new way to make a difference",
        "Hi {{first_name}},\n\nThere's a new opportunity to deepen your impact as a "
        "{{member_tier}} member.\n",
        "drip",
    ),
    _builtin(
        "quarterly_summary",
        "Quarterly Summary",
        "Your quarter with {{organization_name}}",
        "Hi {{first_name}},\n\nHere's a summary of everything you helped accomplish "
        "this quarter.\n",
        "drip",
    ),
    # Donation acknowledgment
    _builtin(
        "acknowledgment_thank_you",
        "Donation Acknowledgment",
        "Thank you for your generous donation, {{first_name}}!",
        "Thank You, {{first_name}}!\n\n"
        "Amount: ${{donation_amount}}\n"
        "Designation: {{designation}}\n"
        "Date: {{donation_date}}\n"
        "{{recurring_line}}\n"
        "Your Impact\n{{impact_message}}\n\n"
        "View your giving history: {{portal_url}}\n\n"
        "{{organization_name}} is a registered 501(c)(3) nonprofit organization.\n"
        "Tax ID: {{tax_id}}\n",
        "acknowledgment",
    ),
    _builtin(
        "tax_receipt",
        "Tax Receipt",
        "Tax Receipt - {{receipt_number}}",
        "{{organization_name}}\nOfficial Tax Receipt\n\n"
        "Receipt #{{receipt_number}}\n"
        "Donor: {{member_name}}\n"
        "Email: {{member_email}}\n"
        "Date of Gift: {{donation_date}}\n"
        "Amount: ${{donation_amount}}\n"
        "Designation: {{designation}}\n\n"
        "No goods or services were provided in exchange for this contribution. "
        "Please retain this receipt for your tax records.\n\n"
        "Tax ID: {{tax_id}}\n",
        "acknowledgment",
    ),
    _builtin(
        "tier_upgrade_celebration",
        "Tier Upgrade Celebration",
        "Congratulations! You've been upgraded to {{new_tier_title}}",
        "Congratulations, {{first_name}}!\n\n"
        "You've been upgraded to {{new_tier_title}} status!\n\n"
        "Your New Benefits\n{{tier_benefits}}\n\n"
        "Thank you for your continued support!\n",
        "acknowledgment",
    ),
    _builtin(
        "impact_update",
        "Impact Update",
        "Your Impact in Action: {{designation}}",
        "Hi {{first_name}},\n\n"
        "See how your donation to {{designation}} is making a difference.\n\n"
        "{{impact_message}}\n",
        "acknowledgment",
    ),
    _builtin(
        "donor_recognition",
        "Donor Recognition",
        "With gratitude from {{organization_name}}",
        "Dear {{member_name}},\n\n"
        "Your gift of ${{donation_amount}} places you among our most generous "
        "supporters, and we'd like to recognize you.\n",
        "acknowledgment",
    ),
    # Member onboarding
    _builtin(
        "member_welcome",
        "Member Welcome",
        "Welcome to {{organization_name}}, {{first_name}}!",
        "Dear {{first_name}},\n\n"
        "Welcome to {{organization_name}}! We're thrilled to have you as a "
        "{{member_tier}} member.\n\n"
        "Access your member portal: {{portal_url}}\n",
        "onboarding",
    ),
    _builtin(
        "tier_introduction",
        "Tier Introduction",
        "Your {{member_tier}} membership benefits",
        "Hi {{first_name}},\n\nAs a {{member_tier}} member you enjoy:\n{{tier_benefits}}\n",
        "onboarding",
    ),
    _builtin(
        "portal_guide",
        "Portal Guide",
        "Getting the most from your member portal",
        "Hi {{first_name}},\n\n"
        "From your portal you can update your profile, track donations and "
        "register for events.\n\nExplore your portal now: {{portal_url}}\n",
        "onboarding",
    ),
    # Events
    _builtin(
        "event_registration_confirmation",
        "Event Registration Confirmation",
        "Registration Confirmed: {{event_name}}",
        "Hi {{first_name}},\n\n"
        "You're registered for {{event_name}}.\n\n"
        "Date: {{event_date}}\n"
        "Location: {{event_location}}\n"
        "Registration ID: {{registration_id}}\n",
        "event",
    ),
    _builtin(
        "event_waitlist",
        "Event Waitlist",
        "You're on the waitlist for {{event_name}}",
        "Hi {{first_name}},\n\n"
        "{{event_name}} is currently full. You're on the waitlist and we'll "
        "let you know as soon as a spot opens up.\n",
        "event",
    ),
    _builtin(
        "event_reminder",
        "Event Reminder",
        "Reminder: {{event_name}} is {{time_frame}}",
        "Hi {{first_name}},\n\n"
        "Just a friendly reminder that {{event_name}} is {{time_frame}}.\n\n"
        "When: {{event_date}}\n"
        "Where: {{event_location}}\n",
        "event",
    ),
    _builtin(
        "event_thank_you",
        "Event Thank You",
        "Thank you for joining us at {{event_name}}",
        "Hi {{first_name}},\n\n"
        "Thank you for being part of {{event_name}}. Events like this one only "
        "happen because members like you show up.\n",
        "event",
    ),
    _builtin(
        "event_digest",
        "Event Digest",
        "{{event_name}}: highlights and what's next",
        "Hi {{first_name}},\n\n"
        "Here are the highlights from {{event_name}} and a look at upcoming "
        "events: {{portal_url}}\n",
        "event",
    ),
    _builtin(
        "event_check_in",
        "Event Check-in",
        "Welcome to {{event_name}}!",
        "Hi {{first_name}},\n\nYou're checked in. Enjoy {{event_name}}!\n",
        "event",
    ),
    _builtin(
        "event_post_survey",
        "Post-event Survey",
        "How was {{event_name}}?",
        "Hi {{first_name}},\n\n"
        "Thank you for attending {{event_name}}. Please take two minutes to "
        "tell us how it went: {{survey_url}}\n",
        "event",
    ),
    _builtin(
        "event_staff_notification",
        "Event Staff Notification",
        "{{notification_type}}: {{event_name}}",
        "Member {{member_name}} ({{member_email}}) - {{notification_type}} for "
        "{{event_name}}.\nRegistration ID: {{registration_id}}\n",
        "staff",
    ),
    _builtin(
        "event_capacity_alert",
        "Event Capacity Alert",
        "Capacity Alert: {{event_name}} is {{threshold}}% full",
        "Event {{event_name}} has reached {{threshold}}% capacity ({{capacity_percentage}}%)\n",
        "staff",
    ),
)


class TemplateStore:
    """Registry of immutable templates keyed by id.

    Read-only after initialization in normal use; register() takes a lock so
    hosts can add templates at startup from several threads.
    """

    def __init__(self, include_builtins: bool = True):
        self._lock = threading.Lock()
        self._templates: dict[str, CommunicationTemplate] = {}
        if include_builtins:
            for template in BUILTIN_TEMPLATES:
                self.register(template)

    def register(self, template: CommunicationTemplate) -> CommunicationTemplate:
        """Register a template.

        Args:
            template: Template to add; variables are derived when empty

        Returns:
            The stored template

        Raises:
            ValidationError: If a template with the same id exists
        """
        if not template.variables:
            names = find_variables(template.subject) | find_variables(template.content)
            template = replace(template, variables=tuple(sorted(names)))

        with self._lock:
            if template.id in self._templates:
                raise ValidationError(f"Template '{template.id}' is already registered")
            self._templates[template.id] = template

        logger.debug(
            f"Registered template: {template.id}",
            extra={"context": {"template": template.id, "category": template.category}},
        )
        return template

    def find(self, template_id: str) -> Optional[CommunicationTemplate]:
        """Get template by id, None if absent."""
        return self._templates.get(template_id)

    def get(self, template_id: str) -> CommunicationTemplate:
        """Get template by id.

        Raises:
            TemplateNotFoundError: If no template has that id
        """
        template = self._templates.get(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        return template

    def list_ids(self) -> list[str]:
        return sorted(self._templates)

    def variables_for(self, template_id: str) -> tuple[str, ...]:
        return self.get(template_id).variables

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._templates

    def __len__(self) -> int:
        return len(self._templates)
