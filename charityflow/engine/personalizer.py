"""Content personalization.

Merges member and context variables into a stored template:
    - member_name: "first last"
    - first_name
    - member_tier: tier value, e.g. "gold"
    - organization_name: from configuration
    - tier_message: fixed per-tier line (empty for unknown tiers)

Context entries override the built-ins on key collision. Placeholders with
no value are left verbatim. A missing template yields empty strings; the
caller logs and continues.

Usage:
    from charityflow.engine.personalizer import ContentPersonalizer

    personalizer = ContentPersonalizer(TemplateStore(), organization_name="CCOS")
    rendered = personalizer.personalize("reengagement_gentle", member, {})
"""

from typing import Any, Mapping, Optional

from charityflow.core.config import DEFAULT_ORGANIZATION_NAME
from charityflow.core.logging import get_logger
from charityflow.db.models import Member, MembershipTier, RenderedContent
from charityflow.engine.templates import TemplateStore, render_text

logger = get_logger(__name__)


TIER_MESSAGES: dict[str, str] = {
    MembershipTier.BRONZE.value: "Thank you for being part of our community!",
    MembershipTier.SILVER.value: "Your continued support makes a real difference!",
    MembershipTier.GOLD.value: "Your generous contributions are changing lives!",
    MembershipTier.PLATINUM.value: "Your extraordinary support is transforming our mission!",
}


def tier_message(tier: Any) -> str:
    """Per-tier line used for {{tier_message}}; empty for unknown tiers."""
    key = tier.value if isinstance(tier, MembershipTier) else str(tier)
    return TIER_MESSAGES.get(key, "")


class ContentPersonalizer:
    """Render stored templates for one member."""

    def __init__(
        self,
        templates: TemplateStore,
        organization_name: str = DEFAULT_ORGANIZATION_NAME,
    ):
        self.templates = templates
        self.organization_name = organization_name

    def member_variables(self, member: Member) -> dict[str, Any]:
        """Built-in variables derived from a member."""
        return {
            "member_name": f"{member.first_name} {member.last_name}",
            "first_name": member.first_name,
            "member_tier": member.tier,
            "organization_name": self.organization_name,
            "tier_message": tier_message(member.tier),
        }

    def personalize(
        self,
        template_id: str,
        member: Member,
        context: Optional[Mapping[str, Any]] = None,
    ) -> RenderedContent:
        """Render a stored template for a member.

        Args:
            template_id: Template to render
            member: Recipient
            context: Extra variables, overriding built-ins

        Returns:
            Rendered subject and content, both empty if the template is missing
        """
        template = self.templates.find(template_id)
        if template is None:
            logger.warning(
                f"Template not found: {template_id}",
                extra={"context": {"template": template_id, "member_id": member.id}},
            )
            return RenderedContent()

        variables = self.member_variables(member)
        if context:
            variables.update(context)

        return RenderedContent(
            subject=render_text(template.subject, variables),
            content=render_text(template.content, variables),
        )

    def render(
        self,
        template_id: str,
        member: Member,
        context: Optional[Mapping[str, Any]] = None,
    ) -> RenderedContent:
        """Render a template that must exist.

        Raises:
            TemplateNotFoundError: If no template has that id
        """
        self.templates.get(template_id)
        return self.personalize(template_id, member, context)

    def personalize_text(
        self,
        subject: str,
        content: str,
        variables: Mapping[str, Any],
    ) -> RenderedContent:
        """Render caller-supplied subject/content (no template lookup)."""
        return RenderedContent(
            subject=render_text(subject, variables),
            content=render_text(content, variables),
        )
