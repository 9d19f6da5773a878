"""Campaign email rendering with Jinja2 templates."""

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from engagement_service.config import CampaignConfig
from engagement_service.infrastructure.database.models import CampaignType
from engagement_service.notifications.email_sender import EmailMessage
from engagement_service.services.segment_resolver import AudienceEntry
from shared.constants import DEFAULT_GREETING_NAME

TEMPLATES_DIR = Path(__file__).parent / "templates"

SUBJECTS = {
    CampaignType.ABANDONED_CART: "🛒 Don't Miss Out! Your Cart is Waiting - {discount}% OFF Inside!",
    CampaignType.FREQUENT_VIEWER: "🌟 Special Offer Just for You!",
    CampaignType.PURCHASE_CONFIRMATION: "✅ Thank you for your order!",
}

CTA_PATHS = {
    CampaignType.ABANDONED_CART: "/cart",
    CampaignType.FREQUENT_VIEWER: "/product/{product_id}",
    CampaignType.PURCHASE_CONFIRMATION: "/user-orders",
}


def format_price(amount: float) -> str:
    return f"${amount:,.2f}"


class CampaignRenderer:
    """Renders subject, plain text and HTML for one audience entry."""

    def __init__(self, config: CampaignConfig, templates_dir: Path = TEMPLATES_DIR):
        self.config = config
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def context(self, entry: AudienceEntry) -> dict:
        discount = self.config.discount_percent
        discounted = entry.product_price * (1 - discount / 100)
        cta_path = CTA_PATHS[entry.campaign].format(product_id=entry.product_id or "")
        return {
            "subject": self.subject(entry.campaign),
            "greeting_name": entry.username or DEFAULT_GREETING_NAME,
            "product_name": entry.product_name,
            "product_image": entry.product_image,
            "product_description": entry.product_description,
            "original_price": format_price(entry.product_price),
            "discounted_price": format_price(discounted),
            "discount_percent": discount,
            "view_count": entry.view_count,
            "cta_url": self.config.store_url.rstrip("/") + cta_path,
            "from_name": self.config.from_name,
        }

    def subject(self, campaign: CampaignType) -> str:
        return SUBJECTS[campaign].format(discount=self.config.discount_percent)

    def render(self, entry: AudienceEntry) -> EmailMessage:
        context = self.context(entry)
        name = entry.campaign.value
        return EmailMessage(
            to=entry.email,
            from_email=self.config.from_email,
            from_name=self.config.from_name,
            subject=context["subject"],
            text=self.env.get_template(f"{name}.txt").render(context).strip(),
            html=self.env.get_template(f"{name}.html").render(context),
            metadata={
                "campaign": name,
                "user_id": entry.user_id,
                "product_id": entry.product_id,
            },
        )
