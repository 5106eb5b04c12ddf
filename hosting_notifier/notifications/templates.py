"""Message rendering.

Stored templates use ``{{key}}`` placeholders that are filled by plain
find/replace: every variable value is HTML-escaped except the few keys that
already hold rendered HTML. Placeholders without a variable stay in the
output untouched.

The built-in messages (expiry notice used when a rule has no template, and
the test message) are Jinja2 templates shipped in ``email_templates/``.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Tuple

from jinja2 import (
    Environment,
    PackageLoader,
    StrictUndefined,
    TemplateError,
    select_autoescape,
)
from markupsafe import escape

from hosting_notifier.domain.models import CompanyInfo, NotifiableItem, ServiceType

from .models import NotificationTemplateError, RenderedMessage

logger = logging.getLogger(__name__)

# Values of these keys are HTML produced by this service
HTML_VARIABLES = frozenset({"hostingList", "systemInfo", "companyLogo"})

DEFAULT_CLIENT_NAME = "Unknown"

SERVICE_LABELS = {
    ServiceType.WEB: "Web Hosting",
    ServiceType.MAIL: "Mail Hosting",
    ServiceType.DOMAIN: "Domain",
}


def escape_variables(variables: Mapping[str, Any]) -> Dict[str, str]:
    """String form of every variable, escaped unless it is in HTML_VARIABLES."""
    escaped = {}
    for key, value in variables.items():
        text = "" if value is None else str(value)
        escaped[key] = text if key in HTML_VARIABLES else str(escape(text))
    return escaped


def render(subject: str, body: str, variables: Mapping[str, Any]) -> Tuple[str, str]:
    """Replace ``{{key}}`` in subject and body for each key in ``variables``.

    Pure: the same arguments always produce the same output.
    """
    for key, value in escape_variables(variables).items():
        token = "{{" + key + "}}"
        subject = subject.replace(token, value)
        body = body.replace(token, value)
    return subject, body


def urgency_level(days_until_expiry: int) -> str:
    """``urgent`` (<= 3 days), ``warning`` (<= 7 days) or ``notice``."""
    if days_until_expiry <= 3:
        return "urgent"
    if days_until_expiry <= 7:
        return "warning"
    return "notice"


def build_company_variables(company: CompanyInfo, now: datetime) -> Dict[str, Any]:
    """Branding variables available to every template."""
    logo = ""
    if company.logo:
        logo = (
            f'<img src="{escape(company.logo)}" alt="{escape(company.name)}" '
            'style="max-height:60px;">'
        )
    return {
        "companyName": company.name,
        "companyLogo": logo,
        "companyEmail": company.email or "",
        "companyWebsite": company.website or "",
        "companyPhone": company.phone or "",
        "currentDate": now.date().isoformat(),
    }


def build_item_variables(
    item: NotifiableItem,
    days_until_expiry: int,
    company: CompanyInfo,
    now: datetime,
) -> Dict[str, Any]:
    """Variables for an expiry message about one hosting record."""
    variables = build_company_variables(company, now)
    variables.update(
        {
            "clientName": item.client_name or DEFAULT_CLIENT_NAME,
            "domainName": item.domain_name or "",
            "packageName": item.package_name or "",
            "packageDescription": item.package_description or "",
            "serviceType": SERVICE_LABELS[item.service_type],
            "expiryDate": item.expiry_date.isoformat(),
            "daysUntilExpiry": days_until_expiry,
            "primaryContactName": item.domain_primary_name or "",
            "primaryContactPhone": item.domain_primary_phone or "",
            "primaryContactEmail": item.domain_primary_email or "",
            "techContactName": item.client_tech_name or "",
            "techContactPhone": item.client_tech_phone or "",
            "techContactEmail": item.client_tech_email or "",
        }
    )
    return variables


def sample_variables(company: CompanyInfo, now: datetime) -> Dict[str, Any]:
    """Placeholder values used when an operator sends a test message."""
    variables = build_company_variables(company, now)
    variables.update(
        {
            "clientName": "Test Client",
            "domainName": "test-domain.rs",
            "packageName": "Test Package",
            "packageDescription": "",
            "serviceType": SERVICE_LABELS[ServiceType.WEB],
            "expiryDate": now.date().isoformat(),
            "daysUntilExpiry": 7,
            "primaryContactName": "Test Contact",
            "primaryContactPhone": "",
            "primaryContactEmail": "",
            "techContactName": "",
            "techContactPhone": "",
            "techContactEmail": "",
        }
    )
    return variables


class DefaultMessageRenderer:
    """Renders the built-in messages from ``email_templates/``.

    Jinja2 autoescapes the ``.html.j2`` bodies (subjects are plain text) and
    StrictUndefined turns a missing context key into NotificationTemplateError
    instead of an empty string.
    """

    def __init__(self, template_dir: str = "email_templates"):
        self.env = Environment(
            loader=PackageLoader("hosting_notifier.notifications", template_dir),
            autoescape=select_autoescape(enabled_extensions=("html.j2",)),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def _render(self, subject_name: str, body_name: str, context: Dict[str, Any]) -> RenderedMessage:
        try:
            subject = self.env.get_template(subject_name).render(context)
            html = self.env.get_template(body_name).render(context)
        except TemplateError as e:
            error_msg = f"Template rendering failed: {e}"
            logger.error(error_msg, exc_info=True)
            raise NotificationTemplateError(error_msg) from e

        return RenderedMessage(subject=" ".join(subject.split()), html=html)

    def render_expiry_notice(
        self,
        item: NotifiableItem,
        days_until_expiry: int,
        company: CompanyInfo,
    ) -> RenderedMessage:
        """Message used when an expiry rule has no template of its own."""
        context = {
            "service_label": SERVICE_LABELS[item.service_type],
            "item_name": item.display_name,
            "client_name": item.client_name or DEFAULT_CLIENT_NAME,
            "expiry_date": item.expiry_date,
            "days": days_until_expiry,
            "urgency": urgency_level(days_until_expiry),
            "company_name": company.name,
        }
        return self._render("expiry_notice_subject.j2", "expiry_notice.html.j2", context)

    def render_test_message(self, company: CompanyInfo, sent_at: datetime) -> RenderedMessage:
        """Message used for test sends of rules without a template."""
        context = {"company_name": company.name, "sent_at": sent_at}
        return self._render("test_message_subject.j2", "test_message.html.j2", context)

