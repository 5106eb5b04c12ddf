"""Turns recipient specifications into concrete To/Cc addresses.

A template lists ordered ``{type, value}`` specs for To and Cc. ``literal``
specs carry an address; ``variable`` specs name a contact field of the item
being notified. To takes the first spec that resolves, Cc takes all of them.
When the template yields no To address the rule's own recipient settings
are used instead.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from email_validator import EmailNotValidError, validate_email

from hosting_notifier.domain.models import (
    NotifiableItem,
    RecipientConfig,
    RecipientSpec,
    RecipientType,
    TemplateRecipients,
)

from .models import ResolvedRecipients

logger = logging.getLogger(__name__)

CLIENT_PRIMARY_CONTACT = "clientPrimaryContact"
CLIENT_TECH_CONTACT = "clientTechContact"
DOMAIN_PRIMARY_CONTACT = "domainPrimaryContact"
DOMAIN_TECH_CONTACT = "domainTechContact"

RECIPIENT_VARIABLES = (
    CLIENT_PRIMARY_CONTACT,
    CLIENT_TECH_CONTACT,
    DOMAIN_PRIMARY_CONTACT,
    DOMAIN_TECH_CONTACT,
)


@dataclass(frozen=True)
class RecipientContext:
    """Contact addresses of one item, keyed by recipient variable name."""

    client_primary_contact: Optional[str] = None
    client_tech_contact: Optional[str] = None
    domain_primary_contact: Optional[str] = None
    domain_tech_contact: Optional[str] = None

    @classmethod
    def from_item(cls, item: NotifiableItem) -> "RecipientContext":
        return cls(
            client_primary_contact=item.client_primary_email,
            client_tech_contact=item.client_tech_email,
            domain_primary_contact=item.domain_primary_email,
            domain_tech_contact=item.domain_tech_email,
        )

    @classmethod
    def empty(cls) -> "RecipientContext":
        """Context for rules that are not about a single item."""
        return cls()

    def as_mapping(self) -> Dict[str, Optional[str]]:
        return {
            CLIENT_PRIMARY_CONTACT: self.client_primary_contact,
            CLIENT_TECH_CONTACT: self.client_tech_contact,
            DOMAIN_PRIMARY_CONTACT: self.domain_primary_contact,
            DOMAIN_TECH_CONTACT: self.domain_tech_contact,
        }


def _clean_address(value: Optional[str]) -> Optional[str]:
    """Stripped address if it is syntactically valid, otherwise None."""
    if value is None:
        return None
    stripped = value.strip()
    if not stripped:
        return None
    try:
        validate_email(stripped, check_deliverability=False)
    except EmailNotValidError as e:
        logger.debug(f"Ignoring invalid recipient address {stripped!r}: {e}")
        return None
    return stripped


def resolve(spec: RecipientSpec, context: RecipientContext) -> Optional[str]:
    """Address for one spec, or None when it does not resolve.

    Unknown variable names resolve to None.
    """
    if spec.type == "literal":
        return _clean_address(spec.value)

    mapping = context.as_mapping()
    if spec.value not in mapping:
        logger.debug(f"Unknown recipient variable: {spec.value!r}")
        return None
    return _clean_address(mapping[spec.value])


def resolve_to(specs: Iterable[RecipientSpec], context: RecipientContext) -> Optional[str]:
    """First spec that resolves."""
    for spec in specs:
        address = resolve(spec, context)
        if address:
            return address
    return None


def resolve_cc(
    specs: Iterable[RecipientSpec],
    context: RecipientContext,
    exclude: Optional[str] = None,
) -> Optional[str]:
    """Every resolving spec, de-duplicated and without ``exclude``, comma-joined."""
    seen = set()
    if exclude:
        seen.add(exclude.lower())

    addresses: List[str] = []
    for spec in specs:
        address = resolve(spec, context)
        if address and address.lower() not in seen:
            seen.add(address.lower())
            addresses.append(address)

    return ", ".join(addresses) if addresses else None


def _fallback(
    recipient_config: RecipientConfig,
    context: RecipientContext,
) -> Optional[ResolvedRecipients]:
    if recipient_config.recipient_type == RecipientType.CUSTOM:
        to = _clean_address(recipient_config.custom_email)
    else:
        to = _clean_address(context.client_primary_contact) or _clean_address(
            context.domain_primary_contact
        )

    if not to:
        return None

    cc = None
    if recipient_config.include_technical:
        tech = _clean_address(context.client_tech_contact) or _clean_address(
            context.domain_tech_contact
        )
        if tech and tech.lower() != to.lower():
            cc = tech

    return ResolvedRecipients(to=to, cc=cc)


def resolve_recipients(
    template_recipients: Optional[TemplateRecipients],
    recipient_config: RecipientConfig,
    context: RecipientContext,
) -> Optional[ResolvedRecipients]:
    """To/Cc for one send, or None when nothing resolves.

    None is not an error: the caller skips the item without recording a
    dispatch.
    """
    if template_recipients is not None and template_recipients.to:
        to = resolve_to(template_recipients.to, context)
        if to:
            return ResolvedRecipients(
                to=to,
                cc=resolve_cc(template_recipients.cc, context, exclude=to),
            )

    return _fallback(recipient_config, context)
