"""Database schema definition and ORM models.

The tables mirror the parts of the dashboard database the notifier reads
(clients, domains, hosting, templates, rules, settings) and the one it
appends to (notification_log). Conversion to domain models lives on the ORM
classes, as ``to_domain`` / ``from_domain``.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    inspect,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from hosting_notifier.domain.models import (
    CompanyInfo,
    DispatchRecord,
    ExpirySchedule,
    MessageTemplate,
    NotifiableItem,
    NotificationRule,
    RecurringSchedule,
    RuleClass,
    RuleType,
    ServiceType,
)
from hosting_notifier.utils.timestamps import ensure_utc, parse_iso_date

logger = logging.getLogger(__name__)

Base = declarative_base()


class ClientModel(Base):
    """ORM model for clients table."""

    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email1 = Column(String(255), nullable=True)
    tech_contact = Column(String(255), nullable=True)
    tech_phone = Column(String(50), nullable=True)
    tech_email = Column(String(255), nullable=True)


class DomainModel(Base):
    """ORM model for domains table.

    ``expiry_date`` is the registration expiry, ``YYYY-MM-DD`` or empty for
    domains the panel does not track.
    """

    __tablename__ = "domains"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True)
    domain_name = Column(String(255), nullable=False)
    primary_contact_name = Column(String(255), nullable=True)
    primary_contact_phone = Column(String(50), nullable=True)
    primary_contact_email = Column(String(255), nullable=True)
    tech_contact_email = Column(String(255), nullable=True)
    pdf_filename = Column(String(255), nullable=True)
    expiry_date = Column(String(10), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (Index("idx_domains_expiry", "expiry_date"),)


class HostingModel(Base):
    """ORM model for hosting table (web and mail packages).

    ``expiry_date`` is stored as ``YYYY-MM-DD`` so equality and range
    queries work on the string form.
    """

    __tablename__ = "hosting"

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True)
    domain_id = Column(Integer, ForeignKey("domains.id"), nullable=True)
    service_type = Column(String(20), nullable=False, default="hosting")
    package_name = Column(String(255), nullable=True)
    package_description = Column(Text, nullable=True)
    expiry_date = Column(String(10), nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=True)

    __table_args__ = (Index("idx_hosting_expiry", "expiry_date"),)


def build_notifiable_item(
    hosting: HostingModel,
    client: Optional[ClientModel],
    domain: Optional[DomainModel],
) -> NotifiableItem:
    """Flatten a hosting row and its joined client/domain into one snapshot."""
    expiry = parse_iso_date(hosting.expiry_date)
    if expiry is None:
        raise ValueError(
            f"Hosting {hosting.id} has an invalid expiry date: {hosting.expiry_date!r}"
        )

    return NotifiableItem(
        id=hosting.id,
        service_type=hosting.service_type or "hosting",
        package_name=hosting.package_name,
        package_description=hosting.package_description,
        expiry_date=expiry,
        is_enabled=bool(hosting.is_enabled),
        client_id=client.id if client else None,
        client_name=client.name if client else None,
        client_primary_email=client.email1 if client else None,
        client_tech_name=client.tech_contact if client else None,
        client_tech_phone=client.tech_phone if client else None,
        client_tech_email=client.tech_email if client else None,
        domain_id=domain.id if domain else None,
        domain_name=domain.domain_name if domain else None,
        domain_primary_name=domain.primary_contact_name if domain else None,
        domain_primary_phone=domain.primary_contact_phone if domain else None,
        domain_primary_email=domain.primary_contact_email if domain else None,
        domain_tech_email=domain.tech_contact_email if domain else None,
    )


def build_domain_item(domain: DomainModel, client: Optional[ClientModel]) -> NotifiableItem:
    """Snapshot of a domain registration, notified under the ``domain`` log type."""
    expiry = parse_iso_date(domain.expiry_date)
    if expiry is None:
        raise ValueError(
            f"Domain {domain.id} has an invalid expiry date: {domain.expiry_date!r}"
        )

    return NotifiableItem(
        id=domain.id,
        service_type=ServiceType.DOMAIN,
        expiry_date=expiry,
        is_enabled=bool(domain.is_active),
        client_id=client.id if client else None,
        client_name=client.name if client else None,
        client_primary_email=client.email1 if client else None,
        client_tech_name=client.tech_contact if client else None,
        client_tech_phone=client.tech_phone if client else None,
        client_tech_email=client.tech_email if client else None,
        domain_id=domain.id,
        domain_name=domain.domain_name,
        domain_primary_name=domain.primary_contact_name,
        domain_primary_phone=domain.primary_contact_phone,
        domain_primary_email=domain.primary_contact_email,
        domain_tech_email=domain.tech_contact_email,
    )


class EmailTemplateModel(Base):
    """ORM model for email_templates table."""

    __tablename__ = "email_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, default="")
    type = Column(String(50), nullable=True)
    subject = Column(Text, nullable=False)
    html_content = Column(Text, nullable=False)
    recipients = Column(JSON, nullable=True)
    report_config = Column(JSON, nullable=True)
    system_config = Column(JSON, nullable=True)
    attach_domain_pdf = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    def to_domain(self) -> MessageTemplate:
        return MessageTemplate(
            id=self.id,
            name=self.name or "",
            template_type=self.type,
            subject=self.subject,
            html_content=self.html_content,
            recipients=self.recipients,
            report_config=self.report_config,
            system_config=self.system_config,
            attach_domain_pdf=bool(self.attach_domain_pdf),
            is_active=bool(self.is_active),
        )

    @classmethod
    def from_domain(cls, template: MessageTemplate) -> "EmailTemplateModel":
        return cls(
            id=template.id,
            name=template.name,
            type=_enum_value(template.template_type),
            subject=template.subject,
            html_content=template.html_content,
            recipients=_dump(template.recipients),
            report_config=_dump(template.report_config),
            system_config=_dump(template.system_config),
            attach_domain_pdf=template.attach_domain_pdf,
            is_active=template.is_active,
        )


class NotificationSettingModel(Base):
    """ORM model for notification_settings table.

    One row per rule. Expiry rules use ``schedule`` (a JSON list of day
    offsets); recurring rules use ``frequency``, ``run_at_time`` and the day
    selectors.
    """

    __tablename__ = "notification_settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, default="")
    type = Column(String(50), nullable=False)
    schedule = Column(JSON, nullable=True)
    entity_scope = Column(String(20), nullable=True)
    run_at_time = Column(String(5), nullable=True)
    frequency = Column(String(20), nullable=True)
    day_of_week = Column(Integer, nullable=True)
    day_of_month = Column(Integer, nullable=True)
    template_id = Column(Integer, ForeignKey("email_templates.id"), nullable=True)
    recipient_type = Column(String(20), nullable=True)
    custom_email = Column(String(255), nullable=True)
    include_technical = Column(Boolean, nullable=False, default=False)
    enabled = Column(Boolean, nullable=False, default=True)
    last_sent = Column(String(50), nullable=True)

    def to_domain(self) -> NotificationRule:
        """Build the tagged rule.

        Raises:
            pydantic.ValidationError: If the row does not describe a valid rule
            ValueError: If the rule type is unknown
        """
        rule_type = RuleType(self.type)

        if rule_type.rule_class is RuleClass.EXPIRY:
            schedule: Dict[str, Any] = {
                "kind": "expiry",
                "offsets": self.schedule or [],
            }
            if self.entity_scope:
                schedule["entity_scope"] = self.entity_scope
        else:
            schedule = {"kind": "recurring", "frequency": self.frequency}
            if self.run_at_time:
                schedule["run_at_time"] = self.run_at_time
            if self.day_of_week is not None:
                schedule["day_of_week"] = self.day_of_week
            if self.day_of_month is not None:
                schedule["day_of_month"] = self.day_of_month

        recipient_config: Dict[str, Any] = {
            "custom_email": self.custom_email,
            "include_technical": bool(self.include_technical),
        }
        if self.recipient_type:
            recipient_config["recipient_type"] = self.recipient_type

        return NotificationRule.model_validate(
            {
                "id": self.id,
                "name": self.name or "",
                "rule_type": rule_type,
                "schedule": schedule,
                "template_id": self.template_id,
                "recipient_config": recipient_config,
                "enabled": bool(self.enabled),
                "last_dispatch": _parse_datetime(self.last_sent),
            }
        )

    @classmethod
    def from_domain(cls, rule: NotificationRule) -> "NotificationSettingModel":
        model = cls(
            id=rule.id,
            name=rule.name,
            type=_enum_value(rule.rule_type),
            template_id=rule.template_id,
            recipient_type=_enum_value(rule.recipient_config.recipient_type),
            custom_email=rule.recipient_config.custom_email,
            include_technical=rule.recipient_config.include_technical,
            enabled=rule.enabled,
            last_sent=_format_datetime(rule.last_dispatch),
        )

        schedule = rule.schedule
        if isinstance(schedule, ExpirySchedule):
            model.schedule = list(schedule.offsets)
            model.entity_scope = _enum_value(schedule.entity_scope)
        elif isinstance(schedule, RecurringSchedule):
            model.frequency = _enum_value(schedule.frequency)
            model.run_at_time = schedule.run_at_time
            model.day_of_week = schedule.day_of_week
            model.day_of_month = schedule.day_of_month

        return model


class NotificationLogModel(Base):
    """ORM model for notification_log table (append-only)."""

    __tablename__ = "notification_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(50), nullable=False)
    reference_id = Column(Integer, nullable=False)
    recipient = Column(String(512), nullable=False)
    status = Column(String(20), nullable=False)
    error = Column(Text, nullable=True)
    sent_at = Column(String(50), nullable=False)

    __table_args__ = (
        Index("idx_notification_log_tuple", "type", "reference_id", "recipient"),
        Index("idx_notification_log_sent_at", "sent_at"),
    )

    def to_domain(self) -> DispatchRecord:
        return DispatchRecord(
            id=self.id,
            type=self.type,
            reference_id=self.reference_id,
            recipient=self.recipient,
            status=self.status,
            error=self.error,
            sent_at=_parse_datetime(self.sent_at),
        )

    @classmethod
    def from_domain(cls, record: DispatchRecord) -> "NotificationLogModel":
        return cls(
            type=record.type,
            reference_id=record.reference_id,
            recipient=record.recipient,
            status=_enum_value(record.status),
            error=record.error,
            sent_at=_format_datetime(record.sent_at),
        )


class CompanyInfoModel(Base):
    """ORM model for company_info table (single row)."""

    __tablename__ = "company_info"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=True)
    logo = Column(Text, nullable=True)
    email = Column(String(255), nullable=True)
    website = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)

    def to_domain(self) -> CompanyInfo:
        values = {
            "name": self.name,
            "logo": self.logo,
            "email": self.email,
            "website": self.website,
            "phone": self.phone,
        }
        return CompanyInfo(**{k: v for k, v in values.items() if v})


class AppSettingModel(Base):
    """ORM model for app_settings table (key -> JSON value)."""

    __tablename__ = "app_settings"

    key = Column(String(100), primary_key=True)
    value = Column(JSON, nullable=True)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _dump(model: Any) -> Optional[Dict[str, Any]]:
    if model is None:
        return None
    return model.model_dump(mode="json")


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format as ISO 8601 UTC with microseconds and a ``Z`` suffix."""
    if dt is None:
        return None
    return ensure_utc(dt).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp back to aware UTC.

    Rows written by the dashboard itself use JavaScript's ``toISOString``
    (milliseconds), rows written here carry microseconds; both parse.
    """
    if dt_str is None or dt_str == "":
        return None

    cleaned = dt_str.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"

    return ensure_utc(datetime.fromisoformat(cleaned))


def format_date(value: date) -> str:
    """Storage form of a calendar date."""
    return value.isoformat()


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)

        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")

    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
