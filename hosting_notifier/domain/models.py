"""Core domain models for notification rules, templates and dispatches.

- NotificationRule: an alerting policy with a tagged schedule
  (ExpirySchedule or RecurringSchedule)
- MessageTemplate: subject/body pair with placeholders and recipient specs
- NotifiableItem: snapshot of one hosting record about to be notified
- DispatchRecord: one row of the notification log
- CompanyInfo: branding values made available to templates
"""

import re
from datetime import date, datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from hosting_notifier.utils.timestamps import ensure_utc, utc_now

_HHMM_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

MAX_OFFSET_DAYS = 60


class RuleType(str, Enum):
    """What a rule notifies about. Decides which schedule variant it carries."""

    CLIENT = "client"
    HOSTING = "hosting"
    SERVICE_REQUEST = "service_request"
    SALES_REQUEST = "sales_request"
    REPORTS = "reports"
    SYSTEM = "system"

    @property
    def rule_class(self) -> "RuleClass":
        if self in (RuleType.CLIENT, RuleType.HOSTING):
            return RuleClass.EXPIRY
        return RuleClass.RECURRING


class RuleClass(str, Enum):
    EXPIRY = "expiry"
    RECURRING = "recurring"


class Frequency(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class EntityScope(str, Enum):
    """Which records an expiry rule scans. ``all`` covers domains too."""

    ALL = "all"
    WEB_HOSTING = "hosting"
    MAIL_HOSTING = "mail"
    DOMAIN = "domain"

    @property
    def covers_hosting(self) -> bool:
        return self is not EntityScope.DOMAIN

    @property
    def covers_domains(self) -> bool:
        return self in (EntityScope.ALL, EntityScope.DOMAIN)


class ServiceType(str, Enum):
    """Kind of a notifiable item; also the notification log type."""

    WEB = "hosting"
    MAIL = "mail"
    DOMAIN = "domain"


class RecipientType(str, Enum):
    """Fallback recipient mode of a rule."""

    CUSTOM = "custom"
    PRIMARY = "primary"


class ExpirySchedule(BaseModel):
    """Day offsets relative to an item's expiry date.

    Positive offsets are before expiry, 0 is the expiry day and negative
    offsets are after it.
    """

    kind: Literal["expiry"] = "expiry"
    offsets: List[int] = Field(..., min_length=1)
    entity_scope: EntityScope = EntityScope.ALL

    @field_validator("offsets")
    @classmethod
    def validate_offsets(cls, v: List[int]) -> List[int]:
        """Keep first occurrence order, drop duplicates, bound the range."""
        seen = []
        for offset in v:
            if abs(offset) > MAX_OFFSET_DAYS:
                raise ValueError(
                    f"Offset {offset} is outside -{MAX_OFFSET_DAYS}..{MAX_OFFSET_DAYS} days"
                )
            if offset not in seen:
                seen.append(offset)
        return seen

    model_config = {"frozen": True}


class RecurringSchedule(BaseModel):
    """Calendar cadence for report and system rules."""

    kind: Literal["recurring"] = "recurring"
    frequency: Frequency
    run_at_time: str = "09:00"
    # 0 = Sunday ... 6 = Saturday
    day_of_week: int = Field(1, ge=0, le=6)
    day_of_month: int = Field(1, ge=1, le=31)

    @field_validator("run_at_time")
    @classmethod
    def validate_run_at_time(cls, v: str) -> str:
        v = v.strip()
        if not _HHMM_PATTERN.match(v):
            raise ValueError(f"run_at_time must be HH:MM, got '{v}'")
        return v

    @property
    def hour(self) -> int:
        return int(self.run_at_time[:2])

    @property
    def minute(self) -> int:
        return int(self.run_at_time[3:])

    model_config = {"frozen": True}


Schedule = Annotated[Union[ExpirySchedule, RecurringSchedule], Field(discriminator="kind")]


class RecipientConfig(BaseModel):
    """Rule-level fallback used when a template has no usable recipients."""

    recipient_type: RecipientType = RecipientType.PRIMARY
    custom_email: Optional[str] = None
    include_technical: bool = False

    @field_validator("custom_email")
    @classmethod
    def strip_custom_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        stripped = v.strip()
        return stripped or None


class NotificationRule(BaseModel):
    """A configured alerting policy."""

    id: int
    name: str = ""
    rule_type: RuleType
    schedule: Schedule
    template_id: Optional[int] = None
    recipient_config: RecipientConfig = Field(default_factory=RecipientConfig)
    enabled: bool = True
    last_dispatch: Optional[datetime] = None

    @field_validator("last_dispatch")
    @classmethod
    def normalize_last_dispatch(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @model_validator(mode="after")
    def validate_schedule_matches_type(self):
        """A rule type belongs to exactly one schedule variant."""
        if self.schedule.kind != self.rule_type.rule_class.value:
            raise ValueError(
                f"Rule type '{self.rule_type.value}' requires a "
                f"{self.rule_type.rule_class.value} schedule, got {self.schedule.kind}"
            )
        return self

    @property
    def rule_class(self) -> RuleClass:
        return self.rule_type.rule_class


class RecipientSpec(BaseModel):
    """One entry of a template's To or Cc list."""

    type: Literal["literal", "variable"]
    value: str

    @field_validator("type", mode="before")
    @classmethod
    def accept_legacy_custom(cls, v):
        # Templates saved by older dashboards tag literal addresses as "custom"
        if v == "custom":
            return "literal"
        return v


class TemplateRecipients(BaseModel):
    to: List[RecipientSpec] = Field(default_factory=list)
    cc: List[RecipientSpec] = Field(default_factory=list)


class ReportSortField(str, Enum):
    DOMAIN_NAME = "domainName"
    CLIENT_NAME = "clientName"
    EXPIRY_DATE = "expiryDate"


class HostingStatus(str, Enum):
    """Expiry status bands, ordered from most to least urgent."""

    DELETED = "deleted"
    FOR_DELETION = "forDeletion"
    RED = "red"
    ORANGE = "orange"
    YELLOW = "yellow"
    GREEN = "green"


class ReportConfig(BaseModel):
    """Hosting-list report options attached to a reports template."""

    statuses: List[HostingStatus] = Field(default_factory=lambda: list(HostingStatus))
    sort_field: ReportSortField = ReportSortField.EXPIRY_DATE
    sort_direction: Literal["asc", "desc"] = "asc"
    group_by_status: bool = False
    attach_pdf: bool = False


class SystemSections(BaseModel):
    resource_usage: bool = True
    database_size: bool = True
    email_logs: bool = True
    pdf_documents: bool = True


class SystemConfig(BaseModel):
    """System-info report options attached to a system template."""

    sections: SystemSections = Field(default_factory=SystemSections)
    period: Literal["today", "last7days", "last30days", "all"] = "last7days"


class MessageTemplate(BaseModel):
    """Subject/body pair with ``{{key}}`` placeholders."""

    id: int
    name: str = ""
    template_type: Optional[RuleType] = None
    subject: str
    html_content: str
    recipients: Optional[TemplateRecipients] = None
    report_config: Optional[ReportConfig] = None
    system_config: Optional[SystemConfig] = None
    attach_domain_pdf: bool = False
    is_active: bool = True

    model_config = {"frozen": True}


class NotifiableItem(BaseModel):
    """One hosting record, or a registered domain, with its contacts.

    For domains ``id`` and ``domain_id`` are both the domain's id and the
    package fields are empty.
    """

    id: int
    service_type: ServiceType = ServiceType.WEB
    package_name: Optional[str] = None
    package_description: Optional[str] = None
    expiry_date: date
    is_enabled: bool = True

    client_id: Optional[int] = None
    client_name: Optional[str] = None
    client_primary_email: Optional[str] = None
    client_tech_name: Optional[str] = None
    client_tech_phone: Optional[str] = None
    client_tech_email: Optional[str] = None

    domain_id: Optional[int] = None
    domain_name: Optional[str] = None
    domain_primary_name: Optional[str] = None
    domain_primary_phone: Optional[str] = None
    domain_primary_email: Optional[str] = None
    domain_tech_email: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.domain_name or self.package_name or "Hosting"


class DispatchStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


class DispatchRecord(BaseModel):
    """One attempted send. Rows are only ever appended."""

    id: Optional[int] = None
    type: str = Field(..., min_length=1)
    reference_id: int
    recipient: str = Field(..., min_length=1)
    status: DispatchStatus
    error: Optional[str] = None
    sent_at: datetime = Field(default_factory=utc_now)

    @field_validator("sent_at")
    @classmethod
    def normalize_sent_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    model_config = {"use_enum_values": True}


class CompanyInfo(BaseModel):
    """Branding shown in outgoing messages."""

    name: str = "Hosting Panel"
    logo: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
