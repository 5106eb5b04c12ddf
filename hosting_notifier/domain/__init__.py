"""Domain models for the hosting notifier."""

from .models import (
    CompanyInfo,
    DispatchRecord,
    DispatchStatus,
    EntityScope,
    ExpirySchedule,
    Frequency,
    HostingStatus,
    MessageTemplate,
    NotifiableItem,
    NotificationRule,
    RecipientConfig,
    RecipientSpec,
    RecipientType,
    RecurringSchedule,
    ReportConfig,
    RuleClass,
    RuleType,
    ServiceType,
    SystemConfig,
    TemplateRecipients,
)

__all__ = [
    "CompanyInfo",
    "DispatchRecord",
    "DispatchStatus",
    "EntityScope",
    "ExpirySchedule",
    "Frequency",
    "HostingStatus",
    "MessageTemplate",
    "NotifiableItem",
    "NotificationRule",
    "RecipientConfig",
    "RecipientSpec",
    "RecipientType",
    "RecurringSchedule",
    "ReportConfig",
    "RuleClass",
    "RuleType",
    "ServiceType",
    "SystemConfig",
    "TemplateRecipients",
]
