"""Message building and delivery for hosting notifications.

This package provides everything a dispatch needs once a rule and its
targets are known:
- recipients: To/Cc resolution from template specs and rule fallbacks
- templates: ``{{key}}`` rendering and the built-in Jinja2 messages
- reports: hosting-list and system-info fragments, hosting-list PDF
- attachments: lookup of uploaded domain documents
- smtp_client: SMTP delivery with TLS/SSL support
- settings: cached company info and mail settings
- ledger: at-most-once bookkeeping over the notification log
"""

from .attachments import AttachmentResolver
from .ledger import LedgerKey, NotificationLedger, record_dispatch
from .models import (
    Attachment,
    AttachmentError,
    NotificationError,
    NotificationTemplateError,
    RenderedMessage,
    ReportRenderError,
    ResolvedRecipients,
    SMTPDeliveryError,
)
from .recipients import RecipientContext, resolve_recipients
from .reports import ReportRenderer, hosting_status
from .settings import MailSettings, SettingsAccessor
from .smtp_client import SMTPClient, parse_recipients
from .templates import DefaultMessageRenderer, render

__all__ = [
    # Components
    "AttachmentResolver",
    "DefaultMessageRenderer",
    "NotificationLedger",
    "ReportRenderer",
    "SettingsAccessor",
    "SMTPClient",
    # Models
    "Attachment",
    "LedgerKey",
    "MailSettings",
    "RecipientContext",
    "RenderedMessage",
    "ResolvedRecipients",
    # Exceptions
    "NotificationError",
    "NotificationTemplateError",
    "SMTPDeliveryError",
    "AttachmentError",
    "ReportRenderError",
    # Functions
    "hosting_status",
    "parse_recipients",
    "record_dispatch",
    "render",
    "resolve_recipients",
]
