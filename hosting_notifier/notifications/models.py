"""Value types and exceptions shared by the notification modules."""

from dataclasses import dataclass, field
from typing import List, Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when a message cannot be rendered."""

    pass


class SMTPDeliveryError(NotificationError):
    """Raised when the SMTP server rejects or cannot receive a message."""

    pass


class AttachmentError(NotificationError):
    """Raised when a required attachment is missing or unreadable."""

    pass


class ReportRenderError(NotificationError):
    """Raised when a hosting or system report cannot be generated."""

    pass


@dataclass(frozen=True)
class Attachment:
    """File content sent along with a message."""

    filename: str
    content: bytes
    mime_type: str = "application/pdf"

    @property
    def maintype(self) -> str:
        return self.mime_type.split("/", 1)[0]

    @property
    def subtype(self) -> str:
        return self.mime_type.split("/", 1)[1]


@dataclass
class RenderedMessage:
    """Subject and HTML body ready for the transport."""

    subject: str
    html: str
    attachments: List[Attachment] = field(default_factory=list)


@dataclass(frozen=True)
class ResolvedRecipients:
    """Concrete addresses for one send.

    ``cc`` is already joined (``"a@x.rs, b@x.rs"``) or None.
    """

    to: str
    cc: Optional[str] = None

    @property
    def all_addresses(self) -> List[str]:
        addresses = [self.to]
        if self.cc:
            addresses.extend(a.strip() for a in self.cc.split(",") if a.strip())
        return addresses
