"""SMTP transport.

Builds one EmailMessage per send and delivers it over a fresh connection.
Connection parameters are read from a settings provider on every send so
mail-settings edits apply without a restart.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Callable, List, Optional, Sequence

from email_validator import EmailNotValidError, validate_email

from .models import Attachment, SMTPDeliveryError
from .settings import MailSettings

logger = logging.getLogger(__name__)


class SMTPClient:
    """Sends HTML messages through smtplib.

    Port 465 (or ``secure``) uses implicit TLS; anything else connects in
    plain text and upgrades with STARTTLS when ``use_tls`` is set. The SMTP
    classes are injectable so tests never open sockets.
    """

    def __init__(
        self,
        settings_provider: Callable[[], MailSettings],
        use_tls: bool = True,
        timeout: float = 30,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
    ):
        self.settings_provider = settings_provider
        self.use_tls = use_tls
        self.timeout = timeout
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL

    def send_html(
        self,
        to: str,
        subject: str,
        html: str,
        cc: Optional[str] = None,
        attachments: Optional[Sequence[Attachment]] = None,
    ) -> None:
        """Deliver one message.

        Args:
            to: Single recipient address
            subject: Subject line
            html: HTML body
            cc: Comma-separated Cc addresses
            attachments: Files to attach

        Raises:
            SMTPDeliveryError: If the message cannot be built or delivered
        """
        settings = self.settings_provider()
        message = build_message(settings, to, subject, html, cc, attachments or ())
        self._deliver(message, settings)

    def _deliver(self, message: EmailMessage, settings: MailSettings) -> None:
        smtp = None
        try:
            if settings.secure or settings.port == 465:
                logger.debug(f"Connecting to {settings.host}:{settings.port} with implicit TLS")
                smtp = self.smtp_ssl_factory(
                    settings.host,
                    settings.port,
                    context=ssl.create_default_context(),
                    timeout=self.timeout,
                )
            else:
                logger.debug(f"Connecting to {settings.host}:{settings.port}")
                smtp = self.smtp_factory(settings.host, settings.port, timeout=self.timeout)

                if self.use_tls:
                    smtp.starttls(context=ssl.create_default_context())

            if settings.user and settings.password:
                smtp.login(settings.user, settings.password)

            smtp.send_message(message)
            logger.debug(f"Message sent to {message['To']}")

        except smtplib.SMTPException as e:
            raise SMTPDeliveryError(f"SMTP error during message delivery: {e}") from e
        except OSError as e:
            raise SMTPDeliveryError(f"Network error during SMTP connection: {e}") from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning(f"Error closing SMTP connection: {e}")


def build_message(
    settings: MailSettings,
    to: str,
    subject: str,
    html: str,
    cc: Optional[str],
    attachments: Sequence[Attachment],
) -> EmailMessage:
    """
    Raises:
        SMTPDeliveryError: If an address is invalid
    """
    try:
        to_addresses = parse_recipients(to)
        cc_addresses = parse_recipients(cc) if cc else []
    except ValueError as e:
        raise SMTPDeliveryError(str(e)) from e

    message = EmailMessage()
    message["From"] = settings.sender_address()
    message["To"] = ", ".join(to_addresses)
    if cc_addresses:
        message["Cc"] = ", ".join(cc_addresses)
    message["Subject"] = subject
    message["Date"] = formatdate(localtime=False)
    message["Message-ID"] = make_msgid()

    message.set_content(html, subtype="html")

    for attachment in attachments:
        message.add_attachment(
            attachment.content,
            maintype=attachment.maintype,
            subtype=attachment.subtype,
            filename=attachment.filename,
        )

    return message


def parse_recipients(recipient_string: str) -> List[str]:
    """Split and validate comma-separated addresses.

    Raises:
        ValueError: If any address is invalid or none is given
    """
    recipients = []
    for email in (part.strip() for part in recipient_string.split(",")):
        if not email:
            continue
        try:
            recipients.append(validate_email(email, check_deliverability=False).normalized)
        except EmailNotValidError as e:
            raise ValueError(f"Invalid email address: '{email}' - {e}") from e

    if not recipients:
        raise ValueError("No valid email addresses given")

    return recipients
