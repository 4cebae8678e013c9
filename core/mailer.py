"""
core/mailer.py -- Outbound SMTP email.

All external email traffic goes through Mailer.send(). Configuration comes
from core.config.Settings (EMAIL_HOST, EMAIL_PORT, EMAIL_USER, EMAIL_PASS,
EMAIL_FROM). Port 465 uses implicit TLS (SMTP_SSL); any other port connects
in plain text and upgrades with STARTTLS.

Messages are multipart/alternative: a text part always, an HTML part when
the caller provides one.

Failures raise MailError so the caller decides whether to surface a 500 or
keep a generic success response. Nothing here retries.
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid
from typing import Optional

from core.config import Settings

logger = logging.getLogger("stepauth.mail")


class MailError(Exception):
    """Email could not be sent."""


class MailConfigError(MailError):
    """SMTP credentials are missing."""


@dataclass
class EmailData:
    to: str
    subject: str
    text: str
    html: Optional[str] = None


def build_message(data: EmailData, sender: str) -> MIMEMultipart:
    """Assemble the MIME message. Exposed for tests and for the dry-run log."""
    message = MIMEMultipart("alternative")
    message["From"] = sender
    message["To"] = data.to
    message["Subject"] = data.subject
    message["Date"] = formatdate(localtime=False)
    message["Message-ID"] = make_msgid(domain=sender.split("@")[-1] if "@" in sender else None)
    message.attach(MIMEText(data.text, "plain", "utf-8"))
    if data.html:
        message.attach(MIMEText(data.html, "html", "utf-8"))
    return message


class Mailer:
    """SMTP client bound to one configuration.

    Usage:
        mailer = Mailer(get_settings())
        mailer.send(EmailData(to="ada@example.com", subject="Hi", text="Hello"))
    """

    def __init__(self, settings: Settings) -> None:
        self.host = settings.email_host
        self.port = settings.email_port
        self.secure = settings.smtp_secure
        self.user = settings.email_user
        self.password = settings.email_pass
        self.sender = settings.sender
        self.timeout = settings.email_timeout_seconds

    def send(self, data: EmailData) -> str:
        """Send one email and return its Message-ID."""
        if not self.user or not self.password:
            raise MailConfigError("Missing SMTP credentials. Set EMAIL_USER and EMAIL_PASS.")

        message = build_message(data, self.sender)
        try:
            if self.secure:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            with server:
                if not self.secure:
                    server.starttls()
                server.login(self.user, self.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email to %s: %s", data.to, e)
            raise MailError(f"Email send failed: {e}") from e

        message_id = message["Message-ID"]
        logger.info("Email sent to %s (message id %s)", data.to, message_id)
        return message_id
