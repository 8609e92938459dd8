import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import List, Optional

from settings import Settings

logger = logging.getLogger(__name__)


class NullMailer:
    async def send(self, recipients: List[str], subject: str, html: str) -> None:
        logger.info("Mail not configured, dropping %r to %s", subject, recipients)


class SmtpMailer:
    def __init__(self, settings: Settings):
        self.host = settings.mail_host
        self.port = settings.mail_port
        self.user = settings.mail_user
        self.password = settings.mail_password
        self.sender = settings.mail_from
        self.secure = settings.mail_secure

    def _send(self, message: EmailMessage) -> None:
        smtp_cls = smtplib.SMTP_SSL if self.secure else smtplib.SMTP
        with smtp_cls(self.host, self.port, timeout=30) as smtp:
            if not self.secure:
                smtp.starttls()
            if self.user:
                smtp.login(self.user, self.password or "")
            smtp.send_message(message)

    async def send(self, recipients: List[str], subject: str, html: str,
                   cc: Optional[List[str]] = None) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = ", ".join(recipients)
        if cc:
            message["Cc"] = ", ".join(cc)
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html, subtype="html")
        await asyncio.to_thread(self._send, message)
        logger.info("Mail %r sent to %s", subject, recipients)


def build_mailer(settings: Settings):
    if settings.mail_enabled:
        return SmtpMailer(settings)
    return NullMailer()
