"""SMTP delivery of the rendered newsletter."""

import asyncio
import logging
import smtplib
import ssl
import time
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Callable, Sequence

from digestarr.core.config import Settings

logger = logging.getLogger(__name__)


class MailerError(Exception):
    """Configuration or SMTP failure while sending."""


def sanitize_header(value: str) -> str:
    """Strip CR/LF so a value can't inject extra headers."""
    return value.replace("\r", "").replace("\n", "")


def batches(recipients: Sequence[str], size: int) -> list[list[str]]:
    return [list(recipients[i : i + size]) for i in range(0, len(recipients), size)]


class Mailer:
    """Sends one HTML message to a recipient list in batches over SMTP."""

    def __init__(
        self,
        settings: Settings,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.smtp_port
        self.smtp_user = settings.smtp_user
        self.smtp_password = settings.smtp_pass.get_secret_value()
        self.from_email = settings.from_email
        self.from_name = settings.from_name
        self.batch_size = settings.email_batch_size
        self.batch_delay = settings.email_batch_delay
        self._smtp_factory = smtp_factory
        self._sleep = sleep

    def _build_message(self, subject: str, html: str, recipients: list[str]) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = sanitize_header(subject)
        msg["From"] = sanitize_header(formataddr((self.from_name, self.from_email)))
        msg["To"] = sanitize_header(", ".join(recipients))
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def _send_batch(self, subject: str, html: str, recipients: list[str]) -> None:
        msg = self._build_message(subject, html, recipients)
        logger.info("Connecting to %s:%s", self.smtp_host, self.smtp_port)
        with self._smtp_factory(self.smtp_host, self.smtp_port, timeout=30) as server:
            server.ehlo()
            if server.has_extn("starttls"):
                server.starttls(context=ssl.create_default_context())
                server.ehlo()
            if self.smtp_user and self.smtp_password:
                server.login(self.smtp_user, self.smtp_password)
            server.sendmail(self.from_email, recipients, msg.as_string())

    def send(self, subject: str, html: str, recipients: Sequence[str]) -> None:
        """Send ``html`` to every recipient, ``batch_size`` at a time.

        Raises MailerError on incomplete configuration or the first failed
        batch; earlier batches stay sent.
        """
        if not self.smtp_host or not self.from_email or not recipients:
            raise MailerError("Email configuration incomplete")

        groups = batches(recipients, self.batch_size)
        for index, batch in enumerate(groups, start=1):
            logger.info(
                "Sending batch %d/%d (%d recipients)...", index, len(groups), len(batch)
            )
            try:
                self._send_batch(subject, html, batch)
            except (smtplib.SMTPException, OSError) as e:
                raise MailerError(f"Batch {index} failed: {e}") from e
            if index < len(groups) and self.batch_delay:
                self._sleep(self.batch_delay)

        logger.info("Successfully sent to all %d recipients", len(recipients))

    async def send_async(self, subject: str, html: str, recipients: Sequence[str]) -> None:
        """Run ``send`` in a worker thread so the event loop keeps serving."""
        await asyncio.to_thread(self.send, subject, html, recipients)
