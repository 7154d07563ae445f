"""SMTP delivery for outbound portal email."""

import smtplib
import logging
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr

from portal.config import settings

logger = logging.getLogger(__name__)


@dataclass
class SMTPConfig:
    host: str
    port: int
    secure: bool
    username: str
    password: str
    sender_name: str

    @property
    def sender_email(self) -> str:
        return self.username

    @property
    def configured(self) -> bool:
        return bool(self.host and self.username)


def get_smtp_config() -> SMTPConfig:
    return SMTPConfig(
        host=settings.smtp_host,
        port=settings.smtp_port,
        secure=settings.smtp_secure,
        username=settings.smtp_user,
        password=settings.smtp_password,
        sender_name=settings.email_from_name,
    )


class SMTPMailer:
    """Sends one multipart/alternative message per call. Errors propagate."""

    def __init__(self, config: SMTPConfig):
        self.config = config

    def build_message(self, to: str, subject: str, text: str, html: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = formataddr((self.config.sender_name, self.config.sender_email))
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(text, "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def send(self, to: str, subject: str, text: str, html: str) -> None:
        if not self.config.configured:
            raise RuntimeError("SMTP is not configured")

        msg = self.build_message(to, subject, text, html)

        # Port 465 speaks TLS from the first byte; everything else upgrades
        if self.config.secure or self.config.port == 465:
            server = smtplib.SMTP_SSL(self.config.host, self.config.port, timeout=30)
        else:
            server = smtplib.SMTP(self.config.host, self.config.port, timeout=30)

        with server:
            if not (self.config.secure or self.config.port == 465):
                server.starttls()
            if self.config.password:
                server.login(self.config.username, self.config.password)
            server.sendmail(self.config.sender_email, [to], msg.as_string())

        logger.info("Email sent to %s subject=%r", to, subject)


def get_mailer() -> SMTPMailer:
    return SMTPMailer(get_smtp_config())
