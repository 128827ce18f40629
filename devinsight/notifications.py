"""Email delivery of rendered reports."""
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from common.logging import LoggingManager
from devinsight.errors import DeliveryError

logger = LoggingManager.get_logger('app.notifications')


class EmailSender:
    """Sends multipart (plain text + HTML) mail through an SMTP server."""

    def __init__(self, host: str, port: int = 587, username: Optional[str] = None,
                 password: Optional[str] = None, use_tls: bool = True,
                 sender: str = "DevInsight <reports@devinsight.local>", timeout: int = 30):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender = sender
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> "EmailSender":
        return cls(
            host=config.smtp_host,
            port=config.smtp_port,
            username=config.smtp_user,
            password=config.smtp_password,
            use_tls=config.smtp_use_tls,
            sender=config.email_from,
        )

    def build_message(self, to: str, subject: str, html: str, text: Optional[str] = None) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        if text:
            msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))
        return msg

    def send(self, to: Optional[str], subject: str, html: str, text: Optional[str] = None) -> None:
        if not to:
            raise DeliveryError("Recipient has no email address")
        msg = self.build_message(to, subject, html, text)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send '{subject}' to {to}: {e}")
            raise DeliveryError(f"Failed to send email to {to}: {e}") from e
        logger.info(f"Sent '{subject}' to {to}")
