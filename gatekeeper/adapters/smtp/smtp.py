"""
SMTP email sender adapter - Implements EmailSender protocol via smtplib.
"""

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr

from gatekeeper.domain.exceptions import EmailDeliveryError

logger = logging.getLogger(__name__)


@dataclass
class SmtpEmailSender:
    """
    Implements EmailSender protocol with one SMTP session per message.

    Every network step is bounded by ``timeout`` seconds, so a stuck relay
    surfaces as EmailDeliveryError instead of hanging a worker.
    """

    host: str
    from_address: str
    port: int = 587
    username: str | None = None
    password: str | None = None
    use_tls: bool = True
    timeout: float = 10.0
    from_name: str = "Gatekeeper"

    def build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr((self.from_name, self.from_address))
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        return message

    def send(self, to: str, subject: str, body: str) -> None:
        """
        Send a plain-text message.

        smtplib serializes with CRLF line endings, as SMTP requires.

        Raises:
            EmailDeliveryError: Connection, TLS, auth or recipient failure
        """
        message = self.build_message(to, subject, body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                if self.use_tls:
                    smtp.starttls(context=ssl.create_default_context())
                if self.username:
                    smtp.login(self.username, self.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(f"SMTP delivery failed: {type(exc).__name__}") from exc

        logger.debug("Message handed to SMTP relay host=%s", self.host)
