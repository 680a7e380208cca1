"""
Unit tests for SmtpEmailSender adapter.

smtplib.SMTP is patched; no network traffic.
"""

import smtplib
from unittest.mock import MagicMock, patch

import pytest

from gatekeeper.adapters.smtp.smtp import SmtpEmailSender
from gatekeeper.domain.exceptions import EmailDeliveryError


@pytest.fixture
def smtp_class():
    with patch("gatekeeper.adapters.smtp.smtp.smtplib.SMTP") as smtp_class:
        yield smtp_class


def session(smtp_class: MagicMock) -> MagicMock:
    return smtp_class.return_value.__enter__.return_value


class TestBuildMessage:
    def test_headers(self) -> None:
        sender = SmtpEmailSender(host="smtp.example.com", from_address="bot@example.com")

        message = sender.build_message("alice@example.com", "Gatekeeper verification", "Body")

        assert message["From"] == "Gatekeeper <bot@example.com>"
        assert message["To"] == "alice@example.com"
        assert message["Subject"] == "Gatekeeper verification"
        assert message.get_content().strip() == "Body"


class TestSend:
    """Tests for the SMTP session sequence."""

    def test_send_uses_timeout_starttls_and_login(self, smtp_class: MagicMock) -> None:
        sender = SmtpEmailSender(
            host="smtp.example.com",
            from_address="bot@example.com",
            port=2525,
            username="bot",
            password="hunter2",
            timeout=3.0,
        )

        sender.send("alice@example.com", "Subject", "Body")

        smtp_class.assert_called_once_with("smtp.example.com", 2525, timeout=3.0)
        smtp = session(smtp_class)
        smtp.starttls.assert_called_once()
        smtp.login.assert_called_once_with("bot", "hunter2")
        sent = smtp.send_message.call_args[0][0]
        assert sent["To"] == "alice@example.com"

    def test_send_without_tls_or_auth(self, smtp_class: MagicMock) -> None:
        sender = SmtpEmailSender(
            host="localhost", from_address="bot@example.com", port=25, use_tls=False
        )

        sender.send("alice@example.com", "Subject", "Body")

        smtp = session(smtp_class)
        smtp.starttls.assert_not_called()
        smtp.login.assert_not_called()
        smtp.send_message.assert_called_once()

    def test_smtp_error_becomes_delivery_error(self, smtp_class: MagicMock) -> None:
        session(smtp_class).send_message.side_effect = smtplib.SMTPRecipientsRefused(
            {"alice@example.com": (550, b"no such user")}
        )
        sender = SmtpEmailSender(host="smtp.example.com", from_address="bot@example.com")

        with pytest.raises(EmailDeliveryError) as exc_info:
            sender.send("alice@example.com", "Subject", "Body")

        assert "alice@example.com" not in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, smtplib.SMTPRecipientsRefused)

    def test_connection_error_becomes_delivery_error(self, smtp_class: MagicMock) -> None:
        smtp_class.side_effect = TimeoutError("timed out")
        sender = SmtpEmailSender(host="smtp.example.com", from_address="bot@example.com")

        with pytest.raises(EmailDeliveryError):
            sender.send("alice@example.com", "Subject", "Body")
