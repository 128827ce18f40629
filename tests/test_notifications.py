import smtplib
import pytest
from unittest.mock import patch, MagicMock

from devinsight.errors import DeliveryError
from devinsight.notifications import EmailSender


@pytest.fixture
def mock_smtp():
    with patch("devinsight.notifications.smtplib.SMTP") as smtp_cls:
        server = MagicMock()
        smtp_cls.return_value.__enter__.return_value = server
        yield smtp_cls, server


def test_send_uses_starttls_and_login(mock_smtp):
    smtp_cls, server = mock_smtp
    sender = EmailSender("smtp.example.com", 2525, username="bot", password="secret",
                         sender="DevInsight <bot@example.com>", timeout=10)

    sender.send("alice@example.com", "Weekly report", "<p>hi</p>", "hi")

    smtp_cls.assert_called_once_with("smtp.example.com", 2525, timeout=10)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("bot", "secret")
    message = server.send_message.call_args[0][0]
    assert message["To"] == "alice@example.com"
    assert message["From"] == "DevInsight <bot@example.com>"
    assert message["Subject"] == "Weekly report"


def test_send_without_credentials_or_tls(mock_smtp):
    _, server = mock_smtp
    EmailSender("localhost", 25, use_tls=False).send("alice@example.com", "s", "<p>x</p>")

    server.starttls.assert_not_called()
    server.login.assert_not_called()
    server.send_message.assert_called_once()


def test_build_message_has_text_and_html_parts():
    message = EmailSender("localhost").build_message("alice@example.com", "s", "<p>html</p>", "plain")
    parts = message.get_payload()
    assert [p.get_content_type() for p in parts] == ["text/plain", "text/html"]


def test_smtp_failure_becomes_delivery_error(mock_smtp):
    _, server = mock_smtp
    server.send_message.side_effect = smtplib.SMTPRecipientsRefused({"alice@example.com": (550, b"no")})

    with pytest.raises(DeliveryError):
        EmailSender("localhost").send("alice@example.com", "s", "<p>x</p>")


def test_connection_failure_becomes_delivery_error(mock_smtp):
    smtp_cls, _ = mock_smtp
    smtp_cls.side_effect = ConnectionRefusedError("refused")

    with pytest.raises(DeliveryError):
        EmailSender("localhost").send("alice@example.com", "s", "<p>x</p>")


def test_missing_recipient(mock_smtp):
    smtp_cls, _ = mock_smtp
    with pytest.raises(DeliveryError):
        EmailSender("localhost").send(None, "s", "<p>x</p>")
    smtp_cls.assert_not_called()


def test_from_config():
    config = MagicMock(smtp_host="smtp.example.com", smtp_port=465, smtp_user="u", smtp_password="p",
                       smtp_use_tls=False, email_from="reports@example.com")
    sender = EmailSender.from_config(config)
    assert sender.host == "smtp.example.com"
    assert sender.port == 465
    assert sender.use_tls is False
    assert sender.sender == "reports@example.com"
