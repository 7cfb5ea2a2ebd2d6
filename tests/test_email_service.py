import smtplib
from unittest.mock import MagicMock, patch

import pytest

from app.core.config import settings
from app.utils import email_service


@pytest.fixture
def smtp_credentials(monkeypatch):
    monkeypatch.setattr(settings, "EMAIL_USER", "sender@mailbox.org")
    monkeypatch.setattr(settings, "EMAIL_PASS", "app-password")


def test_send_email_without_credentials(monkeypatch):
    monkeypatch.setattr(settings, "EMAIL_USER", "")
    with patch("app.utils.email_service.smtplib.SMTP") as smtp:
        assert email_service.send_email("alex@mailbox.org", "Hi", "<p>Hi</p>") is False
        smtp.assert_not_called()


def test_verification_email_contains_link(smtp_credentials):
    server = MagicMock()
    with patch("app.utils.email_service.smtplib.SMTP") as smtp:
        smtp.return_value.__enter__.return_value = server
        assert email_service.send_verification_email("alex@mailbox.org", "abc123", "Alex") is True

    server.starttls.assert_called_once()
    server.login.assert_called_once_with("sender@mailbox.org", "app-password")
    message = server.send_message.call_args[0][0]
    assert message["To"] == "alex@mailbox.org"
    assert f"{settings.FRONTEND_URI}/auth/verify-email?token=abc123" in message.as_string()


def test_otp_email_reports_smtp_failure(smtp_credentials):
    server = MagicMock()
    server.send_message.side_effect = smtplib.SMTPException("boom")
    with patch("app.utils.email_service.smtplib.SMTP") as smtp:
        smtp.return_value.__enter__.return_value = server
        assert email_service.send_otp_email("alex@mailbox.org", "123456", "Alex") is False


def test_connection_refused_is_a_failure(smtp_credentials):
    with patch("app.utils.email_service.smtplib.SMTP", side_effect=ConnectionRefusedError()):
        assert email_service.send_password_reset_email("alex@mailbox.org", "tok", "Alex") is False
