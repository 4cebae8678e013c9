"""
tests/test_mailer.py -- Unit tests for core/mailer.py and auth/emails.py.

smtplib is patched; no network traffic. Covers STARTTLS vs implicit TLS
selection, missing credentials, SMTP failures mapped to MailError, and
the message bodies for reset and verification emails.
"""

from __future__ import annotations

import smtplib
from unittest.mock import patch

import pytest

from auth.emails import build_reset_email, build_verification_email
from core.config import get_settings
from core.mailer import EmailData, Mailer, MailConfigError, MailError, build_message


def _mailer(**overrides) -> Mailer:
    values = {"email_user": "bot@example.com", "email_pass": "app-password", "email_from": ""}
    values.update(overrides)
    return Mailer(get_settings().model_copy(update=values))


_DATA = EmailData(to="ada@example.com", subject="Hello", text="plain body", html="<p>html body</p>")


class TestMailerSend:
    def test_starttls_on_587(self) -> None:
        with patch("core.mailer.smtplib.SMTP") as smtp:
            message_id = _mailer(email_port=587).send(_DATA)
        server = smtp.return_value
        smtp.assert_called_once_with("smtp.gmail.com", 587, timeout=10)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("bot@example.com", "app-password")
        sent = server.send_message.call_args.args[0]
        assert sent["To"] == "ada@example.com"
        assert sent["From"] == "bot@example.com"
        assert message_id == sent["Message-ID"]

    def test_implicit_tls_on_465(self) -> None:
        with patch("core.mailer.smtplib.SMTP_SSL") as smtp_ssl, patch("core.mailer.smtplib.SMTP") as smtp:
            _mailer(email_port=465).send(_DATA)
        smtp.assert_not_called()
        smtp_ssl.assert_called_once_with("smtp.gmail.com", 465, timeout=10)
        smtp_ssl.return_value.starttls.assert_not_called()

    def test_email_from_overrides_sender(self) -> None:
        with patch("core.mailer.smtplib.SMTP") as smtp:
            _mailer(email_from="StepAuth <noreply@example.com>").send(_DATA)
        sent = smtp.return_value.send_message.call_args.args[0]
        assert sent["From"] == "StepAuth <noreply@example.com>"

    @pytest.mark.parametrize("field", ["email_user", "email_pass"])
    def test_missing_credentials(self, field: str) -> None:
        with patch("core.mailer.smtplib.SMTP") as smtp:
            with pytest.raises(MailConfigError):
                _mailer(**{field: ""}).send(_DATA)
        smtp.assert_not_called()

    def test_smtp_error_becomes_mail_error(self) -> None:
        with patch("core.mailer.smtplib.SMTP") as smtp:
            smtp.return_value.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
            with pytest.raises(MailError):
                _mailer().send(_DATA)

    def test_connection_error_becomes_mail_error(self) -> None:
        with patch("core.mailer.smtplib.SMTP", side_effect=ConnectionRefusedError("refused")):
            with pytest.raises(MailError):
                _mailer().send(_DATA)


def test_build_message_is_multipart_alternative() -> None:
    message = build_message(_DATA, "bot@example.com")
    assert message.get_content_type() == "multipart/alternative"
    parts = [p.get_content_type() for p in message.get_payload()]
    assert parts == ["text/plain", "text/html"]
    assert message["Subject"] == "Hello"


def test_build_message_text_only() -> None:
    message = build_message(EmailData(to="a@example.com", subject="s", text="t"), "bot@example.com")
    assert [p.get_content_type() for p in message.get_payload()] == ["text/plain"]


class TestEmailBodies:
    def test_reset_email(self) -> None:
        url = "http://localhost:3000/auth/reset?token=abc&email=ada%40example.com"
        data = build_reset_email("ada@example.com", url)
        assert data.subject == "Reset Your Password"
        assert url in data.text
        assert "token=abc&amp;email=ada%40example.com" in data.html

    def test_verification_email_escapes_name(self) -> None:
        data = build_verification_email("ada@example.com", "http://x.test/v?token=t", "<script>")
        assert data.subject == "Verify your email address"
        assert "<script>" not in data.html
        assert "&lt;script&gt;" in data.html
        assert "http://x.test/v?token=t" in data.text
