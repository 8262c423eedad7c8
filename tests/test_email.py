"""Tests for SMTP notifications."""

import dataclasses
import smtplib
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from app.config import settings
from app.services import email as email_service


def _config(**overrides):
    config = {
        "host": "smtp.test",
        "port": 2525,
        "username": "mailer",
        "password": "secret",
        "use_tls": True,
        "use_ssl": False,
        "from_email": "accounts@wrs.test",
        "from_name": "WRS Accounts",
    }
    config.update(overrides)
    return config


@pytest.fixture()
def smtp():
    with patch("app.services.email.smtplib.SMTP") as smtp_cls:
        smtp_cls.return_value.sendmail.return_value = {}
        yield smtp_cls


class TestSmtpConfig:
    def test_reads_settings(self, monkeypatch):
        monkeypatch.setattr(
            email_service,
            "settings",
            dataclasses.replace(settings, smtp_host="mail.wrs.test", smtp_port=465, smtp_use_ssl=True),
        )
        config = email_service.get_smtp_config()
        assert config["host"] == "mail.wrs.test"
        assert config["port"] == 465
        assert config["use_ssl"] is True
        assert config["from_name"] == settings.smtp_from_name


class TestSendEmail:
    def test_sends_with_tls_and_login(self, smtp):
        assert email_service.send_email("client@wrs.test", "Hello", "<p>Hi</p>", "Hi", config=_config()) is True

        smtp.assert_called_once_with("smtp.test", 2525)
        server = smtp.return_value
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("mailer", "secret")
        from_email, to_email, message = server.sendmail.call_args.args
        assert from_email == "accounts@wrs.test"
        assert to_email == "client@wrs.test"
        assert "Subject: Hello" in message
        server.quit.assert_called_once()

    def test_ssl_skips_starttls(self):
        with patch("app.services.email.smtplib.SMTP_SSL") as smtp_ssl:
            smtp_ssl.return_value.sendmail.return_value = {}
            assert email_service.send_email("client@wrs.test", "Hello", "<p>Hi</p>", config=_config(use_ssl=True))
        smtp_ssl.return_value.starttls.assert_not_called()

    def test_auth_failure_returns_false(self, smtp):
        smtp.return_value.login.side_effect = smtplib.SMTPAuthenticationError(535, b"bad credentials")
        assert email_service.send_email("client@wrs.test", "Hello", "<p>Hi</p>", config=_config()) is False
        smtp.return_value.sendmail.assert_not_called()

    def test_connection_failure_returns_false(self, smtp):
        smtp.side_effect = OSError("connection refused")
        assert email_service.send_email("client@wrs.test", "Hello", "<p>Hi</p>", config=_config()) is False


class TestVoidedInvoiceEmail:
    def test_uses_invoice_name(self):
        invoice = SimpleNamespace(name="INV-0042", slug="inv-0042")
        with patch.object(email_service, "send_email", return_value=True) as send:
            assert email_service.send_voided_invoice_email(invoice, "client@wrs.test") is True
        to_email, subject, body_html, body_text = send.call_args.args
        assert to_email == "client@wrs.test"
        assert subject == "Invoice INV-0042 has been voided"
        assert "<strong>INV-0042</strong>" in body_html
        assert "no payment is due" in body_text

    def test_escapes_html(self):
        invoice = SimpleNamespace(name="<b>Smith & Co</b>", slug=None)
        with patch.object(email_service, "send_email", return_value=True) as send:
            email_service.send_voided_invoice_email(invoice, "client@wrs.test")
        assert "&lt;b&gt;Smith &amp; Co&lt;/b&gt;" in send.call_args.args[2]

    def test_falls_back_without_name(self):
        invoice = SimpleNamespace(name=None, slug=None)
        with patch.object(email_service, "send_email", return_value=True) as send:
            email_service.send_voided_invoice_email(invoice, "client@wrs.test")
        assert send.call_args.args[1] == "Invoice your invoice has been voided"
