"""SMTP notifications sent to invoice recipients."""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from app.config import settings

logger = logging.getLogger(__name__)


def get_smtp_config() -> dict:
    return {
        "host": settings.smtp_host,
        "port": settings.smtp_port,
        "username": settings.smtp_username,
        "password": settings.smtp_password,
        "use_tls": settings.smtp_use_tls,
        "use_ssl": settings.smtp_use_ssl,
        "from_email": settings.smtp_from_email,
        "from_name": settings.smtp_from_name,
    }


def _build_message(subject: str, from_name: str, from_email: str, to_email: str, body_html: str, body_text: str | None):
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{from_name} <{from_email}>"
    msg["To"] = to_email
    if body_text:
        msg.attach(MIMEText(body_text, "plain"))
    msg.attach(MIMEText(body_html, "html"))
    return msg


def send_email(
    to_email: str,
    subject: str,
    body_html: str,
    body_text: str | None = None,
    config: dict | None = None,
) -> bool:
    """Send one message over SMTP; returns False (and logs) on failure."""
    config = config or get_smtp_config()
    msg = _build_message(subject, config["from_name"], config["from_email"], to_email, body_html, body_text)
    try:
        if config.get("use_ssl"):
            server = smtplib.SMTP_SSL(config["host"], config["port"])
        else:
            server = smtplib.SMTP(config["host"], config["port"])
        if config.get("use_tls") and not config.get("use_ssl"):
            server.starttls()
        if config.get("username") and config.get("password"):
            server.login(config["username"], config["password"])
        refused = server.sendmail(config["from_email"], to_email, msg.as_string())
        server.quit()
        if refused:
            logger.warning("smtp_recipients_refused to=%s refused=%s", to_email, refused)
        return True
    except smtplib.SMTPAuthenticationError as exc:
        logger.error("smtp_auth_failed to=%s error=%s", to_email, exc)
        return False
    except (smtplib.SMTPException, OSError) as exc:
        logger.error("smtp_send_failed to=%s error=%s", to_email, exc)
        return False


def send_voided_invoice_email(invoice, to_email: str) -> bool:
    label = invoice.name or invoice.slug or "your invoice"
    subject = f"Invoice {label} has been voided"
    body_text = (
        f"Hello,\n\nInvoice {label} has been voided and no payment is due.\n"
        "If you have any questions please reply to this email.\n"
    )
    body_html = (
        f"<p>Hello,</p><p>Invoice <strong>{escape(label)}</strong> has been voided and no payment is due.</p>"
        "<p>If you have any questions please reply to this email.</p>"
    )
    return send_email(to_email, subject, body_html, body_text)
