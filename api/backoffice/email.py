import logging
import os
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from html import escape
from typing import Iterable

logger = logging.getLogger(__name__)

SMTP_HOST = os.getenv("EMAIL_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("EMAIL_PORT", "587"))
SMTP_USER = os.getenv("EMAIL_USER")
SMTP_PASSWORD = os.getenv("EMAIL_PASSWORD")
DEFAULT_SENDER = os.getenv("EMAIL_SENDER", SMTP_USER or "noreply@example.com")
DEFAULT_SENDER_NAME = os.getenv("EMAIL_SENDER_NAME", "Back Office")


def send_email(
    to: Iterable[str] | str,
    subject: str,
    body: str,
    html_body: str | None = None,
    sender_name: str | None = None,
    reply_to: str | None = None,
) -> bool:
    """Deliver one message to every recipient. Returns False instead of raising."""
    recipients = [to] if isinstance(to, str) else [addr for addr in to if addr]
    if not recipients:
        return False
    if not (SMTP_USER and SMTP_PASSWORD):
        logger.warning(
            "SMTP credentials missing; email not delivered. to=%s subject=%r",
            ", ".join(recipients),
            subject,
        )
        return False

    display_name = (sender_name or DEFAULT_SENDER_NAME).strip()
    msg = EmailMessage()
    msg["From"] = formataddr((display_name, DEFAULT_SENDER)) if display_name else DEFAULT_SENDER
    if reply_to:
        msg["Reply-To"] = reply_to
    msg["To"] = ", ".join(recipients)
    msg["Subject"] = subject
    msg.set_content(body or "")
    msg.add_alternative(html_body or f"<p>{escape(body or '')}</p>", subtype="html")
    try:
        with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=15) as smtp:
            smtp.starttls()
            smtp.login(SMTP_USER, SMTP_PASSWORD)
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError):
        logger.exception("email send failed: subject=%r", subject)
        return False
    return True
