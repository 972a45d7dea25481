"""
Outgoing mail.

SMTP when SMTP_HOST is configured; otherwise messages are written to the log so
local development and tests never need a mail server.
"""
from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Any

logger = logging.getLogger(__name__)


def send_email(config: Any, *, to: str, subject: str, body: str) -> bool:
    host = config.get("SMTP_HOST") or ""
    if not host:
        if (config.get("ENV") or "").lower() in ("prod", "production"):
            # bodies carry live verification and reset links
            logger.warning("Email not sent, SMTP_HOST unset: to=%s subject=%s", to, subject)
        else:
            logger.info("Email (not sent, SMTP_HOST unset): to=%s subject=%s\n%s", to, subject, body)
        return False

    msg = EmailMessage()
    msg["From"] = config.get("MAIL_FROM")
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body)

    try:
        with smtplib.SMTP(host, int(config.get("SMTP_PORT") or 587), timeout=15) as smtp:
            smtp.starttls()
            if config.get("SMTP_USERNAME"):
                smtp.login(config["SMTP_USERNAME"], config.get("SMTP_PASSWORD") or "")
            smtp.send_message(msg)
    except (OSError, smtplib.SMTPException) as e:
        logger.error("Email send failed to=%s subject=%s: %s", to, subject, e)
        return False
    logger.info("Email sent to=%s subject=%s", to, subject)
    return True


def send_verification_email(config: Any, to: str, token: str) -> bool:
    link = f"{config.get('BASE_URL')}/verify-email?token={token}"
    return send_email(
        config,
        to=to,
        subject="Verify your Shader House email",
        body=f"Welcome to Shader House!\n\nConfirm your email address within 24 hours:\n{link}\n",
    )


def send_password_reset_email(config: Any, to: str, token: str) -> bool:
    link = f"{config.get('BASE_URL')}/reset-password?token={token}"
    return send_email(
        config,
        to=to,
        subject="Reset your Shader House password",
        body=f"A password reset was requested for your account.\n\nThis link expires in 1 hour:\n{link}\n\n"
        "If you did not request this, you can ignore this email.\n",
    )


def send_email_change_email(config: Any, to: str, token: str) -> bool:
    link = f"{config.get('BASE_URL')}/verify-email-change?token={token}"
    return send_email(
        config,
        to=to,
        subject="Verify your new email - Shader House",
        body=f"Confirm this address for your Shader House account within 24 hours:\n{link}\n\n"
        "If you did not request this change, you can ignore this email.\n",
    )
