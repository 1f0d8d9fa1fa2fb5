"""
auth/mailer.py -- SMTP delivery of activation and password-reset tokens.

The token plaintext is written into the message body and nowhere else. When
SMTP is not configured (no smtp_host) the mailer is disabled: sends are
logged without the token and reported as not delivered, so a development
server never leaks tokens into its logs.

Delivery failures are logged and reported as False rather than raised. A
registration or reset request has already been committed by the time the
mail goes out; failing the request would not undo it.
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from core.config import Settings

logger = logging.getLogger("cashcow.mailer")


class TokenMailer:
    """Sends single-use tokens to users by email."""

    def __init__(self, settings: Settings) -> None:
        self.smtp_host = settings.smtp_host
        self.smtp_port = settings.smtp_port
        self.smtp_username = settings.smtp_username
        self.smtp_password = settings.smtp_password
        self.sender = settings.smtp_sender
        self.enabled = bool(self.smtp_host and self.sender)

    def send_activation(self, to_email: str, user_id: int, token: str) -> bool:
        subject = "Activate your Cash Cow account"
        text_body = (
            "Thanks for signing up for a Cash Cow account.\n\n"
            "To activate your account send a PUT request to /api/v1/users/activated with:\n\n"
            f'{{"token": "{token}"}}\n\n'
            f"Your user ID is {user_id}. This token expires in 3 days and can be used once.\n"
        )
        return self._send(to_email, subject, text_body)

    def send_password_reset(self, to_email: str, token: str) -> bool:
        subject = "Reset your Cash Cow password"
        text_body = (
            "To reset your password send a PUT request to /api/v1/users/password with:\n\n"
            f'{{"token": "{token}", "password": "your new password"}}\n\n'
            "This token expires in 45 minutes and can be used once.\n"
            "If you did not ask for a reset you can ignore this email.\n"
        )
        return self._send(to_email, subject, text_body)

    def _send(self, to_email: str, subject: str, text_body: str) -> bool:
        if not self.enabled:
            logger.info("SMTP not configured; skipped %r to %s", subject, to_email)
            return False
        try:
            msg = MIMEMultipart("alternative")
            msg["Subject"] = subject
            msg["From"] = self.sender
            msg["To"] = to_email
            msg.attach(MIMEText(text_body, "plain", "utf-8"))

            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as server:
                server.starttls()
                if self.smtp_username:
                    server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError):
            logger.exception("Failed to send %r to %s", subject, to_email)
            return False
        logger.info("Sent %r to %s", subject, to_email)
        return True
