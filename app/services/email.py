"""Password reset email delivery over SMTP."""

import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from app.schemas.auth import PasswordResetTicket

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """SMTP delivery failed."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class PasswordResetMailer:
    """Sends reset links; without SMTP_HOST delivery is disabled and only logged."""

    def __init__(self, settings=None) -> None:
        if settings is None:
            from app.core.config import get_settings

            settings = get_settings()
        self.settings = settings

    @property
    def enabled(self) -> bool:
        return bool(self.settings.SMTP_HOST)

    def reset_link(self, token: str) -> str:
        return f"{self.settings.PASSWORD_RESET_URL.rstrip('/')}/{token}"

    def compose(self, ticket: PasswordResetTicket) -> MIMEMultipart:
        link = self.reset_link(ticket.token or "")
        minutes = self.settings.PASSWORD_RESET_EXPIRE_MINUTES
        greeting = f"Hello {ticket.full_name}," if ticket.full_name else "Hello,"
        text_body = (
            f"{greeting}\n\n"
            "A password reset was requested for your Partner Dashboard account.\n"
            f"Open this link to choose a new password (valid for {minutes} minutes):\n\n"
            f"{link}\n\n"
            "If you did not request this, you can ignore this email.\n"
        )
        safe_greeting = html.escape(greeting)
        safe_link = html.escape(link, quote=True)
        html_body = (
            f"<p>{safe_greeting}</p>"
            "<p>A password reset was requested for your Partner Dashboard account.</p>"
            f'<p><a href="{safe_link}">Reset your password</a> (valid for {minutes} minutes).</p>'
            "<p>If you did not request this, you can ignore this email.</p>"
        )
        msg = MIMEMultipart("alternative")
        msg["Subject"] = "Password reset"
        msg["From"] = self.settings.SMTP_FROM_EMAIL
        msg["To"] = ticket.email or ""
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    def send(self, ticket: PasswordResetTicket) -> bool:
        """Deliver the reset link for a ticket; returns False when nothing was sent."""
        if not ticket.token or not ticket.email:
            return False
        if not self.enabled:
            logger.info("SMTP not configured; password reset email not sent")
            return False
        msg = self.compose(ticket)
        s = self.settings
        try:
            with smtplib.SMTP(s.SMTP_HOST, s.SMTP_PORT, timeout=s.SMTP_TIMEOUT_SEC) as server:
                if s.SMTP_USE_TLS:
                    server.starttls()
                if s.SMTP_USER and s.SMTP_PASSWORD:
                    server.login(s.SMTP_USER, s.SMTP_PASSWORD.get_secret_value())
                server.sendmail(s.SMTP_FROM_EMAIL, [ticket.email], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"Password reset email could not be sent: {e}") from e
        logger.info("Password reset email sent")
        return True

    def send_quietly(self, ticket: PasswordResetTicket) -> None:
        """Background-task entry point: delivery errors are logged, never raised."""
        try:
            self.send(ticket)
        except EmailDeliveryError as e:
            logger.error("%s", e.message)
