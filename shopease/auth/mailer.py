"""
Outgoing email for the auth service.

Only the password reset message exists today. When SMTP is not configured
the reset link is logged so local development still works.
"""
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from fastapi import Request

from shopease.base_microservice import BaseMicroservice
from shopease.config import Settings

mail_service = BaseMicroservice("mailer")

SMTP_TIMEOUT_SECONDS = 10


class EmailSender:
    """Sends account emails via SMTP."""

    def __init__(self, settings: Settings):
        self.host = settings.email_host
        self.port = settings.email_port
        self.secure = settings.email_secure
        self.username = settings.email_user
        self.password = settings.email_password
        self.from_email = settings.email_from
        self.from_name = settings.email_from_name
        self.reset_password_url = settings.reset_password_url.rstrip("/")
        self.enabled = settings.email_enabled

    def reset_link(self, token: str) -> str:
        return f"{self.reset_password_url}/{token}"

    def send_reset_password_email(self, to_email: str, name: str, token: str) -> bool:
        """
        Send the password reset link.

        Never raises: a failed send is logged and reported as False, since
        the caller has already answered the client.
        """
        link = self.reset_link(token)
        if not self.enabled:
            mail_service.logger.info(f"[EMAIL] Password reset link for {to_email}: {link}")
            return True

        subject = "Reset your password"
        text_body = (
            f"Hello {name},\n\n"
            "We received a request to reset your password. Use the link below to choose a new one:\n"
            f"{link}\n\n"
            "This link expires in 1 hour. If you did not ask for a reset you can ignore this email.\n"
        )
        html_body = (
            f"<p>Hello {name},</p>"
            "<p>We received a request to reset your password.</p>"
            f'<p><a href="{link}">Reset password</a></p>'
            "<p>This link expires in 1 hour. If you did not ask for a reset you can ignore this email.</p>"
        )
        try:
            self._send_email(to_email, subject, html_body, text_body)
            return True
        except (smtplib.SMTPException, OSError) as e:
            mail_service.log_error(e, context=f"Password reset email to {to_email}")
            return False

    def _send_email(self, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        if self.secure:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS)
        with server:
            if not self.secure:
                server.starttls()
            server.login(self.username, self.password or "")
            server.send_message(msg)


def get_email_sender(request: Request) -> EmailSender:
    """Dependency returning the app's email sender."""
    return request.app.state.email_sender
