"""Invite emails over SMTP.

Outside production (or without ``SMTP_HOST``) messages are logged instead of
sent, so development and tests never reach a mail server.
"""

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from string import Template

from school_portal.config import Settings
from school_portal.database import Invite
from school_portal.errors import DeliveryError
from school_portal.logutils import get_logger

logger = get_logger(__name__)

_TEXT = Template(
    """Welcome to School Portal!

You've been invited to join School Portal as a $role.

Complete your registration here:
$signup_url

This invite will expire in $days days.
"""
)

_HTML = Template(
    """
<h1>Welcome to School Portal!</h1>
<p>You've been invited to join School Portal as a $role.</p>
<p>Click the link below to complete your registration:</p>
<p><a href="$signup_url">Complete Registration</a></p>
<p>This invite will expire in $days days.</p>
"""
)

SUBJECTS = {
    "student": "Welcome to School Portal - Student Invitation",
    "teacher": "Welcome to School Portal - Teacher Invitation",
}


class EmailService:
    def __init__(self, settings: Settings):
        self.settings = settings

    def signup_url(self, token: str) -> str:
        return f"{self.settings.signup_url}?token={token}"

    def render_invite(self, invite: Invite) -> MIMEMultipart:
        try:
            subject = SUBJECTS[invite.role]
        except KeyError:
            raise ValueError(f"No email template found for role: {invite.role}") from None

        msg = MIMEMultipart("alternative")
        msg["From"] = self.settings.email_from
        msg["To"] = invite.email
        msg["Subject"] = subject
        fields = {
            "role": invite.role,
            "signup_url": self.signup_url(invite.token or ""),
            "days": self.settings.invite_ttl_days,
        }
        msg.attach(MIMEText(_TEXT.substitute(fields), "plain"))
        msg.attach(MIMEText(_HTML.substitute(fields), "html"))
        return msg

    def send_invite(self, invite: Invite) -> None:
        """Send the signup email for ``invite``.

        Raises:
            DeliveryError: if the SMTP exchange fails.
        """
        msg = self.render_invite(invite)

        if not self.settings.sends_email:
            logger.info(
                "Email delivery disabled; invite not sent",
                extra={"extra_data": {"email": invite.email, "role": invite.role, "invite_id": invite.id}},
            )
            return

        try:
            with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=10) as server:
                if self.settings.smtp_use_tls:
                    server.starttls()
                if self.settings.smtp_username:
                    server.login(self.settings.smtp_username, self.settings.smtp_password or "")
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error(
                "Failed to send invite email",
                extra={"extra_data": {"email": invite.email, "error": str(exc)}},
            )
            raise DeliveryError("Failed to send invite email") from exc

        logger.info("Invite email sent", extra={"extra_data": {"email": invite.email, "role": invite.role}})
