"""
auth/mailer.py -- Outbound delivery of one-time codes over SMTP.

The dispatcher is the only latency-sensitive collaborator besides bcrypt, so
every SMTP connection is opened with Settings.smtp_timeout_seconds. A slow or
unreachable server surfaces as DispatchFailure, never as a hung request.

Dev mode: when SMTP_HOST is empty nothing is sent. The dispatcher logs that a
code was generated for a (redacted) recipient and reports success. The code
itself is never logged.
"""

from __future__ import annotations

import html
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from auth.errors import DispatchFailure
from core.config import Settings

logger = logging.getLogger("vaultguard.mailer")

_SUBJECT = "VaultGuard -- Your Security Code"

_HTML_TEMPLATE = """\
<div style="font-family: sans-serif; max-width: 600px; margin: auto; padding: 20px;">
  <h2 style="text-align: center;">VaultGuard Security</h2>
  <p>A sign-in or verification was requested for <strong>{to_email}</strong>.</p>
  <div style="background: #f4f4f4; padding: 20px; text-align: center; border-radius: 8px;">
    <span style="font-size: 32px; font-weight: bold; letter-spacing: 5px;">{code}</span>
  </div>
  <p style="color: #666; font-size: 14px;">This code expires in <b>{minutes} minutes</b>.
  If you did not request it, secure your account immediately.</p>
</div>
"""


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class Mailer:
    """SMTP dispatcher for one-time codes."""

    def __init__(
        self,
        *,
        smtp_host: str = "",
        smtp_port: int = 465,
        smtp_user: str = "",
        smtp_password: str = "",
        smtp_use_tls: bool = False,
        from_email: str = "",
        timeout: float = 10.0,
        code_ttl_minutes: int = 5,
    ) -> None:
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.from_email = from_email or smtp_user or "noreply@vaultguard.io"
        self.timeout = timeout
        self.code_ttl_minutes = code_ttl_minutes

    @classmethod
    def from_settings(cls, settings: Settings) -> "Mailer":
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_password,
            smtp_use_tls=settings.smtp_use_tls,
            from_email=settings.smtp_from,
            timeout=settings.smtp_timeout_seconds,
            code_ttl_minutes=max(1, settings.mfa_code_ttl_seconds // 60),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_host)

    def send_code(self, to_email: str, code: str) -> None:
        """Deliver a one-time code. Raises DispatchFailure on any delivery failure."""
        if not to_email or "@" not in to_email:
            raise DispatchFailure("Invalid recipient address.")

        if not self.is_configured:
            logger.info("SMTP not configured; one-time code for %s was not sent", redact_email(to_email))
            return

        msg = MIMEMultipart("alternative")
        msg["Subject"] = _SUBJECT
        msg["From"] = f"VaultGuard Security <{self.from_email}>"
        msg["To"] = to_email
        msg.attach(
            MIMEText(
                f"Your VaultGuard verification code is: {code}. It expires in {self.code_ttl_minutes} minutes.",
                "plain",
            )
        )
        body = _HTML_TEMPLATE.format(to_email=html.escape(to_email), code=code, minutes=self.code_ttl_minutes)
        msg.attach(MIMEText(body, "html"))

        context = ssl.create_default_context()
        try:
            if self.smtp_use_tls:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    self._login(server)
                    server.sendmail(self.from_email, to_email, msg.as_string())
            else:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=self.timeout) as server:
                    self._login(server)
                    server.sendmail(self.from_email, to_email, msg.as_string())
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send code to %s: %s", redact_email(to_email), type(exc).__name__)
            raise DispatchFailure() from exc

        logger.info("One-time code sent to %s", redact_email(to_email))

    def _login(self, server: smtplib.SMTP) -> None:
        if self.smtp_user and self.smtp_password:
            server.login(self.smtp_user, self.smtp_password)
