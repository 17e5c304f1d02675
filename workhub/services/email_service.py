"""
Workhub
Email Service.

Outbound mail for invitations. When SMTP is not configured the message is
logged instead of sent (dev/test mode).

Configuration (env vars):
    MAIL_SERVER     SMTP host (default: None -> log-only mode)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use TLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address
    APP_BASE_URL    Frontend origin used to build the accept link
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

from flask import current_app

logger = logging.getLogger(__name__)


_TEMPLATES: dict[str, dict[str, str]] = {
    "workspace_invite": {
        "subject": "You're invited to join {workspace_name} on Workhub",
        "html": """
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #1e293b;">Join {workspace_name}</h2>
            <p style="color: #475569; line-height: 1.6;">
                {inviter_name} invited you to the <strong>{workspace_name}</strong>
                workspace as <strong>{role}</strong>.
            </p>
            <p>
                <a href="{invite_url}" style="background: #2563eb; color: white; padding: 10px 18px;
                   border-radius: 6px; text-decoration: none;">Accept invitation</a>
            </p>
            <p style="color: #94a3b8; font-size: 12px;">This link expires in {ttl_days} days.</p>
        </div>
        """,
        "text": (
            "{inviter_name} invited you to the {workspace_name} workspace as {role}.\n"
            "Accept: {invite_url}\n"
            "This link expires in {ttl_days} days.\n"
        ),
    },
}


class EmailService:
    """Stateless mail sender with template support."""

    @staticmethod
    def is_configured() -> bool:
        return bool(current_app.config.get("MAIL_SERVER"))

    @staticmethod
    def invite_url(token: str) -> str:
        base = current_app.config.get("APP_BASE_URL", "").rstrip("/")
        return f"{base}/invite/{token}"

    @classmethod
    def send_invite(
        cls,
        email: str,
        token: str,
        workspace_name: str,
        *,
        inviter_name: str | None = None,
        role: str = "member",
    ) -> bool:
        """
        Send the invitation mail for ``token``.

        Returns True when a message was handed to SMTP, False in log-only
        mode. SMTP errors propagate; callers decide whether they matter.
        """
        context = {
            "workspace_name": workspace_name,
            "inviter_name": inviter_name or "A teammate",
            "role": role,
            "invite_url": cls.invite_url(token),
            "ttl_days": current_app.config.get("INVITE_TTL_DAYS", 7),
        }
        return cls.send_from_template(to_email=email, template_name="workspace_invite", context=context)

    @classmethod
    def send_from_template(cls, *, to_email: str, template_name: str, context: dict[str, Any]) -> bool:
        template = _TEMPLATES.get(template_name)
        if not template:
            logger.warning("Email template not found: %s", template_name)
            return False

        subject = template["subject"].format_map(_SafeDict(context))
        html_body = template["html"].format_map(_SafeDict(context))
        text_body = template["text"].format_map(_SafeDict(context))

        if not cls.is_configured():
            logger.info("Email (dev mode): to=%s subject='%s' template=%s",
                        to_email, subject, template_name)
            return False

        cls._send_smtp(to_email=to_email, subject=subject, html_body=html_body, text_body=text_body)
        logger.info("Email sent: to=%s subject='%s'", to_email, subject)
        return True

    @staticmethod
    def _send_smtp(*, to_email: str, subject: str, html_body: str, text_body: str) -> None:
        cfg = current_app.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER", f"noreply@{server}")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if cfg.get("MAIL_USE_TLS", True):
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)


class _SafeDict(dict):
    """Dict that returns {key} for missing keys instead of raising."""

    def __missing__(self, key):
        return f"{{{key}}}"
