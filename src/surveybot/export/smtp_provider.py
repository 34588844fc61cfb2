"""
SMTP email provider implementation.

A send is attempted once on the configured port (implicit TLS on 465) and,
if that fails, once more on the fallback port with STARTTLS. Some hosting
networks block one of the two.
"""

import smtplib
import ssl
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from uuid import uuid4

import anyio

from surveybot.export.config import EmailConfig
from surveybot.export.interfaces import EmailMessage, EmailProvider, EmailResult
from surveybot.shared.logging import get_logger

logger = get_logger(__name__)


class SMTPEmailProvider(EmailProvider):
    """
    SMTP-based email provider with one retry on an alternate transport.
    """

    def __init__(self, config: EmailConfig):
        """
        Initialize SMTP provider.

        Args:
            config: Email configuration.
        """
        self._config = config

    async def send(self, message: EmailMessage) -> EmailResult:
        """
        Send email via SMTP.

        Args:
            message: Email message to send.

        Returns:
            EmailResult with send status.
        """
        # smtplib blocks; keep it off the event loop
        return await anyio.to_thread.run_sync(self._send_sync, message)

    def _build_mime(self, message: EmailMessage) -> tuple[MIMEMultipart, str]:
        msg = MIMEMultipart("mixed")
        msg["Subject"] = message.subject
        msg["From"] = message.from_email or self._config.default_from
        msg["To"] = message.to_email

        for header_name, header_value in message.headers.items():
            msg[header_name] = header_value

        body = MIMEMultipart("alternative")
        if message.body_text:
            body.attach(MIMEText(message.body_text, "plain", "utf-8"))
        body.attach(MIMEText(message.body_html, "html", "utf-8"))
        msg.attach(body)

        for attachment in message.attachments:
            _, _, subtype = attachment.content_type.partition("/")
            part = MIMEApplication(attachment.content, _subtype=subtype or "octet-stream")
            part.add_header("Content-Disposition", "attachment", filename=("utf-8", "", attachment.filename))
            msg.attach(part)

        message_id = f"<{uuid4()}@{self._config.smtp_host}>"
        msg["Message-ID"] = message_id
        return msg, message_id

    def _send_primary(self, msg: MIMEMultipart) -> None:
        cfg = self._config
        context = ssl.create_default_context()
        if cfg.primary_uses_ssl:
            with smtplib.SMTP_SSL(cfg.smtp_host, cfg.smtp_port, timeout=cfg.timeout_seconds, context=context) as server:
                server.login(cfg.smtp_username, cfg.smtp_password)
                server.send_message(msg)
        else:
            self._send_starttls(msg, cfg.smtp_port)

    def _send_starttls(self, msg: MIMEMultipart, port: int) -> None:
        cfg = self._config
        context = ssl.create_default_context()
        with smtplib.SMTP(cfg.smtp_host, port, timeout=cfg.timeout_seconds) as server:
            server.starttls(context=context)
            server.login(cfg.smtp_username, cfg.smtp_password)
            server.send_message(msg)

    def _send_sync(self, message: EmailMessage) -> EmailResult:
        """
        Synchronous SMTP send with a single fallback attempt.

        Args:
            message: Email message to send.

        Returns:
            EmailResult with send status.
        """
        msg, message_id = self._build_mime(message)

        try:
            self._send_primary(msg)
            logger.info(
                "Email sent",
                extra={"to": message.to_email, "message_id": message_id, "port": self._config.smtp_port},
            )
            return EmailResult(success=True, provider_message_id=message_id, attempts=1)
        except (smtplib.SMTPException, OSError) as primary_error:
            logger.error(
                "Primary SMTP send failed, retrying with STARTTLS",
                extra={"port": self._config.smtp_port, "fallback_port": self._config.fallback_port, "error": str(primary_error)},
            )
            primary_message = str(primary_error)

        try:
            self._send_starttls(msg, self._config.fallback_port)
        except (smtplib.SMTPException, OSError) as fallback_error:
            logger.error(
                "Fallback SMTP send failed",
                extra={"port": self._config.fallback_port, "error": str(fallback_error)},
            )
            return EmailResult(
                success=False,
                error_message=f"SMTP error: {primary_message}; fallback: {fallback_error}",
                attempts=2,
            )

        logger.info(
            "Email sent on fallback transport",
            extra={"to": message.to_email, "message_id": message_id, "port": self._config.fallback_port},
        )
        return EmailResult(success=True, provider_message_id=message_id, attempts=2)
