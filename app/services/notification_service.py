"""Notification dispatch for error alerts.

Handles all notification channels:
- Email (SMTP)
- Slack (incoming webhook)
- Discord (webhook)
- Custom JSON webhook
"""

import asyncio
import html
import logging
import smtplib
from collections.abc import Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

import httpx

from app.config import Settings
from app.core.exceptions import NotificationChannelError
from app.domain.error_classification import severity_color
from app.schemas.monitoring import ErrorRecord

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    """Outcome of sending one error to every enabled channel."""

    successful: int = 0
    failed: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.successful + self.failed


class SmtpMailer:
    """Blocking SMTP client run in a worker thread."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.timeout = timeout

    async def send_mail(self, sender: str, recipient: str, subject: str, html_content: str) -> None:
        """Send an HTML email. Raises on any SMTP failure."""
        await asyncio.to_thread(self._send, sender, recipient, subject, html_content)

    def _send(self, sender: str, recipient: str, subject: str, html_content: str) -> None:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = recipient
        msg.attach(MIMEText(html_content, "html"))

        # Implicit TLS on 465, STARTTLS when offered otherwise
        if self.port == 465:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)

        with server:
            server.ehlo()
            if self.port != 465 and server.has_extn("starttls"):
                server.starttls()
                server.ehlo()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)


class NotificationDispatcher:
    """Fan an error record out to every configured channel."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
        mailer: SmtpMailer | None = None,
    ) -> None:
        """Initialize dispatcher.

        Args:
            settings: Application settings
            http_client: Shared HTTP client for webhooks (created lazily if omitted)
            mailer: SMTP mailer (built from settings if omitted)
        """
        self.settings = settings
        self._http_client = http_client
        self.mailer = mailer
        if self.mailer is None and settings.enable_error_email and settings.smtp_host:
            self.mailer = SmtpMailer(
                host=settings.smtp_host,
                port=settings.smtp_port,
                username=settings.smtp_user,
                password=settings.smtp_pass,
            )
        if settings.enable_error_email and self.mailer is None:
            logger.info("Email notifications disabled - no SMTP configuration")

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.settings.webhook_timeout)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def enabled_channels(self) -> list[str]:
        """Names of the channels an error would be sent to."""
        channels = []
        if self.settings.enable_error_email and self.mailer is not None:
            channels.append("email")
        if self.settings.enable_error_webhooks:
            if self.settings.slack_webhook_url:
                channels.append("slack")
            if self.settings.discord_webhook_url:
                channels.append("discord")
            if self.settings.error_webhook_url:
                channels.append("webhook")
        return channels

    async def dispatch(self, record: ErrorRecord) -> DispatchResult:
        """Send a record to all enabled channels concurrently.

        One channel failing never cancels or fails the others.

        Args:
            record: Error to notify about

        Returns:
            DispatchResult: Success/failure counts per channel
        """
        senders = {
            "email": self.send_email,
            "slack": self.send_slack,
            "discord": self.send_discord,
            "webhook": self.send_webhook,
        }
        tasks: dict[str, Coroutine[Any, Any, None]] = {
            channel: senders[channel](record) for channel in self.enabled_channels()
        }

        result = DispatchResult()
        if not tasks:
            return result

        outcomes = await asyncio.gather(*tasks.values(), return_exceptions=True)
        for channel, outcome in zip(tasks, outcomes):
            if isinstance(outcome, BaseException):
                result.failed += 1
                result.errors[channel] = str(outcome)
                logger.warning(f"Notification via {channel} failed for {record.id}: {outcome}")
            else:
                result.successful += 1

        logger.info(
            f"Notifications sent for {record.id}: successful={result.successful}, "
            f"failed={result.failed}, total={result.total}"
        )
        return result

    # ==================== EMAIL ====================

    async def send_email(self, record: ErrorRecord) -> None:
        """Send an HTML error report by email."""
        if self.mailer is None or not self.settings.error_notification_email:
            raise NotificationChannelError("email", "Email not configured")

        subject = (
            f"[{record.severity.value.upper()}] {self.settings.app_name} Error - "
            f"{record.message[:50]}"
        )
        await self.mailer.send_mail(
            sender=self.settings.email_sender,
            recipient=self.settings.error_notification_email,
            subject=subject,
            html_content=self._generate_email_html(record),
        )

    def _generate_email_html(self, record: ErrorRecord) -> str:
        """Generate the HTML error report.

        Args:
            record: Error to describe

        Returns:
            str: HTML email content
        """
        context = record.context
        context_html = ""
        if context.url:
            context_html = f"""
            <div style="background: #e9ecef; padding: 15px; margin: 10px 0;">
                <h3>Request Context</h3>
                <p><strong>URL:</strong> {html.escape(context.url)}</p>
                <p><strong>Method:</strong> {html.escape(context.method or "N/A")}</p>
                <p><strong>IP:</strong> {html.escape(context.ip or "N/A")}</p>
                <p><strong>User Agent:</strong> {html.escape(context.user_agent or "N/A")}</p>
            </div>
            """

        stack_html = ""
        if record.stack:
            stack_html = f"""
            <div style="background: #f8f9fa; padding: 15px; margin: 10px 0;">
                <h3>Stack Trace</h3>
                <pre style="background: #ffffff; padding: 10px; border: 1px solid #dee2e6;
                            overflow-x: auto; font-size: 12px;">{html.escape(record.stack)}</pre>
            </div>
            """

        return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
        </head>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
                     max-width: 700px; margin: 0 auto; padding: 20px; color: #333;">
            <h2>{html.escape(self.settings.app_name)} Error Report</h2>
            <div style="background: #f8f9fa; padding: 15px; margin: 10px 0;
                        border-left: 4px solid {severity_color(record.severity)};">
                <h3>Error Details</h3>
                <p><strong>ID:</strong> {record.id}</p>
                <p><strong>Time:</strong> {record.timestamp.isoformat()}</p>
                <p><strong>Severity:</strong> {record.severity.value}</p>
                <p><strong>Type:</strong> {html.escape(record.type)}</p>
                <p><strong>Message:</strong> {html.escape(record.message)}</p>
            </div>
            {context_html}
            {stack_html}
            <p style="margin-top: 20px; color: #6c757d; font-size: 12px;">
                This is an automated error notification from the {html.escape(self.settings.app_name)}
                monitoring system.
            </p>
        </body>
        </html>
        """

    # ==================== WEBHOOKS ====================

    async def send_slack(self, record: ErrorRecord) -> None:
        """Send a Slack attachment with a severity-coloured sidebar."""
        payload = {
            "text": f"🚨 {self.settings.app_name} Error - {record.severity.value}",
            "attachments": [
                {
                    "color": severity_color(record.severity),
                    "fields": [
                        {"title": "Error ID", "value": record.id, "short": True},
                        {"title": "Severity", "value": record.severity.value, "short": True},
                        {"title": "Type", "value": record.type, "short": True},
                        {"title": "Time", "value": record.timestamp.isoformat(), "short": True},
                        {"title": "Message", "value": record.message, "short": False},
                    ],
                }
            ],
        }
        await self._post_webhook("slack", self.settings.slack_webhook_url, payload)

    async def send_discord(self, record: ErrorRecord) -> None:
        """Send a Discord embed."""
        payload = {
            "content": f"🚨 **{self.settings.app_name} Error**",
            "embeds": [
                {
                    "title": f"{record.severity.value.upper()} Error",
                    "description": record.message,
                    "color": int(severity_color(record.severity).lstrip("#"), 16),
                    "fields": [
                        {"name": "Error ID", "value": record.id, "inline": True},
                        {"name": "Type", "value": record.type, "inline": True},
                        {"name": "Time", "value": record.timestamp.isoformat(), "inline": False},
                    ],
                    "timestamp": record.timestamp.isoformat(),
                }
            ],
        }
        await self._post_webhook("discord", self.settings.discord_webhook_url, payload)

    async def send_webhook(self, record: ErrorRecord) -> None:
        """Send the full record to the custom webhook."""
        payload = {
            "service": self.settings.app_name,
            "error": record.model_dump(mode="json"),
            "timestamp": datetime.now(UTC).isoformat(),
        }
        await self._post_webhook("webhook", self.settings.error_webhook_url, payload)

    async def _post_webhook(self, channel: str, url: str | None, payload: dict[str, Any]) -> None:
        """POST a JSON payload. Any non-2xx response is a failure."""
        if not url:
            raise NotificationChannelError(channel, "Webhook URL not configured")

        try:
            response = await self.http_client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise NotificationChannelError(channel, str(e)) from e

        if not response.is_success:
            raise NotificationChannelError(
                channel, f"Webhook failed: {response.status_code} {response.reason_phrase}"
            )
