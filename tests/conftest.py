"""Shared fixtures: settings, a controllable clock and fake notification channels."""

from datetime import UTC, datetime, timedelta

import httpx
import pytest

from app.config import Settings
from app.services.error_notification_service import ErrorNotificationService
from app.services.notification_service import NotificationDispatcher

SLACK_URL = "https://hooks.slack.test/services/T000/B000/XXXX"
DISCORD_URL = "https://discord.test/api/webhooks/1/abc"
CUSTOM_URL = "https://alerts.edenparfum.test/errors"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeMailer:
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.fail = False

    async def send_mail(self, sender: str, recipient: str, subject: str, html_content: str) -> None:
        if self.fail:
            raise ConnectionRefusedError("SMTP server unavailable")
        self.sent.append(
            {"sender": sender, "recipient": recipient, "subject": subject, "html": html_content}
        )


class WebhookRecorder:
    """httpx.MockTransport handler recording every webhook call."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_by_host: dict[str, int] = {}
        self.raise_for_host: set[str] = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host in self.raise_for_host:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(self.status_by_host.get(request.url.host, 200))

    def hosts(self) -> list[str]:
        return [r.url.host for r in self.requests]


def make_settings(**overrides) -> Settings:
    values = {
        "enable_error_email": True,
        "smtp_host": "smtp.edenparfum.test",
        "smtp_user": "alerts@edenparfum.test",
        "error_notification_email": "ops@edenparfum.test",
        "enable_error_webhooks": True,
        "slack_webhook_url": SLACK_URL,
        "discord_webhook_url": DISCORD_URL,
        "error_webhook_url": CUSTOM_URL,
        "max_notifications_per_hour": 10,
        "notification_cooldown": 300000,
        "critical_error_threshold": 5,
        "error_rate_threshold": 0.1,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def webhooks() -> WebhookRecorder:
    return WebhookRecorder()


@pytest.fixture
def dispatcher(settings, mailer, webhooks) -> NotificationDispatcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(webhooks))
    return NotificationDispatcher(settings, http_client=client, mailer=mailer)


@pytest.fixture
def service(settings, dispatcher, clock) -> ErrorNotificationService:
    return ErrorNotificationService(settings, dispatcher=dispatcher, clock=clock)
