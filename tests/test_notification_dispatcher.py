import json

import httpx
import pytest

from app.core.exceptions import NotificationChannelError
from app.domain.error_classification import Severity
from app.schemas.monitoring import ErrorRecord
from app.services.notification_service import NotificationDispatcher

from tests.conftest import CUSTOM_URL, make_settings


@pytest.fixture
def record(clock) -> ErrorRecord:
    return ErrorRecord(
        id="ERR_1717243200000_abc123xyz",
        timestamp=clock(),
        type="application_error",
        name="TypeError",
        message="<script>alert(1)</script> is undefined",
        stack="Traceback (most recent call last):\n  File \"app.py\", line 1",
        severity=Severity.CRITICAL,
        context={"url": "/api/payment", "method": "POST", "status_code": 500},
        fingerprint="0cc175b9c0f1b6a831c399e269772661",
    )


def build_dispatcher(webhooks, mailer, **overrides) -> NotificationDispatcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(webhooks))
    return NotificationDispatcher(make_settings(**overrides), http_client=client, mailer=mailer)


def test_enabled_channels(webhooks, mailer):
    assert build_dispatcher(webhooks, mailer).enabled_channels() == ["email", "slack", "discord", "webhook"]
    assert build_dispatcher(webhooks, mailer, enable_error_webhooks=False).enabled_channels() == ["email"]
    assert build_dispatcher(
        webhooks, mailer, enable_error_email=False, discord_webhook_url=None
    ).enabled_channels() == ["slack", "webhook"]


def test_email_channel_requires_smtp_host(webhooks):
    dispatcher = NotificationDispatcher(
        make_settings(smtp_host=None, enable_error_webhooks=False),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(webhooks)),
    )
    assert dispatcher.mailer is None
    assert dispatcher.enabled_channels() == []


@pytest.mark.asyncio
async def test_dispatch_sends_to_all_channels(dispatcher, record, webhooks, mailer):
    result = await dispatcher.dispatch(record)

    assert result.successful == 4
    assert result.failed == 0
    assert result.total == 4
    assert sorted(webhooks.hosts()) == ["alerts.edenparfum.test", "discord.test", "hooks.slack.test"]
    assert len(mailer.sent) == 1


@pytest.mark.asyncio
async def test_slack_payload(dispatcher, record, webhooks):
    await dispatcher.send_slack(record)

    payload = json.loads(webhooks.requests[0].content)
    attachment = payload["attachments"][0]
    assert "critical" in payload["text"]
    assert attachment["color"] == "#dc3545"
    fields = {f["title"]: f["value"] for f in attachment["fields"]}
    assert fields["Error ID"] == record.id
    assert fields["Message"] == record.message


@pytest.mark.asyncio
async def test_discord_payload_uses_integer_colour(dispatcher, record, webhooks):
    await dispatcher.send_discord(record)

    embed = json.loads(webhooks.requests[0].content)["embeds"][0]
    assert embed["title"] == "CRITICAL Error"
    assert embed["color"] == 0xDC3545
    assert embed["description"] == record.message


@pytest.mark.asyncio
async def test_custom_webhook_carries_full_record(dispatcher, record, webhooks):
    await dispatcher.send_webhook(record)

    request = webhooks.requests[0]
    assert str(request.url) == CUSTOM_URL
    payload = json.loads(request.content)
    assert payload["service"] == "Eden Parfum API"
    assert payload["error"]["id"] == record.id
    assert payload["error"]["fingerprint"] == record.fingerprint
    assert payload["error"]["context"]["status_code"] == 500
    assert "timestamp" in payload


@pytest.mark.asyncio
async def test_non_2xx_response_fails_only_that_channel(dispatcher, record, webhooks):
    webhooks.status_by_host["discord.test"] = 429

    result = await dispatcher.dispatch(record)

    assert result.successful == 3
    assert result.failed == 1
    assert "429" in result.errors["discord"]


@pytest.mark.asyncio
async def test_transport_error_is_a_channel_failure(dispatcher, record, webhooks):
    webhooks.raise_for_host.add("hooks.slack.test")

    with pytest.raises(NotificationChannelError) as exc_info:
        await dispatcher.send_slack(record)
    assert exc_info.value.channel == "slack"

    result = await dispatcher.dispatch(record)
    assert result.failed == 1
    assert set(result.errors) == {"slack"}


@pytest.mark.asyncio
async def test_email_without_recipient_fails(webhooks, mailer, record):
    dispatcher = build_dispatcher(
        webhooks, mailer, error_notification_email=None, enable_error_webhooks=False
    )

    result = await dispatcher.dispatch(record)

    assert result.failed == 1
    assert "Email not configured" in result.errors["email"]
    assert mailer.sent == []


@pytest.mark.asyncio
async def test_email_html_is_escaped_and_includes_context(dispatcher, record, mailer):
    await dispatcher.send_email(record)

    email = mailer.sent[0]
    assert email["subject"] == f"[CRITICAL] Eden Parfum API Error - {record.message[:50]}"
    assert email["sender"] == "alerts@edenparfum.test"
    assert "&lt;script&gt;" in email["html"]
    assert "<script>" not in email["html"]
    assert "/api/payment" in email["html"]
    assert "Stack Trace" in email["html"]


@pytest.mark.asyncio
async def test_no_channels_returns_empty_result(record):
    dispatcher = NotificationDispatcher(make_settings(enable_error_email=False, enable_error_webhooks=False))
    result = await dispatcher.dispatch(record)
    assert result.total == 0
    await dispatcher.close()
