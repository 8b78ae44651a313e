"""Tests for email rendering, the send-time guard and the HTTP email collaborators."""
import json
from datetime import timedelta
from unittest.mock import AsyncMock

import httpx
import pytest

from conftest import NOW, add_user, make_user
from coinspree.providers import ResendProvider, TemplateStore
from coinspree.providers.core import ProviderSendError
from coinspree.providers.email import EmailProviderABC
from coinspree.providers.email.templates import DEFAULT_TEMPLATES, render
from coinspree.schemas import Role
from coinspree.schemas.emails import (ATHNotificationData, ATHNotificationJob,
                                      EmailTemplate, OutgoingEmail,
                                      PasswordResetData, PasswordResetJob,
                                      WelcomeJob)
from coinspree.services import EmailSender
from coinspree.services.email_sender import format_usd
from coinspree.storage import DeliveryLogStore


@pytest.fixture
def provider() -> AsyncMock:
    provider = AsyncMock(spec=EmailProviderABC)
    provider.send.return_value = "msg_123"
    return provider


@pytest.fixture
def deliveries(redis) -> DeliveryLogStore:
    return DeliveryLogStore(redis)


@pytest.fixture
def sender(provider, users, deliveries) -> EmailSender:
    return EmailSender(
        provider=provider,
        templates=TemplateStore(),
        users=users,
        deliveries=deliveries,
        from_address="CoinSpree <notifications@urgent.coinspree.cc>",
        reply_to="support@urgent.coinspree.cc",
        app_url="https://coinspree.cc/",
    )


def ath_job(user) -> ATHNotificationJob:
    return ATHNotificationJob(
        id="email_1",
        recipient=user,
        data=ATHNotificationData(
            crypto_id="bitcoin",
            crypto_name="Bitcoin",
            symbol="BTC",
            new_ath=70000,
            previous_ath=69000,
            percentage_increase=1.4492,
            ath_date=NOW,
        ),
    )


def test_format_usd():
    assert format_usd(70000) == "$70,000.00"
    assert format_usd(0.5) == "$0.50"


def test_render_leaves_unknown_placeholders():
    template = EmailTemplate(subject="{{a}} {{b}}", html="<p>{{a}}</p>", text="{{c}}")

    rendered = render(template, {"a": "x"})

    assert rendered.subject == "x {{b}}"
    assert rendered.html == "<p>x</p>"
    assert rendered.text == "{{c}}"


@pytest.mark.asyncio
async def test_ath_email_is_rendered_sent_and_logged(sender, provider, users, deliveries):
    alice = await add_user(users, make_user("alice"))

    assert await sender.send_ath_notification(ath_job(alice))

    [message] = provider.send.await_args.args
    assert isinstance(message, OutgoingEmail)
    assert message.to == "alice@example.com"
    assert message.subject.endswith("Bitcoin (BTC) Hit New All-Time High!")
    assert "$70,000.00" in message.html
    assert "$69,000.00" in message.text
    assert "+1.45%" in message.text
    token = await users.get_or_create_unsubscribe_token("alice")
    assert f"https://coinspree.cc/unsubscribe?token={token}" in message.html
    assert {"name": "crypto", "value": "bitcoin"} in message.tags
    assert message.reply_to == "support@urgent.coinspree.cc"

    [log] = await deliveries.get_user_history("alice")
    assert log.status == "sent"
    assert log.provider_id == "msg_123"


@pytest.mark.parametrize(
    "user, sub_kwargs",
    [
        (make_user("boss", role=Role.ADMIN), {}),
        (make_user("gone", is_active=False), {}),
        (make_user("quiet", notifications_enabled=False), {}),
        (make_user("lapsed"), {"end_date": NOW - timedelta(days=1)}),
        (make_user("nosub"), {"status": None}),
    ],
)
@pytest.mark.asyncio
async def test_ath_guard_blocks_ineligible_recipients(sender, provider, users, user, sub_kwargs):
    await add_user(users, user, **sub_kwargs)

    assert not await sender.send_ath_notification(ath_job(user))
    provider.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_guard_uses_current_user_record(sender, provider, users):
    snapshot = make_user("alice")
    await add_user(users, make_user("alice", role=Role.ADMIN))

    assert not await sender.send_ath_notification(ath_job(snapshot))
    provider.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_provider_failure_is_logged_and_raised(sender, provider, users, deliveries):
    alice = await add_user(users, make_user("alice"))
    provider.send.side_effect = ProviderSendError("Invalid API key", 401)

    with pytest.raises(ProviderSendError):
        await sender.send_ath_notification(ath_job(alice))

    [log] = await deliveries.get_user_history("alice")
    assert log.status == "failed"
    assert log.error_message == "Invalid API key"


@pytest.mark.asyncio
async def test_welcome_and_password_reset_skip_the_guard(sender, provider):
    bob = make_user("bob", notifications_enabled=False)

    assert await sender.send_welcome(WelcomeJob(id="email_2", recipient=bob))
    welcome = provider.send.await_args.args[0]
    assert "https://coinspree.cc/subscription" in welcome.html

    reset = PasswordResetJob(id="email_3", recipient=bob, data=PasswordResetData(token="abc"))
    assert await sender.send_password_reset(reset)
    message = provider.send.await_args.args[0]
    assert "https://coinspree.cc/reset-password?token=abc" in message.text


@pytest.mark.asyncio
async def test_template_store_prefers_edge_config():
    custom = {"subject": "Custom {{symbol}}", "html": "<b>{{newATH}}</b>", "text": "{{newATH}}"}
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=custom)

    store = TemplateStore("ecfg_1", "token", transport=httpx.MockTransport(handler))

    template = await store.get("ath-notification")

    assert template.subject == "Custom {{symbol}}"
    assert seen[0].url.path == "/ecfg_1/item/email-template-ath-notification"
    assert seen[0].headers["Authorization"] == "Bearer token"


@pytest.mark.parametrize("status", [404, 500])
@pytest.mark.asyncio
async def test_template_store_falls_back_to_defaults(status):
    store = TemplateStore(
        "ecfg_1", "token", transport=httpx.MockTransport(lambda request: httpx.Response(status))
    )

    assert await store.get("welcome") == DEFAULT_TEMPLATES["welcome"]


@pytest.mark.asyncio
async def test_template_store_rejects_unknown_template():
    with pytest.raises(KeyError):
        await TemplateStore().get("newsletter")


def outgoing() -> OutgoingEmail:
    return OutgoingEmail(
        from_address="CoinSpree <notifications@urgent.coinspree.cc>",
        to="alice@example.com",
        subject="Hi",
        html="<p>Hi</p>",
        text="Hi",
        reply_to="support@urgent.coinspree.cc",
        tags=[{"name": "category", "value": "welcome"}],
    )


@pytest.mark.asyncio
async def test_resend_provider_posts_message():
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"id": "re_42"})

    provider = ResendProvider("re_key", transport=httpx.MockTransport(handler))

    assert await provider.send(outgoing()) == "re_42"
    request = captured[0]
    assert request.url.path == "/emails"
    assert request.headers["Authorization"] == "Bearer re_key"
    body = json.loads(request.content)
    assert body["to"] == ["alice@example.com"]
    assert body["reply_to"] == "support@urgent.coinspree.cc"


@pytest.mark.asyncio
async def test_resend_provider_raises_on_error_body():
    provider = ResendProvider(
        "re_key",
        transport=httpx.MockTransport(
            lambda request: httpx.Response(422, json={"message": "Invalid `to` field", "name": "validation_error"})
        ),
    )

    with pytest.raises(ProviderSendError) as exc_info:
        await provider.send(outgoing())
    assert exc_info.value.status == 422


@pytest.mark.asyncio
async def test_resend_provider_requires_api_key():
    with pytest.raises(ProviderSendError, match="not configured"):
        await ResendProvider(None).send(outgoing())
