from __future__ import annotations

from collections.abc import Callable
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest

from botdeploy.config import DeploySettings
from botdeploy.integrations.telegram import (
    TelegramApiError,
    TelegramBotClient,
    TelegramRequestError,
    build_webhook_url,
    create_telegram_client,
)

TOKEN = "123456:ABC-def"


def test_set_webhook_posts_form_to_bot_scoped_path() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            status_code=200,
            json={"ok": True, "result": True, "description": "Webhook was set"},
        )

    client = TelegramBotClient(bot_token=TOKEN, http_client_factory=_mock_client_factory(handler))

    registration = client.set_webhook("https://bot.example.com/s3cret")

    assert registration.url == "https://bot.example.com/s3cret"
    assert registration.description == "Webhook was set"
    assert len(seen) == 1
    assert seen[0].method == "POST"
    assert seen[0].url.host == "api.telegram.org"
    assert seen[0].url.path == f"/bot{TOKEN}/setWebhook"
    form = parse_qs(seen[0].content.decode())
    assert form == {
        "url": ["https://bot.example.com/s3cret"],
        "drop_pending_updates": ["true"],
    }


def test_set_webhook_raises_when_api_answers_not_ok() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status_code=400,
            json={"ok": False, "description": "Bad Request: bad webhook: HTTPS url must be provided"},
        )

    client = TelegramBotClient(bot_token=TOKEN, http_client_factory=_mock_client_factory(handler))

    with pytest.raises(TelegramApiError, match="HTTPS url must be provided") as exc_info:
        client.set_webhook("http://bot.example.com/s3cret")

    assert exc_info.value.status_code == 400


def test_set_webhook_rejects_non_json_response() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code=502, text="<html>Bad Gateway</html>")

    client = TelegramBotClient(bot_token=TOKEN, http_client_factory=_mock_client_factory(handler))

    with pytest.raises(TelegramApiError, match="not valid JSON"):
        client.set_webhook("https://bot.example.com/s3cret")


def test_set_webhook_wraps_transport_errors_without_leaking_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = TelegramBotClient(bot_token=TOKEN, http_client_factory=_mock_client_factory(handler))

    with pytest.raises(TelegramRequestError) as exc_info:
        client.set_webhook("https://bot.example.com/s3cret")

    assert "ConnectError" in str(exc_info.value)
    assert TOKEN not in str(exc_info.value)


def test_client_requires_bot_token() -> None:
    with pytest.raises(ValueError, match="BOT_TOKEN"):
        TelegramBotClient(bot_token="   ")


def test_factory_uses_configured_api_base_url() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status_code=200, json={"ok": True})

    settings = DeploySettings(telegram_api_base_url="https://tg.example.test")
    client = create_telegram_client(
        settings,
        bot_token=TOKEN,
        http_client_factory=_mock_client_factory(handler),
    )

    registration = client.set_webhook("https://bot.example.com/s3cret", drop_pending_updates=False)

    assert registration.description is None
    assert seen[0].url.host == "tg.example.test"
    assert parse_qs(seen[0].content.decode())["drop_pending_updates"] == ["false"]


def test_build_webhook_url_uses_https_and_secret_path() -> None:
    assert (
        build_webhook_url(domain="bot.example.com", webhook_secret="abc")
        == "https://bot.example.com/abc"
    )


def _mock_client_factory(
    handler: Callable[[httpx.Request], httpx.Response],
) -> Callable[..., httpx.Client]:
    def factory(**kwargs: Any) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(handler), **kwargs)

    return factory
