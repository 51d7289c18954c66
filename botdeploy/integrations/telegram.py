"""Telegram Bot API client for webhook registration."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from botdeploy.config import DeploySettings

HTTPClientFactory = Callable[..., httpx.Client]


class TelegramClientError(Exception):
    """Base Telegram client exception."""

    error_code = "telegram_client_error"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TelegramRequestError(TelegramClientError):
    error_code = "telegram_request_error"


class TelegramApiError(TelegramClientError):
    """Raised when the Bot API answers with ok=false or an error status."""

    error_code = "telegram_api_error"


@dataclass(frozen=True, slots=True)
class WebhookRegistration:
    url: str
    description: str | None


def build_webhook_url(*, domain: str, webhook_secret: str) -> str:
    return f"https://{domain}/{webhook_secret}"


class TelegramBotClient:
    def __init__(
        self,
        *,
        bot_token: str,
        base_url: str = "https://api.telegram.org",
        timeout_seconds: float = 15.0,
        http_client_factory: HTTPClientFactory = httpx.Client,
    ) -> None:
        normalized_token = bot_token.strip()
        if not normalized_token:
            raise ValueError("BOT_TOKEN is required for Telegram API calls")

        self._bot_token = normalized_token
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._http_client_factory = http_client_factory

    def set_webhook(self, url: str, *, drop_pending_updates: bool = True) -> WebhookRegistration:
        payload = {
            "url": url,
            "drop_pending_updates": "true" if drop_pending_updates else "false",
        }
        response = self._request("setWebhook", data=payload)
        body = _parse_json_object(response)
        if response.status_code >= 400 or body.get("ok") is not True:
            description = _coerce_optional_str(body.get("description"))
            raise TelegramApiError(
                f"setWebhook failed with status={response.status_code}"
                + (f": {description}" if description else ""),
                status_code=response.status_code,
            )

        return WebhookRegistration(
            url=url,
            description=_coerce_optional_str(body.get("description")),
        )

    def _request(self, method: str, *, data: dict[str, str]) -> httpx.Response:
        # The token is part of the path; keep it out of error messages.
        with self._http_client_factory(
            base_url=f"{self._base_url}/bot{self._bot_token}",
            timeout=self._timeout_seconds,
        ) as client:
            try:
                return client.post(f"/{method}", data=data)
            except httpx.HTTPError as exc:
                raise TelegramRequestError(
                    f"telegram {method} request failed: {type(exc).__name__}"
                ) from exc


def create_telegram_client(
    settings: DeploySettings,
    *,
    bot_token: str,
    http_client_factory: HTTPClientFactory = httpx.Client,
) -> TelegramBotClient:
    return TelegramBotClient(
        bot_token=bot_token,
        base_url=settings.telegram_api_base_url,
        timeout_seconds=settings.telegram_http_timeout_seconds,
        http_client_factory=http_client_factory,
    )


def _parse_json_object(response: httpx.Response) -> Mapping[str, Any]:
    try:
        data = response.json()
    except (json.JSONDecodeError, ValueError) as exc:
        raise TelegramApiError(
            f"telegram response is not valid JSON; status={response.status_code}",
            status_code=response.status_code,
        ) from exc

    if not isinstance(data, Mapping):
        raise TelegramApiError(
            f"telegram response root must be a JSON object; status={response.status_code}",
            status_code=response.status_code,
        )
    return data


def _coerce_optional_str(value: Any) -> str | None:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return None
