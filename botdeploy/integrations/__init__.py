"""External service integrations."""

from botdeploy.integrations.telegram import (
    TelegramApiError,
    TelegramBotClient,
    TelegramClientError,
    TelegramRequestError,
    WebhookRegistration,
    build_webhook_url,
    create_telegram_client,
)

__all__ = [
    "TelegramApiError",
    "TelegramBotClient",
    "TelegramClientError",
    "TelegramRequestError",
    "WebhookRegistration",
    "build_webhook_url",
    "create_telegram_client",
]
