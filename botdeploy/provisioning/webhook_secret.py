"""Webhook path secret generation."""

from __future__ import annotations

import secrets
import string

WEBHOOK_SECRET_LENGTH = 24
WEBHOOK_SECRET_ALPHABET = string.ascii_letters + string.digits


def generate_webhook_secret(length: int = WEBHOOK_SECRET_LENGTH) -> str:
    # Alphanumeric only so the value is usable verbatim as an nginx location path.
    return "".join(secrets.choice(WEBHOOK_SECRET_ALPHABET) for _ in range(length))
