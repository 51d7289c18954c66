"""Deployment configuration record: operator prompts, persistence, and app config patching."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from botdeploy.integrations.telegram import build_webhook_url
from botdeploy.provisioning.commands import CommandRunner, run_checked
from botdeploy.provisioning.errors import AppConfigError, DeploymentRecordError
from botdeploy.provisioning.webhook_secret import generate_webhook_secret

PromptFn = Callable[[str], str]
SecretFactory = Callable[[], str]

RECORD_KEY_DOMAIN = "BOT_DOMAIN"
RECORD_KEY_TOKEN = "BOT_TOKEN"
RECORD_KEY_ADMIN_ID = "ADMIN_ID"
RECORD_KEY_WEBHOOK_SECRET = "WEBHOOK_SECRET"
RECORD_KEYS = (
    RECORD_KEY_DOMAIN,
    RECORD_KEY_TOKEN,
    RECORD_KEY_ADMIN_ID,
    RECORD_KEY_WEBHOOK_SECRET,
)

# PHP constant-style assignments: NAME = 'value'; or NAME = "value";
_APP_CONFIG_ASSIGNMENT = r"({key})\s*=\s*['\"][^'\"]*['\"];"


@dataclass(frozen=True, slots=True)
class DeploymentRecord:
    domain: str
    bot_token: str
    admin_id: str
    webhook_secret: str

    @property
    def webhook_url(self) -> str:
        return build_webhook_url(domain=self.domain, webhook_secret=self.webhook_secret)

    def to_env_text(self) -> str:
        values = {
            RECORD_KEY_DOMAIN: self.domain,
            RECORD_KEY_TOKEN: self.bot_token,
            RECORD_KEY_ADMIN_ID: self.admin_id,
            RECORD_KEY_WEBHOOK_SECRET: self.webhook_secret,
        }
        return "".join(f"{key}={values[key]}\n" for key in RECORD_KEYS)


def parse_deployment_record(text: str, *, source: str = "<record>") -> DeploymentRecord:
    values: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip()

    missing = [key for key in RECORD_KEYS if not values.get(key)]
    if missing:
        raise DeploymentRecordError(
            f"deployment record {source} is missing required values: {', '.join(missing)}",
            remediation="re-run install with --reconfigure to recreate the record",
        )

    return DeploymentRecord(
        domain=values[RECORD_KEY_DOMAIN],
        bot_token=values[RECORD_KEY_TOKEN],
        admin_id=values[RECORD_KEY_ADMIN_ID],
        webhook_secret=values[RECORD_KEY_WEBHOOK_SECRET],
    )


def load_deployment_record(path: Path) -> DeploymentRecord | None:
    if not path.is_file():
        return None

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DeploymentRecordError(
            f"failed to read deployment record {path}: {exc}",
            remediation="fix the record encoding or re-run install with --reconfigure",
        ) from exc
    return parse_deployment_record(text, source=str(path))


def prompt_required(prompt_fn: PromptFn, prompt: str, retry_prompt: str) -> str:
    value = prompt_fn(prompt).strip()
    while not value:
        value = prompt_fn(retry_prompt).strip()
    return value


def collect_deployment_record(
    prompt_fn: PromptFn = input,
    *,
    secret_factory: SecretFactory = generate_webhook_secret,
) -> DeploymentRecord:
    domain = prompt_required(
        prompt_fn,
        "Domain (e.g. bot.example.com): ",
        "Domain cannot be empty: ",
    )
    bot_token = prompt_required(
        prompt_fn,
        "Telegram Bot Token: ",
        "Bot token cannot be empty: ",
    )
    admin_id = prompt_required(
        prompt_fn,
        "Admin Telegram ID (numeric): ",
        "Admin ID cannot be empty: ",
    )
    return DeploymentRecord(
        domain=domain,
        bot_token=bot_token,
        admin_id=admin_id,
        webhook_secret=secret_factory(),
    )


def write_deployment_record(
    path: Path,
    record: DeploymentRecord,
    *,
    web_user: str,
    runner: CommandRunner,
) -> None:
    try:
        path.write_text(record.to_env_text(), encoding="utf-8")
    except OSError as exc:
        raise DeploymentRecordError(
            f"failed to write deployment record {path}: {exc}",
            remediation="verify the deployment root exists and is writable by root",
        ) from exc

    run_checked(
        runner,
        ["chown", f"{web_user}:{web_user}", str(path)],
        stage="chown_deployment_record",
        remediation=f"verify the {web_user} account exists",
    )


def patch_app_config(path: Path, record: DeploymentRecord) -> bool:
    """Rewrite token/admin assignments in the application's own config file.

    Returns False when the file does not exist. Unreadable or unwritable files
    raise AppConfigError.
    """
    if not path.is_file():
        return False

    try:
        original = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise AppConfigError(
            f"failed to read application config {path}: {exc}",
            remediation=f"set BOT_TOKEN and ADMIN_ID in {path} manually",
        ) from exc
    patched = original
    for key, value in (
        (RECORD_KEY_TOKEN, record.bot_token),
        (RECORD_KEY_ADMIN_ID, record.admin_id),
    ):
        replacement = value.replace("\\", "\\\\").replace("'", "\\'")
        patched = re.sub(
            _APP_CONFIG_ASSIGNMENT.format(key=key),
            lambda match, text=replacement: f"{match.group(1)}='{text}';",
            patched,
        )

    if patched != original:
        try:
            path.write_text(patched, encoding="utf-8")
        except OSError as exc:
            raise AppConfigError(
                f"failed to write application config {path}: {exc}",
                remediation=f"set BOT_TOKEN and ADMIN_ID in {path} manually",
            ) from exc
    return True
