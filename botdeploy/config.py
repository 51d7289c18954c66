"""Deployment configuration loading."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, cast

import yaml

DEFAULT_RUNTIME_CONFIG_PATH = "/etc/botdeploy/runtime-config.yaml"
RUNTIME_CONFIG_ENV_VAR = "BOTDEPLOY_RUNTIME_CONFIG"
SUPPORTED_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True, slots=True)
class DeploySettings:
    app_name: str = "mirza_pro"
    app_dir: str = "/var/www/html/mirza_pro"
    repo_url: str = "https://github.com/mahdiMGF2/mirza_pro.git"
    web_user: str = "www-data"
    env_file_name: str = ".install_env"
    app_config_file: str = "config.php"
    nginx_sites_available_dir: str = "/etc/nginx/sites-available"
    nginx_sites_enabled_dir: str = "/etc/nginx/sites-enabled"
    nginx_default_site_name: str = "default"
    nginx_log_dir: str = "/var/log/nginx"
    nginx_client_max_body_size: str = "20m"
    nginx_fastcgi_snippet: str = "snippets/fastcgi-php.conf"
    webhook_entry_script: str = "webhooks.php"
    runtime_version_candidates: tuple[str, ...] = ("8.3", "8.2", "8.1")
    runtime_fallback_version: str = "8.1"
    runtime_php_ppa: str = "ppa:ondrej/php"
    schedule_interval: str = "*/5 * * * *"
    schedule_scripts: tuple[str, ...] = ("cronbot/cron.php",)
    certbot_email: str = ""
    telegram_api_base_url: str = "https://api.telegram.org"
    telegram_http_timeout_seconds: float = 15.0
    log_level: str = "WARNING"
    runtime_config_path: str = DEFAULT_RUNTIME_CONFIG_PATH

    @property
    def env_file_path(self) -> Path:
        return Path(self.app_dir) / self.env_file_name

    @property
    def nginx_site_path(self) -> Path:
        return Path(self.nginx_sites_available_dir) / f"{self.app_name}.conf"

    @property
    def nginx_enabled_link_path(self) -> Path:
        return Path(self.nginx_sites_enabled_dir) / f"{self.app_name}.conf"

    @property
    def nginx_default_link_path(self) -> Path:
        return Path(self.nginx_sites_enabled_dir) / self.nginx_default_site_name

    def certbot_email_for(self, domain: str) -> str:
        return self.certbot_email or f"admin@{domain}"

    @classmethod
    def from_yaml(cls, runtime_config_path: str = DEFAULT_RUNTIME_CONFIG_PATH) -> DeploySettings:
        normalized_path = runtime_config_path.strip() or DEFAULT_RUNTIME_CONFIG_PATH
        config = _load_runtime_config(normalized_path)

        app_cfg = cast(dict[str, Any], config.get("app", {}))
        nginx_cfg = cast(dict[str, Any], config.get("nginx", {}))
        runtime_cfg = cast(dict[str, Any], config.get("runtime", {}))
        schedule_cfg = cast(dict[str, Any], config.get("schedule", {}))
        certbot_cfg = cast(dict[str, Any], config.get("certbot", {}))
        telegram_cfg = cast(dict[str, Any], config.get("telegram", {}))
        logging_cfg = cast(dict[str, Any], config.get("logging", {}))

        defaults = cls()
        app_name = _non_empty(app_cfg.get("name"), defaults.app_name)
        app_dir = _non_empty(app_cfg.get("dir"), f"/var/www/html/{app_name}").rstrip("/")

        return cls(
            app_name=app_name,
            app_dir=app_dir or "/",
            repo_url=_non_empty(app_cfg.get("repo_url"), defaults.repo_url),
            web_user=_non_empty(app_cfg.get("web_user"), defaults.web_user),
            env_file_name=_non_empty(app_cfg.get("env_file_name"), defaults.env_file_name),
            app_config_file=_non_empty(
                app_cfg.get("app_config_file"), defaults.app_config_file
            ),
            nginx_sites_available_dir=_non_empty(
                nginx_cfg.get("sites_available_dir"), defaults.nginx_sites_available_dir
            ),
            nginx_sites_enabled_dir=_non_empty(
                nginx_cfg.get("sites_enabled_dir"), defaults.nginx_sites_enabled_dir
            ),
            nginx_default_site_name=_non_empty(
                nginx_cfg.get("default_site_name"), defaults.nginx_default_site_name
            ),
            nginx_log_dir=_non_empty(nginx_cfg.get("log_dir"), defaults.nginx_log_dir),
            nginx_client_max_body_size=_non_empty(
                nginx_cfg.get("client_max_body_size"),
                defaults.nginx_client_max_body_size,
            ),
            nginx_fastcgi_snippet=_non_empty(
                nginx_cfg.get("fastcgi_snippet"), defaults.nginx_fastcgi_snippet
            ),
            webhook_entry_script=_non_empty(
                nginx_cfg.get("webhook_entry_script"), defaults.webhook_entry_script
            ),
            runtime_version_candidates=_normalize_versions(
                runtime_cfg.get("version_candidates"),
                defaults.runtime_version_candidates,
            ),
            runtime_fallback_version=_non_empty(
                runtime_cfg.get("fallback_version"), defaults.runtime_fallback_version
            ),
            runtime_php_ppa=str(runtime_cfg.get("php_ppa", defaults.runtime_php_ppa)).strip(),
            schedule_interval=_non_empty(
                schedule_cfg.get("interval"), defaults.schedule_interval
            ),
            schedule_scripts=tuple(
                str(script).strip().lstrip("/")
                for script in cast(
                    list[Any], schedule_cfg.get("scripts", list(defaults.schedule_scripts))
                )
                if str(script).strip()
            ),
            certbot_email=str(certbot_cfg.get("email", "")).strip(),
            telegram_api_base_url=_non_empty(
                telegram_cfg.get("api_base_url"), defaults.telegram_api_base_url
            ).rstrip("/"),
            telegram_http_timeout_seconds=max(
                1.0,
                float(
                    telegram_cfg.get(
                        "http_timeout_seconds", defaults.telegram_http_timeout_seconds
                    )
                ),
            ),
            log_level=_resolve_log_level(logging_cfg.get("level", defaults.log_level)),
            runtime_config_path=normalized_path,
        )


def resolve_runtime_config_path(explicit_path: str | None = None) -> str:
    if explicit_path and explicit_path.strip():
        return explicit_path.strip()
    return os.environ.get(RUNTIME_CONFIG_ENV_VAR, "").strip() or DEFAULT_RUNTIME_CONFIG_PATH


def _load_runtime_config(runtime_config_path: str) -> dict[str, Any]:
    path = Path(runtime_config_path)
    if not path.exists() or not path.is_file():
        return {}

    parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    if isinstance(parsed, dict):
        return parsed
    return {}


def _non_empty(value: Any, default: str) -> str:
    if value is None:
        return default
    normalized = str(value).strip()
    return normalized or default


def _normalize_versions(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    if not isinstance(value, list):
        return default

    normalized: list[str] = []
    seen: set[str] = set()
    for raw in value:
        version = str(raw).strip()
        if not version or version in seen:
            continue
        seen.add(version)
        normalized.append(version)
    return tuple(normalized) or default


def _resolve_log_level(value: Any) -> str:
    normalized_level = str(value).strip().upper()
    if normalized_level in SUPPORTED_LOG_LEVELS:
        return normalized_level

    raise ValueError(
        "unsupported logging.level in runtime config: "
        f"{normalized_level!r}; expected one of {', '.join(SUPPORTED_LOG_LEVELS)}"
    )


@lru_cache(maxsize=1)
def get_settings(runtime_config_path: str | None = None) -> DeploySettings:
    return DeploySettings.from_yaml(resolve_runtime_config_path(runtime_config_path))
