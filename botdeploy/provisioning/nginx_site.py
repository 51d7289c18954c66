"""Nginx site rendering, activation, validation, and reload orchestration."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path

from botdeploy.config import DeploySettings
from botdeploy.provisioning.commands import CommandRunner, run_checked
from botdeploy.provisioning.errors import CommandError, NginxSiteError
from botdeploy.provisioning.runtime import fpm_socket_path

_FORBIDDEN_DIRECTIVE_CHARS = frozenset(" \t\r\n;{}'\"")


@dataclass(frozen=True, slots=True)
class NginxApplyResult:
    site_path: str
    enabled_link_path: str
    config_sha256: str
    default_site_removed: bool


def render_site_config(
    *,
    app_name: str,
    app_dir: str,
    domain: str,
    webhook_secret: str,
    php_version: str,
    webhook_entry_script: str = "webhooks.php",
    log_dir: str = "/var/log/nginx",
    client_max_body_size: str = "20m",
    fastcgi_snippet: str = "snippets/fastcgi-php.conf",
) -> str:
    for label, value in (
        ("domain", domain),
        ("webhook secret", webhook_secret),
        ("php version", php_version),
        ("app dir", app_dir),
    ):
        _require_directive_value(label, value)

    socket = fpm_socket_path(php_version)
    lines = [
        f"# Managed by botdeploy for {app_name}; regenerated on every install.",
        "server {",
        "    listen 80;",
        f"    server_name {domain};",
        "",
        f"    root {app_dir};",
        "    index index.php index.html;",
        "",
        f"    access_log {log_dir}/{app_name}_access.log;",
        f"    error_log  {log_dir}/{app_name}_error.log;",
        "",
        "    location / {",
        "        try_files $uri /index.php?$args;",
        "    }",
        "",
        f"    # Webhook endpoint -> {webhook_entry_script}",
        f"    location = /{webhook_secret} {{",
        "        include fastcgi_params;",
        f"        fastcgi_param SCRIPT_FILENAME $document_root/{webhook_entry_script};",
        f"        fastcgi_pass unix:{socket};",
        "    }",
        "",
        "    location ~ \\.php$ {",
        f"        include {fastcgi_snippet};",
        f"        fastcgi_pass unix:{socket};",
        "    }",
        "",
        f"    client_max_body_size {client_max_body_size};",
        "}",
    ]
    return "\n".join(lines) + "\n"


def render_site_config_for(
    settings: DeploySettings,
    *,
    domain: str,
    webhook_secret: str,
    php_version: str,
) -> str:
    return render_site_config(
        app_name=settings.app_name,
        app_dir=settings.app_dir,
        domain=domain,
        webhook_secret=webhook_secret,
        php_version=php_version,
        webhook_entry_script=settings.webhook_entry_script,
        log_dir=settings.nginx_log_dir,
        client_max_body_size=settings.nginx_client_max_body_size,
        fastcgi_snippet=settings.nginx_fastcgi_snippet,
    )


class NginxSiteManager:
    """Owns one site descriptor and its enable link."""

    def __init__(
        self,
        *,
        site_path: Path,
        enabled_link_path: Path,
        default_link_path: Path,
        runner: CommandRunner,
    ) -> None:
        self._site_path = site_path
        self._enabled_link_path = enabled_link_path
        self._default_link_path = default_link_path
        self._runner = runner

    @property
    def site_path(self) -> Path:
        return self._site_path

    def apply_site(self, rendered_config: str) -> NginxApplyResult:
        previous_config = self._read_existing_config()
        previous_default_target = self._read_link_target(self._default_link_path)
        link_existed = self._enabled_link_path.is_symlink()

        try:
            self._site_path.parent.mkdir(parents=True, exist_ok=True)
            self._site_path.write_text(rendered_config, encoding="utf-8")
            self._ensure_enabled_link()
            default_site_removed = _remove_path(self._default_link_path)
        except OSError as exc:
            raise NginxSiteError(
                f"failed to write nginx site {self._site_path}: {exc}",
                remediation="verify nginx is installed and /etc/nginx is writable",
            ) from exc

        try:
            self.validate()
        except CommandError as exc:
            rollback_succeeded = self._rollback(
                previous_config=previous_config,
                previous_default_target=previous_default_target,
                link_existed=link_existed,
            )
            raise NginxSiteError(
                f"nginx rejected the generated site configuration: {exc.detail}",
                remediation=(
                    f"inspect {self._site_path}; the previous configuration was "
                    f"{'restored' if rollback_succeeded else 'NOT restored'} and nginx "
                    "was not reloaded"
                ),
                rollback_attempted=True,
                rollback_succeeded=rollback_succeeded,
            ) from exc

        self.reload()
        return NginxApplyResult(
            site_path=str(self._site_path),
            enabled_link_path=str(self._enabled_link_path),
            config_sha256=hashlib.sha256(rendered_config.encode("utf-8")).hexdigest(),
            default_site_removed=default_site_removed,
        )

    def deactivate_site(self) -> bool:
        link_removed = _remove_path(self._enabled_link_path)
        site_removed = _remove_path(self._site_path)
        return link_removed or site_removed

    def validate(self) -> None:
        run_checked(
            self._runner,
            ["nginx", "-t"],
            stage="nginx_validate",
            remediation="run `nginx -t` and fix the reported configuration error",
        )

    def reload(self) -> None:
        run_checked(
            self._runner,
            ["systemctl", "reload", "nginx"],
            stage="nginx_reload",
            remediation="check `systemctl status nginx` for the reload failure",
        )

    def _ensure_enabled_link(self) -> None:
        _remove_path(self._enabled_link_path)
        self._enabled_link_path.parent.mkdir(parents=True, exist_ok=True)
        self._enabled_link_path.symlink_to(self._site_path)

    def _rollback(
        self,
        *,
        previous_config: str | None,
        previous_default_target: str | None,
        link_existed: bool,
    ) -> bool:
        try:
            if previous_config is None:
                _remove_path(self._site_path)
            else:
                self._site_path.write_text(previous_config, encoding="utf-8")
            if not link_existed:
                _remove_path(self._enabled_link_path)
            if previous_default_target is not None and not self._default_link_path.is_symlink():
                self._default_link_path.symlink_to(previous_default_target)
        except OSError:
            return False
        return True

    def _read_existing_config(self) -> str | None:
        if not self._site_path.is_file():
            return None
        return self._site_path.read_text(encoding="utf-8")

    @staticmethod
    def _read_link_target(path: Path) -> str | None:
        if not path.is_symlink():
            return None
        return str(path.readlink())


def create_nginx_site_manager(
    settings: DeploySettings,
    *,
    runner: CommandRunner,
) -> NginxSiteManager:
    return NginxSiteManager(
        site_path=settings.nginx_site_path,
        enabled_link_path=settings.nginx_enabled_link_path,
        default_link_path=settings.nginx_default_link_path,
        runner=runner,
    )


def _require_directive_value(label: str, value: str) -> None:
    if not value or any(char in _FORBIDDEN_DIRECTIVE_CHARS for char in value):
        raise NginxSiteError(
            f"{label} {value!r} cannot be used in an nginx directive",
            remediation="re-run install with --reconfigure and enter a plain value",
        )


def _remove_path(path: Path) -> bool:
    if not path.exists() and not path.is_symlink():
        return False
    path.unlink()
    return True
