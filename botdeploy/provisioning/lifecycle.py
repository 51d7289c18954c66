"""Install, update, and uninstall sequencing for a single-host bot deployment.

Each lifecycle operation is a fixed list of steps. A step returns a
``StepResult``; the first ``failed_fatal`` result stops the operation, while
``failed_tolerated`` results are reported and the sequence continues. Steps
that need the deployment record load it from disk themselves.
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import httpx

from botdeploy.config import DeploySettings
from botdeploy.integrations.telegram import (
    HTTPClientFactory,
    TelegramClientError,
    create_telegram_client,
)
from botdeploy.provisioning.certificates import issue_certificate
from botdeploy.provisioning.commands import CommandRunner, run_local_command
from botdeploy.provisioning.environment import (
    DeploymentRecord,
    PromptFn,
    SecretFactory,
    collect_deployment_record,
    load_deployment_record,
    patch_app_config,
    write_deployment_record,
)
from botdeploy.provisioning.errors import (
    DeploymentRecordError,
    PrivilegeError,
    ProvisioningError,
)
from botdeploy.provisioning.nginx_site import create_nginx_site_manager, render_site_config_for
from botdeploy.provisioning.packages import install_app_dependencies, install_system_packages
from botdeploy.provisioning.permissions import normalize_permissions
from botdeploy.provisioning.repository import sync_repository
from botdeploy.provisioning.runtime import WhichFn, detect_runtime_version, resolve_runtime_binary
from botdeploy.provisioning.schedule import CrontabScheduler, render_schedule_entries
from botdeploy.provisioning.steps import StepOutcome, StepResult
from botdeploy.provisioning.webhook_secret import generate_webhook_secret

StepAction = Callable[[], "str | StepResult"]

OPERATION_INSTALL = "install"
OPERATION_UPDATE = "update"
OPERATION_UNINSTALL = "uninstall"

STEP_LABELS: dict[str, str] = {
    "require_root": "Checking privileges",
    "system_packages": "Updating system & installing dependencies",
    "sync_repository": "Synchronizing application source",
    "collect_environment": "Collecting deployment configuration",
    "patch_app_config": "Patching application config",
    "app_dependencies": "Running composer install",
    "nginx_site": "Writing Nginx server block",
    "certificate": "Issuing Let's Encrypt certificate",
    "permissions": "Fixing permissions",
    "schedule": "Installing cron jobs",
    "webhook": "Setting Telegram webhook",
    "nginx_reload": "Reloading Nginx",
    "nginx_deactivate": "Removing Nginx site",
    "remove_tree": "Removing deployment tree",
    "unschedule": "Removing cron jobs",
}


class LifecycleReporter(Protocol):
    def step_started(self, name: str, label: str) -> None: ...

    def step_finished(self, result: StepResult) -> None: ...


class _SilentReporter:
    def step_started(self, name: str, label: str) -> None:
        return None

    def step_finished(self, result: StepResult) -> None:
        return None


@dataclass(frozen=True, slots=True)
class LifecycleReport:
    operation: str
    steps: tuple[StepResult, ...]
    summary: str | None = None
    canceled: bool = False

    @property
    def fatal_step(self) -> StepResult | None:
        for step in self.steps:
            if step.is_fatal:
                return step
        return None

    @property
    def succeeded(self) -> bool:
        return self.fatal_step is None

    @property
    def warnings(self) -> tuple[StepResult, ...]:
        return tuple(
            step for step in self.steps if step.outcome is StepOutcome.FAILED_TOLERATED
        )


class DeploymentLifecycle:
    """Lifecycle controller over the host's global state for one deployment."""

    def __init__(
        self,
        *,
        settings: DeploySettings,
        runner: CommandRunner = run_local_command,
        prompt_fn: PromptFn = input,
        secret_factory: SecretFactory = generate_webhook_secret,
        http_client_factory: HTTPClientFactory = httpx.Client,
        euid_fn: Callable[[], int] = os.geteuid,
        which: WhichFn = shutil.which,
        reporter: LifecycleReporter | None = None,
    ) -> None:
        self._settings = settings
        self._runner = runner
        self._prompt_fn = prompt_fn
        self._secret_factory = secret_factory
        self._http_client_factory = http_client_factory
        self._euid_fn = euid_fn
        self._which = which
        self._reporter = reporter or _SilentReporter()
        self._app_dir = Path(settings.app_dir)
        self._nginx = create_nginx_site_manager(settings, runner=runner)
        self._scheduler = CrontabScheduler(app_dir=self._app_dir, runner=runner)

    def install(self, *, reconfigure: bool = False) -> LifecycleReport:
        steps: list[tuple[str, StepAction, bool]] = [
            ("system_packages", self._install_system_packages, True),
            ("sync_repository", self._sync_repository, True),
            ("collect_environment", lambda: self._collect_environment(reconfigure), True),
            ("patch_app_config", self._patch_app_config, False),
            ("app_dependencies", self._install_app_dependencies, True),
            ("nginx_site", self._apply_nginx_site, True),
            ("certificate", self._issue_certificate, False),
            ("permissions", self._normalize_permissions, True),
            ("schedule", self._apply_schedule, True),
            ("webhook", self._register_webhook, False),
        ]
        return self._run(OPERATION_INSTALL, steps, summary_title="Installed")

    def update(self) -> LifecycleReport:
        steps: list[tuple[str, StepAction, bool]] = [
            ("sync_repository", self._sync_repository, False),
            ("app_dependencies", self._install_app_dependencies, False),
            ("permissions", self._normalize_permissions, False),
            ("schedule", self._apply_schedule, False),
            ("nginx_reload", self._reload_nginx, False),
        ]
        return self._run(OPERATION_UPDATE, steps, summary_title="Updated")

    def uninstall(self) -> LifecycleReport:
        privilege = self._step("require_root", self._require_root, fatal=True)
        if privilege.is_fatal:
            return LifecycleReport(operation=OPERATION_UNINSTALL, steps=(privilege,))

        answer = self._prompt_fn("Remove app & Nginx config? (y/N): ").strip().lower()
        if answer not in {"y", "yes"}:
            return LifecycleReport(
                operation=OPERATION_UNINSTALL,
                steps=(privilege,),
                canceled=True,
            )

        steps: list[tuple[str, StepAction, bool]] = [
            ("nginx_deactivate", self._deactivate_nginx_site, False),
            ("nginx_reload", self._validate_and_reload_nginx, False),
            ("remove_tree", self._remove_tree, True),
            ("unschedule", self._remove_schedule, False),
        ]
        report = self._run(OPERATION_UNINSTALL, steps, summary_title=None, check_root=False)
        return LifecycleReport(
            operation=report.operation,
            steps=(privilege, *report.steps),
        )

    def _run(
        self,
        operation: str,
        steps: list[tuple[str, StepAction, bool]],
        *,
        summary_title: str | None,
        check_root: bool = True,
    ) -> LifecycleReport:
        results: list[StepResult] = []
        if check_root:
            steps = [("require_root", self._require_root, True), *steps]

        for name, action, fatal in steps:
            result = self._step(name, action, fatal=fatal)
            results.append(result)
            if result.is_fatal:
                return LifecycleReport(operation=operation, steps=tuple(results))

        summary = None
        if summary_title is not None:
            try:
                record = self._load_record_or_none()
            except DeploymentRecordError as exc:
                record = None
                results.append(
                    StepResult.failed(
                        "summary",
                        str(exc),
                        fatal=False,
                        remediation=exc.remediation,
                        error_code=exc.error_code,
                    )
                )
            summary = render_summary(self._settings, record, title=summary_title)
        return LifecycleReport(operation=operation, steps=tuple(results), summary=summary)

    def _step(self, name: str, action: StepAction, *, fatal: bool) -> StepResult:
        self._reporter.step_started(name, STEP_LABELS.get(name, name))
        try:
            outcome = action()
        except ProvisioningError as exc:
            result = StepResult.failed(
                name,
                str(exc),
                fatal=fatal,
                remediation=exc.remediation,
                error_code=exc.error_code,
            )
        except TelegramClientError as exc:
            result = StepResult.failed(name, str(exc), fatal=fatal, error_code=exc.error_code)
        except OSError as exc:
            result = StepResult.failed(name, f"{type(exc).__name__}: {exc}", fatal=fatal)
        else:
            if isinstance(outcome, StepResult):
                result = outcome
            else:
                result = StepResult.succeeded(name, outcome)
        self._reporter.step_finished(result)
        return result

    def _require_root(self) -> str:
        if self._euid_fn() != 0:
            raise PrivilegeError("Run as root (sudo).", remediation="re-run with sudo")
        return "running as root"

    def _install_system_packages(self) -> str:
        result = install_system_packages(
            version_candidates=self._settings.runtime_version_candidates,
            fallback_version=self._settings.runtime_fallback_version,
            php_ppa=self._settings.runtime_php_ppa,
            runner=self._runner,
            which=self._which,
        )
        detail = f"using PHP {result.php_version}"
        if result.warnings:
            detail = f"{detail}; warnings: {'; '.join(result.warnings)}"
        return detail

    def _sync_repository(self) -> str:
        result = sync_repository(
            repo_url=self._settings.repo_url,
            app_dir=self._app_dir,
            web_user=self._settings.web_user,
            runner=self._runner,
        )
        mode = "cloned" if result.fresh_clone else "fast-forwarded"
        return f"{mode} {self._settings.repo_url} -> {result.app_dir}"

    def _collect_environment(self, reconfigure: bool) -> str:
        try:
            existing = load_deployment_record(self._settings.env_file_path)
        except DeploymentRecordError:
            if not reconfigure:
                raise
            existing = None
        if existing is not None and not reconfigure:
            return (
                f"reusing existing record for {existing.domain}; "
                "pass --reconfigure to re-enter values and rotate the webhook secret"
            )

        record = collect_deployment_record(
            self._prompt_fn,
            secret_factory=self._secret_factory,
        )
        write_deployment_record(
            self._settings.env_file_path,
            record,
            web_user=self._settings.web_user,
            runner=self._runner,
        )
        if existing is not None:
            return f"record rewritten for {record.domain}; webhook secret rotated"
        return f"record written for {record.domain}"

    def _patch_app_config(self) -> StepResult | str:
        record = self._load_record_or_none()
        if record is None:
            return StepResult.skipped("patch_app_config", "no deployment record")

        config_path = self._app_dir / self._settings.app_config_file
        if not patch_app_config(config_path, record):
            return StepResult.skipped("patch_app_config", f"{config_path} not found")
        return f"patched {config_path}"

    def _install_app_dependencies(self) -> StepResult | str:
        ran = install_app_dependencies(
            app_dir=self._app_dir,
            web_user=self._settings.web_user,
            runner=self._runner,
        )
        if not ran:
            return StepResult.skipped("app_dependencies", "composer.json not found")
        return "composer install completed"

    def _apply_nginx_site(self) -> StepResult | str:
        record = self._load_record_or_none()
        if record is None:
            return StepResult.skipped("nginx_site", "no deployment record; site not rendered")

        php_version = detect_runtime_version(self._runner)
        rendered = render_site_config_for(
            self._settings,
            domain=record.domain,
            webhook_secret=record.webhook_secret,
            php_version=php_version,
        )
        result = self._nginx.apply_site(rendered)
        return f"activated {result.site_path} sha256={result.config_sha256[:12]}"

    def _issue_certificate(self) -> StepResult | str:
        record = self._load_record_or_none()
        if record is None:
            return StepResult.skipped("certificate", "no deployment record")

        issue_certificate(
            domain=record.domain,
            email=self._settings.certbot_email_for(record.domain),
            runner=self._runner,
        )
        return f"certificate issued for {record.domain}"

    def _normalize_permissions(self) -> str:
        normalize_permissions(
            app_dir=self._app_dir,
            web_user=self._settings.web_user,
            runner=self._runner,
        )
        return f"{self._app_dir} owned by {self._settings.web_user}"

    def _apply_schedule(self) -> str:
        php_version = detect_runtime_version(self._runner)
        entries = render_schedule_entries(
            app_dir=self._app_dir,
            runtime_binary=resolve_runtime_binary(php_version, which=self._which),
            scripts=self._settings.schedule_scripts,
            interval=self._settings.schedule_interval,
        )
        result = self._scheduler.apply(entries)
        return f"{len(result.entries)} entries scheduled, {result.removed_count} replaced"

    def _register_webhook(self) -> StepResult | str:
        record = self._load_record_or_none()
        if record is None:
            return StepResult.skipped("webhook", "no deployment record")

        client = create_telegram_client(
            self._settings,
            bot_token=record.bot_token,
            http_client_factory=self._http_client_factory,
        )
        registration = client.set_webhook(record.webhook_url, drop_pending_updates=True)
        return f"webhook -> {registration.url}"

    def _reload_nginx(self) -> str:
        self._nginx.reload()
        return "nginx reloaded"

    def _deactivate_nginx_site(self) -> str:
        removed = self._nginx.deactivate_site()
        return "site removed" if removed else "site was not present"

    def _validate_and_reload_nginx(self) -> str:
        self._nginx.validate()
        self._nginx.reload()
        return "nginx reloaded"

    def _remove_tree(self) -> StepResult | str:
        if not self._app_dir.exists():
            return StepResult.skipped("remove_tree", f"{self._app_dir} not present")
        shutil.rmtree(self._app_dir)
        return f"removed {self._app_dir}"

    def _remove_schedule(self) -> str:
        result = self._scheduler.remove()
        return f"{result.removed_count} entries removed"

    def _load_record_or_none(self) -> DeploymentRecord | None:
        return load_deployment_record(self._settings.env_file_path)


def render_summary(
    settings: DeploySettings,
    record: DeploymentRecord | None,
    *,
    title: str,
) -> str:
    scripts = ", ".join(settings.schedule_scripts) or "(none)"
    if record is None:
        domain = "(no deployment record found)"
        webhook_url = "(not configured; run install)"
    else:
        domain = record.domain
        webhook_url = record.webhook_url

    lines = [
        "",
        f"=========== {settings.app_name} {title} ===========",
        f"Domain:        {domain}",
        f"Root:          {settings.app_dir}",
        f"Webhook URL:   {webhook_url}",
        f"Nginx conf:    {settings.nginx_site_path}",
        f"Cron:          {settings.schedule_interval} -> {scripts} (if present)",
        "",
        "Useful:",
        "  sudo systemctl status nginx php*-fpm",
        f"  sudo tail -f {settings.nginx_log_dir}/{settings.app_name}_error.log",
        "  sudo certbot renew --dry-run",
        "============================================",
    ]
    return "\n".join(lines)
