"""Interactive installer menu for the bot deployment lifecycle."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Callable, Sequence
from typing import TypeAlias

import yaml

from botdeploy.cli.console import ConsoleReporter
from botdeploy.config import DeploySettings, get_settings
from botdeploy.provisioning.environment import PromptFn
from botdeploy.provisioning.lifecycle import (
    OPERATION_UNINSTALL,
    DeploymentLifecycle,
    LifecycleReport,
)

LifecycleFactory: TypeAlias = Callable[
    [DeploySettings, PromptFn, ConsoleReporter], DeploymentLifecycle
]

MENU_INSTALL = "1"
MENU_UPDATE = "2"
MENU_UNINSTALL = "3"
MENU_EXIT = "0"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def main(
    argv: Sequence[str] | None = None,
    *,
    prompt_fn: PromptFn = input,
    lifecycle_factory: LifecycleFactory | None = None,
    console: ConsoleReporter | None = None,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    out = console or ConsoleReporter()
    factory = lifecycle_factory or _default_lifecycle_factory

    try:
        settings = get_settings(args.runtime_config)
    except (ValueError, OSError, yaml.YAMLError) as exc:
        out.error(f"invalid runtime config: {exc}")
        return 1
    _configure_logging(settings.log_level)

    _print_menu(out, settings.app_name)
    try:
        choice = prompt_fn("Choose: ").strip() or MENU_INSTALL
        if choice == MENU_EXIT:
            return 0
        if choice not in {MENU_INSTALL, MENU_UPDATE, MENU_UNINSTALL}:
            out.error("Invalid choice")
            return 1

        lifecycle = factory(settings, prompt_fn, out)
        if choice == MENU_INSTALL:
            report = lifecycle.install(reconfigure=args.reconfigure)
        elif choice == MENU_UPDATE:
            report = lifecycle.update()
        else:
            report = lifecycle.uninstall()
    except EOFError:
        out.error("input closed before the operation completed")
        return 1

    return _finish(report, out)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="botdeploy")
    parser.add_argument(
        "--runtime-config",
        help="path to runtime-config.yaml (default: $BOTDEPLOY_RUNTIME_CONFIG or "
        "/etc/botdeploy/runtime-config.yaml)",
    )
    parser.add_argument(
        "--reconfigure",
        action="store_true",
        help="re-prompt for install values and rotate the webhook secret",
    )
    return parser


def _default_lifecycle_factory(
    settings: DeploySettings,
    prompt_fn: PromptFn,
    console: ConsoleReporter,
) -> DeploymentLifecycle:
    return DeploymentLifecycle(settings=settings, prompt_fn=prompt_fn, reporter=console)


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level), format=LOG_FORMAT, stream=sys.stderr)


def _print_menu(out: ConsoleReporter, app_name: str) -> None:
    out.plain("===============================")
    out.plain(f" {app_name} Installer")
    out.plain("===============================")
    out.plain("1) Install")
    out.plain("2) Update")
    out.plain("3) Uninstall")
    out.plain("0) Exit")


def _finish(report: LifecycleReport, out: ConsoleReporter) -> int:
    if report.canceled:
        out.ok("Canceled.")
        return 0

    fatal_step = report.fatal_step
    if fatal_step is not None:
        code = f" [{fatal_step.error_code}]" if fatal_step.error_code else ""
        out.error(
            f"{report.operation} aborted at step {fatal_step.name}{code}: {fatal_step.detail}"
        )
        return 1

    if report.summary:
        out.plain(report.summary)
    if report.warnings:
        names = ", ".join(step.name for step in report.warnings)
        out.warn(f"completed with warnings in: {names}; re-run {report.operation} to retry")
    if report.operation == OPERATION_UNINSTALL:
        out.ok("Uninstalled.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
