"""Crontab reconciliation for the deployment's periodic scripts."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from botdeploy.provisioning.commands import CommandRunner, run_checked


@dataclass(frozen=True, slots=True)
class ScheduleResult:
    entries: tuple[str, ...]
    removed_count: int


def render_schedule_entries(
    *,
    app_dir: Path,
    runtime_binary: str,
    scripts: Sequence[str],
    interval: str = "*/5 * * * *",
) -> list[str]:
    entries: list[str] = []
    for script in scripts:
        script_path = app_dir / script
        if not script_path.is_file():
            continue
        entries.append(
            f"{interval} cd {app_dir} && {runtime_binary} {script_path} >/dev/null 2>&1"
        )
    return entries


def reconcile_crontab_lines(
    existing_lines: Sequence[str],
    *,
    app_dir: str,
    entries: Sequence[str],
) -> tuple[list[str], int]:
    """Drop every line referencing app_dir as a path, then append the desired entries."""
    pattern = _app_dir_pattern(app_dir)
    kept = [line for line in existing_lines if not pattern.search(line)]
    removed_count = len(existing_lines) - len(kept)
    return kept + list(entries), removed_count


def _app_dir_pattern(app_dir: str) -> re.Pattern[str]:
    # Whole path only; sibling roots like <app_dir>_staging must survive.
    escaped = re.escape(app_dir.rstrip("/") or "/")
    return re.compile(rf"(?<!\S){escaped}(?=/|\s|$)")


class CrontabScheduler:
    """Reads and rewrites root's crontab through the `crontab` binary."""

    def __init__(self, *, app_dir: Path, runner: CommandRunner) -> None:
        self._app_dir = app_dir
        self._runner = runner

    def apply(self, entries: Sequence[str]) -> ScheduleResult:
        return self._reconcile(entries)

    def remove(self) -> ScheduleResult:
        return self._reconcile(())

    def _reconcile(self, entries: Sequence[str]) -> ScheduleResult:
        existing = self._read_lines()
        desired, removed_count = reconcile_crontab_lines(
            existing,
            app_dir=str(self._app_dir),
            entries=entries,
        )
        payload = "".join(f"{line}\n" for line in desired)
        run_checked(
            self._runner,
            ["crontab", "-"],
            stage="crontab_install",
            stdin_data=payload,
            remediation="verify cron is installed and `crontab -l` works for root",
        )
        return ScheduleResult(entries=tuple(entries), removed_count=removed_count)

    def _read_lines(self) -> list[str]:
        # `crontab -l` exits non-zero when the user has no crontab yet.
        result = self._runner(["crontab", "-l"], None)
        if result.returncode != 0:
            return []
        return [line for line in (result.stdout or "").splitlines() if line.strip()]
