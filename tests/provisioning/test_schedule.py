from __future__ import annotations

from pathlib import Path

import pytest

from botdeploy.provisioning.errors import CommandError
from botdeploy.provisioning.schedule import (
    CrontabScheduler,
    reconcile_crontab_lines,
    render_schedule_entries,
)
from tests.conftest import FakeHost


def _app_dir_with_script(tmp_path: Path) -> Path:
    app_dir = tmp_path / "mirza_pro"
    (app_dir / "cronbot").mkdir(parents=True)
    (app_dir / "cronbot" / "cron.php").write_text("<?php\n", encoding="utf-8")
    return app_dir


def test_render_schedule_entries_only_includes_existing_scripts(tmp_path: Path) -> None:
    app_dir = _app_dir_with_script(tmp_path)

    entries = render_schedule_entries(
        app_dir=app_dir,
        runtime_binary="php8.2",
        scripts=("cronbot/cron.php", "cronbot/missing.php"),
    )

    assert entries == [
        f"*/5 * * * * cd {app_dir} && php8.2 {app_dir}/cronbot/cron.php >/dev/null 2>&1"
    ]


def test_reconcile_crontab_lines_replaces_entries_for_app_dir_only() -> None:
    existing = [
        "0 3 * * * /usr/local/bin/backup",
        "*/5 * * * * cd /var/www/html/mirza_pro && php old.php",
        "*/5 * * * * cd /var/www/html/mirza_pro && php older.php",
    ]

    desired, removed = reconcile_crontab_lines(
        existing,
        app_dir="/var/www/html/mirza_pro",
        entries=["*/5 * * * * cd /var/www/html/mirza_pro && php new.php"],
    )

    assert removed == 2
    assert desired == [
        "0 3 * * * /usr/local/bin/backup",
        "*/5 * * * * cd /var/www/html/mirza_pro && php new.php",
    ]


def test_apply_is_idempotent_across_repeated_runs(tmp_path: Path) -> None:
    app_dir = _app_dir_with_script(tmp_path)
    host = FakeHost()
    host.crontab = "0 3 * * * /usr/local/bin/backup\n"
    scheduler = CrontabScheduler(app_dir=app_dir, runner=host)
    entries = render_schedule_entries(
        app_dir=app_dir, runtime_binary="php", scripts=("cronbot/cron.php",)
    )

    for _ in range(3):
        scheduler.apply(entries)

    assert host.crontab is not None
    lines = host.crontab.splitlines()
    assert lines[0] == "0 3 * * * /usr/local/bin/backup"
    assert sum(1 for line in lines if str(app_dir) in line) == 1


def test_apply_starts_from_empty_table_when_root_has_no_crontab(tmp_path: Path) -> None:
    app_dir = _app_dir_with_script(tmp_path)
    host = FakeHost()
    scheduler = CrontabScheduler(app_dir=app_dir, runner=host)

    result = scheduler.apply(["*/5 * * * * echo hi"])

    assert result.removed_count == 0
    assert host.crontab == "*/5 * * * * echo hi\n"


def test_remove_drops_only_deployment_lines(tmp_path: Path) -> None:
    app_dir = _app_dir_with_script(tmp_path)
    host = FakeHost()
    host.crontab = f"0 3 * * * backup\n*/5 * * * * cd {app_dir} && php x.php\n"
    scheduler = CrontabScheduler(app_dir=app_dir, runner=host)

    result = scheduler.remove()

    assert result.removed_count == 1
    assert host.crontab == "0 3 * * * backup\n"


def test_apply_raises_command_error_when_crontab_install_fails(tmp_path: Path) -> None:
    host = FakeHost()
    host.fail("crontab -", stderr="cron not installed")
    scheduler = CrontabScheduler(app_dir=tmp_path, runner=host)

    with pytest.raises(CommandError, match="crontab_install"):
        scheduler.apply([])


def test_reconcile_keeps_entries_of_sibling_deployments() -> None:
    existing = [
        "*/5 * * * * cd /var/www/html/mirza_pro_staging && php cron.php",
        "*/5 * * * * cd /var/www/html/mirza_pro && php /var/www/html/mirza_pro/cron.php",
        "0 * * * * php /var/www/html/mirza_pro/cronbot/cron.php",
    ]

    desired, removed = reconcile_crontab_lines(
        existing,
        app_dir="/var/www/html/mirza_pro",
        entries=[],
    )

    assert removed == 2
    assert desired == ["*/5 * * * * cd /var/www/html/mirza_pro_staging && php cron.php"]
