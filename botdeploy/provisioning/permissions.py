"""Deployment tree ownership and mode normalization."""

from __future__ import annotations

from pathlib import Path

from botdeploy.provisioning.commands import CommandRunner, run_checked

DIRECTORY_MODE = "755"
FILE_MODE = "644"


def normalize_permissions(*, app_dir: Path, web_user: str, runner: CommandRunner) -> None:
    target = str(app_dir)
    run_checked(
        runner,
        ["chown", "-R", f"{web_user}:{web_user}", target],
        stage="chown_tree",
        remediation=f"verify the {web_user} account exists",
    )
    run_checked(
        runner,
        ["find", target, "-type", "d", "-exec", "chmod", DIRECTORY_MODE, "{}", "+"],
        stage="chmod_directories",
    )
    run_checked(
        runner,
        ["find", target, "-type", "f", "-exec", "chmod", FILE_MODE, "{}", "+"],
        stage="chmod_files",
    )
