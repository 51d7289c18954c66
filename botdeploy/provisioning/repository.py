"""Application source checkout synchronization."""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from botdeploy.provisioning.commands import CommandRunner, run_checked
from botdeploy.provisioning.errors import CommandError

CHECKOUT_MARKER = ".git"


@dataclass(frozen=True, slots=True)
class RepositorySyncResult:
    app_dir: str
    fresh_clone: bool


def is_checkout(app_dir: Path) -> bool:
    return (app_dir / CHECKOUT_MARKER).is_dir()


def sync_repository(
    *,
    repo_url: str,
    app_dir: Path,
    web_user: str,
    runner: CommandRunner,
) -> RepositorySyncResult:
    fresh_clone = not is_checkout(app_dir)
    if fresh_clone:
        if app_dir.exists() or app_dir.is_symlink():
            try:
                if app_dir.is_dir() and not app_dir.is_symlink():
                    shutil.rmtree(app_dir)
                else:
                    app_dir.unlink()
            except OSError as exc:
                raise CommandError(
                    stage="remove_stale_tree",
                    command=f"rm -rf {app_dir}",
                    returncode=None,
                    detail=str(exc),
                    remediation="remove the stale deployment root manually",
                ) from exc
        app_dir.parent.mkdir(parents=True, exist_ok=True)
        run_checked(
            runner,
            ["git", "clone", "--depth=1", repo_url, str(app_dir)],
            stage="git_clone",
            remediation="verify network access to the repository host",
        )
    else:
        run_checked(
            runner,
            ["git", "-C", str(app_dir), "pull", "--ff-only"],
            stage="git_pull",
            remediation=(
                "local history diverged from upstream; reconcile the checkout "
                f"in {app_dir} manually"
            ),
        )

    run_checked(
        runner,
        ["chown", "-R", f"{web_user}:{web_user}", str(app_dir)],
        stage="chown_tree",
        remediation=f"verify the {web_user} account exists",
    )
    return RepositorySyncResult(app_dir=str(app_dir), fresh_clone=fresh_clone)
