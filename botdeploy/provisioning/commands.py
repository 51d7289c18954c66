"""External command execution for host provisioning steps."""

from __future__ import annotations

import logging
import shlex
import subprocess
from collections.abc import Callable, Sequence

from botdeploy.provisioning.errors import CommandError

CommandRunner = Callable[[Sequence[str], str | None], subprocess.CompletedProcess[str]]

logger = logging.getLogger(__name__)

_DETAIL_LIMIT = 240


def run_local_command(
    command: Sequence[str],
    stdin_data: str | None,
) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        list(command),
        input=stdin_data,
        text=True,
        capture_output=True,
        check=False,
    )


def run_checked(
    runner: CommandRunner,
    command: Sequence[str],
    *,
    stage: str,
    stdin_data: str | None = None,
    remediation: str = "",
) -> subprocess.CompletedProcess[str]:
    rendered = shlex.join(command)
    logger.debug("stage=%s running %s", stage, rendered)
    try:
        result = runner(command, stdin_data)
    except OSError as exc:
        raise CommandError(
            stage=stage,
            command=rendered,
            returncode=None,
            detail=f"command invocation failed: {exc}",
            remediation=remediation,
        ) from exc

    if result.returncode == 0:
        return result

    logger.debug("stage=%s returncode=%s", stage, result.returncode)
    raise CommandError(
        stage=stage,
        command=rendered,
        returncode=result.returncode,
        detail=_failure_detail(result),
        remediation=remediation,
    )


def command_succeeds(runner: CommandRunner, command: Sequence[str]) -> bool:
    try:
        return runner(command, None).returncode == 0
    except OSError:
        return False


def _failure_detail(result: subprocess.CompletedProcess[str]) -> str:
    stderr = (result.stderr or "").strip()
    stdout = (result.stdout or "").strip()
    detail = stderr if stderr else stdout
    if not detail:
        return "no stderr/stdout output"
    return detail[:_DETAIL_LIMIT]
