"""PHP runtime discovery."""

from __future__ import annotations

import re
import shutil
from collections.abc import Callable

from botdeploy.provisioning.commands import CommandRunner, run_checked
from botdeploy.provisioning.errors import CommandError

WhichFn = Callable[[str], str | None]

_VERSION_PATTERN = re.compile(r"^\d+\.\d+$")
_VERSION_PROBE = 'echo PHP_MAJOR_VERSION.".".PHP_MINOR_VERSION;'


def detect_runtime_version(runner: CommandRunner) -> str:
    result = run_checked(
        runner,
        ["php", "-r", _VERSION_PROBE],
        stage="detect_php_version",
        remediation="verify php-cli is installed and on PATH",
    )
    version = (result.stdout or "").strip()
    if not _VERSION_PATTERN.match(version):
        raise CommandError(
            stage="detect_php_version",
            command=f"php -r {_VERSION_PROBE!r}",
            returncode=result.returncode,
            detail=f"unexpected version output {version!r}",
            remediation="verify php-cli is installed and on PATH",
        )
    return version


def resolve_runtime_binary(version: str, *, which: WhichFn = shutil.which) -> str:
    versioned = f"php{version}"
    if which(versioned):
        return versioned
    return "php"


def fpm_socket_path(version: str) -> str:
    return f"/run/php/php{version}-fpm.sock"
