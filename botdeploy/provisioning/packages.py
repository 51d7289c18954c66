"""Host package bootstrap and application dependency installation."""

from __future__ import annotations

import shutil
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from botdeploy.provisioning.commands import CommandRunner, command_succeeds, run_checked
from botdeploy.provisioning.runtime import WhichFn

BASE_PACKAGES = (
    "software-properties-common",
    "curl",
    "git",
    "unzip",
    "ca-certificates",
    "lsb-release",
    "ufw",
    "nginx",
)
PHP_EXTENSIONS = ("fpm", "cli", "curl", "mbstring", "xml", "zip", "sqlite3", "gd")
CERTBOT_PACKAGES = ("certbot", "python3-certbot-nginx")
FIREWALL_RULES = ("OpenSSH", "Nginx Full")
COMPOSER_INSTALLER_URL = "https://getcomposer.org/installer"
COMPOSER_SETUP_PATH = "/tmp/composer-setup.php"
COMPOSER_MANIFEST = "composer.json"

_APT = ("env", "DEBIAN_FRONTEND=noninteractive", "apt-get")


@dataclass(frozen=True, slots=True)
class SystemPackagesResult:
    php_version: str
    composer_bootstrapped: bool
    warnings: tuple[str, ...]


def choose_php_version(
    *,
    candidates: Sequence[str],
    fallback_version: str,
    runner: CommandRunner,
) -> str:
    for version in candidates:
        result = run_checked(
            runner,
            ["apt-cache", "policy", f"php{version}-fpm"],
            stage="apt_cache_policy",
        )
        for line in (result.stdout or "").splitlines():
            stripped = line.strip()
            if stripped.startswith("Candidate:") and "(none)" not in stripped:
                return version
    return fallback_version


def install_system_packages(
    *,
    version_candidates: Sequence[str],
    fallback_version: str,
    php_ppa: str,
    runner: CommandRunner,
    which: WhichFn = shutil.which,
) -> SystemPackagesResult:
    warnings: list[str] = []

    run_checked(runner, [*_APT, "update", "-y"], stage="apt_update")
    run_checked(runner, [*_APT, "upgrade", "-y"], stage="apt_upgrade")
    run_checked(runner, [*_APT, "install", "-y", *BASE_PACKAGES], stage="apt_install_base")

    if php_ppa:
        if not command_succeeds(runner, ["add-apt-repository", "-y", php_ppa]):
            warnings.append(f"could not add {php_ppa}; using distribution PHP packages")
        run_checked(runner, [*_APT, "update", "-y"], stage="apt_update")

    php_version = choose_php_version(
        candidates=version_candidates,
        fallback_version=fallback_version,
        runner=runner,
    )
    run_checked(
        runner,
        [*_APT, "install", "-y", *(f"php{php_version}-{ext}" for ext in PHP_EXTENSIONS)],
        stage="apt_install_php",
        remediation=f"verify php{php_version} packages are available for this release",
    )
    run_checked(runner, [*_APT, "install", "-y", *CERTBOT_PACKAGES], stage="apt_install_certbot")

    composer_bootstrapped = False
    if not which("composer"):
        run_checked(
            runner,
            ["curl", "-sS", COMPOSER_INSTALLER_URL, "-o", COMPOSER_SETUP_PATH],
            stage="download_composer",
            remediation="verify outbound HTTPS access to getcomposer.org",
        )
        run_checked(
            runner,
            [
                "php",
                COMPOSER_SETUP_PATH,
                "--install-dir=/usr/local/bin",
                "--filename=composer",
            ],
            stage="install_composer",
        )
        composer_bootstrapped = True

    for rule in FIREWALL_RULES:
        if not command_succeeds(runner, ["ufw", "allow", rule]):
            warnings.append(f"ufw allow {rule!r} failed")

    return SystemPackagesResult(
        php_version=php_version,
        composer_bootstrapped=composer_bootstrapped,
        warnings=tuple(warnings),
    )


def install_app_dependencies(*, app_dir: Path, web_user: str, runner: CommandRunner) -> bool:
    """Run composer for the checkout; returns False when there is no manifest."""
    if not (app_dir / COMPOSER_MANIFEST).is_file():
        return False

    run_checked(
        runner,
        [
            "sudo",
            "-u",
            web_user,
            "composer",
            "install",
            "--no-dev",
            "--optimize-autoloader",
            f"--working-dir={app_dir}",
        ],
        stage="composer_install",
        remediation=f"inspect composer output in {app_dir} and re-run the operation",
    )
    return True
