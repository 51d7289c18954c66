from __future__ import annotations

import subprocess
from collections.abc import Generator, Sequence
from pathlib import Path

import pytest

from botdeploy.config import DeploySettings, get_settings


class FakeHost:
    """Command runner double that emulates the host tools lifecycle steps call."""

    def __init__(self, *, php_version: str = "8.2") -> None:
        self.calls: list[tuple[list[str], str | None]] = []
        self.crontab: str | None = None
        self.php_version = php_version
        self.apt_candidates: set[str] = {"8.2"}
        self.repo_files: dict[str, str] = {}
        self.failures: dict[str, tuple[int, str]] = {}

    def fail(self, command_prefix: str, *, returncode: int = 1, stderr: str = "boom") -> None:
        self.failures[command_prefix] = (returncode, stderr)

    def commands(self) -> list[str]:
        return [" ".join(command) for command, _ in self.calls]

    def __call__(
        self,
        command: Sequence[str],
        stdin_data: str | None,
    ) -> subprocess.CompletedProcess[str]:
        cmd = list(command)
        self.calls.append((cmd, stdin_data))
        joined = " ".join(cmd)
        for prefix, (returncode, stderr) in self.failures.items():
            if joined.startswith(prefix):
                return _completed(cmd, returncode=returncode, stderr=stderr)

        if cmd[:2] == ["crontab", "-l"]:
            if self.crontab is None:
                return _completed(cmd, returncode=1, stderr="no crontab for root")
            return _completed(cmd, stdout=self.crontab)
        if cmd[:2] == ["crontab", "-"]:
            self.crontab = stdin_data or ""
            return _completed(cmd)
        if cmd[:2] == ["php", "-r"]:
            return _completed(cmd, stdout=self.php_version)
        if cmd[:2] == ["apt-cache", "policy"]:
            version = cmd[2].removeprefix("php").removesuffix("-fpm")
            if version in self.apt_candidates:
                return _completed(cmd, stdout=f"{cmd[2]}:\n  Candidate: {version}.0-1\n")
            return _completed(cmd, stdout="")
        if cmd[:2] == ["git", "clone"]:
            destination = Path(cmd[-1])
            (destination / ".git").mkdir(parents=True)
            for relative_path, content in self.repo_files.items():
                target = destination / relative_path
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(content, encoding="utf-8")
            return _completed(cmd)
        return _completed(cmd)


def _completed(
    command: list[str],
    *,
    returncode: int = 0,
    stdout: str = "",
    stderr: str = "",
) -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(
        args=command,
        returncode=returncode,
        stdout=stdout,
        stderr=stderr,
    )


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def fake_host() -> FakeHost:
    return FakeHost()


@pytest.fixture()
def deploy_settings(tmp_path: Path) -> DeploySettings:
    sites_available = tmp_path / "nginx" / "sites-available"
    sites_enabled = tmp_path / "nginx" / "sites-enabled"
    sites_available.mkdir(parents=True)
    sites_enabled.mkdir(parents=True)
    (sites_available / "default").write_text("server { listen 80 default_server; }\n")
    (sites_enabled / "default").symlink_to(sites_available / "default")
    return DeploySettings(
        app_name="mirza_pro",
        app_dir=str(tmp_path / "www" / "mirza_pro"),
        repo_url="https://git.example.test/mirza_pro.git",
        nginx_sites_available_dir=str(sites_available),
        nginx_sites_enabled_dir=str(sites_enabled),
        runtime_config_path=str(tmp_path / "runtime-config.yaml"),
    )
