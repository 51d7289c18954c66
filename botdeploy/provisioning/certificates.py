"""Let's Encrypt certificate issuance through certbot's nginx plugin."""

from __future__ import annotations

from botdeploy.provisioning.commands import CommandRunner, run_checked


def certbot_command(*, domain: str, email: str) -> list[str]:
    return [
        "certbot",
        "--nginx",
        "-d",
        domain,
        "--non-interactive",
        "--agree-tos",
        "-m",
        email,
        "--redirect",
    ]


def issue_certificate(*, domain: str, email: str, runner: CommandRunner) -> None:
    run_checked(
        runner,
        certbot_command(domain=domain, email=email),
        stage="certbot_issue",
        remediation=f"verify DNS for {domain} points here, then retry: "
        f"certbot --nginx -d {domain} --redirect",
    )
