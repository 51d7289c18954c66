"""Operator-facing progress output for lifecycle runs."""

from __future__ import annotations

import sys
from typing import TextIO

from botdeploy.provisioning.steps import StepOutcome, StepResult

_GREEN = "\033[1;32m"
_YELLOW = "\033[1;33m"
_RED = "\033[1;31m"
_RESET = "\033[0m"


class ConsoleReporter:
    def __init__(
        self,
        *,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
        color: bool | None = None,
    ) -> None:
        self._stdout = stdout or sys.stdout
        self._stderr = stderr or sys.stderr
        self._color = self._stdout.isatty() if color is None else color

    def ok(self, message: str) -> None:
        print(f"{self._marker('+', _GREEN)} {message}", file=self._stdout)

    def warn(self, message: str) -> None:
        print(f"{self._marker('!', _YELLOW)} {message}", file=self._stdout)

    def error(self, message: str) -> None:
        print(f"{self._marker('x', _RED)} {message}", file=self._stderr)

    def plain(self, message: str) -> None:
        print(message, file=self._stdout)

    def step_started(self, name: str, label: str) -> None:
        self.ok(f"{label}...")

    def step_finished(self, result: StepResult) -> None:
        if result.outcome is StepOutcome.SUCCEEDED:
            if result.detail:
                self.plain(f"    {result.detail}")
            return
        if result.outcome is StepOutcome.SKIPPED:
            self.plain(f"    skipped: {result.detail}")
            return

        code = f" [{result.error_code}]" if result.error_code else ""
        message = f"{result.name} failed{code}: {result.detail}"
        if result.remediation:
            message = f"{message} (remediation: {result.remediation})"
        if result.is_fatal:
            self.error(message)
        else:
            self.warn(message)

    def _marker(self, symbol: str, color: str) -> str:
        if not self._color:
            return f"[{symbol}]"
        return f"{color}[{symbol}]{_RESET}"
