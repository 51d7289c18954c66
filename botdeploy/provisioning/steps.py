"""Step outcome model shared by lifecycle operations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class StepOutcome(StrEnum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED_TOLERATED = "failed_tolerated"
    FAILED_FATAL = "failed_fatal"


@dataclass(frozen=True, slots=True)
class StepResult:
    name: str
    outcome: StepOutcome
    detail: str = ""
    remediation: str = ""
    error_code: str = ""

    @property
    def is_fatal(self) -> bool:
        return self.outcome is StepOutcome.FAILED_FATAL

    @classmethod
    def succeeded(cls, name: str, detail: str = "") -> StepResult:
        return cls(name=name, outcome=StepOutcome.SUCCEEDED, detail=detail)

    @classmethod
    def skipped(cls, name: str, detail: str) -> StepResult:
        return cls(name=name, outcome=StepOutcome.SKIPPED, detail=detail)

    @classmethod
    def failed(
        cls,
        name: str,
        detail: str,
        *,
        fatal: bool,
        remediation: str = "",
        error_code: str = "",
    ) -> StepResult:
        outcome = StepOutcome.FAILED_FATAL if fatal else StepOutcome.FAILED_TOLERATED
        return cls(
            name=name,
            outcome=outcome,
            detail=detail,
            remediation=remediation,
            error_code=error_code,
        )
