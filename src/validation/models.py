# src/validation/models.py
"""Validation domain models: IllegalState, RecoveryTarget, ValidationReport, CorrectionAudit."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["warning", "critical"]

FindingCode = Literal[
    "APPROVED_WITHOUT_OUTPUT",
    "PHASE_STEP_MISMATCH",
    "RETRY_STATE_DANGLING",
    "ORDERING_VIOLATION",
    "APPROVED_NOT_ADVANCED",
    "REVIEW_WITHOUT_OUTPUT",
    "UNKNOWN_PHASE",
]


class RecoveryTarget(BaseModel):
    """Field values an automated fix would write back."""

    model_config = ConfigDict(frozen=True)

    phase: str | None = None
    current_step: int | None = None
    step1_approved: bool | None = None
    step2_approved: bool | None = None
    retry_state_key: str | None = None
    retry_status: str | None = None


class IllegalState(BaseModel):
    """One illegal-state finding."""

    model_config = ConfigDict(frozen=True)

    code: FindingCode
    message: str
    severity: Severity
    recovery: bool
    step: int | None = None
    recovery_target: RecoveryTarget | None = None

    @property
    def finding_id(self) -> str:
        """Stable identifier for this finding within one snapshot."""
        return f"{self.code}:{self.step if self.step is not None else '-'}"


class ValidationReport(BaseModel):
    """Complete report for one pipeline snapshot."""

    pipeline_id: str
    is_valid: bool
    illegal_states: list[IllegalState] = Field(default_factory=list)

    def by_severity(self, severity: Severity) -> list[IllegalState]:
        return [s for s in self.illegal_states if s.severity == severity]

    @property
    def recoverable(self) -> list[IllegalState]:
        return [s for s in self.illegal_states if s.recovery]

    @property
    def requires_human(self) -> bool:
        """True when any finding cannot be fixed automatically."""
        return any(not s.recovery for s in self.illegal_states)

    def severity_counts(self) -> dict[str, int]:
        return dict(Counter(s.severity for s in self.illegal_states))

    def same_findings(self, other: ValidationReport) -> bool:
        """Order-independent equality of the finding lists."""
        return Counter(self.illegal_states) == Counter(other.illegal_states)


class CorrectionAudit(BaseModel):
    """Audit entry recorded alongside every automated correction."""

    pipeline_id: str
    finding_code: FindingCode
    reason: str
    step: int | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
