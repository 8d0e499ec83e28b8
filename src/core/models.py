# src/core/models.py
"""Shared Pydantic domain models used across modules.

Snapshot types handed to the decision functions: Pipeline, StepOutput,
RetryState, Asset, TriggeredRule and SpaceCounts. No module redefines
these types, all imports come from core.models.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

PipelineStatus = Literal["active", "paused", "completed", "failed", "cancelled"]
RetryStatus = Literal["none", "pending", "running", "blocked_for_human"]
AssetStatus = Literal[
    "pending",
    "running",
    "generating",
    "editing",
    "needs_review",
    "approved",
    "rejected",
    "failed",
    "qa_failed",
]
AssetKind = Literal["render", "panorama", "final360"]
StrengthStage = Literal["nudge", "check", "guard", "law"]

TERMINAL_PIPELINE_STATUSES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})

DEFAULT_MAX_ATTEMPTS = 5


# === PIPELINE ===


class StepOutput(BaseModel):
    """Output descriptor stored under a step key (step1, step2, ...)."""

    model_config = ConfigDict(extra="ignore")

    output_upload_id: str | None = None
    manual_approved: bool = False
    outputs: list[dict[str, str | None]] = Field(default_factory=list)

    @field_validator("manual_approved", mode="before")
    @classmethod
    def _default_manual(cls, v: bool | None) -> bool:
        return False if v is None else v

    @field_validator("outputs", mode="before")
    @classmethod
    def _default_list(cls, v):  # noqa: ANN001
        return v or []

    @property
    def has_artifact(self) -> bool:
        return bool(self.output_upload_id)

    def artifact_ids(self) -> list[str]:
        """All artifact references held by this output, primary first."""
        ids: list[str] = []
        if self.output_upload_id:
            ids.append(self.output_upload_id)
        for item in self.outputs:
            ref = item.get("output_upload_id")
            if ref and ref not in ids:
                ids.append(ref)
        return ids


class RetryState(BaseModel):
    """Automated retry bookkeeping for one step."""

    model_config = ConfigDict(extra="ignore")

    status: RetryStatus = "none"
    attempt_count: int = 0
    max_attempts: int = DEFAULT_MAX_ATTEMPTS

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, v: str | None) -> str:
        return v or "none"

    @field_validator("attempt_count", mode="before")
    @classmethod
    def _default_attempts(cls, v: int | None) -> int:
        return 0 if v is None else v

    @field_validator("max_attempts", mode="before")
    @classmethod
    def _default_max_attempts(cls, v: int | None) -> int:
        return DEFAULT_MAX_ATTEMPTS if v is None else v

    @property
    def is_blocked(self) -> bool:
        return self.status == "blocked_for_human"


class Pipeline(BaseModel):
    """Root workflow snapshot.

    `phase` is authoritative; `current_step` is the coarse pointer that is
    expected to agree with it. Missing retry state is read as `none`.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    phase: str = "upload"
    current_step: int = 0
    status: PipelineStatus = "active"
    step1_approved: bool = False
    step2_approved: bool = False
    step_outputs: dict[str, StepOutput | None] = Field(default_factory=dict)
    step_retry_state: dict[str, RetryState | None] | None = None

    @field_validator("phase", mode="before")
    @classmethod
    def _default_phase(cls, v: str | None) -> str:
        return v or "upload"

    @field_validator("current_step", mode="before")
    @classmethod
    def _default_step(cls, v: int | None) -> int:
        return 0 if v is None else v

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, v: str | None) -> str:
        return v or "active"

    @field_validator("step1_approved", "step2_approved", mode="before")
    @classmethod
    def _default_approval(cls, v: bool | None) -> bool:
        return False if v is None else v

    @field_validator("step_outputs", mode="before")
    @classmethod
    def _default_outputs(cls, v):  # noqa: ANN001
        return v or {}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PIPELINE_STATUSES

    def output_for(self, step_key: str) -> StepOutput | None:
        return self.step_outputs.get(step_key)

    def retry_state_for(self, step_key: str) -> RetryState:
        """Return the retry state for a step key, defaulting to `none`."""
        state = (self.step_retry_state or {}).get(step_key)
        return state if state is not None else RetryState()

    def retry_states(self) -> dict[str, RetryState]:
        """All retry states with null entries normalized."""
        return {
            key: (state if state is not None else RetryState())
            for key, state in (self.step_retry_state or {}).items()
        }

    def is_step_approved(self, step_number: int) -> bool:
        if step_number == 1:
            return self.step1_approved
        if step_number == 2:
            return self.step2_approved
        output = self.output_for(step_key(step_number))
        return bool(output and output.manual_approved)


def step_key(step_number: int) -> str:
    """Key under which a step's output is stored (`step3`)."""
    return f"step{step_number}"


def parse_step_key(key: str) -> int | None:
    """Parse `step3` or `step_3` into 3. Returns None for other keys."""
    digits = key.removeprefix("step").lstrip("_")
    return int(digits) if digits.isdigit() else None


# === ASSETS ===


class Asset(BaseModel):
    """One visual artifact produced for one space at one pipeline step."""

    model_config = ConfigDict(extra="ignore")

    id: str
    space_id: str
    kind: AssetKind = "render"
    step_number: int = 5
    output_upload_id: str | None = None
    model: str | None = None
    attempt_count: int = Field(default=0, ge=0)
    status: AssetStatus = "pending"
    qa_status: str | None = None
    locked_approved: bool = False

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, v: str | None) -> str:
        return v or "pending"

    @field_validator("attempt_count", mode="before")
    @classmethod
    def _default_attempts(cls, v: int | None) -> int:
        return 0 if v is None else v

    @field_validator("locked_approved", mode="before")
    @classmethod
    def _default_lock(cls, v: bool | None) -> bool:
        return False if v is None else v

    @property
    def is_approved(self) -> bool:
        """A human lock is authoritative even when the stored status lags behind it."""
        return self.locked_approved or self.status == "approved"


# === RULES ===


class TriggeredRule(BaseModel):
    """Advisory rule surfaced when a proposed action risks a repeat rejection."""

    id: str
    rule_text: str = ""
    category: str = "other"
    strength_stage: StrengthStage = "nudge"
    confidence_score: float = Field(default=1.0, ge=0.0, le=1.0)
    health: float = Field(default=100.0, ge=0.0, le=100.0)


# === PROGRESS INPUT ===


class SpaceCounts(BaseModel):
    """Approval counters feeding the progress calculator."""

    spaces_count: int = Field(default=0, ge=0)
    spaces_detected: bool = False
    renders_approved: int = Field(default=0, ge=0)
    panoramas_approved: int = Field(default=0, ge=0)
    final360s_approved: int = Field(default=0, ge=0)

    @classmethod
    def from_assets(
        cls,
        spaces_count: int,
        assets: list[Asset],
        spaces_detected: bool | None = None,
    ) -> SpaceCounts:
        """Count approved assets per kind."""
        approved = [a for a in assets if a.is_approved]
        return cls(
            spaces_count=spaces_count,
            spaces_detected=spaces_count > 0 if spaces_detected is None else spaces_detected,
            renders_approved=sum(1 for a in approved if a.kind == "render"),
            panoramas_approved=sum(1 for a in approved if a.kind == "panorama"),
            final360s_approved=sum(1 for a in approved if a.kind == "final360"),
        )
