# src/actions/models.py
"""Argument models for the persistence action surface.

The core never persists anything. It produces these payloads and the
caller's data layer applies them atomically.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from stagegate.validation.models import CorrectionAudit, FindingCode, RecoveryTarget


class SetApprovalAction(BaseModel):
    """Arguments for setApproval(stepKey, reason?)."""

    action: Literal["set_approval"] = "set_approval"
    pipeline_id: str
    step_key: str
    output_upload_id: str | None = None
    reason: str | None = None
    next_phase: str | None = None
    next_step: int | None = None


class RecordAttemptAction(BaseModel):
    """Arguments for recordAttempt(assetId, decision, score, tags, note)."""

    action: Literal["record_attempt"] = "record_attempt"
    asset_id: str
    attempt_index: int
    decision: Literal["approve", "reject"]
    score: int
    tags: list[str]
    note: str | None = None
    resulting_status: str
    locked_approved: bool = False


class ResetStepAction(BaseModel):
    """Arguments for resetStep(stepNumber) with the full cascade spelled out."""

    action: Literal["reset_step"] = "reset_step"
    pipeline_id: str
    step_number: int
    reset_steps: list[int]
    cleared_step_keys: list[str] = Field(default_factory=list)
    cleared_retry_keys: list[str] = Field(default_factory=list)
    cleared_asset_ids: list[str] = Field(default_factory=list)
    cleared_upload_ids: list[str] = Field(default_factory=list)
    phase: str
    current_step: int
    clear_step1_approval: bool = False
    clear_step2_approval: bool = False


class ApplyRecoveryAction(BaseModel):
    """Arguments for applyRecovery(findingId) plus its audit entry."""

    action: Literal["apply_recovery"] = "apply_recovery"
    pipeline_id: str
    finding_id: str
    finding_code: FindingCode
    target: RecoveryTarget
    audit: CorrectionAudit
