# src/attempts/models.py
"""Attempt tracker models: ReviewableAsset, QAVerdict, QAIssue, RetryDecision."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from stagegate.core.models import Asset, AssetKind, AssetStatus, RetryStatus

AttemptState = Literal[
    "none", "pending", "running", "needs_review", "approved", "blocked_for_human"
]

_RUNNING_STATUSES: frozenset[str] = frozenset({"running", "generating", "editing"})

_ASSET_STATUS_FOR_STATE: dict[str, AssetStatus] = {
    "none": "pending",
    "pending": "pending",
    "running": "running",
    "needs_review": "needs_review",
    "approved": "approved",
    "blocked_for_human": "qa_failed",
}


class QAIssue(BaseModel):
    """One problem reported by the automated QA service."""

    type: str = "other"
    severity: Literal["critical", "major", "minor"] = "minor"
    description: str = ""


class QAVerdict(BaseModel):
    """Structured result object produced by the automated QA service."""

    passed: bool
    overall_score: int | None = Field(default=None, ge=0, le=100)
    issues: list[QAIssue] = Field(default_factory=list)
    recommended_action: Literal["approve", "retry", "needs_human"] = "retry"

    @property
    def qa_status(self) -> str:
        return "passed" if self.passed else "rejected"


@dataclass(frozen=True)
class RetryDecision:
    """Whether the automation may start another attempt, and why."""

    should_retry: bool
    reason: str


class ReviewableAsset(BaseModel):
    """Review state shared by renders, panoramas and final 360s.

    The tracker never mutates one of these; every transition returns a
    copy.
    """

    model_config = ConfigDict(frozen=True)

    asset_id: str
    kind: AssetKind = "render"
    state: AttemptState = "none"
    attempt_count: int = Field(default=0, ge=0)
    locked_approved: bool = False
    qa_status: str | None = None
    output_upload_id: str | None = None

    @model_validator(mode="after")
    def _lock_implies_approved(self) -> ReviewableAsset:
        if self.locked_approved and self.state != "approved":
            raise ValueError("locked_approved requires state 'approved'")
        return self

    @classmethod
    def from_asset(cls, asset: Asset, max_attempts: int) -> ReviewableAsset:
        """Read the review state out of a stored asset record.

        qa_failed is where blocked_for_human is stored, so it always reads
        back as blocked. A set lock wins over a stale status.
        """
        status = asset.status
        state: AttemptState
        if asset.is_approved:
            state = "approved"
        elif status == "qa_failed":
            state = "blocked_for_human"
        elif status in _RUNNING_STATUSES:
            state = "running"
        elif status in ("needs_review", "rejected", "failed"):
            if asset.attempt_count >= max_attempts:
                state = "blocked_for_human"
            elif status == "needs_review":
                state = "needs_review"
            else:
                state = "pending"
        else:
            state = "pending"
        return cls(
            asset_id=asset.id,
            kind=asset.kind,
            state=state,
            attempt_count=asset.attempt_count,
            locked_approved=asset.locked_approved,
            qa_status=asset.qa_status,
            output_upload_id=asset.output_upload_id,
        )

    def apply_to(self, asset: Asset) -> Asset:
        """Write this review state back onto a copy of the asset record."""
        return asset.model_copy(
            update={
                "status": _ASSET_STATUS_FOR_STATE[self.state],
                "attempt_count": self.attempt_count,
                "locked_approved": self.locked_approved,
                "qa_status": self.qa_status,
                "output_upload_id": self.output_upload_id or asset.output_upload_id,
            }
        )


def step_retry_status(items: list[ReviewableAsset]) -> RetryStatus:
    """Collapse per-asset states into the step-level retry status."""
    states = {item.state for item in items}
    if "blocked_for_human" in states:
        return "blocked_for_human"
    if "running" in states:
        return "running"
    if "pending" in states:
        return "pending"
    return "none"
