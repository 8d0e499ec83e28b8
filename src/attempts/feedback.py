# src/attempts/feedback.py
"""Structured review feedback attached to every human decision.

Approve and reject draw from separate tag vocabularies: what is good
about an image is not the mirror of what is wrong with one.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

Decision = Literal["approve", "reject"]

APPROVE_TAGS: tuple[str, ...] = (
    "Accurate Layout",
    "Correct Scale",
    "Correct Openings",
    "Good Camera Intent Match",
    "Style Match",
    "Clear / Readable",
    "Good Lighting",
    "Other",
)

REJECT_TAGS: tuple[str, ...] = (
    "Geometry/Layout Wrong",
    "Scale/Proportions Wrong",
    "Doors/Openings Wrong",
    "Windows Wrong",
    "Camera Not Eye-Level / Wrong FOV",
    "Style Drift",
    "Artifacts / Broken Image",
    "Missing Details / Hallucination",
    "Other",
)


def tags_for(decision: Decision) -> tuple[str, ...]:
    return APPROVE_TAGS if decision == "approve" else REJECT_TAGS


def score_label(score: int) -> str:
    """Poor / Fair / Good / Excellent band for a 0-100 score."""
    if score < 40:
        return "Poor"
    if score < 60:
        return "Fair"
    if score < 80:
        return "Good"
    return "Excellent"


class ReviewFeedback(BaseModel):
    """Score, tags and note recorded with an approve/reject decision."""

    decision: Decision
    score: int = Field(ge=0, le=100)
    tags: list[str] = Field(min_length=1)
    note: str | None = None
    qa_was_wrong: bool = False

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(t.strip() for t in v if t.strip()))

    @field_validator("note")
    @classmethod
    def blank_note_is_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None

    @model_validator(mode="after")
    def tags_match_decision(self) -> ReviewFeedback:
        if not self.tags:
            raise ValueError("at least one tag is required")
        allowed = tags_for(self.decision)
        unknown = [t for t in self.tags if t not in allowed]
        if unknown:
            raise ValueError(
                f"tags {unknown} are not valid for a {self.decision} decision"
            )
        return self

    @property
    def tags_type(self) -> Decision:
        return self.decision

    @property
    def score_label(self) -> str:
        return score_label(self.score)
