# src/core/phases.py
"""Phase vocabulary and the phase -> step contract.

The phase string is the authoritative signal of what the pipeline is
doing; the step number is derived from it. PHASE_TABLE is the single
place both are declared. WorkflowState wraps a phase so that code built
on it cannot hold a step that disagrees with the phase.

Step layout:
    0 analysis, 1 top-down plan, 2 style, 3 space detection,
    4 camera intent, 5 renders, 6 panoramas, 7 merge / final 360.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

from stagegate.core.errors import IllegalTransitionError
from stagegate.core.models import Pipeline

logger = logging.getLogger(__name__)

PhaseFamily = Literal["pending", "running", "review", "approved", "terminal"]

FIRST_STEP = 0
LAST_STEP = 7


@dataclass(frozen=True)
class PhaseInfo:
    """Static facts about one phase."""

    step: int
    family: PhaseFamily


PHASE_TABLE: dict[str, PhaseInfo] = {
    # Step 0: analysis
    "upload": PhaseInfo(0, "pending"),
    "space_analysis_pending": PhaseInfo(0, "pending"),
    "space_analysis_running": PhaseInfo(0, "running"),
    "space_analysis_complete": PhaseInfo(0, "approved"),
    "space_analysis_review": PhaseInfo(0, "review"),
    "space_analysis_failed": PhaseInfo(0, "terminal"),
    # Step 1: top-down plan
    "top_down_3d_pending": PhaseInfo(1, "pending"),
    "top_down_3d_running": PhaseInfo(1, "running"),
    "top_down_3d_review": PhaseInfo(1, "review"),
    "top_down_3d_approved": PhaseInfo(1, "approved"),
    # Step 2: style
    "style_pending": PhaseInfo(2, "pending"),
    "style_running": PhaseInfo(2, "running"),
    "style_review": PhaseInfo(2, "review"),
    "style_approved": PhaseInfo(2, "approved"),
    # Step 3: space detection
    "detect_spaces_pending": PhaseInfo(3, "pending"),
    "detecting_spaces": PhaseInfo(3, "running"),
    "spaces_detected": PhaseInfo(3, "review"),
    "spaces_detected_waiting_approval": PhaseInfo(3, "review"),
    # Step 4: camera intent (decision only, nothing generated)
    "camera_intent_pending": PhaseInfo(4, "pending"),
    "camera_intent_confirmed": PhaseInfo(4, "approved"),
    # Step 5: renders
    "prompt_templates_pending": PhaseInfo(5, "pending"),
    "prompt_templates_confirmed": PhaseInfo(5, "approved"),
    "renders_pending": PhaseInfo(5, "pending"),
    "renders_in_progress": PhaseInfo(5, "running"),
    "renders_review": PhaseInfo(5, "review"),
    "renders_approved": PhaseInfo(5, "approved"),
    # Step 6: panoramas
    "panoramas_pending": PhaseInfo(6, "pending"),
    "panoramas_in_progress": PhaseInfo(6, "running"),
    "panoramas_review": PhaseInfo(6, "review"),
    "panoramas_approved": PhaseInfo(6, "approved"),
    # Step 7: merge / final 360
    "merging_pending": PhaseInfo(7, "pending"),
    "merging_in_progress": PhaseInfo(7, "running"),
    "merging_review": PhaseInfo(7, "review"),
    "completed": PhaseInfo(7, "terminal"),
    # Error
    "failed": PhaseInfo(0, "terminal"),
}

# Review / confirmed phase -> next pending phase.
LEGAL_PHASE_TRANSITIONS: dict[str, str] = {
    "space_analysis_complete": "top_down_3d_pending",
    "space_analysis_review": "top_down_3d_pending",
    "top_down_3d_review": "style_pending",
    "top_down_3d_approved": "style_pending",
    "style_review": "detect_spaces_pending",
    "style_approved": "detect_spaces_pending",
    "spaces_detected": "camera_intent_pending",
    "spaces_detected_waiting_approval": "camera_intent_pending",
    "camera_intent_confirmed": "prompt_templates_pending",
    "prompt_templates_confirmed": "renders_pending",
    "renders_review": "panoramas_pending",
    "renders_approved": "panoramas_pending",
    "panoramas_review": "merging_pending",
    "panoramas_approved": "merging_pending",
    "merging_review": "completed",
}

PENDING_PHASE_FOR_STEP: dict[int, str] = {
    0: "space_analysis_pending",
    1: "top_down_3d_pending",
    2: "style_pending",
    3: "detect_spaces_pending",
    4: "camera_intent_pending",
    5: "renders_pending",
    6: "panoramas_pending",
    7: "merging_pending",
}

REVIEW_PHASE_FOR_STEP: dict[int, str] = {
    0: "space_analysis_review",
    1: "top_down_3d_review",
    2: "style_review",
    3: "spaces_detected",
    5: "renders_review",
    6: "panoramas_review",
    7: "merging_review",
}


def is_known_phase(phase: str) -> bool:
    return phase in PHASE_TABLE


def step_for_phase(phase: str) -> int | None:
    """Mapped step for a phase, or None for an unknown phase."""
    info = PHASE_TABLE.get(phase)
    return info.step if info else None


def is_in_progress_phase(phase: str) -> bool:
    """True while work is being dispatched or running for the phase."""
    info = PHASE_TABLE.get(phase)
    if info is not None:
        return info.family == "running"
    return "running" in phase or phase.endswith("_in_progress")


def is_review_phase(phase: str) -> bool:
    info = PHASE_TABLE.get(phase)
    if info is not None:
        return info.family == "review"
    return "review" in phase


def pending_phase_for_step(step: int) -> str:
    """Phase a step returns to when it is (re)started."""
    if step not in PENDING_PHASE_FOR_STEP:
        raise ValueError(f"step must be between {FIRST_STEP} and {LAST_STEP}, got {step}")
    return PENDING_PHASE_FOR_STEP[step]


def next_phase(phase: str) -> str | None:
    """Next legal phase after a review/confirmed phase, or None."""
    return LEGAL_PHASE_TRANSITIONS.get(phase)


def is_legal_transition(from_phase: str, to_phase: str) -> bool:
    return LEGAL_PHASE_TRANSITIONS.get(from_phase) == to_phase


class WorkflowState(BaseModel):
    """A pipeline position expressed by its phase alone.

    The step is derived from the phase, so a WorkflowState can never
    disagree with itself about where the pipeline is.
    """

    model_config = ConfigDict(frozen=True)

    phase: str

    @field_validator("phase")
    @classmethod
    def validate_phase(cls, v: str) -> str:
        if v not in PHASE_TABLE:
            raise ValueError(f"Unknown phase: {v!r}")
        return v

    @property
    def step(self) -> int:
        return PHASE_TABLE[self.phase].step

    @property
    def family(self) -> PhaseFamily:
        return PHASE_TABLE[self.phase].family

    @property
    def is_in_progress(self) -> bool:
        return self.family == "running"

    @property
    def is_review(self) -> bool:
        return self.family == "review"

    @classmethod
    def for_step(cls, step: int) -> WorkflowState:
        """Pending state of a step."""
        return cls(phase=pending_phase_for_step(step))

    @classmethod
    def from_phase(cls, phase: str | None) -> WorkflowState:
        return cls(phase=phase or "upload")

    @classmethod
    def from_pipeline(cls, pipeline: Pipeline) -> WorkflowState:
        """Read a stored snapshot. Its current_step is ignored."""
        return cls.from_phase(pipeline.phase)

    def advance(self) -> WorkflowState:
        """Follow the legal transition table.

        Raises:
            IllegalTransitionError: If the phase has no successor.
        """
        target = next_phase(self.phase)
        if target is None:
            raise IllegalTransitionError(
                f"No legal transition from phase '{self.phase}'"
            )
        logger.debug("Phase transition %s -> %s", self.phase, target)
        return WorkflowState(phase=target)
