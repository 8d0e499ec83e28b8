# src/progress/calculator.py
"""Progress calculator: approval-driven, monotonic progress signal.

Progress moves only when a human approval milestone is reached, never
on running work alone. Each milestone is applied as
``base = max(base, candidate)`` so a later rule can never pull the bar
backwards. While a phase is in flight, an animated value sits halfway
between the base and the next milestone without reaching it.

Milestone ladder:
    analysis 0, step 1 approved 20, step 2 approved 40,
    spaces detected 50, renders 50-60, panoramas 60-80,
    final 360s 80-100, complete 100.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel

from stagegate.core.models import Pipeline, SpaceCounts
from stagegate.core.phases import is_in_progress_phase, is_review_phase

logger = logging.getLogger(__name__)

ANALYSIS_COMPLETE = 0.0
STEP1_APPROVED = 20.0
STEP2_APPROVED = 40.0
SPACES_DETECTED = 50.0
RENDERS_APPROVED = 60.0
PANORAMAS_APPROVED = 80.0
COMPLETE = 100.0

# Tick positions drawn on the bar.
MILESTONE_MARKERS: tuple[int, ...] = (20, 40, 50, 60, 80)

RENDER_SLOTS_PER_SPACE = 2
PANORAMA_SLOTS_PER_SPACE = 2


class ProgressView(BaseModel):
    """Derived progress for one snapshot."""

    base_progress: float
    animated_progress: float
    milestone: str
    is_animating: bool
    is_awaiting_review: bool = False
    next_milestone: float = COMPLETE


def compute_progress(pipeline: Pipeline, space_counts: SpaceCounts) -> ProgressView:
    """Map a snapshot and its approval counters to a progress view.

    Args:
        pipeline: Pipeline snapshot (phase, status, approvals).
        space_counts: Approved asset counters per kind.

    Returns:
        ProgressView with base and animated progress in [0, 100].
    """
    base, milestone = _base_progress(pipeline, space_counts)
    upcoming = _next_milestone(pipeline, space_counts)

    animated = base
    animating = False
    if is_in_progress_phase(pipeline.phase) and base < upcoming:
        animated = min(base + (upcoming - base) / 2, upcoming)
        animating = True

    view = ProgressView(
        base_progress=base,
        animated_progress=animated,
        milestone=milestone,
        is_animating=animating,
        is_awaiting_review=is_review_phase(pipeline.phase),
        next_milestone=upcoming,
    )
    logger.debug(
        "Progress for %s: base=%.1f animated=%.1f (%s)",
        pipeline.id, view.base_progress, view.animated_progress, view.milestone,
    )
    return view


def _base_progress(pipeline: Pipeline, counts: SpaceCounts) -> tuple[float, str]:
    base = ANALYSIS_COMPLETE
    milestone = "Analysis"

    def raise_to(candidate: float, label: str) -> None:
        nonlocal base, milestone
        if candidate >= base:
            base = candidate
            milestone = label

    if pipeline.step1_approved:
        raise_to(STEP1_APPROVED, "Step 1 Approved")

    if pipeline.step2_approved:
        raise_to(STEP2_APPROVED, "Step 2 Approved")

    spaces = counts.spaces_count
    if counts.spaces_detected and spaces > 0:
        raise_to(SPACES_DETECTED, "Spaces Detected")

    if spaces > 0:
        render_slots = spaces * RENDER_SLOTS_PER_SPACE
        renders = min(counts.renders_approved, render_slots)
        if renders >= render_slots:
            raise_to(RENDERS_APPROVED, "All Renders Approved")
        elif renders > 0:
            raise_to(
                SPACES_DETECTED + (renders / render_slots) * (RENDERS_APPROVED - SPACES_DETECTED),
                f"Renders {renders}/{render_slots}",
            )

        # Panoramas only count once every render slot is approved.
        panorama_slots = spaces * PANORAMA_SLOTS_PER_SPACE
        panoramas = min(counts.panoramas_approved, panorama_slots)
        if renders >= render_slots:
            if panoramas >= panorama_slots:
                raise_to(PANORAMAS_APPROVED, "All Panoramas Approved")
            elif panoramas > 0:
                raise_to(
                    RENDERS_APPROVED
                    + (panoramas / panorama_slots) * (PANORAMAS_APPROVED - RENDERS_APPROVED),
                    f"Panoramas {panoramas}/{panorama_slots}",
                )

        finals = min(counts.final360s_approved, spaces)
        if 0 < finals < spaces:
            raise_to(
                PANORAMAS_APPROVED + (finals / spaces) * (COMPLETE - PANORAMAS_APPROVED),
                f"Final 360s {finals}/{spaces}",
            )

    all_finals = spaces > 0 and counts.final360s_approved >= spaces
    if pipeline.status == "completed" or pipeline.phase == "completed" or all_finals:
        raise_to(COMPLETE, "Complete")

    return max(0.0, min(COMPLETE, base)), milestone


def _next_milestone(pipeline: Pipeline, counts: SpaceCounts) -> float:
    spaces = counts.spaces_count
    if not pipeline.step1_approved:
        return STEP1_APPROVED
    if not pipeline.step2_approved:
        return STEP2_APPROVED
    if not (counts.spaces_detected and spaces > 0):
        return SPACES_DETECTED
    if counts.renders_approved < spaces * RENDER_SLOTS_PER_SPACE:
        return RENDERS_APPROVED
    if counts.panoramas_approved < spaces * PANORAMA_SLOTS_PER_SPACE:
        return PANORAMAS_APPROVED
    return COMPLETE
