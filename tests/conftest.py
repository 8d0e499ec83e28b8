# tests/conftest.py
"""Shared test fixtures for all unit and integration tests.

Provides pipeline snapshots at well-known positions, asset records,
triggered rules and a tracker. Everything is in-memory.
"""

from __future__ import annotations

import logging

import pytest

from stagegate.attempts.feedback import ReviewFeedback
from stagegate.attempts.tracker import AttemptTracker
from stagegate.core.models import Asset, Pipeline, SpaceCounts, TriggeredRule
from stagegate.logging.context import clear_context
from stagegate.logging.logger import ROOT_LOGGER


@pytest.fixture(autouse=True)
def _reset_stagegate_logging():
    """Undo any setup_logging() call made by a previous test."""
    yield
    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.setLevel(logging.NOTSET)
    clear_context()


# === FIXTURES: Pipelines ===


@pytest.fixture
def fresh_pipeline() -> Pipeline:
    """Pipeline that has just been uploaded."""
    return Pipeline(id="pipe_001")


@pytest.fixture
def step1_review_pipeline() -> Pipeline:
    """Step 1 output generated and waiting for a human decision."""
    return Pipeline(
        id="pipe_001",
        phase="top_down_3d_review",
        current_step=1,
        step_outputs={"step1": {"output_upload_id": "up_step1"}},
    )


@pytest.fixture
def renders_pipeline() -> Pipeline:
    """Both approvals given, renders in flight."""
    return Pipeline(
        id="pipe_001",
        phase="renders_in_progress",
        current_step=5,
        step1_approved=True,
        step2_approved=True,
        step_outputs={
            "step1": {"output_upload_id": "up_step1"},
            "step2": {"output_upload_id": "up_step2"},
            "step3": {"output_upload_id": "up_step3"},
            "step5": {
                "output_upload_id": None,
                "outputs": [
                    {"output_upload_id": "up_render_a"},
                    {"output_upload_id": "up_render_b"},
                ],
            },
        },
        step_retry_state={
            "step5": {"status": "running", "attempt_count": 2, "max_attempts": 5},
        },
    )


@pytest.fixture
def completed_pipeline() -> Pipeline:
    return Pipeline(
        id="pipe_001",
        phase="completed",
        current_step=7,
        status="completed",
        step1_approved=True,
        step2_approved=True,
        step_outputs={
            "step1": {"output_upload_id": "up_step1"},
            "step2": {"output_upload_id": "up_step2"},
        },
    )


# === FIXTURES: Assets ===


@pytest.fixture
def sample_assets() -> list[Asset]:
    """Two spaces: renders at step 5, panoramas at step 6, one final at step 7."""
    return [
        Asset(id="r1", space_id="s1", kind="render", step_number=5,
              output_upload_id="up_render_a", status="approved", attempt_count=1),
        Asset(id="r2", space_id="s1", kind="render", step_number=5,
              output_upload_id="up_render_b", status="needs_review", attempt_count=2),
        Asset(id="p1", space_id="s1", kind="panorama", step_number=6,
              output_upload_id="up_pano_a", status="running", attempt_count=1),
        Asset(id="f1", space_id="s2", kind="final360", step_number=7,
              status="pending"),
    ]


@pytest.fixture
def three_space_counts() -> SpaceCounts:
    return SpaceCounts(spaces_count=3, spaces_detected=True, renders_approved=3)


# === FIXTURES: Rules ===


@pytest.fixture
def law_rule() -> TriggeredRule:
    return TriggeredRule(
        id="law_1", rule_text="Never change the room count", strength_stage="law"
    )


@pytest.fixture
def guard_rule() -> TriggeredRule:
    return TriggeredRule(
        id="r1", rule_text="Keep window positions from the plan", strength_stage="guard"
    )


@pytest.fixture
def check_rule() -> TriggeredRule:
    return TriggeredRule(
        id="chk_1", rule_text="Confirm camera is at eye level", strength_stage="check"
    )


@pytest.fixture
def nudge_rule() -> TriggeredRule:
    return TriggeredRule(
        id="tip_1", rule_text="Warm lighting tends to be approved", strength_stage="nudge"
    )


# === FIXTURES: Attempts ===


@pytest.fixture
def render_tracker() -> AttemptTracker:
    return AttemptTracker("render", max_attempts=3)


@pytest.fixture
def approve_feedback() -> ReviewFeedback:
    return ReviewFeedback(decision="approve", score=85, tags=["Accurate Layout"])


@pytest.fixture
def reject_feedback() -> ReviewFeedback:
    return ReviewFeedback(
        decision="reject", score=30, tags=["Style Drift"], note="Colors drifted"
    )
