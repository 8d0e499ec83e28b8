# tests/unit/core/test_unit_models.py
"""Tests for core/models.py: snapshot models and their defaults."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from stagegate.core.models import (
    Asset,
    Pipeline,
    RetryState,
    SpaceCounts,
    StepOutput,
    TriggeredRule,
    parse_step_key,
    step_key,
)


class TestPipeline:
    def test_defaults(self):
        p = Pipeline(id="p")
        assert p.phase == "upload"
        assert p.current_step == 0
        assert p.status == "active"
        assert p.step_outputs == {}
        assert p.step_retry_state is None

    def test_null_fields_read_as_defaults(self):
        p = Pipeline.model_validate(
            {"id": "p", "phase": None, "current_step": None, "step_outputs": None}
        )
        assert p.phase == "upload"
        assert p.current_step == 0
        assert p.step_outputs == {}

    def test_null_status_and_approvals_read_as_defaults(self):
        p = Pipeline.model_validate(
            {
                "id": "p",
                "status": None,
                "step1_approved": None,
                "step2_approved": None,
                "step_outputs": {
                    "step1": {"output_upload_id": "up_1", "manual_approved": None, "outputs": None}
                },
                "step_retry_state": {"step5": {"status": None, "attempt_count": None}},
            }
        )
        assert p.status == "active"
        assert p.step1_approved is False
        assert p.step2_approved is False
        assert p.output_for("step1").manual_approved is False
        assert p.output_for("step1").outputs == []
        assert p.retry_state_for("step5").status == "none"
        assert p.retry_state_for("step5").attempt_count == 0

    def test_missing_retry_state_is_none(self):
        p = Pipeline(id="p", step_retry_state={"step5": None})
        assert p.retry_state_for("step5").status == "none"
        assert p.retry_state_for("step9").status == "none"
        assert p.retry_states()["step5"] == RetryState()

    def test_unknown_keys_ignored(self):
        p = Pipeline.model_validate({"id": "p", "floor_plan_id": "fp_1"})
        assert not hasattr(p, "floor_plan_id")

    def test_terminal_statuses(self):
        assert Pipeline(id="p", status="completed").is_terminal
        assert Pipeline(id="p", status="failed").is_terminal
        assert not Pipeline(id="p", status="paused").is_terminal

    def test_is_step_approved_uses_flags_for_gated_steps(self, renders_pipeline):
        assert renders_pipeline.is_step_approved(1)
        assert renders_pipeline.is_step_approved(2)
        assert not renders_pipeline.is_step_approved(3)

    def test_is_step_approved_reads_manual_flag(self):
        p = Pipeline(id="p", step_outputs={"step3": {"output_upload_id": "u", "manual_approved": True}})
        assert p.is_step_approved(3)

    def test_output_for_null_entry(self):
        p = Pipeline(id="p", step_outputs={"step1": None})
        assert p.output_for("step1") is None


class TestStepOutput:
    def test_has_artifact(self):
        assert StepOutput(output_upload_id="u1").has_artifact
        assert not StepOutput().has_artifact

    def test_artifact_ids_primary_first_without_duplicates(self):
        out = StepOutput(
            output_upload_id="u1",
            outputs=[{"output_upload_id": "u2"}, {"output_upload_id": "u1"}, {"label": "x"}],
        )
        assert out.artifact_ids() == ["u1", "u2"]


class TestStepKeys:
    def test_step_key(self):
        assert step_key(3) == "step3"

    @pytest.mark.parametrize("key,expected", [
        ("step3", 3),
        ("step_3", 3),
        ("step10", 10),
        ("outputs", None),
        ("step", None),
    ])
    def test_parse_step_key(self, key, expected):
        assert parse_step_key(key) == expected


class TestAsset:
    def test_stale_status_under_lock_is_accepted(self):
        a = Asset.model_validate(
            {"id": "a", "space_id": "s", "status": "needs_review", "locked_approved": True}
        )
        assert a.status == "needs_review"
        assert a.is_approved

    def test_null_fields_read_as_defaults(self):
        a = Asset.model_validate(
            {
                "id": "a",
                "space_id": "s",
                "status": None,
                "attempt_count": None,
                "locked_approved": None,
            }
        )
        assert (a.status, a.attempt_count, a.locked_approved) == ("pending", 0, False)
        assert not a.is_approved

    def test_locked_approved_ok(self):
        a = Asset(id="a", space_id="s", status="approved", locked_approved=True)
        assert a.locked_approved

    def test_negative_attempt_count_rejected(self):
        with pytest.raises(ValidationError):
            Asset(id="a", space_id="s", attempt_count=-1)


class TestTriggeredRule:
    def test_confidence_bounds(self):
        with pytest.raises(ValidationError):
            TriggeredRule(id="r", confidence_score=1.5)

    def test_default_stage_is_nudge(self):
        assert TriggeredRule(id="r").strength_stage == "nudge"


class TestSpaceCounts:
    def test_from_assets_counts_approved_per_kind(self, sample_assets):
        counts = SpaceCounts.from_assets(2, sample_assets)
        assert counts.spaces_detected is True
        assert counts.renders_approved == 1
        assert counts.panoramas_approved == 0
        assert counts.final360s_approved == 0

    def test_locked_asset_counts_despite_stale_status(self):
        stale = Asset.model_validate(
            {
                "id": "p1",
                "space_id": "s1",
                "kind": "panorama",
                "status": "running",
                "locked_approved": True,
            }
        )
        assert SpaceCounts.from_assets(1, [stale]).panoramas_approved == 1

    def test_from_assets_detected_override(self):
        counts = SpaceCounts.from_assets(2, [], spaces_detected=False)
        assert counts.spaces_detected is False
