# tests/integration/test_int_pipeline_lifecycle.py
"""End-to-end scenarios: a pipeline walked through approvals, renders,
recoveries and a reset, with the returned actions applied in memory the
way a data layer would apply them.
"""

from __future__ import annotations

from stagegate.actions.models import ApplyRecoveryAction, ResetStepAction, SetApprovalAction
from stagegate.actions.planner import plan_approval, plan_step_reset
from stagegate.attempts.models import QAVerdict, ReviewableAsset
from stagegate.attempts.tracker import AttemptTracker
from stagegate.core.models import Asset, Pipeline, SpaceCounts, step_key
from stagegate.progress.calculator import compute_progress
from stagegate.validation.validator import plan_recoveries, validate


def _apply_approval(pipeline: Pipeline, action: SetApprovalAction) -> Pipeline:
    data = pipeline.model_dump()
    data[f"{action.step_key}_approved"] = True
    data["phase"] = action.next_phase
    data["current_step"] = action.next_step
    return Pipeline.model_validate(data)


def _apply_reset(pipeline: Pipeline, action: ResetStepAction) -> Pipeline:
    data = pipeline.model_dump()
    data["step_outputs"] = {
        k: v for k, v in data["step_outputs"].items() if k not in action.cleared_step_keys
    }
    data["step_retry_state"] = {
        k: v for k, v in (data["step_retry_state"] or {}).items()
        if k not in action.cleared_retry_keys
    }
    data["phase"] = action.phase
    data["current_step"] = action.current_step
    if action.clear_step1_approval:
        data["step1_approved"] = False
    if action.clear_step2_approval:
        data["step2_approved"] = False
    return Pipeline.model_validate(data)


def _apply_recovery(pipeline: Pipeline, action: ApplyRecoveryAction) -> Pipeline:
    data = pipeline.model_dump()
    target = action.target.model_dump(exclude_none=True)
    retry_key = target.pop("retry_state_key", None)
    retry_status = target.pop("retry_status", None)
    data.update(target)
    if retry_key:
        data["step_retry_state"][retry_key]["status"] = retry_status
    return Pipeline.model_validate(data)


def _with_output(pipeline: Pipeline, step: int, upload_id: str, phase: str) -> Pipeline:
    data = pipeline.model_dump()
    data["step_outputs"][step_key(step)] = {"output_upload_id": upload_id}
    data["phase"] = phase
    return Pipeline.model_validate(data)


class TestApprovalLifecycle:
    def test_two_approvals_then_renders_then_reset(self, approve_feedback):
        pipeline = Pipeline(id="pipe_int", phase="top_down_3d_running", current_step=1)
        progress = [compute_progress(pipeline, SpaceCounts()).base_progress]
        assert validate(pipeline).is_valid

        # Step 1
        pipeline = _with_output(pipeline, 1, "up_1", "top_down_3d_review")
        assert validate(pipeline).is_valid
        pipeline = _apply_approval(pipeline, plan_approval(pipeline, 1))
        assert pipeline.phase == "style_pending"
        assert validate(pipeline).is_valid
        progress.append(compute_progress(pipeline, SpaceCounts()).base_progress)

        # Step 2
        pipeline = _with_output(pipeline, 2, "up_2", "style_review")
        pipeline = _apply_approval(pipeline, plan_approval(pipeline, 2))
        assert pipeline.phase == "detect_spaces_pending"
        assert pipeline.current_step == 3
        assert validate(pipeline).is_valid
        progress.append(compute_progress(pipeline, SpaceCounts()).base_progress)

        # Renders for two spaces, approved by a human
        pipeline = Pipeline.model_validate(
            {**pipeline.model_dump(), "phase": "renders_in_progress", "current_step": 5}
        )
        tracker = AttemptTracker("render", max_attempts=3)
        assets: list[Asset] = []
        for n in range(4):
            asset = Asset(id=f"r{n}", space_id=f"s{n // 2}", kind="render", step_number=5)
            item = ReviewableAsset.from_asset(asset, tracker.max_attempts)
            item = tracker.start_attempt(item, f"up_r{n}")
            item = tracker.record_qa_verdict(item, QAVerdict(passed=True))
            item, record = tracker.human_approve(item, approve_feedback)
            assert record.locked_approved
            assets.append(item.apply_to(asset))
            counts = SpaceCounts.from_assets(2, assets)
            progress.append(compute_progress(pipeline, counts).base_progress)

        assert progress == sorted(progress)
        assert progress[-1] == 60.0
        assert validate(pipeline).is_valid

        # Reset step 2: approvals and downstream artifacts go away
        action = plan_step_reset(pipeline, 2, assets)
        assert action.cleared_asset_ids == ["r0", "r1", "r2", "r3"]
        pipeline = _apply_reset(pipeline, action)
        remaining = [a for a in assets if a.id not in action.cleared_asset_ids]
        assert pipeline.step1_approved
        assert not pipeline.step2_approved
        assert pipeline.phase == "style_pending"
        assert validate(pipeline).is_valid
        assert compute_progress(pipeline, SpaceCounts.from_assets(0, remaining)).base_progress == 20.0


class TestRecoveryLifecycle:
    def test_recovering_approval_without_output(self):
        pipeline = Pipeline(id="pipe_int", step1_approved=True, step_outputs={"step1": None})
        actions = plan_recoveries(pipeline)
        assert len(actions) == 1
        recovered = _apply_recovery(pipeline, actions[0])
        assert not recovered.step1_approved
        assert recovered.phase == "top_down_3d_pending"
        assert validate(recovered).is_valid

    def test_recovering_dangling_retry(self, completed_pipeline):
        pipeline = Pipeline.model_validate(
            {**completed_pipeline.model_dump(), "step_retry_state": {"step5": {"status": "running"}}}
        )
        (action,) = plan_recoveries(pipeline)
        assert action.audit.pipeline_id == "pipe_001"
        recovered = _apply_recovery(pipeline, action)
        assert recovered.retry_state_for("step5").status == "none"
        assert validate(recovered).is_valid

    def test_recovering_phase_step_mismatch(self):
        pipeline = Pipeline(
            id="pipe_int",
            phase="style_pending",
            current_step=1,
            step1_approved=True,
            step_outputs={"step1": {"output_upload_id": "u1"}},
        )
        (action,) = plan_recoveries(pipeline)
        recovered = _apply_recovery(pipeline, action)
        assert recovered.current_step == 2
        assert validate(recovered).is_valid


class TestEscalationLifecycle:
    def test_rejections_until_blocked_then_human_approval(
        self, render_tracker, reject_feedback, approve_feedback
    ):
        asset = Asset(id="r_int", space_id="s1", kind="render", step_number=5)
        item = render_tracker.start_attempt(ReviewableAsset.from_asset(asset, 3))
        failed = QAVerdict(passed=False)
        while item.state != "blocked_for_human":
            item = render_tracker.record_qa_verdict(item, failed)
            if item.state == "needs_review":
                item, _ = render_tracker.human_reject(item, reject_feedback)

        stored = item.apply_to(asset)
        assert stored.status == "qa_failed"
        assert stored.attempt_count == 3
        assert ReviewableAsset.from_asset(stored, 3).state == "blocked_for_human"

        item, record = render_tracker.human_approve(item, approve_feedback)
        stored = item.apply_to(asset)
        assert stored.status == "approved"
        assert stored.locked_approved
        assert record.attempt_index == 3
