# src/validation/rules.py
"""Declarative illegal-state rule table.

Each StateRule pairs a name with a check that inspects a pipeline snapshot
and yields zero or more findings. The validator runs every row; adding a
check means adding a row to STATE_RULES.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from stagegate.core.models import Pipeline, parse_step_key, step_key
from stagegate.core.phases import (
    PHASE_TABLE,
    REVIEW_PHASE_FOR_STEP,
    is_known_phase,
    next_phase,
    pending_phase_for_step,
    step_for_phase,
)
from stagegate.validation.models import IllegalState, RecoveryTarget

# Steps carrying a human sign-off flag on the pipeline row.
APPROVAL_GATED_STEPS: tuple[int, ...] = (1, 2)


@dataclass(frozen=True)
class StateRule:
    """One row of the rule table."""

    name: str
    check: Callable[[Pipeline], Iterable[IllegalState]]
    description: str = ""


def _step_has_output(pipeline: Pipeline, step: int) -> bool:
    output = pipeline.output_for(step_key(step))
    return output is not None and output.has_artifact


def check_approval_without_output(pipeline: Pipeline) -> Iterable[IllegalState]:
    for step in APPROVAL_GATED_STEPS:
        if pipeline.is_step_approved(step) and not _step_has_output(pipeline, step):
            target = RecoveryTarget(
                phase=pending_phase_for_step(step),
                current_step=step,
                **{f"step{step}_approved": False},
            )
            yield IllegalState(
                code="APPROVED_WITHOUT_OUTPUT",
                message=f"Step {step} is approved but step_outputs.{step_key(step)} has no output",
                severity="critical",
                recovery=True,
                step=step,
                recovery_target=target,
            )


def check_phase_step_mismatch(pipeline: Pipeline) -> Iterable[IllegalState]:
    expected = step_for_phase(pipeline.phase)
    if expected is None or expected == pipeline.current_step:
        return
    yield IllegalState(
        code="PHASE_STEP_MISMATCH",
        message=(
            f'Phase "{pipeline.phase}" expects step {expected}, '
            f"but current_step is {pipeline.current_step}"
        ),
        severity="critical",
        recovery=True,
        step=expected,
        recovery_target=RecoveryTarget(phase=pipeline.phase, current_step=expected),
    )


def check_dangling_retry_state(pipeline: Pipeline) -> Iterable[IllegalState]:
    if not pipeline.is_terminal:
        return
    for key, state in sorted(pipeline.retry_states().items()):
        if state.status != "running":
            continue
        yield IllegalState(
            code="RETRY_STATE_DANGLING",
            message=(
                f"Retry state for {key} is still running but pipeline "
                f"status is {pipeline.status}"
            ),
            severity="warning",
            recovery=True,
            step=parse_step_key(key),
            recovery_target=RecoveryTarget(retry_state_key=key, retry_status="none"),
        )


def check_ordering(pipeline: Pipeline) -> Iterable[IllegalState]:
    if pipeline.current_step < 2 or pipeline.step1_approved:
        return
    if _step_has_output(pipeline, 1):
        target = RecoveryTarget(phase=REVIEW_PHASE_FOR_STEP[1], current_step=1)
    else:
        target = RecoveryTarget(phase=pending_phase_for_step(1), current_step=1)
    yield IllegalState(
        code="ORDERING_VIOLATION",
        message=(
            f"current_step is {pipeline.current_step} but step 1 has not been approved"
        ),
        severity="critical",
        recovery=True,
        step=1,
        recovery_target=target,
    )


def check_approved_not_advanced(pipeline: Pipeline) -> Iterable[IllegalState]:
    for step in APPROVAL_GATED_STEPS:
        review_phase = REVIEW_PHASE_FOR_STEP[step]
        if pipeline.phase != review_phase or not pipeline.is_step_approved(step):
            continue
        if not _step_has_output(pipeline, step):
            # Reported as APPROVED_WITHOUT_OUTPUT; advancing would skip a missing artifact.
            continue
        target_phase = next_phase(review_phase)
        yield IllegalState(
            code="APPROVED_NOT_ADVANCED",
            message=f"Step {step} is approved but phase is still {review_phase}",
            severity="warning",
            recovery=True,
            step=step,
            recovery_target=RecoveryTarget(
                phase=target_phase,
                current_step=PHASE_TABLE[target_phase].step if target_phase else None,
            ),
        )


def check_review_without_output(pipeline: Pipeline) -> Iterable[IllegalState]:
    for step in APPROVAL_GATED_STEPS:
        if pipeline.phase != REVIEW_PHASE_FOR_STEP[step]:
            continue
        if _step_has_output(pipeline, step):
            continue
        if pipeline.is_step_approved(step):
            # Reported as APPROVED_WITHOUT_OUTPUT.
            continue
        yield IllegalState(
            code="REVIEW_WITHOUT_OUTPUT",
            message=f"Phase is {pipeline.phase} but no Step {step} output exists",
            severity="warning",
            recovery=True,
            step=step,
            recovery_target=RecoveryTarget(
                phase=pending_phase_for_step(step), current_step=step
            ),
        )


def check_unknown_phase(pipeline: Pipeline) -> Iterable[IllegalState]:
    if is_known_phase(pipeline.phase):
        return
    yield IllegalState(
        code="UNKNOWN_PHASE",
        message=f'Phase "{pipeline.phase}" is not part of the workflow vocabulary',
        severity="critical",
        recovery=False,
    )


STATE_RULES: tuple[StateRule, ...] = (
    StateRule(
        "approval_without_output",
        check_approval_without_output,
        "A human approval exists without the artifact it approves.",
    ),
    StateRule(
        "phase_step_mismatch",
        check_phase_step_mismatch,
        "current_step disagrees with the step mapped from phase.",
    ),
    StateRule(
        "dangling_retry_state",
        check_dangling_retry_state,
        "A step is still retrying on a finished pipeline.",
    ),
    StateRule(
        "ordering_violation",
        check_ordering,
        "The pipeline moved past step 1 without a step 1 approval.",
    ),
    StateRule(
        "approved_not_advanced",
        check_approved_not_advanced,
        "An approved step is still parked in its review phase.",
    ),
    StateRule(
        "review_without_output",
        check_review_without_output,
        "A review phase has nothing to review.",
    ),
    StateRule(
        "unknown_phase",
        check_unknown_phase,
        "Phase string outside the known vocabulary.",
    ),
)
