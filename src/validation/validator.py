# src/validation/validator.py
"""State validator: run the rule table over a pipeline snapshot.

validate() never raises on malformed data. Every violated invariant is
reported as a finding with a severity and a recoverability flag so the
caller can offer an automated fix or ask for a human step reset.
"""

from __future__ import annotations

import logging

from stagegate.actions.models import ApplyRecoveryAction
from stagegate.core.errors import UnrecoverableStateError
from stagegate.core.models import Pipeline
from stagegate.validation.models import CorrectionAudit, IllegalState, ValidationReport
from stagegate.validation.rules import STATE_RULES, StateRule

logger = logging.getLogger(__name__)


def validate(
    pipeline: Pipeline,
    rules: tuple[StateRule, ...] = STATE_RULES,
) -> ValidationReport:
    """Evaluate every rule and collect all findings.

    Args:
        pipeline: Snapshot to inspect.
        rules: Rule table (defaults to STATE_RULES).

    Returns:
        ValidationReport listing every finding, in rule-table order.
    """
    findings: list[IllegalState] = []
    for rule in rules:
        findings.extend(rule.check(pipeline))

    report = ValidationReport(
        pipeline_id=pipeline.id,
        is_valid=not findings,
        illegal_states=findings,
    )
    if findings:
        logger.warning(
            "Pipeline %s has %d illegal state(s): %s",
            pipeline.id,
            len(findings),
            ", ".join(f.finding_id for f in findings),
        )
    else:
        logger.debug("Pipeline %s state is valid", pipeline.id)
    return report


def summarize(pipeline: Pipeline, report: ValidationReport | None = None) -> str:
    """One-line human summary of the pipeline position and its findings."""
    report = report or validate(pipeline)
    head = f"Phase: {pipeline.phase}, Step: {pipeline.current_step}"
    if report.is_valid:
        return f"{head} (valid)"
    counts = report.severity_counts()
    return (
        f"{head} ({counts.get('critical', 0)} critical, "
        f"{counts.get('warning', 0)} warning issues)"
    )


def build_recovery_action(
    pipeline: Pipeline,
    finding: IllegalState,
    reason: str | None = None,
) -> ApplyRecoveryAction:
    """Produce the applyRecovery arguments and audit entry for a finding.

    Raises:
        UnrecoverableStateError: If the finding is not auto-correctable.
    """
    if not finding.recovery or finding.recovery_target is None:
        raise UnrecoverableStateError(
            f"Finding {finding.finding_id} on pipeline {pipeline.id} requires "
            "a human-initiated step reset"
        )

    audit = CorrectionAudit(
        pipeline_id=pipeline.id,
        finding_code=finding.code,
        step=finding.step,
        reason=reason or f"Auto-corrected: {finding.message}",
    )
    logger.info(
        "Recovery planned for %s on pipeline %s",
        finding.finding_id,
        pipeline.id,
        extra={"data": finding.recovery_target.model_dump(exclude_none=True)},
    )
    return ApplyRecoveryAction(
        pipeline_id=pipeline.id,
        finding_id=finding.finding_id,
        finding_code=finding.code,
        target=finding.recovery_target,
        audit=audit,
    )


def plan_recoveries(pipeline: Pipeline) -> list[ApplyRecoveryAction]:
    """Recovery actions for every recoverable finding of a snapshot."""
    report = validate(pipeline)
    return [build_recovery_action(pipeline, f) for f in report.recoverable]
