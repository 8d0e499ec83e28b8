# src/gate/rule_gate.py
"""Progressive rule gate for risky generate/advance actions.

Triggered rules are partitioned by strength stage and each stage asks
something different of the user:

- law: blocks unconditionally, no override exists.
- guard: needs a written justification per rule (min 10 chars).
- check: needs an explicit confirmation per rule.
- nudge: informational, never blocks.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from stagegate.core.models import StrengthStage, TriggeredRule

logger = logging.getLogger(__name__)

DEFAULT_MIN_JUSTIFICATION_CHARS = 10

HEADLINES: dict[str, tuple[str, str]] = {
    "law": (
        "Cannot Proceed",
        "The following issues must be fixed before proceeding",
    ),
    "guard": (
        "Warning: High Risk of Rejection",
        "You can proceed, but we strongly recommend addressing these issues first",
    ),
    "check": (
        "Please Confirm",
        "Please confirm you've checked these items",
    ),
    "nudge": (
        "Helpful Tips",
        "Keep these tips in mind for better results",
    ),
}


class RuleTiers(BaseModel):
    """Triggered rules grouped by strength stage."""

    law: list[TriggeredRule] = Field(default_factory=list)
    guard: list[TriggeredRule] = Field(default_factory=list)
    check: list[TriggeredRule] = Field(default_factory=list)
    nudge: list[TriggeredRule] = Field(default_factory=list)

    @property
    def highest_stage(self) -> StrengthStage | None:
        for stage in ("law", "guard", "check", "nudge"):
            if getattr(self, stage):
                return stage  # type: ignore[return-value]
        return None


class GateInputs(BaseModel):
    """What the user has supplied so far, keyed by rule id."""

    justifications: dict[str, str] = Field(default_factory=dict)
    confirmations: dict[str, bool] = Field(default_factory=dict)


class GateDecision(BaseModel):
    """Outcome of evaluating the gate, with what is still missing."""

    allowed: bool
    blocked_by_law: list[str] = Field(default_factory=list)
    missing_justifications: list[str] = Field(default_factory=list)
    unconfirmed_checks: list[str] = Field(default_factory=list)
    informational: list[str] = Field(default_factory=list)
    headline: str = ""
    description: str = ""


class RuleOverride(BaseModel):
    """Audit record for a guard or check rule the user proceeded past."""

    rule_id: str
    pipeline_id: str
    step_number: int
    rule_strength_stage: StrengthStage
    override_reason: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def classify(triggered_rules: list[TriggeredRule]) -> RuleTiers:
    """Partition rules by strength stage, preserving input order."""
    tiers = RuleTiers()
    for rule in triggered_rules:
        getattr(tiers, rule.strength_stage).append(rule)
    return tiers


def _justified(
    rule: TriggeredRule, inputs: GateInputs, min_chars: int
) -> bool:
    reason = inputs.justifications.get(rule.id)
    return reason is not None and len(reason.strip()) >= min_chars


def evaluate(
    triggered_rules: list[TriggeredRule],
    inputs: GateInputs | None = None,
    min_justification_chars: int = DEFAULT_MIN_JUSTIFICATION_CHARS,
) -> GateDecision:
    """Evaluate all four tiers at once and report what blocks the action."""
    inputs = inputs or GateInputs()
    tiers = classify(triggered_rules)

    missing = [r.id for r in tiers.guard if not _justified(r, inputs, min_justification_chars)]
    unconfirmed = [r.id for r in tiers.check if not inputs.confirmations.get(r.id, False)]
    laws = [r.id for r in tiers.law]

    allowed = not laws and not missing and not unconfirmed
    headline, description = HEADLINES.get(tiers.highest_stage or "", ("", ""))

    decision = GateDecision(
        allowed=allowed,
        blocked_by_law=laws,
        missing_justifications=missing,
        unconfirmed_checks=unconfirmed,
        informational=[r.id for r in tiers.nudge],
        headline=headline,
        description=description,
    )
    if not allowed:
        logger.info(
            "Gate blocked: %d law, %d unjustified guard, %d unconfirmed check",
            len(laws), len(missing), len(unconfirmed),
        )
    return decision


def can_proceed(
    triggered_rules: list[TriggeredRule],
    inputs: GateInputs | dict | None = None,
    min_justification_chars: int = DEFAULT_MIN_JUSTIFICATION_CHARS,
) -> bool:
    """True only if no law rule exists and every guard/check is satisfied."""
    if isinstance(inputs, dict):
        inputs = GateInputs.model_validate(inputs)
    return evaluate(triggered_rules, inputs, min_justification_chars).allowed


def build_override_records(
    triggered_rules: list[TriggeredRule],
    inputs: GateInputs,
    pipeline_id: str,
    step_number: int,
    min_justification_chars: int = DEFAULT_MIN_JUSTIFICATION_CHARS,
) -> list[RuleOverride]:
    """One override record per guard/check rule, once the gate allows proceeding.

    Returns an empty list when the gate is still blocked.
    """
    if not evaluate(triggered_rules, inputs, min_justification_chars).allowed:
        return []
    tiers = classify(triggered_rules)
    records = [
        RuleOverride(
            rule_id=r.id,
            pipeline_id=pipeline_id,
            step_number=step_number,
            rule_strength_stage="guard",
            override_reason=inputs.justifications[r.id].strip(),
        )
        for r in tiers.guard
    ]
    records.extend(
        RuleOverride(
            rule_id=r.id,
            pipeline_id=pipeline_id,
            step_number=step_number,
            rule_strength_stage="check",
        )
        for r in tiers.check
    )
    for record in records:
        logger.info("Override of %s rule %s recorded", record.rule_strength_stage, record.rule_id)
    return records
