# src/gate/strength.py
"""Rule strength and health maths.

Rules climb nudge -> check -> guard as violations accumulate, provided
their confidence is high enough. Health decays daily and on false
positives; low health demotes a rule and zero health disables it. law is
never reached by counting: an administrator promotes it by hand.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from stagegate.config.settings import Settings
from stagegate.core.models import StrengthStage

logger = logging.getLogger(__name__)

CHECK_THRESHOLD = 3
GUARD_THRESHOLD = 6
MIN_CONFIDENCE_FOR_BLOCKING = 0.7
MIN_SAMPLE_SIZE = 5

TIME_DECAY_PER_DAY = 2.0
GOOD_BEHAVIOR_DECAY = 5.0
FALSE_POSITIVE_DECAY = 30.0

# Health at or below which a stage is demoted one step.
GUARD_DEMOTION_HEALTH = 30.0
CHECK_DEMOTION_HEALTH = 15.0


@dataclass(frozen=True)
class RuleHealth:
    """Health snapshot of one rule."""

    health: float
    strength_stage: StrengthStage
    confidence_score: float = 1.0
    triggered_count: int = 0
    approved_despite_trigger: int = 0
    rejected_due_to_trigger: int = 0
    disabled: bool = False


def calculate_strength_stage(
    violation_count: int,
    confidence_score: float,
    check_threshold: int = CHECK_THRESHOLD,
    guard_threshold: int = GUARD_THRESHOLD,
    min_confidence: float = MIN_CONFIDENCE_FOR_BLOCKING,
) -> StrengthStage:
    """Stage earned by a violation count. Low-confidence rules stay nudges."""
    if confidence_score < min_confidence:
        return "nudge"
    if violation_count >= guard_threshold:
        return "guard"
    if violation_count >= check_threshold:
        return "check"
    return "nudge"


def calculate_confidence_score(
    triggered_count: int,
    approved_despite_trigger: int,
    rejected_due_to_trigger: int,
    min_sample_size: int = MIN_SAMPLE_SIZE,
) -> float:
    """Share of triggers that correctly predicted a rejection.

    Assumes full confidence until enough samples exist.
    """
    if triggered_count < min_sample_size:
        return 1.0
    return max(0.0, min(1.0, rejected_due_to_trigger / triggered_count))


def _demote(stage: StrengthStage, health: float) -> StrengthStage:
    if stage == "guard" and health <= GUARD_DEMOTION_HEALTH:
        return "check"
    if stage == "check" and health <= CHECK_DEMOTION_HEALTH:
        return "nudge"
    return stage


def stage_for_settings(
    violation_count: int, confidence_score: float, settings: Settings
) -> StrengthStage:
    """calculate_strength_stage with thresholds taken from Settings."""
    return calculate_strength_stage(
        violation_count,
        confidence_score,
        check_threshold=settings.strength_check_threshold,
        guard_threshold=settings.strength_guard_threshold,
        min_confidence=settings.strength_min_confidence,
    )


def apply_time_decay(
    rule: RuleHealth,
    days: float = 1.0,
    per_day: float = TIME_DECAY_PER_DAY,
) -> RuleHealth:
    """Daily health decay with one-step demotion and disable at zero.

    law rules are locked by an administrator and are not demoted.
    """
    if rule.disabled or days <= 0:
        return rule
    health = max(0.0, rule.health - per_day * days)
    stage = rule.strength_stage
    if stage != "law":
        stage = _demote(stage, health)
    if stage != rule.strength_stage:
        logger.info("Rule weakened: %s -> %s (health %.1f)", rule.strength_stage, stage, health)
    if health == 0.0:
        logger.info("Rule disabled: health reached 0")
    return replace(rule, health=health, strength_stage=stage, disabled=health == 0.0)


def apply_good_behavior(rule: RuleHealth, decay: float = GOOD_BEHAVIOR_DECAY) -> RuleHealth:
    """Decay for a completed task that never triggered the rule."""
    return apply_time_decay(rule, days=1.0, per_day=decay)


def apply_false_positive(rule: RuleHealth, decay: float = FALSE_POSITIVE_DECAY) -> RuleHealth:
    """Rule triggered but QA approved anyway: hurts health and confidence."""
    approved = rule.approved_despite_trigger + 1
    triggered = rule.triggered_count + 1
    health = max(0.0, rule.health - decay)
    return replace(
        rule,
        health=health,
        confidence_score=1 - approved / triggered,
        triggered_count=triggered,
        approved_despite_trigger=approved,
        disabled=rule.disabled or health == 0.0,
    )


def record_trigger_outcome(rule: RuleHealth, qa_approved: bool) -> RuleHealth:
    """Update counters and confidence after a QA result on a triggered rule."""
    triggered = rule.triggered_count + 1
    approved = rule.approved_despite_trigger + (1 if qa_approved else 0)
    rejected = rule.rejected_due_to_trigger + (0 if qa_approved else 1)
    return replace(
        rule,
        confidence_score=calculate_confidence_score(triggered, approved, rejected),
        triggered_count=triggered,
        approved_despite_trigger=approved,
        rejected_due_to_trigger=rejected,
    )
