# src/attempts/tracker.py
"""Attempt/retry tracker: one state machine for every reviewable asset kind.

States:
    none -> pending -> running -> {approved | needs_review | blocked_for_human}

- An automated QA rejection with attempts left parks the asset in
  needs_review for a human decision.
- Once attempt_count reaches max_attempts the asset is blocked_for_human:
  automation never retries it again.
- A human approval locks the asset at any attempt count and overrides
  any automated verdict. A locked asset only changes through reset().
- With manual QA disabled, the automated verdict is applied where a
  human decision would otherwise be required.
"""

from __future__ import annotations

import logging
from typing import Iterable

from stagegate.actions.models import RecordAttemptAction
from stagegate.attempts.feedback import ReviewFeedback
from stagegate.attempts.models import (
    AttemptState,
    QAVerdict,
    RetryDecision,
    ReviewableAsset,
)
from stagegate.config.settings import Settings
from stagegate.core.errors import IllegalAttemptTransition, LockedAssetError
from stagegate.core.models import DEFAULT_MAX_ATTEMPTS, AssetKind

logger = logging.getLogger(__name__)

DEFAULT_BLOCKING_SEVERITIES: tuple[str, ...] = ("critical",)

_STARTABLE: frozenset[str] = frozenset({"none", "pending"})
_APPROVABLE: frozenset[str] = frozenset({"running", "needs_review", "blocked_for_human"})
_REJECTABLE: frozenset[str] = frozenset({"running", "needs_review", "blocked_for_human"})


def evaluate_retry_decision(
    verdict: QAVerdict,
    attempt_count: int,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    blocking_severities: Iterable[str] = DEFAULT_BLOCKING_SEVERITIES,
) -> RetryDecision:
    """Decide whether a failed QA verdict may be retried automatically."""
    if verdict.passed:
        return RetryDecision(False, "QA passed; nothing to retry.")

    if attempt_count >= max_attempts:
        return RetryDecision(
            False,
            f"Max attempts reached ({attempt_count}/{max_attempts}). Manual review required.",
        )

    blocking = set(blocking_severities)
    critical = [i for i in verdict.issues if i.severity in blocking]
    if critical:
        return RetryDecision(
            False,
            f"Critical issue found: {critical[0].description}. Manual review required.",
        )

    if verdict.recommended_action == "needs_human":
        return RetryDecision(False, "QA recommends manual review for this output.")

    return RetryDecision(
        True, f"Auto-retry eligible (attempt {attempt_count + 1}/{max_attempts})"
    )


class AttemptTracker:
    """Attempt state machine parameterized by asset kind.

    Args:
        kind: Asset kind this tracker handles.
        max_attempts: Attempt budget before escalation to a human.
        manual_qa_enabled: When False, automated verdicts are auto-applied.
        blocking_severities: QA issue severities that forbid auto-retry.
    """

    def __init__(
        self,
        kind: AssetKind,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        manual_qa_enabled: bool = True,
        blocking_severities: Iterable[str] = DEFAULT_BLOCKING_SEVERITIES,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.kind = kind
        self.max_attempts = max_attempts
        self.manual_qa_enabled = manual_qa_enabled
        self.blocking_severities = tuple(blocking_severities)

    @classmethod
    def from_settings(cls, kind: AssetKind, settings: Settings) -> AttemptTracker:
        return cls(
            kind,
            max_attempts=settings.max_attempts,
            manual_qa_enabled=settings.manual_qa_enabled,
            blocking_severities=settings.blocking_qa_severities_list,
        )

    # --- Queries ---

    def new_item(self, asset_id: str) -> ReviewableAsset:
        return ReviewableAsset(asset_id=asset_id, kind=self.kind)

    def attempts_remaining(self, item: ReviewableAsset) -> int:
        return max(0, self.max_attempts - item.attempt_count)

    def is_exhausted(self, item: ReviewableAsset) -> bool:
        return item.attempt_count >= self.max_attempts

    def requires_human(self, item: ReviewableAsset) -> bool:
        return item.state in ("needs_review", "blocked_for_human")

    def can_auto_retry(self, item: ReviewableAsset) -> bool:
        """True only for an unlocked running attempt with budget left."""
        return (
            not item.locked_approved
            and item.state == "running"
            and not self.is_exhausted(item)
        )

    # --- Transitions ---

    def start_attempt(self, item: ReviewableAsset, output_upload_id: str | None = None) -> ReviewableAsset:
        """Dispatch the first generation for a pending asset."""
        self._check_kind(item)
        self._ensure_unlocked(item, "start an attempt")
        if item.state not in _STARTABLE:
            raise IllegalAttemptTransition(item.asset_id, item.state, "start an attempt")
        if self.is_exhausted(item):
            return self._escalate(item, "attempt budget already spent")
        return self._next_attempt(item, output_upload_id)

    def record_qa_verdict(
        self,
        item: ReviewableAsset,
        verdict: QAVerdict,
        output_upload_id: str | None = None,
    ) -> ReviewableAsset:
        """Apply an automated QA verdict to a running attempt.

        Raises:
            LockedAssetError: If a human already approved the asset.
            IllegalAttemptTransition: If no attempt is running.
        """
        self._check_kind(item)
        self._ensure_unlocked(item, "record a QA verdict")
        if item.state != "running":
            raise IllegalAttemptTransition(
                item.asset_id, item.state, "record a QA verdict", "no attempt is running"
            )

        updated = item.model_copy(
            update={
                "qa_status": verdict.qa_status,
                "output_upload_id": output_upload_id or item.output_upload_id,
            }
        )

        if verdict.passed:
            if self.manual_qa_enabled:
                return self._await_review(updated)
            logger.info("Auto-approving %s %s (manual QA disabled)", self.kind, item.asset_id)
            return updated.model_copy(update={"state": "approved", "locked_approved": True})

        if self.is_exhausted(updated):
            return self._escalate(updated, "QA rejected the final attempt")

        if self.manual_qa_enabled:
            return self._await_review(updated)

        decision = evaluate_retry_decision(
            verdict, updated.attempt_count, self.max_attempts, self.blocking_severities
        )
        if decision.should_retry:
            logger.info("Auto-retrying %s %s: %s", self.kind, item.asset_id, decision.reason)
            return self._next_attempt(updated, None)
        return self._escalate(updated, decision.reason)

    def retry(self, item: ReviewableAsset) -> ReviewableAsset:
        """Automated retry of an output parked in needs_review.

        Spending the last attempt escalates instead of retrying.

        Raises:
            LockedAssetError: If a human already approved the asset.
            IllegalAttemptTransition: From any state but needs_review.
        """
        self._check_kind(item)
        self._ensure_unlocked(item, "retry")
        if item.state != "needs_review":
            raise IllegalAttemptTransition(
                item.asset_id, item.state, "retry", "only outputs awaiting review are retried"
            )
        if self.is_exhausted(item):
            return self._escalate(item, "attempt budget spent")
        logger.info(
            "Retrying %s %s (attempt %d/%d)",
            self.kind, item.asset_id, item.attempt_count + 1, self.max_attempts,
        )
        return self._next_attempt(item, None)

    def escalate(self, item: ReviewableAsset) -> ReviewableAsset:
        """Move an exhausted asset awaiting review to blocked_for_human."""
        self._check_kind(item)
        if item.state == "needs_review" and self.is_exhausted(item):
            return self._escalate(item, "attempt budget spent")
        return item

    def human_approve(
        self, item: ReviewableAsset, feedback: ReviewFeedback
    ) -> tuple[ReviewableAsset, RecordAttemptAction]:
        """Lock the asset as approved. Authoritative over any QA verdict."""
        self._check_kind(item)
        self._check_decision(feedback, "approve")
        self._ensure_unlocked(item, "approve")
        if item.state not in _APPROVABLE:
            raise IllegalAttemptTransition(
                item.asset_id, item.state, "approve", "nothing has been generated yet"
            )
        approved = item.model_copy(update={"state": "approved", "locked_approved": True})
        logger.info(
            "%s %s approved by human at attempt %d (score %d)",
            self.kind, item.asset_id, item.attempt_count, feedback.score,
        )
        return approved, self._attempt_record(approved, feedback)

    def human_reject(
        self, item: ReviewableAsset, feedback: ReviewFeedback
    ) -> tuple[ReviewableAsset, RecordAttemptAction]:
        """Reject the current output.

        Below the budget the asset re-enters running for a new attempt. At
        the budget it is blocked_for_human. Rejecting an asset that is
        already blocked_for_human is an explicit request for one more
        attempt and re-enters running.
        """
        self._check_kind(item)
        self._check_decision(feedback, "reject")
        self._ensure_unlocked(item, "reject")
        if item.state not in _REJECTABLE:
            raise IllegalAttemptTransition(item.asset_id, item.state, "reject")

        if item.state == "blocked_for_human" or not self.is_exhausted(item):
            updated = self._next_attempt(item.model_copy(update={"qa_status": "rejected"}), None)
        else:
            updated = self._escalate(
                item.model_copy(update={"qa_status": "rejected"}), "rejected at attempt budget"
            )
        return updated, self._attempt_record(updated, feedback, attempt_index=item.attempt_count)

    def reset(self, item: ReviewableAsset) -> ReviewableAsset:
        """Explicit step reset: the only way to leave a locked approval."""
        self._check_kind(item)
        logger.info("Resetting %s %s (was %s)", self.kind, item.asset_id, item.state)
        return ReviewableAsset(asset_id=item.asset_id, kind=item.kind)

    # --- Internals ---

    def _next_attempt(self, item: ReviewableAsset, output_upload_id: str | None) -> ReviewableAsset:
        return item.model_copy(
            update={
                "state": "running",
                "attempt_count": item.attempt_count + 1,
                "output_upload_id": output_upload_id,
            }
        )

    def _await_review(self, item: ReviewableAsset) -> ReviewableAsset:
        if self.is_exhausted(item):
            return self._escalate(item, "attempt budget spent")
        return item.model_copy(update={"state": "needs_review"})

    def _escalate(self, item: ReviewableAsset, reason: str) -> ReviewableAsset:
        logger.warning(
            "%s %s blocked for human after %d/%d attempts: %s",
            self.kind, item.asset_id, item.attempt_count, self.max_attempts, reason,
        )
        state: AttemptState = "blocked_for_human"
        return item.model_copy(update={"state": state})

    def _attempt_record(
        self,
        item: ReviewableAsset,
        feedback: ReviewFeedback,
        attempt_index: int | None = None,
    ) -> RecordAttemptAction:
        return RecordAttemptAction(
            asset_id=item.asset_id,
            attempt_index=item.attempt_count if attempt_index is None else attempt_index,
            decision=feedback.decision,
            score=feedback.score,
            tags=list(feedback.tags),
            note=feedback.note,
            resulting_status=item.state,
            locked_approved=item.locked_approved,
        )

    def _ensure_unlocked(self, item: ReviewableAsset, action: str) -> None:
        if item.locked_approved:
            raise LockedAssetError(item.asset_id, action)

    def _check_kind(self, item: ReviewableAsset) -> None:
        if item.kind != self.kind:
            raise ValueError(
                f"{self.kind} tracker cannot handle {item.kind} asset {item.asset_id}"
            )

    @staticmethod
    def _check_decision(feedback: ReviewFeedback, expected: str) -> None:
        if feedback.decision != expected:
            raise ValueError(
                f"{expected} requires {expected} feedback, got {feedback.decision}"
            )
