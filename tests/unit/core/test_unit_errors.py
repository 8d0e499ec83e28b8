# tests/unit/core/test_unit_errors.py
"""Tests for core/errors.py."""

from __future__ import annotations

from stagegate.core.errors import (
    ApprovalRejectedError,
    IllegalAttemptTransition,
    LockedAssetError,
    StageGateError,
)


class TestErrors:
    def test_attempt_transition_message(self):
        err = IllegalAttemptTransition("a1", "pending", "approve", "nothing generated")
        assert err.asset_id == "a1"
        assert err.from_status == "pending"
        assert str(err) == "Asset 'a1' cannot approve from status 'pending': nothing generated"

    def test_locked_is_attempt_transition(self):
        err = LockedAssetError("a1", "reject")
        assert isinstance(err, IllegalAttemptTransition)
        assert err.from_status == "approved"
        assert "locked" in str(err)

    def test_hierarchy_root(self):
        assert issubclass(ApprovalRejectedError, StageGateError)
        assert issubclass(LockedAssetError, StageGateError)
