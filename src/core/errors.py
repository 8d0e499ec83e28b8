# src/core/errors.py
"""Exception hierarchy for caller misuse.

Illegal pipeline states are reported as findings by the validator and
never raised. These exceptions cover requests the caller should not make,
such as retrying a locked asset.
"""

from __future__ import annotations


class StageGateError(Exception):
    """Base class for all stagegate errors."""


class IllegalTransitionError(StageGateError):
    """Raised when a phase has no legal successor."""


class IllegalAttemptTransition(StageGateError):
    """Raised when an asset state change is not allowed from its current state."""

    def __init__(self, asset_id: str, from_status: str, action: str, reason: str = ""):
        self.asset_id = asset_id
        self.from_status = from_status
        self.action = action
        self.reason = reason
        message = f"Asset '{asset_id}' cannot {action} from status '{from_status}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class LockedAssetError(IllegalAttemptTransition):
    """Raised on any change to a human-approved (locked) asset except a reset."""

    def __init__(self, asset_id: str, action: str):
        super().__init__(asset_id, "approved", action, "asset is locked by human approval")


class UnrecoverableStateError(StageGateError):
    """Raised when an automated fix is requested for a non-recoverable finding."""


class ApprovalRejectedError(StageGateError):
    """Raised when a step approval would create an illegal state."""
