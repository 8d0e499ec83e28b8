# src/logging/context.py
"""Contextual logging support: attach pipeline_id, step and asset_id to records."""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

_pipeline_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "pipeline_id", default=None
)
_step: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "step", default=None
)
_asset_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "asset_id", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    pipeline_id: str | None = None
    step: str | None = None
    asset_id: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        pipeline_id=_pipeline_id.get(),
        step=_step.get(),
        asset_id=_asset_id.get(),
    )


def set_pipeline_context(pipeline_id: str, step: str | None = None) -> None:
    """Set pipeline-level context (called once per evaluated snapshot)."""
    _pipeline_id.set(pipeline_id)
    _step.set(step)


def set_asset_context(asset_id: str | None) -> None:
    _asset_id.set(asset_id)


@contextmanager
def pipeline_context(
    pipeline_id: str, step: str | None = None, asset_id: str | None = None
) -> Iterator[LogContext]:
    """Scope context variables to a block and restore them afterwards."""
    tokens = (
        _pipeline_id.set(pipeline_id),
        _step.set(step),
        _asset_id.set(asset_id),
    )
    try:
        yield get_context()
    finally:
        _asset_id.reset(tokens[2])
        _step.reset(tokens[1])
        _pipeline_id.reset(tokens[0])


def clear_context() -> None:
    """Reset all context variables."""
    _pipeline_id.set(None)
    _step.set(None)
    _asset_id.set(None)
