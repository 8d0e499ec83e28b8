# src/main.py
"""CLI entry point: validate, progress, gate commands.

Usage:
    stagegate validate <snapshot.json> [--recover]
    stagegate progress <snapshot.json> [--spaces N --renders N ...]
    stagegate gate <rules.json> [--inputs inputs.json]

Every command prints a JSON document to stdout. Logs go to stderr.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from stagegate.version import __version__

logger = logging.getLogger(__name__)

# Exit code of `gate` when the action is not allowed.
EXIT_BLOCKED = 2


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        _setup_logging(args.verbose)
        return args.func(args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="stagegate",
        description=f"stagegate v{__version__}: pipeline state validation and gating",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- validate ---
    p_validate = subparsers.add_parser(
        "validate", help="Report illegal states of a pipeline snapshot",
    )
    p_validate.add_argument("snapshot", type=Path, help="Pipeline snapshot JSON")
    p_validate.add_argument(
        "--recover", action="store_true",
        help="Include recovery actions for every recoverable finding",
    )
    p_validate.set_defaults(func=_cmd_validate)

    # --- progress ---
    p_progress = subparsers.add_parser(
        "progress", help="Compute the progress view of a pipeline snapshot",
    )
    p_progress.add_argument("snapshot", type=Path, help="Pipeline snapshot JSON")
    p_progress.add_argument("--spaces", type=int, default=0, help="Number of spaces")
    p_progress.add_argument("--renders", type=int, default=0, help="Approved renders")
    p_progress.add_argument("--panoramas", type=int, default=0, help="Approved panoramas")
    p_progress.add_argument("--final360s", type=int, default=0, help="Approved final 360s")
    p_progress.add_argument(
        "--not-detected", action="store_true",
        help="Spaces exist but detection is not confirmed",
    )
    p_progress.set_defaults(func=_cmd_progress)

    # --- gate ---
    p_gate = subparsers.add_parser(
        "gate", help="Evaluate triggered rules against user inputs",
    )
    p_gate.add_argument("rules", type=Path, help="JSON list of triggered rules")
    p_gate.add_argument(
        "--inputs", type=Path, default=None,
        help="JSON object with justifications and confirmations",
    )
    p_gate.set_defaults(func=_cmd_gate)

    return parser


def _cmd_validate(args: argparse.Namespace) -> int:
    """Validate a snapshot and print the report."""
    from stagegate.core.models import Pipeline
    from stagegate.logging.context import pipeline_context
    from stagegate.validation.validator import plan_recoveries, summarize, validate

    pipeline = Pipeline.model_validate(_read_json(args.snapshot))
    with pipeline_context(pipeline.id, step=str(pipeline.current_step)):
        report = validate(pipeline)
        output: dict[str, Any] = report.model_dump(mode="json")
        output["summary"] = summarize(pipeline, report)
        if args.recover:
            output["recoveries"] = [
                action.model_dump(mode="json") for action in plan_recoveries(pipeline)
            ]
    _print_json(output)
    return 0


def _cmd_progress(args: argparse.Namespace) -> int:
    """Compute progress for a snapshot and the given counters."""
    from stagegate.core.models import Pipeline, SpaceCounts
    from stagegate.progress.calculator import compute_progress

    pipeline = Pipeline.model_validate(_read_json(args.snapshot))
    counts = SpaceCounts(
        spaces_count=args.spaces,
        spaces_detected=args.spaces > 0 and not args.not_detected,
        renders_approved=args.renders,
        panoramas_approved=args.panoramas,
        final360s_approved=args.final360s,
    )
    _print_json(compute_progress(pipeline, counts).model_dump(mode="json"))
    return 0


def _cmd_gate(args: argparse.Namespace) -> int:
    """Evaluate the rule gate. Exits with EXIT_BLOCKED when not allowed."""
    from stagegate.config.settings import Settings
    from stagegate.core.models import TriggeredRule
    from stagegate.gate.rule_gate import GateInputs, evaluate

    settings = Settings()
    rules = [TriggeredRule.model_validate(r) for r in _read_json(args.rules)]
    inputs = GateInputs.model_validate(_read_json(args.inputs)) if args.inputs else None

    decision = evaluate(
        rules, inputs, min_justification_chars=settings.guard_min_justification_chars
    )
    _print_json(decision.model_dump(mode="json"))
    return 0 if decision.allowed else EXIT_BLOCKED


def _read_json(path: Path) -> Any:
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _setup_logging(verbose: bool) -> None:
    """Configure logging for CLI usage from STAGEGATE_LOG_* settings."""
    from stagegate.config.settings import Settings
    from stagegate.logging.logger import setup_logging_from_settings

    setup_logging_from_settings(Settings(), level="DEBUG" if verbose else None)


if __name__ == "__main__":
    sys.exit(main())
