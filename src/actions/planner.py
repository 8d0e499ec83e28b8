# src/actions/planner.py
"""Action planner: arguments for approvals and cascading step resets.

Steps form a dependency graph (each step consumes the previous step's
artifacts). Resetting a step invalidates the step and every step
reachable from it, cleared in step-number order.
"""

from __future__ import annotations

import logging
from typing import Iterable

import networkx as nx

from stagegate.actions.models import ResetStepAction, SetApprovalAction
from stagegate.core.errors import ApprovalRejectedError
from stagegate.core.models import Asset, Pipeline, parse_step_key, step_key
from stagegate.core.phases import (
    FIRST_STEP,
    LAST_STEP,
    PHASE_TABLE,
    REVIEW_PHASE_FOR_STEP,
    next_phase,
    pending_phase_for_step,
    step_for_phase,
)

logger = logging.getLogger(__name__)


def build_step_graph(
    first: int = FIRST_STEP, last: int = LAST_STEP
) -> nx.DiGraph:
    """Dependency graph of workflow steps: edge u -> v means v consumes u."""
    graph = nx.DiGraph()
    graph.add_nodes_from(range(first, last + 1))
    graph.add_edges_from((s, s + 1) for s in range(first, last))
    return graph


STEP_GRAPH: nx.DiGraph = build_step_graph()


def downstream_steps(step_number: int, graph: nx.DiGraph = STEP_GRAPH) -> list[int]:
    """The step and every step depending on it, in step-number order."""
    if step_number not in graph:
        raise ValueError(
            f"step_number must be between {FIRST_STEP} and {LAST_STEP}, got {step_number}"
        )
    return sorted({step_number} | nx.descendants(graph, step_number))


def plan_step_reset(
    pipeline: Pipeline,
    step_number: int,
    assets: Iterable[Asset] = (),
    graph: nx.DiGraph = STEP_GRAPH,
) -> ResetStepAction:
    """Spell out everything a stop-and-reset of one step must clear.

    Args:
        pipeline: Current snapshot.
        step_number: Step to reset (0-7).
        assets: Asset records of the pipeline; those on reset steps are cleared.
        graph: Step dependency graph.

    Returns:
        ResetStepAction with the full cascade.

    Raises:
        ValueError: If step_number is outside the workflow.
    """
    steps = downstream_steps(step_number, graph)
    reset = set(steps)

    cleared_keys: list[str] = []
    upload_ids: list[str] = []
    for s in steps:
        key = step_key(s)
        if key not in pipeline.step_outputs:
            continue
        cleared_keys.append(key)
        output = pipeline.step_outputs[key]
        if output is not None:
            upload_ids.extend(output.artifact_ids())

    retry_keys = sorted(
        (key for key in (pipeline.step_retry_state or {}) if parse_step_key(key) in reset),
        key=lambda k: parse_step_key(k) or 0,
    )

    asset_ids: list[str] = []
    for asset in sorted(assets, key=lambda a: (a.step_number, a.id)):
        if asset.step_number not in reset:
            continue
        asset_ids.append(asset.id)
        if asset.output_upload_id:
            upload_ids.append(asset.output_upload_id)

    action = ResetStepAction(
        pipeline_id=pipeline.id,
        step_number=step_number,
        reset_steps=steps,
        cleared_step_keys=cleared_keys,
        cleared_retry_keys=retry_keys,
        cleared_asset_ids=asset_ids,
        cleared_upload_ids=list(dict.fromkeys(upload_ids)),
        phase=pending_phase_for_step(step_number),
        current_step=step_number,
        clear_step1_approval=1 in reset and pipeline.step1_approved,
        clear_step2_approval=2 in reset and pipeline.step2_approved,
    )
    logger.info(
        "Reset of step %d on pipeline %s cascades to steps %s (%d assets)",
        step_number, pipeline.id, steps, len(asset_ids),
    )
    return action


def plan_approval(
    pipeline: Pipeline, step_number: int, reason: str | None = None
) -> SetApprovalAction:
    """Arguments for a human step approval, refused if it would be illegal.

    Raises:
        ApprovalRejectedError: If the step has no output, an earlier
            approval is missing, or the pipeline is at another step.
    """
    if step_number not in REVIEW_PHASE_FOR_STEP:
        raise ApprovalRejectedError(f"Step {step_number} has no approval gate")

    key = step_key(step_number)
    output = pipeline.output_for(key)
    if output is None or not output.has_artifact:
        raise ApprovalRejectedError(
            f"Cannot approve step {step_number}: step_outputs.{key} has no output"
        )

    if step_number >= 2 and not pipeline.step1_approved:
        raise ApprovalRejectedError(
            f"Cannot approve step {step_number} before step 1 is approved"
        )

    current = step_for_phase(pipeline.phase)
    if current != step_number:
        raise ApprovalRejectedError(
            f"Cannot approve step {step_number} while phase {pipeline.phase!r} "
            f"is at step {current}"
        )

    target = next_phase(REVIEW_PHASE_FOR_STEP[step_number])
    logger.info("Approval planned for step %d on pipeline %s", step_number, pipeline.id)
    return SetApprovalAction(
        pipeline_id=pipeline.id,
        step_key=key,
        output_upload_id=output.output_upload_id,
        reason=reason,
        next_phase=target,
        next_step=PHASE_TABLE[target].step if target else None,
    )
