"""Validation of proposed connections between workflow nodes.

The editing surface calls :func:`validate_connection` before committing an
edge (and speculatively, to preview whether a drag would be accepted). The
edge set of a workflow must stay a DAG, so a candidate is rejected if it is a
self-loop, duplicates an existing edge, or closes a cycle.
"""

from collections import defaultdict
from collections.abc import Iterable, Sequence

import structlog

from workflow.types import ReasonCode, Verdict, WorkflowEdge, WorkflowNode

logger = structlog.get_logger(__name__)


def validate_connection(
    candidate: WorkflowEdge,
    nodes: Sequence[WorkflowNode],
    edges: Sequence[WorkflowEdge],
) -> Verdict:
    """Decide whether ``candidate`` may be added to the workflow graph.

    Checks run in order and stop at the first failure:

    1. both endpoints are non-empty
    2. the edge is not a self-loop
    3. no existing edge has the same (source, target, handles) identity
    4. the edge does not close a cycle

    Args:
        candidate: The proposed edge.
        nodes: Nodes currently in the workflow. Kept for the editing surface's
            call shape; the checks only need the edges.
        edges: Edges currently in the workflow.

    Returns:
        A Verdict. Rejections are returned, never raised.
    """
    source, target = candidate.source, candidate.target

    if not source or not target:
        return _rejected(candidate, ReasonCode.MISSING_ENDPOINT)

    if source == target:
        return _rejected(candidate, ReasonCode.SELF_LOOP)

    if any(edge.key == candidate.key for edge in edges):
        return _rejected(candidate, ReasonCode.DUPLICATE_EDGE)

    if would_create_cycle(source, target, edges):
        return _rejected(candidate, ReasonCode.CYCLE_DETECTED)

    return Verdict.accept()


def would_create_cycle(source: str, target: str, edges: Iterable[WorkflowEdge]) -> bool:
    """Return True if adding ``source -> target`` closes a cycle.

    The new edge is cycle-forming iff ``source`` is reachable from ``target``.
    Iterative DFS with a visited set, so every node is expanded at most once
    and the search terminates on any finite edge set.
    """
    successors: dict[str, list[str]] = defaultdict(list)
    for edge in edges:
        if edge.source and edge.target:
            successors[edge.source].append(edge.target)
    successors[source].append(target)

    visited: set[str] = set()
    stack = [target]
    while stack:
        current = stack.pop()
        if current == source:
            return True
        if current in visited:
            continue
        visited.add(current)
        stack.extend(successors.get(current, ()))

    return False


def _rejected(candidate: WorkflowEdge, reason: ReasonCode) -> Verdict:
    logger.debug(
        "connection_rejected",
        source=candidate.source,
        target=candidate.target,
        reason=reason.value,
    )
    return Verdict.reject(reason)
