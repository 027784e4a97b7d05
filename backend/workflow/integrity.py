"""Whole-workflow structural validation.

Where :mod:`workflow.connection` guards a single edge as it is drawn, this
module checks a complete workflow definition before it is executed and
reports every problem it finds, each with a stable error code.
"""

from collections import deque
from collections.abc import Sequence

import structlog
from pydantic import BaseModel

from workflow.types import WorkflowEdge, WorkflowNode

logger = structlog.get_logger(__name__)

_REQUIRED_AGENT_FIELDS = (
    ("role", "MISSING_AGENT_ROLE"),
    ("provider", "MISSING_AGENT_PROVIDER"),
    ("model", "MISSING_AGENT_MODEL"),
)


class ValidationIssue(BaseModel):
    """A single structural problem found in a workflow."""

    field: str
    message: str
    code: str


class WorkflowValidationResult(BaseModel):
    """All issues found in a workflow. ``valid`` iff there are none."""

    valid: bool
    errors: list[ValidationIssue]


class WorkflowValidationError(Exception):
    """Raised by :meth:`WorkflowValidator.validate_or_raise`.

    Attributes:
        errors: The issues that made the workflow invalid.
        status_code: HTTP status the API layer reports for this error.
    """

    status_code = 400

    def __init__(
        self,
        errors: list[ValidationIssue],
        message: str = "Workflow validation failed",
    ) -> None:
        super().__init__(message)
        self.errors = errors


class WorkflowValidator:
    """Validates complete workflow graphs."""

    def validate(
        self,
        nodes: Sequence[WorkflowNode],
        edges: Sequence[WorkflowEdge],
    ) -> WorkflowValidationResult:
        """Run every structural check and collect the issues.

        An empty workflow short-circuits; all other checks always run so the
        caller can show every problem at once.
        """
        if not nodes:
            return WorkflowValidationResult(
                valid=False,
                errors=[
                    ValidationIssue(
                        field="nodes",
                        message="Workflow must have at least one node",
                        code="EMPTY_WORKFLOW",
                    )
                ],
            )

        errors: list[ValidationIssue] = []
        errors.extend(self._validate_node_fields(nodes))
        errors.extend(self._detect_cycles(nodes, edges))
        errors.extend(self._detect_orphan_nodes(nodes, edges))
        errors.extend(self._detect_disconnected_segments(nodes, edges))
        errors.extend(self._validate_edges(nodes, edges))

        if errors:
            logger.info(
                "workflow_validation_failed",
                node_count=len(nodes),
                edge_count=len(edges),
                error_codes=sorted({e.code for e in errors}),
            )

        return WorkflowValidationResult(valid=not errors, errors=errors)

    def validate_or_raise(
        self,
        nodes: Sequence[WorkflowNode],
        edges: Sequence[WorkflowEdge],
    ) -> None:
        """Validate and raise WorkflowValidationError if any issue is found."""
        result = self.validate(nodes, edges)
        if not result.valid:
            raise WorkflowValidationError(result.errors)

    def _validate_node_fields(self, nodes: Sequence[WorkflowNode]) -> list[ValidationIssue]:
        errors: list[ValidationIssue] = []

        for node in nodes:
            if not node.id:
                errors.append(
                    ValidationIssue(
                        field="nodes",
                        message="Node is missing required field: id",
                        code="MISSING_NODE_ID",
                    )
                )

            if not node.type:
                errors.append(
                    ValidationIssue(
                        field=f"nodes[{node.id}].type",
                        message=f'Node "{node.id}" is missing required field: type',
                        code="MISSING_NODE_TYPE",
                    )
                )

            if node.type == "agent":
                if not node.data:
                    errors.append(
                        ValidationIssue(
                            field=f"nodes[{node.id}].data",
                            message=f'Agent node "{node.id}" is missing data',
                            code="MISSING_NODE_DATA",
                        )
                    )
                else:
                    for key, code in _REQUIRED_AGENT_FIELDS:
                        if not node.data.get(key):
                            errors.append(
                                ValidationIssue(
                                    field=f"nodes[{node.id}].data.{key}",
                                    message=f'Agent node "{node.id}" is missing {key}',
                                    code=code,
                                )
                            )

            if not _is_valid_position(node.position):
                errors.append(
                    ValidationIssue(
                        field=f"nodes[{node.id}].position",
                        message=f'Node "{node.id}" has invalid position',
                        code="INVALID_NODE_POSITION",
                    )
                )

        return errors

    def _detect_cycles(
        self,
        nodes: Sequence[WorkflowNode],
        edges: Sequence[WorkflowEdge],
    ) -> list[ValidationIssue]:
        """Report the first cycle found, with its path.

        Iterative three-colour DFS; the explicit stack keeps deep graphs from
        hitting the recursion limit.
        """
        successors: dict[str, list[str]] = {node.id: [] for node in nodes if node.id}
        for edge in edges:
            if edge.source and edge.target:
                successors.setdefault(edge.source, []).append(edge.target)

        visited: set[str] = set()
        for start in successors:
            if start in visited:
                continue
            path: list[str] = [start]
            on_path: set[str] = {start}
            visited.add(start)
            stack = [iter(successors[start])]

            while stack:
                neighbor = next(stack[-1], None)
                if neighbor is None:
                    stack.pop()
                    on_path.discard(path.pop())
                    continue
                if neighbor in on_path:
                    cycle = path[path.index(neighbor):] + [neighbor]
                    return [
                        ValidationIssue(
                            field="edges",
                            message=f"Circular dependency detected: {' → '.join(cycle)}",
                            code="CIRCULAR_DEPENDENCY",
                        )
                    ]
                if neighbor not in visited:
                    visited.add(neighbor)
                    path.append(neighbor)
                    on_path.add(neighbor)
                    stack.append(iter(successors.get(neighbor, ())))

        return []

    def _detect_orphan_nodes(
        self,
        nodes: Sequence[WorkflowNode],
        edges: Sequence[WorkflowEdge],
    ) -> list[ValidationIssue]:
        # A single node is the entire workflow
        if len(nodes) <= 1:
            return []

        connected: set[str | None] = set()
        for edge in edges:
            connected.add(edge.source)
            connected.add(edge.target)

        errors: list[ValidationIssue] = []
        for node in nodes:
            if node.id not in connected:
                label = (node.data or {}).get("label") or node.type
                errors.append(
                    ValidationIssue(
                        field=f"nodes[{node.id}]",
                        message=f'Node "{node.id}" ({label}) has no connections',
                        code="ORPHAN_NODE",
                    )
                )
        return errors

    def _detect_disconnected_segments(
        self,
        nodes: Sequence[WorkflowNode],
        edges: Sequence[WorkflowEdge],
    ) -> list[ValidationIssue]:
        if len(nodes) <= 1:
            return []

        neighbors: dict[str | None, set[str | None]] = {node.id: set() for node in nodes}
        for edge in edges:
            if edge.source in neighbors and edge.target in neighbors:
                neighbors[edge.source].add(edge.target)
                neighbors[edge.target].add(edge.source)

        visited: set[str | None] = set()
        components = 0
        for node_id in neighbors:
            if node_id in visited:
                continue
            components += 1
            visited.add(node_id)
            queue = deque([node_id])
            while queue:
                current = queue.popleft()
                for neighbor in neighbors[current]:
                    if neighbor not in visited:
                        visited.add(neighbor)
                        queue.append(neighbor)

        if components > 1:
            return [
                ValidationIssue(
                    field="workflow",
                    message=(
                        f"Workflow has {components} disconnected segments. "
                        "All nodes must be connected."
                    ),
                    code="DISCONNECTED_WORKFLOW",
                )
            ]
        return []

    def _validate_edges(
        self,
        nodes: Sequence[WorkflowNode],
        edges: Sequence[WorkflowEdge],
    ) -> list[ValidationIssue]:
        node_ids = {node.id for node in nodes}
        errors: list[ValidationIssue] = []

        for edge in edges:
            if not edge.id:
                errors.append(
                    ValidationIssue(
                        field="edges",
                        message="Edge is missing required field: id",
                        code="MISSING_EDGE_ID",
                    )
                )

            for end in ("source", "target"):
                value = getattr(edge, end)
                if not value:
                    errors.append(
                        ValidationIssue(
                            field=f"edges[{edge.id}].{end}",
                            message=f'Edge "{edge.id}" is missing {end}',
                            code=f"MISSING_EDGE_{end.upper()}",
                        )
                    )
                elif value not in node_ids:
                    errors.append(
                        ValidationIssue(
                            field=f"edges[{edge.id}].{end}",
                            message=(
                                f'Edge "{edge.id}" references non-existent {end} node "{value}"'
                            ),
                            code=f"INVALID_EDGE_{end.upper()}",
                        )
                    )

        return errors


def _is_valid_position(position: dict[str, object] | None) -> bool:
    """A position needs numeric ``x`` and ``y`` (booleans do not count)."""
    if not position:
        return False
    return all(
        isinstance(position.get(axis), (int, float)) and not isinstance(position.get(axis), bool)
        for axis in ("x", "y")
    )


# Global validator instance
workflow_validator = WorkflowValidator()
