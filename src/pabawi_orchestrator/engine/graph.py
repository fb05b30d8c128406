"""Dependency graph of component instances.

Edges mean "must converge before". They come from three sources, in this
precedence:
1. Explicit role rules (proxy components before install components)
2. Each component's declared depends_on
3. Resource-level requires/subscribe hints bubbled up to the owning component

Ordering is deterministic: predecessors first, otherwise first-declaration
order. Cycles are fatal and reported with their full path.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, Mapping, Sequence

from ..errors import CycleError, UnknownComponent
from .schema import ComponentInstance, OrderingRule

logger = logging.getLogger(__name__)


class EdgeSource(str, Enum):
    """Where an ordering edge came from."""
    RULE = "rule"
    DEPENDS_ON = "depends_on"
    RESOURCE = "resource"


@dataclass(frozen=True)
class Edge:
    """A single "before -> after" relation."""
    before: str
    after: str
    source: EdgeSource
    detail: str = ""


@dataclass(frozen=True)
class DependencyGraph:
    """Acyclic graph of component identifiers with its resolved order."""
    nodes: tuple[str, ...]
    edges: tuple[Edge, ...]
    order: tuple[str, ...]

    def predecessors(self, node: str) -> list[str]:
        return [e.before for e in self.edges if e.after == node]

    def successors(self, node: str) -> list[str]:
        return [e.after for e in self.edges if e.before == node]

    def comes_before(self, first: str, second: str) -> bool:
        return self.order.index(first) < self.order.index(second)

    def describe(self) -> str:
        """Human-readable listing of the order and every edge."""
        lines = ["Component order:"]
        lines.extend(f"  {i + 1}. {node}" for i, node in enumerate(self.order))
        if self.edges:
            lines.append("Edges:")
            for edge in self.edges:
                detail = f" ({edge.detail})" if edge.detail else ""
                lines.append(f"  {edge.before} -> {edge.after} [{edge.source.value}]{detail}")
        return "\n".join(lines)


class DependencyGraphBuilder:
    """Assemble the component graph and detect cycles."""

    def build(
        self,
        instances: Sequence[ComponentInstance],
        explicit_order: Iterable[OrderingRule] = (),
    ) -> DependencyGraph:
        """
        Build the dependency graph for a set of component instances.

        Args:
            instances: Component instances of this run
            explicit_order: Role-level ordering rules

        Returns:
            DependencyGraph with a deterministic topological order

        Raises:
            UnknownComponent: A depends_on names an instance not in the run
            CycleError: The edges form a cycle
        """
        ordered = sorted(instances, key=lambda inst: inst.position)
        nodes = [inst.identifier for inst in ordered]
        position = {node: i for i, node in enumerate(nodes)}

        edges: list[Edge] = []
        seen: set[tuple[str, str]] = set()

        def add(before: str, after: str, source: EdgeSource, detail: str = "") -> None:
            if (before, after) in seen:
                return
            seen.add((before, after))
            edges.append(Edge(before, after, source, detail))

        # 1. Explicit role rules
        for rule in explicit_order:
            for first in ordered:
                if first.role != rule.before:
                    continue
                for second in ordered:
                    if second.role == rule.after:
                        add(first.identifier, second.identifier, EdgeSource.RULE,
                            f"{rule.before} before {rule.after}")

        # 2. Declared component dependencies
        for inst in ordered:
            for dep in inst.depends_on:
                if dep not in position:
                    raise UnknownComponent(dep, field=inst.identifier)
                add(dep, inst.identifier, EdgeSource.DEPENDS_ON)

        # 3. Resource hints that cross component boundaries
        owners = {
            resource.id: inst.identifier
            for inst in ordered
            for resource in inst.resources
        }
        for inst in ordered:
            for resource in inst.resources:
                for target in resource.follows:
                    owner = owners.get(target)
                    if owner is None or owner == inst.identifier:
                        continue
                    add(owner, inst.identifier, EdgeSource.RESOURCE,
                        f"{resource.id} follows {target}")

        predecessors: dict[str, list[str]] = {node: [] for node in nodes}
        for edge in edges:
            predecessors[edge.after].append(edge.before)

        order = topological_order(nodes, predecessors)
        logger.debug(f"Component order: {', '.join(order)}")

        return DependencyGraph(nodes=tuple(nodes), edges=tuple(edges), order=tuple(order))


def topological_order(
    nodes: Sequence[str],
    predecessors: Mapping[str, Iterable[str]],
) -> list[str]:
    """
    Order nodes so that every predecessor comes first.

    Depth-first with three-colour marking, using an explicit stack so long
    dependency chains do not hit the recursion limit. Nodes without a
    relation keep the order in which they appear in `nodes`.

    Raises:
        CycleError: On a back edge to an in-progress node, naming the cycle
            in "before -> after" direction
    """
    position = {node: i for i, node in enumerate(nodes)}
    unvisited, in_progress, done = 0, 1, 2
    color = {node: unvisited for node in nodes}
    stack: list[str] = []
    order: list[str] = []

    def ordered_preds(node: str) -> Iterator[str]:
        preds = set(predecessors.get(node, ()))
        return iter(sorted(preds, key=lambda p: position.get(p, len(position))))

    for root in nodes:
        if color[root] != unvisited:
            continue
        color[root] = in_progress
        stack.append(root)
        pending = [ordered_preds(root)]

        while pending:
            pred = next(pending[-1], None)
            if pred is None:
                pending.pop()
                node = stack.pop()
                color[node] = done
                order.append(node)
                continue
            if pred not in color:
                continue
            if color[pred] == in_progress:
                start = stack.index(pred)
                raise CycleError([pred] + list(reversed(stack[start:])))
            if color[pred] == unvisited:
                color[pred] = in_progress
                stack.append(pred)
                pending.append(ordered_preds(pred))

    return order
