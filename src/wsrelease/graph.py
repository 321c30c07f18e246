# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-License-Identifier: Apache-2.0

"""Workspace dependency graph.

Key Concepts (ELI5)::

    ┌─────────────────────────┬─────────────────────────────────────────────┐
    │ Concept                 │ ELI5 Explanation                            │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Dependency graph        │ A map of "who needs what". If package A    │
    │                         │ depends on B, draw an arrow A → B.         │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Edge class              │ Which manifest map the arrow came from:    │
    │                         │ runtime, dev, peer or optional.            │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Strongly connected      │ A group of packages that can all reach     │
    │ component (SCC)         │ each other. Any SCC with more than one     │
    │                         │ member (or a self-loop) is a cycle.        │
    └─────────────────────────┴─────────────────────────────────────────────┘

Edge direction::

    Forward edges (``edges``): dependent → dependency (who needs what)
    Reverse edges (``reverse_edges``): dependency → dependent (who uses me)

    web ──→ api ←── worker

    edges["web"] = [Edge(web → api)]
    reverse_edges["api"] = [Edge(web → api), Edge(worker → api)]

Only edges whose target is a workspace member are part of the graph.
Cycles are found with Tarjan's algorithm on the runtime + dev projection
and recorded on the graph; they never fail a load. Peer-only cycles are
reported separately as warnings.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from wsrelease.logging import get_logger
from wsrelease.specifiers import VersionRange

if TYPE_CHECKING:
    from wsrelease.workspace import Member

logger = get_logger(__name__)

DEP_CLASSES: tuple[str, ...] = ('runtime', 'dev', 'peer', 'optional')
CYCLE_CLASSES: frozenset[str] = frozenset({'runtime', 'dev'})


@dataclass(frozen=True)
class Edge:
    """A dependency edge between two workspace members.

    Attributes:
        source: The dependent's name.
        target: The dependency member name (the real name for npm aliases).
        dep_class: ``runtime``, ``dev``, ``peer`` or ``optional``.
        spec: The parsed specifier.
    """

    source: str
    target: str
    dep_class: str
    spec: VersionRange


@dataclass
class DependencyGraph:
    """A directed graph of workspace-internal dependencies.

    Attributes:
        nodes: Member names.
        edges: Forward adjacency (dependent → edges to its dependencies).
        reverse_edges: Reverse adjacency (dependency → edges from dependents).
        cycles: Runtime + dev cycles found at build time.
        peer_cycles: Cycles that only close through peer edges.
    """

    nodes: list[str] = field(default_factory=list)
    edges: dict[str, list[Edge]] = field(default_factory=dict)
    reverse_edges: dict[str, list[Edge]] = field(default_factory=dict)
    cycles: list[list[str]] = field(default_factory=list)
    peer_cycles: list[list[str]] = field(default_factory=list)

    @property
    def names(self) -> list[str]:
        """Sorted list of all member names in the graph."""
        return sorted(self.nodes)

    def __len__(self) -> int:
        """Return the number of members in the graph."""
        return len(self.nodes)

    def dependencies(self, name: str, classes: Iterable[str] | None = None) -> list[Edge]:
        """Edges from ``name`` to the members it depends on."""
        wanted = None if classes is None else frozenset(classes)
        return [e for e in self.edges.get(name, []) if wanted is None or e.dep_class in wanted]

    def dependents(self, name: str, classes: Iterable[str] | None = None) -> list[Edge]:
        """Edges from members that depend on ``name``."""
        wanted = None if classes is None else frozenset(classes)
        return [e for e in self.reverse_edges.get(name, []) if wanted is None or e.dep_class in wanted]


def _edge_key(edge: Edge) -> tuple[str, str, int]:
    return (edge.source, edge.target, DEP_CLASSES.index(edge.dep_class))


def build_graph(members: Iterable[Member]) -> DependencyGraph:
    """Build the internal dependency graph and record its cycles.

    Args:
        members: Workspace members with parsed dependency edges.

    Returns:
        A :class:`DependencyGraph` with forward and reverse edges.
    """
    members = list(members)
    graph = DependencyGraph()
    names = {m.name for m in members}

    for member in members:
        graph.nodes.append(member.name)
        graph.edges[member.name] = []
        graph.reverse_edges[member.name] = []

    for member in members:
        for dep in member.dep_edges:
            target = dep.spec.lookup_name(dep.target)
            if target not in names:
                continue
            edge = Edge(source=member.name, target=target, dep_class=dep.dep_class, spec=dep.spec)
            graph.edges[member.name].append(edge)
            graph.reverse_edges[target].append(edge)

    # Sort for deterministic output.
    graph.nodes.sort()
    for adjacency in (graph.edges, graph.reverse_edges):
        for name in adjacency:
            adjacency[name].sort(key=_edge_key)

    graph.cycles = detect_cycles(graph, CYCLE_CLASSES)
    all_cycles = detect_cycles(graph, DEP_CLASSES)
    known = {frozenset(c) for c in graph.cycles}
    graph.peer_cycles = [c for c in all_cycles if frozenset(c) not in known]

    logger.debug(
        'built_dependency_graph',
        packages=len(graph.nodes),
        edges=sum(len(deps) for deps in graph.edges.values()),
    )
    if graph.cycles:
        logger.warning('cycles_detected', count=len(graph.cycles), cycles=[' → '.join(c) for c in graph.cycles])
    if graph.peer_cycles:
        logger.warning('peer_cycles_detected', count=len(graph.peer_cycles))
    return graph


def strongly_connected_components(graph: DependencyGraph, classes: Iterable[str]) -> list[list[str]]:
    """Tarjan's SCC algorithm over the edges of the given classes.

    Returns:
        Components in discovery order, each sorted by name.
    """
    wanted = frozenset(classes)
    index_of: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    on_stack: set[str] = set()
    stack: list[str] = []
    components: list[list[str]] = []
    counter = 0

    def _strongconnect(node: str) -> None:
        nonlocal counter
        index_of[node] = lowlink[node] = counter
        counter += 1
        stack.append(node)
        on_stack.add(node)

        for edge in graph.dependencies(node, wanted):
            neighbor = edge.target
            if neighbor not in index_of:
                _strongconnect(neighbor)
                lowlink[node] = min(lowlink[node], lowlink[neighbor])
            elif neighbor in on_stack:
                lowlink[node] = min(lowlink[node], index_of[neighbor])

        if lowlink[node] == index_of[node]:
            component: list[str] = []
            while True:
                top = stack.pop()
                on_stack.discard(top)
                component.append(top)
                if top == node:
                    break
            components.append(sorted(component))

    for name in sorted(graph.nodes):
        if name not in index_of:
            _strongconnect(name)
    return components


def detect_cycles(graph: DependencyGraph, classes: Iterable[str] = CYCLE_CLASSES) -> list[list[str]]:
    """Return every cycle (SCC of size > 1, or a self-loop), sorted."""
    wanted = frozenset(classes)
    cycles: list[list[str]] = []
    for component in strongly_connected_components(graph, wanted):
        if len(component) > 1:
            cycles.append(component)
        elif any(e.target == component[0] for e in graph.dependencies(component[0], wanted)):
            cycles.append(component)
    return sorted(cycles)


def reverse_deps(graph: DependencyGraph, name: str, classes: Iterable[str] | None = None) -> set[str]:
    """Return all transitive dependents of a member (BFS).

    If B depends on A, and C depends on B, then ``reverse_deps("A")``
    returns ``{"B", "C"}``.
    """
    visited: set[str] = set()
    queue: deque[str] = deque(e.source for e in graph.dependents(name, classes))
    while queue:
        current = queue.popleft()
        if current in visited:
            continue
        visited.add(current)
        queue.extend(e.source for e in graph.dependents(current, classes))
    visited.discard(name)
    return visited


__all__ = [
    'CYCLE_CLASSES',
    'DEP_CLASSES',
    'DependencyGraph',
    'Edge',
    'build_graph',
    'detect_cycles',
    'reverse_deps',
    'strongly_connected_components',
]
