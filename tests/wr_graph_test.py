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


"""Tests for wsrelease.graph."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from wsrelease.graph import build_graph, detect_cycles, reverse_deps
from wsrelease.manifest import parse_manifest
from wsrelease.workspace import Member, build_member


def _member(name: str, **sections: dict[str, str]) -> Member:
    data: dict[str, Any] = {'name': name, 'version': '1.0.0', **sections}
    return build_member(parse_manifest(json.dumps(data), Path(f'/ws/{name}/package.json')))


class TestBuildGraph:
    """Tests for build_graph."""

    def test_forward_and_reverse(self) -> None:
        """Edges are indexed both ways."""
        graph = build_graph([
            _member('api'),
            _member('web', dependencies={'api': '^1.0.0'}),
            _member('worker', devDependencies={'api': 'workspace:*'}),
        ])
        assert graph.names == ['api', 'web', 'worker']
        assert len(graph) == 3
        assert [(e.source, e.dep_class) for e in graph.dependents('api')] == [('web', 'runtime'), ('worker', 'dev')]
        assert [e.source for e in graph.dependents('api', ['runtime'])] == ['web']

    def test_npm_alias_resolves_to_member(self) -> None:
        """An npm: alias pointing at a member is an edge to that member."""
        graph = build_graph([_member('core'), _member('app', dependencies={'core-v1': 'npm:core@^1.0.0'})])
        assert [e.target for e in graph.dependencies('app')] == ['core']

    def test_external_targets_skipped(self) -> None:
        """Only members become edges."""
        graph = build_graph([_member('app', dependencies={'lodash': '^4.0.0'})])
        assert graph.dependencies('app') == []

    def test_acyclic(self) -> None:
        """A DAG records no cycles."""
        graph = build_graph([_member('a', dependencies={'b': '1.0.0'}), _member('b')])
        assert graph.cycles == []
        assert graph.peer_cycles == []


class TestCycles:
    """Tests for cycle detection."""

    def test_runtime_dev_cycle(self) -> None:
        """A cycle through runtime and dev edges is recorded, not raised."""
        graph = build_graph([
            _member('a', dependencies={'b': '^1.0.0'}),
            _member('b', devDependencies={'a': '^1.0.0'}),
        ])
        assert graph.cycles == [['a', 'b']]

    def test_peer_only_cycle(self) -> None:
        """A cycle that needs a peer edge is reported separately."""
        graph = build_graph([
            _member('a', dependencies={'b': '^1.0.0'}),
            _member('b', peerDependencies={'a': '^1.0.0'}),
        ])
        assert graph.cycles == []
        assert graph.peer_cycles == [['a', 'b']]

    def test_self_loop(self) -> None:
        """A package depending on itself is a cycle."""
        graph = build_graph([_member('a', devDependencies={'a': 'workspace:*'})])
        assert detect_cycles(graph) == [['a']]

    def test_three_node_cycle(self) -> None:
        """Every member of a strongly connected component is listed, sorted."""
        graph = build_graph([
            _member('c', dependencies={'a': '1.0.0'}),
            _member('a', dependencies={'b': '1.0.0'}),
            _member('b', dependencies={'c': '1.0.0'}),
            _member('d', dependencies={'a': '1.0.0'}),
        ])
        assert graph.cycles == [['a', 'b', 'c']]


class TestReverseDeps:
    """Tests for reverse_deps."""

    def test_transitive(self) -> None:
        """Dependents of dependents are included."""
        graph = build_graph([
            _member('a'),
            _member('b', dependencies={'a': '1.0.0'}),
            _member('c', dependencies={'b': '1.0.0'}),
            _member('d'),
        ])
        assert reverse_deps(graph, 'a') == {'b', 'c'}
        assert reverse_deps(graph, 'd') == set()

    def test_class_filter(self) -> None:
        """Restricting classes stops at excluded edges."""
        graph = build_graph([
            _member('a'),
            _member('b', devDependencies={'a': '1.0.0'}),
            _member('c', dependencies={'b': '1.0.0'}),
        ])
        assert reverse_deps(graph, 'a', ['runtime']) == set()
        assert reverse_deps(graph, 'a') == {'b', 'c'}
