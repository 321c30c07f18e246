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

"""Workspace discovery for ``package.json`` workspaces.

Reads the ``workspaces`` field from the root ``package.json``, expands
its globs, parses every member manifest and builds the internal
dependency graph.

Key Concepts (ELI5)::

    ┌─────────────────────────┬────────────────────────────────────────────┐
    │ Concept                 │ ELI5 Explanation                           │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ Member                  │ One package in the workspace: a name, a   │
    │                         │ version, a directory and its dependency   │
    │                         │ edges.                                    │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ Monorepo                │ The root package.json has a "workspaces"  │
    │                         │ field, even an empty one. Without it the  │
    │                         │ root package is the only member.          │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ DepEdge                 │ One entry of dependencies, devDependencies│
    │                         │ peerDependencies or optionalDependencies. │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ Aggregated failure      │ Every broken member manifest is reported  │
    │                         │ in a single error. Loading never returns  │
    │                         │ a partial workspace.                      │
    └─────────────────────────┴────────────────────────────────────────────┘

Data Flow::

    package.json                          load_workspace()
    ┌───────────────────────┐       ┌──────────────────────────────┐
    │ "workspaces": [        │       │ 1. Read root manifest        │
    │   "packages/*",        │──────→│ 2. Expand globs (!excludes)  │
    │   "!packages/scratch"  │       │ 3. Read members concurrently │
    │ ]                      │       │ 4. Parse dependency edges    │
    └───────────────────────┘       │ 5. Build graph, find cycles  │
                                    └──────────────────────────────┘

Usage::

    from wsrelease.workspace import load_workspace

    ws = await load_workspace(Path('.'))
    for member in ws.members.values():
        print(member.name, member.version)
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from wsrelease.errors import E, ReleaseError, WorkspaceError
from wsrelease.globs import expand_workspace_globs, is_glob, match_name
from wsrelease.graph import DependencyGraph, build_graph
from wsrelease.logging import get_logger
from wsrelease.manifest import DEPENDENCY_SECTIONS, MANIFEST_NAME, Manifest, json_pointer, load_manifest
from wsrelease.semver import SemverError, Version
from wsrelease.specifiers import VersionRange, parse_specifier

logger = get_logger(__name__)

# Selector meaning "every member".
ALL = 'all'


@dataclass(frozen=True)
class DepEdge:
    """One dependency declared in a member manifest.

    Attributes:
        dep_class: ``runtime``, ``dev``, ``peer`` or ``optional``.
        target: The dependency key in the manifest.
        spec: The parsed specifier.
        section: Manifest field the edge came from.
    """

    dep_class: str
    target: str
    spec: VersionRange
    section: str

    @property
    def pointer(self) -> str:
        """JSON pointer of the specifier inside the manifest."""
        return json_pointer(self.section, self.target)

    @property
    def target_name(self) -> str:
        """Package the edge resolves to (the real name behind an npm alias)."""
        return self.spec.lookup_name(self.target)


@dataclass
class Member:
    """A workspace member package.

    Attributes:
        name: The ``name`` field.
        version: The parsed ``version`` field.
        path: Absolute package directory.
        manifest: The decoded manifest.
        dep_edges: Dependencies in manifest order, section by section.
    """

    name: str
    version: Version
    path: Path
    manifest: Manifest
    dep_edges: list[DepEdge] = field(default_factory=list)

    @property
    def manifest_path(self) -> Path:
        """Absolute path of the member's ``package.json``."""
        return self.path / MANIFEST_NAME


@dataclass
class Workspace:
    """A loaded workspace.

    Attributes:
        root: Absolute workspace root.
        root_manifest: The root ``package.json``.
        members: Members keyed by name, sorted by name.
        graph: Internal dependency graph.
        declares_workspaces: Whether the root manifest has a
            ``workspaces`` field.
    """

    root: Path
    root_manifest: Manifest
    members: dict[str, Member] = field(default_factory=dict)
    graph: DependencyGraph = field(default_factory=DependencyGraph)
    declares_workspaces: bool = False

    @property
    def is_monorepo(self) -> bool:
        """True iff the root manifest declares ``workspaces`` (even ``[]``)."""
        return self.declares_workspaces

    @property
    def names(self) -> list[str]:
        """Sorted member names."""
        return sorted(self.members)

    def member(self, name: str) -> Member:
        """Look up a member by name.

        Raises:
            WorkspaceError: ``WR-WORKSPACE-UNKNOWN-PACKAGE``.
        """
        try:
            return self.members[name]
        except KeyError:
            raise WorkspaceError(
                E.WORKSPACE_UNKNOWN_PACKAGE,
                f"Unknown package '{name}'",
                hint=f'Workspace members: {", ".join(self.names) or "(none)"}',
            ) from None


def _workspace_patterns(root_manifest: Manifest) -> list[str] | None:
    """Extract glob patterns from the ``workspaces`` field.

    Returns ``None`` when the field is absent (single-package repo).
    """
    if 'workspaces' not in root_manifest.data:
        return None
    value: Any = root_manifest.data['workspaces']
    if isinstance(value, dict):
        value = value.get('packages', [])
    if not isinstance(value, list) or not all(isinstance(p, str) for p in value):
        raise WorkspaceError(
            E.WORKSPACE_MANIFEST_PARSE,
            f'{root_manifest.path}: "workspaces" must be a list of globs or {{"packages": [...]}}',
            hint='Example: "workspaces": ["packages/*"]',
            paths=[root_manifest.path],
        )
    return value


def _parse_edges(manifest: Manifest) -> list[DepEdge]:
    edges: list[DepEdge] = []
    for section, dep_class in DEPENDENCY_SECTIONS.items():
        for target, raw in manifest.dependencies(section).items():
            edges.append(DepEdge(dep_class=dep_class, target=target, spec=parse_specifier(raw), section=section))
    return edges


def build_member(manifest: Manifest) -> Member:
    """Turn a decoded manifest into a :class:`Member`.

    A missing ``version`` is treated as ``0.0.0``.

    Raises:
        WorkspaceError: ``WR-WORKSPACE-MANIFEST-PARSE`` if ``name`` is
            missing or ``version`` is not valid semver.
    """
    path = manifest.path
    if not manifest.name:
        raise WorkspaceError(
            E.WORKSPACE_MANIFEST_PARSE,
            f'{path}: missing "name" field',
            paths=[path],
        )
    raw_version = manifest.version or '0.0.0'
    try:
        version = Version.parse(raw_version)
    except SemverError as exc:
        raise WorkspaceError(
            E.WORKSPACE_MANIFEST_PARSE,
            f'{path}: invalid version {raw_version!r}',
            hint='Versions must be semver 2.0.0, e.g. "1.2.3" or "2.0.0-beta.1".',
            paths=[path],
        ) from exc
    if not manifest.version:
        logger.debug('member_without_version', name=manifest.name, path=str(path))
    return Member(
        name=manifest.name,
        version=version,
        path=path.parent,
        manifest=manifest,
        dep_edges=_parse_edges(manifest),
    )


async def _read_members(dirs: list[Path], concurrency: int) -> tuple[list[Member], list[ReleaseError]]:
    semaphore = asyncio.Semaphore(concurrency)

    async def _one(pkg_dir: Path) -> Member | ReleaseError:
        async with semaphore:
            try:
                return build_member(await load_manifest(pkg_dir / MANIFEST_NAME))
            except ReleaseError as exc:
                return exc

    results = await asyncio.gather(*(_one(d) for d in dirs))
    members = [r for r in results if isinstance(r, Member)]
    failures = [r for r in results if isinstance(r, ReleaseError)]
    return members, failures


async def load_workspace(root: Path, *, concurrency: int | None = None) -> Workspace:
    """Discover and parse every member of the workspace at ``root``.

    Args:
        root: Repository root containing the root ``package.json``.
        concurrency: Maximum concurrent manifest reads (defaults to the
            CPU count).

    Returns:
        The loaded :class:`Workspace`.

    Raises:
        WorkspaceError: ``WR-WORKSPACE-NOT-FOUND`` without a root manifest,
            ``WR-WORKSPACE-MANIFEST-PARSE`` listing every broken member,
            ``WR-WORKSPACE-DUPLICATE-PACKAGE`` for duplicate names, or
            ``WR-WORKSPACE-INVALID-GLOB``.
    """
    root = root.resolve()
    root_manifest_path = root / MANIFEST_NAME
    if not root_manifest_path.is_file():
        raise WorkspaceError(
            E.WORKSPACE_NOT_FOUND,
            f'No {MANIFEST_NAME} found in {root}',
            hint="Run wsrelease from the repository root or pass '--root'.",
            paths=[root_manifest_path],
        )
    root_manifest = await load_manifest(root_manifest_path)
    patterns = _workspace_patterns(root_manifest)

    if patterns is None:
        member = build_member(root_manifest)
        ws = Workspace(
            root=root,
            root_manifest=root_manifest,
            members={member.name: member},
            graph=build_graph([member]),
            declares_workspaces=False,
        )
        logger.info('workspace_loaded', root=str(root), monorepo=False, members=1)
        return ws

    dirs = expand_workspace_globs(root, patterns)
    members, failures = await _read_members(dirs, concurrency or os.cpu_count() or 4)
    if failures:
        raise WorkspaceError(
            E.WORKSPACE_MANIFEST_PARSE,
            f'{len(failures)} member manifest(s) could not be loaded',
            hint='Fix every file listed; the workspace is only loaded when all members parse.',
            paths=[p for f in failures for p in f.paths],
            details=[f.info.message for f in failures],
        )

    by_name: dict[str, Member] = {}
    duplicates: list[str] = []
    for member in sorted(members, key=lambda m: m.path):
        if member.name in by_name:
            duplicates.append(
                f"'{member.name}' is declared by both {by_name[member.name].manifest_path} and {member.manifest_path}"
            )
            continue
        by_name[member.name] = member
    if duplicates:
        raise WorkspaceError(
            E.WORKSPACE_DUPLICATE_PACKAGE,
            'Duplicate package names in workspace',
            hint='Every workspace member must have a unique "name".',
            details=duplicates,
        )

    ordered = {name: by_name[name] for name in sorted(by_name)}
    ws = Workspace(
        root=root,
        root_manifest=root_manifest,
        members=ordered,
        graph=build_graph(ordered.values()),
        declares_workspaces=True,
    )
    logger.info('workspace_loaded', root=str(root), monorepo=True, members=len(ordered))
    return ws


def is_monorepo(ws: Workspace) -> bool:
    """True iff the root manifest declared a ``workspaces`` field."""
    return ws.is_monorepo


def members_matching(ws: Workspace, selector: str | list[str] | None = None) -> list[Member]:
    """Select members by ``"all"``/``None``, a list of names, or a name glob.

    Raises:
        WorkspaceError: ``WR-WORKSPACE-UNKNOWN-PACKAGE`` if an explicit
            name is not a member or a glob matches nothing.
    """
    if selector is None or selector == ALL:
        return list(ws.members.values())
    if isinstance(selector, str):
        if is_glob(selector):
            matched = [m for m in ws.members.values() if match_name(selector, m.name)]
            if not matched:
                raise WorkspaceError(
                    E.WORKSPACE_UNKNOWN_PACKAGE,
                    f"No package matches '{selector}'",
                    hint=f'Workspace members: {", ".join(ws.names) or "(none)"}',
                )
            return matched
        selector = [s.strip() for s in selector.split(',') if s.strip()]
    return [ws.member(name) for name in sorted(set(selector))]


__all__ = [
    'ALL',
    'DepEdge',
    'Member',
    'Workspace',
    'build_member',
    'is_monorepo',
    'load_workspace',
    'members_matching',
]
