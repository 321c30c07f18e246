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

"""Release plan: everything a run will change, computed before any write.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Plan                │ A checklist of every file edit a release will │
    │                     │ make. Nothing is touched until it is applied. │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ VersionChange       │ One row: package, old → new version, bump     │
    │                     │ and why (changeset, dependency, unified).     │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ManifestEdit        │ One JSON pointer in one package.json and the  │
    │                     │ text it goes from and to.                     │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Format              │ How to display: table (human) or JSON (CI).   │
    └─────────────────────┴────────────────────────────────────────────────┘

Two plans computed from the same inputs serialize to the same JSON,
byte for byte: every list is sorted and :meth:`Plan.format_json` sorts
keys.

Usage::

    plan = build_plan(ws, changesets, config, environments=['production'], date='2026-10-19')
    print(plan.format_table())
    print(plan.format_json())
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from wsrelease.logging import get_logger

logger = get_logger(__name__)

VERSION_POINTER = '/version'


class ChangeReason(str, Enum):
    """Why a package is in the plan."""

    CHANGESET = 'changeset'
    DEPENDENCY = 'dependency'
    UNIFIED = 'unified'


_REASON_EMOJI: dict[ChangeReason, str] = {
    ChangeReason.CHANGESET: '📦',
    ChangeReason.DEPENDENCY: '🔗',
    ChangeReason.UNIFIED: '🔄',
}


@dataclass(frozen=True)
class VersionChange:
    """One package's version move.

    Attributes:
        name: Package name.
        manifest: Absolute path of the package's ``package.json``.
        old: Current version.
        new: Planned version.
        bump: Final bump (``minor``, ``prerelease:beta``, ...).
        reason: Why the package is included.
        changesets: Ids of the changesets that mention the package.
    """

    name: str
    manifest: Path
    old: str
    new: str
    bump: str
    reason: ChangeReason
    changesets: tuple[str, ...] = ()


@dataclass(frozen=True)
class ManifestEdit:
    """Replace the string at ``pointer`` in ``path``.

    Attributes:
        path: Absolute manifest path.
        pointer: RFC 6901 pointer (``/version``, ``/dependencies/core``).
        old: Text expected at the pointer before the edit, or ``None``
            when the key is absent (a member without a ``version``).
        new: Replacement text.
        package: Package that owns the manifest.
    """

    path: Path
    pointer: str
    old: str | None
    new: str
    package: str = ''

    @property
    def sort_key(self) -> tuple[str, str]:
        """Total order of application: file path, then pointer."""
        return (str(self.path), self.pointer)


@dataclass(frozen=True)
class ChangelogUpdate:
    """A rendered changelog section for one package.

    Attributes:
        package: Package name.
        path: Absolute changelog path.
        version: Version the section documents.
        content: Markdown section, newline terminated.
    """

    package: str
    path: Path
    version: str
    content: str


@dataclass(frozen=True)
class ArchivedChangeset:
    """A pending changeset that moves to history when the plan is applied."""

    id: str
    path: Path


@dataclass(frozen=True)
class NewFile:
    """A file the plan creates (e.g. a synthetic upgrade changeset)."""

    path: Path
    content: str


@dataclass(frozen=True)
class GitTag:
    """A tag to create after the plan is applied."""

    name: str
    message: str


@dataclass
class Plan:
    """A complete, validated description of a run's changes.

    Attributes:
        root: Workspace root.
        strategy: ``independent`` or ``unified``.
        environments: Active environments.
        version_changes: Per-package version moves, sorted by name.
        manifest_edits: Manifest edits in application order.
        changelog_updates: Changelog sections, sorted by path.
        archived_changesets: Changesets to archive, sorted by id.
        new_files: Files to create, sorted by path.
        git_tags: Tags to create (only when tagging was requested).
        operation: ``version`` or ``upgrade``.
    """

    root: Path
    strategy: str = 'independent'
    environments: list[str] = field(default_factory=list)
    version_changes: list[VersionChange] = field(default_factory=list)
    manifest_edits: list[ManifestEdit] = field(default_factory=list)
    changelog_updates: list[ChangelogUpdate] = field(default_factory=list)
    archived_changesets: list[ArchivedChangeset] = field(default_factory=list)
    new_files: list[NewFile] = field(default_factory=list)
    git_tags: list[GitTag] = field(default_factory=list)
    operation: str = 'version'

    @property
    def is_empty(self) -> bool:
        """Whether applying the plan would change nothing."""
        return not (self.manifest_edits or self.changelog_updates or self.archived_changesets or self.new_files)

    def touched_files(self) -> list[Path]:
        """Every file the plan mutates, creates or moves, sorted."""
        paths = {e.path for e in self.manifest_edits}
        paths.update(c.path for c in self.changelog_updates)
        paths.update(a.path for a in self.archived_changesets)
        paths.update(f.path for f in self.new_files)
        return sorted(paths)

    def version_of(self, name: str) -> str | None:
        """Planned version of ``name``, or ``None`` if it does not move."""
        for change in self.version_changes:
            if change.name == name:
                return change.new
        return None

    def summary(self) -> dict[str, int]:
        """Return counts for reports."""
        return {
            'packages': len(self.version_changes),
            'manifest_edits': len(self.manifest_edits),
            'changelogs': len(self.changelog_updates),
            'archived_changesets': len(self.archived_changesets),
            'new_files': len(self.new_files),
            'tags': len(self.git_tags),
        }

    def _rel(self, path: Path) -> str:
        try:
            return path.relative_to(self.root).as_posix()
        except ValueError:
            return path.as_posix()

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable representation with root-relative paths."""
        return {
            'operation': self.operation,
            'strategy': self.strategy,
            'environments': list(self.environments),
            'summary': self.summary(),
            'version_changes': [
                {
                    'name': c.name,
                    'manifest': self._rel(c.manifest),
                    'old': c.old,
                    'new': c.new,
                    'bump': c.bump,
                    'reason': c.reason.value,
                    'changesets': list(c.changesets),
                }
                for c in self.version_changes
            ],
            'manifest_edits': [
                {'path': self._rel(e.path), 'pointer': e.pointer, 'old': e.old, 'new': e.new, 'package': e.package}
                for e in self.manifest_edits
            ],
            'changelog_entries': [
                {'package': c.package, 'path': self._rel(c.path), 'version': c.version, 'content': c.content}
                for c in self.changelog_updates
            ],
            'archived_changesets': [{'id': a.id, 'path': self._rel(a.path)} for a in self.archived_changesets],
            'new_files': [self._rel(f.path) for f in self.new_files],
            'git_tags': [t.name for t in self.git_tags],
        }

    def format_json(self) -> str:
        """Format the plan as deterministic JSON."""
        return json.dumps(self.to_dict(), indent=2, sort_keys=True, ensure_ascii=False)

    def format_table(self) -> str:
        """Format the plan as a human-readable table with emoji."""
        if not self.version_changes and self.is_empty:
            return 'Nothing to release.'

        headers = ['', 'Package', 'Current', 'Next', 'Bump', 'Reason']
        rows = [
            [_REASON_EMOJI.get(c.reason, '❓'), c.name, c.old, c.new, c.bump, c.reason.value]
            for c in self.version_changes
        ]
        widths = [len(h) for h in headers]
        for row in rows:
            for i, cell in enumerate(row):
                widths[i] = max(widths[i], len(cell))

        lines: list[str] = []
        fmt = '  '.join(f'{{:<{w}}}' for w in widths)
        lines.append(fmt.format(*headers))
        lines.append(fmt.format(*('─' * w for w in widths)))
        for row in rows:
            lines.append(fmt.format(*row))

        if self.manifest_edits:
            lines.append('')
            lines.append('Manifest edits:')
            for edit in self.manifest_edits:
                lines.append(f'  {self._rel(edit.path)} {edit.pointer}: {edit.old or "(unset)"} → {edit.new}')
        if self.archived_changesets:
            lines.append('')
            lines.append(f'Changesets to archive: {", ".join(a.id for a in self.archived_changesets)}')
        if self.git_tags:
            lines.append(f'Tags: {", ".join(t.name for t in self.git_tags)}')

        summary = self.summary()
        lines.append('')
        lines.append(
            f'Total: {summary["packages"]} package(s), {summary["manifest_edits"]} manifest edit(s), '
            f'{summary["changelogs"]} changelog(s)'
        )
        return '\n'.join(lines)


__all__ = [
    'VERSION_POINTER',
    'ArchivedChangeset',
    'ChangeReason',
    'ChangelogUpdate',
    'GitTag',
    'ManifestEdit',
    'NewFile',
    'Plan',
    'VersionChange',
]
