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

"""Change detection: which workspace members did a diff touch?

Analysis Modes::

    ┌──────────────────────┬──────────────────────────────┬───────────────┐
    │ Mode                 │ Compares                     │ CLI flags     │
    ├──────────────────────┼──────────────────────────────┼───────────────┤
    │ WorkingDirectory     │ index and/or work tree       │ --staged      │
    │                      │ against HEAD                 │ --unstaged    │
    ├──────────────────────┼──────────────────────────────┼───────────────┤
    │ CommitRange          │ git diff from..to            │ --from --to   │
    ├──────────────────────┼──────────────────────────────┼───────────────┤
    │ BranchComparison     │ git diff target...HEAD       │ --branch      │
    │                      │ (three-dot, merge base)      │               │
    └──────────────────────┴──────────────────────────────┴───────────────┘

When several flags are given the branch comparison wins, then the commit
range, then the working directory.

Attribution::

    /repo/packages/core/src/a.ts   → core   (longest containing member path)
    /repo/packages/core/package.json → core (manifest change)
    /repo/README.md                → root   (no member contains it)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from wsrelease.backends.vcs import ADDED, DELETED, GitPort
from wsrelease.logging import get_logger
from wsrelease.manifest import MANIFEST_NAME
from wsrelease.workspace import Member, Workspace

logger = get_logger(__name__)

ROOT = 'root'


@dataclass(frozen=True)
class WorkingDirectory:
    """Uncommitted changes: the index and/or the work tree against ``HEAD``."""

    staged: bool = True
    unstaged: bool = True

    def describe(self) -> str:
        """Short label for reports."""
        parts = [p for p, on in (('staged', self.staged), ('unstaged', self.unstaged)) if on]
        return f'working-directory ({"+".join(parts) or "nothing"})'


@dataclass(frozen=True)
class CommitRange:
    """Committed changes in ``from_ref..to_ref``."""

    from_ref: str = 'HEAD~1'
    to_ref: str = 'HEAD'

    def describe(self) -> str:
        """Short label for reports."""
        return f'{self.from_ref}..{self.to_ref}'


@dataclass(frozen=True)
class BranchComparison:
    """Changes on ``HEAD`` since it diverged from ``target``."""

    target: str

    def describe(self) -> str:
        """Short label for reports."""
        return f'{self.target}...HEAD'


AnalysisMode = Union[WorkingDirectory, CommitRange, BranchComparison]


def select_mode(
    *,
    branch: str | None = None,
    from_ref: str | None = None,
    to_ref: str | None = None,
    staged: bool = False,
    unstaged: bool = False,
) -> AnalysisMode:
    """Pick the analysis mode from CLI-style options.

    Precedence is branch, then commit range, then working directory. A
    missing ``to_ref`` means ``HEAD``; a missing ``from_ref`` with a
    ``to_ref`` means ``HEAD~1``. Without ``staged``/``unstaged`` both are
    analysed.
    """
    if branch:
        return BranchComparison(target=branch)
    if from_ref or to_ref:
        return CommitRange(from_ref=from_ref or 'HEAD~1', to_ref=to_ref or 'HEAD')
    if not staged and not unstaged:
        return WorkingDirectory(staged=True, unstaged=True)
    return WorkingDirectory(staged=staged, unstaged=unstaged)


@dataclass
class PackageChanges:
    """Change statistics for one member (or ``root``).

    Attributes:
        name: Member name, or ``root`` for unattributed paths.
        path: Member directory (the workspace root for ``root``).
        files_added: Added files, relative to ``path``.
        files_modified: Modified files, relative to ``path``.
        files_deleted: Deleted files, relative to ``path``.
        lines_added: Inserted lines across all files.
        lines_deleted: Removed lines across all files.
        commit_count: Commits touching the member (0 for working-directory mode).
        manifest_changed: Whether the member's ``package.json`` changed.
    """

    name: str
    path: Path
    files_added: list[str] = field(default_factory=list)
    files_modified: list[str] = field(default_factory=list)
    files_deleted: list[str] = field(default_factory=list)
    lines_added: int = 0
    lines_deleted: int = 0
    commit_count: int = 0
    manifest_changed: bool = False

    @property
    def changed(self) -> bool:
        """Whether any file of the member changed."""
        return bool(self.files_added or self.files_modified or self.files_deleted)

    @property
    def source_changed(self) -> bool:
        """Whether anything other than the manifest changed."""
        files = self.files_added + self.files_modified + self.files_deleted
        return any(f != MANIFEST_NAME for f in files)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable representation."""
        return {
            'name': self.name,
            'path': str(self.path),
            'changed': self.changed,
            'manifest_changed': self.manifest_changed,
            'source_changed': self.source_changed,
            'files_added': self.files_added,
            'files_modified': self.files_modified,
            'files_deleted': self.files_deleted,
            'lines_added': self.lines_added,
            'lines_deleted': self.lines_deleted,
            'commit_count': self.commit_count,
        }


@dataclass
class ChangeReport:
    """Per-member change statistics for one analysis mode."""

    mode: str
    packages: dict[str, PackageChanges] = field(default_factory=dict)

    @property
    def changed_packages(self) -> list[str]:
        """Sorted names of members with changes (``root`` excluded)."""
        return sorted(n for n, p in self.packages.items() if p.changed and n != ROOT)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable representation."""
        return {
            'mode': self.mode,
            'changed': self.changed_packages,
            'packages': {name: self.packages[name].to_dict() for name in sorted(self.packages)},
        }


class PathAttributor:
    """Maps absolute paths to the member whose directory contains them.

    Members are tried longest path first so that a nested member wins
    over its parent directory.
    """

    def __init__(self, members: list[Member]) -> None:
        """Index members by directory."""
        self._members = sorted(members, key=lambda m: len(m.path.parts), reverse=True)

    def attribute(self, path: Path) -> Member | None:
        """Return the owning member, or ``None`` for the ``root`` bucket."""
        for member in self._members:
            if path == member.path or path.is_relative_to(member.path):
                return member
        return None


def _canonical(top: Path, rel: str) -> Path:
    return Path(os.path.normpath(top / rel))


async def detect_changes(workspace: Workspace, git: GitPort, mode: AnalysisMode) -> ChangeReport:
    """Build a :class:`ChangeReport` for ``mode``.

    Args:
        workspace: The loaded workspace.
        git: Git access.
        mode: What to compare.

    Returns:
        One entry per member, plus ``root`` when unattributed paths changed.

    Raises:
        IoError: ``WR-GIT-COMMAND-FAILED`` when git fails.
    """
    top = await git.toplevel()
    report = ChangeReport(mode=mode.describe())
    for member in workspace.members.values():
        report.packages[member.name] = PackageChanges(name=member.name, path=member.path)
    attributor = PathAttributor(list(workspace.members.values()))

    def _bucket(abs_path: Path) -> PackageChanges:
        member = attributor.attribute(abs_path)
        if member is not None:
            return report.packages[member.name]
        if ROOT not in report.packages:
            report.packages[ROOT] = PackageChanges(name=ROOT, path=workspace.root)
        return report.packages[ROOT]

    if isinstance(mode, WorkingDirectory):
        diffs = await git.working_tree_diff(staged=mode.staged, unstaged=mode.unstaged)
    elif isinstance(mode, CommitRange):
        diffs = await git.diff(mode.from_ref, mode.to_ref)
    else:
        diffs = await git.diff(mode.target, 'HEAD', merge_base=True)

    for diff in diffs:
        abs_path = _canonical(top, diff.path)
        bucket = _bucket(abs_path)
        rel = abs_path.relative_to(bucket.path).as_posix() if abs_path.is_relative_to(bucket.path) else diff.path
        if diff.status == ADDED:
            bucket.files_added.append(rel)
        elif diff.status == DELETED:
            bucket.files_deleted.append(rel)
        else:
            bucket.files_modified.append(rel)
        bucket.lines_added += diff.lines_added
        bucket.lines_deleted += diff.lines_deleted
        if rel == MANIFEST_NAME:
            bucket.manifest_changed = True

    if not isinstance(mode, WorkingDirectory):
        if isinstance(mode, CommitRange):
            commits = await git.commits(mode.from_ref, mode.to_ref)
        else:
            commits = await git.commits(mode.target, 'HEAD', merge_base=True)
        for commit in commits:
            touched = {_bucket(_canonical(top, f)).name for f in commit.files}
            for name in touched:
                report.packages[name].commit_count += 1

    for changes in report.packages.values():
        changes.files_added.sort()
        changes.files_modified.sort()
        changes.files_deleted.sort()

    logger.info(
        'changes_detected',
        mode=report.mode,
        files=len(diffs),
        changed=len(report.changed_packages),
    )
    return report


__all__ = [
    'ROOT',
    'AnalysisMode',
    'BranchComparison',
    'ChangeReport',
    'CommitRange',
    'PackageChanges',
    'PathAttributor',
    'WorkingDirectory',
    'detect_changes',
    'select_mode',
]
