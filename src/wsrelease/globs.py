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

"""Workspace glob expansion and name matching.

Handles the patterns found in a root ``package.json`` ``workspaces``
field:

- ``"packages/*"``, ``"apps/**"``: expanded with :meth:`pathlib.Path.glob`.
- ``"!packages/scratch"``: exclude pattern, subtracted after expansion.
- ``"."``: the workspace root itself.
- ``"./packages/*"``: the leading ``./`` is stripped.

Only directories that contain a ``package.json`` are members, and
anything under ``node_modules`` is ignored.
"""

from __future__ import annotations

import fnmatch
from pathlib import Path, PurePosixPath

from wsrelease.errors import E, WorkspaceError
from wsrelease.logging import get_logger
from wsrelease.manifest import MANIFEST_NAME

log = get_logger('wsrelease.globs')

_IGNORED_DIRS = frozenset({'node_modules', '.git'})


def split_patterns(patterns: list[str]) -> tuple[list[str], list[str]]:
    """Split ``workspaces`` patterns into (include, exclude) lists."""
    include: list[str] = []
    exclude: list[str] = []
    for pattern in patterns:
        pattern = pattern.strip()
        if pattern.startswith('!'):
            exclude.append(pattern[1:].strip())
        else:
            include.append(pattern)
    return include, exclude


def _normalize(pattern: str) -> str:
    while pattern.startswith('./'):
        pattern = pattern[2:]
    return pattern.rstrip('/')


def validate_pattern(pattern: str) -> None:
    """Reject patterns that escape the workspace root.

    Raises:
        WorkspaceError: ``WR-WORKSPACE-INVALID-GLOB``.
    """
    normalized = _normalize(pattern)
    problem = ''
    if not pattern.strip():
        problem = 'pattern is empty'
    elif normalized.startswith('/') or PurePosixPath(normalized).is_absolute():
        problem = 'pattern is absolute'
    elif '..' in PurePosixPath(normalized).parts:
        problem = "pattern contains '..'"
    elif normalized.count('[') != normalized.count(']'):
        problem = 'unbalanced character class'
    if problem:
        raise WorkspaceError(
            E.WORKSPACE_INVALID_GLOB,
            f'Invalid workspace pattern {pattern!r}: {problem}',
            hint='Workspace patterns must be relative globs such as "packages/*".',
        )


def glob_safe(root: Path, pattern: str) -> list[Path]:
    """Expand a single glob pattern relative to ``root``.

    Raises:
        WorkspaceError: ``WR-WORKSPACE-INVALID-GLOB`` if the pattern is
            rejected by :func:`validate_pattern` or by ``pathlib``.
    """
    validate_pattern(pattern)
    normalized = _normalize(pattern)
    if normalized in ('', '.'):
        return [root]
    try:
        matches = list(root.glob(normalized))
    except (ValueError, NotImplementedError) as exc:
        raise WorkspaceError(
            E.WORKSPACE_INVALID_GLOB,
            f'Invalid workspace pattern {pattern!r}: {exc}',
            hint='Workspace patterns must be relative globs such as "packages/*".',
        ) from exc
    return sorted(p for p in matches if not _IGNORED_DIRS.intersection(p.relative_to(root).parts))


def expand_workspace_globs(root: Path, patterns: list[str]) -> list[Path]:
    """Expand ``workspaces`` patterns to member directories.

    Args:
        root: Workspace root (resolved).
        patterns: Patterns from the root manifest, ``!`` prefix for excludes.

    Returns:
        Sorted, resolved directories that contain a ``package.json``.
    """
    include, exclude = split_patterns(patterns)

    found: set[Path] = set()
    for pattern in include:
        for candidate in glob_safe(root, pattern):
            if candidate.is_dir() and (candidate / MANIFEST_NAME).is_file():
                found.add(candidate.resolve())

    excluded: set[Path] = set()
    for pattern in exclude:
        for candidate in glob_safe(root, pattern):
            excluded.add(candidate.resolve())

    result = sorted(found - excluded)
    log.debug('expanded_member_globs', include=include, exclude=exclude, count=len(result))
    return result


def match_name(pattern: str, name: str) -> bool:
    """Match a package name against a shell-style pattern (``@scope/*``)."""
    return fnmatch.fnmatchcase(name, pattern)


def is_glob(text: str) -> bool:
    """Whether ``text`` contains glob metacharacters."""
    return any(ch in text for ch in '*?[')


__all__ = [
    'expand_workspace_globs',
    'glob_safe',
    'is_glob',
    'match_name',
    'split_patterns',
    'validate_pattern',
]
