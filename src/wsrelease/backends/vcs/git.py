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

"""Git backend for wsrelease.

The :class:`GitCLIBackend` implements the :class:`GitPort` protocol by
delegating to ``git`` via :func:`run_command`.

All methods are async: blocking subprocess calls are dispatched to
``asyncio.to_thread()`` to avoid blocking the event loop.

Renames are reported as a deletion plus an addition (``--no-renames``)
so that each side is attributed to its own member. Path listings are
read NUL-separated (``-z``) and git runs with ``core.quotePath=false``,
so non-ASCII file names come back verbatim.
"""

from __future__ import annotations

import asyncio
import subprocess  # noqa: S404 - only for TimeoutExpired
from pathlib import Path

from wsrelease.backends._run import DEFAULT_TIMEOUT_SECONDS, CommandResult, run_command
from wsrelease.backends.vcs._types import ADDED, DELETED, MODIFIED, CommitInfo, FileDiff
from wsrelease.errors import E, IoError
from wsrelease.logging import get_logger

log = get_logger('wsrelease.backends.git')

_STATUS = {'A': ADDED, 'M': MODIFIED, 'D': DELETED, 'T': MODIFIED, 'C': ADDED}
_RECORD_SEP = '\x1e'
_FIELD_SEP = '\x1f'


def _parse_numstat(text: str) -> dict[str, tuple[int, int]]:
    """Parse ``git diff -z --numstat`` output into ``{path: (added, deleted)}``."""
    stats: dict[str, tuple[int, int]] = {}
    tokens = text.split('\0')
    i = 0
    while i < len(tokens):
        parts = tokens[i].lstrip('\n').split('\t', 2)
        i += 1
        if len(parts) != 3:
            continue
        added, deleted, path = parts
        if not path:
            # Rename records carry the old and new paths as the next two tokens.
            if i + 1 >= len(tokens):
                break
            path = tokens[i + 1]
            i += 2
        # Binary files report '-' for both counts.
        stats[path] = (int(added) if added.isdigit() else 0, int(deleted) if deleted.isdigit() else 0)
    return stats


def _parse_name_status(text: str) -> dict[str, str]:
    """Parse ``git diff -z --name-status`` output into ``{path: status}``."""
    statuses: dict[str, str] = {}
    tokens = text.split('\0')
    i = 0
    while i < len(tokens):
        code = tokens[i].strip()
        if not code:
            i += 1
            continue
        if code[:1] in ('R', 'C') and i + 2 < len(tokens):
            statuses[tokens[i + 2]] = ADDED
            i += 3
            continue
        if i + 1 >= len(tokens):
            break
        statuses[tokens[i + 1]] = _STATUS.get(code[:1], MODIFIED)
        i += 2
    return statuses


def _merge_diffs(statuses: dict[str, str], stats: dict[str, tuple[int, int]]) -> list[FileDiff]:
    result = []
    for path in sorted(statuses):
        added, deleted = stats.get(path, (0, 0))
        result.append(FileDiff(path=path, status=statuses[path], lines_added=added, lines_deleted=deleted))
    return result


def _count_lines(path: Path) -> int:
    try:
        with path.open('rb') as fh:
            return sum(1 for _ in fh)
    except OSError:
        return 0


class GitCLIBackend:
    """Default :class:`~wsrelease.backends.vcs.GitPort` implementation using ``git``.

    Args:
        repo_root: Any directory inside the repository (usually the
            workspace root).
        timeout: Seconds before a single git invocation is abandoned.
    """

    def __init__(self, repo_root: Path, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        """Initialize with the repository path."""
        self._root = repo_root
        self._timeout = timeout

    def _git(self, *args: str) -> CommandResult:
        """Run a git command synchronously (called via to_thread)."""
        cmd = ['git', '-c', 'core.quotePath=false', *args]
        try:
            return run_command(cmd, cwd=self._root, timeout=self._timeout)
        except FileNotFoundError as exc:
            raise IoError(
                E.GIT_COMMAND_FAILED,
                'git executable not found',
                hint='Install git and make sure it is on PATH.',
                paths=[self._root],
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise IoError(
                E.GIT_COMMAND_FAILED,
                f"'git {' '.join(args)}' timed out after {self._timeout:g}s",
                hint='Check for a stuck git process or a held index.lock.',
                paths=[self._root],
            ) from exc

    async def _checked(self, *args: str) -> CommandResult:
        result = await asyncio.to_thread(self._git, *args)
        if not result.ok:
            raise IoError(
                E.GIT_COMMAND_FAILED,
                f"'{result.command_str}' exited with {result.return_code}: {result.stderr.strip()[:200]}",
                hint='Check that the refs exist and that the directory is a git work tree.',
                paths=[self._root],
            )
        return result

    async def toplevel(self) -> Path:
        """Return the absolute repository root."""
        result = await self._checked('rev-parse', '--show-toplevel')
        return Path(result.stdout.strip()).resolve()

    async def current_branch(self) -> str:
        """Return the checked-out branch name (``HEAD`` when detached)."""
        result = await self._checked('rev-parse', '--abbrev-ref', 'HEAD')
        return result.stdout.strip()

    async def current_sha(self) -> str:
        """Return the current HEAD commit SHA."""
        result = await self._checked('rev-parse', 'HEAD')
        return result.stdout.strip()

    async def diff(self, base: str, head: str = 'HEAD', *, merge_base: bool = False) -> list[FileDiff]:
        """Return files changed between two revisions.

        Args:
            base: Base revision.
            head: Head revision.
            merge_base: Compare against the merge base (``base...head``).
        """
        rev = f'{base}...{head}' if merge_base else f'{base}..{head}'
        names = await self._checked('diff', '-z', '--no-renames', '--name-status', rev)
        numstat = await self._checked('diff', '-z', '--no-renames', '--numstat', rev)
        return _merge_diffs(_parse_name_status(names.stdout), _parse_numstat(numstat.stdout))

    async def working_tree_diff(self, *, staged: bool = True, unstaged: bool = True) -> list[FileDiff]:
        """Return uncommitted changes relative to ``HEAD``.

        Untracked files count as unstaged additions.
        """
        statuses: dict[str, str] = {}
        stats: dict[str, tuple[int, int]] = {}

        def _fold(names: str, numstat: str) -> None:
            for path, status in _parse_name_status(names).items():
                statuses.setdefault(path, status)
            for path, (added, deleted) in _parse_numstat(numstat).items():
                prev = stats.get(path, (0, 0))
                stats[path] = (prev[0] + added, prev[1] + deleted)

        if staged:
            names = await self._checked('diff', '--cached', '-z', '--no-renames', '--name-status')
            numstat = await self._checked('diff', '--cached', '-z', '--no-renames', '--numstat')
            _fold(names.stdout, numstat.stdout)
        if unstaged:
            names = await self._checked('diff', '-z', '--no-renames', '--name-status')
            numstat = await self._checked('diff', '-z', '--no-renames', '--numstat')
            _fold(names.stdout, numstat.stdout)
            untracked = await self._checked('ls-files', '-z', '--others', '--exclude-standard')
            top = await self.toplevel()
            for path in untracked.stdout.split('\0'):
                if path and path not in statuses:
                    statuses[path] = ADDED
                    stats[path] = (await asyncio.to_thread(_count_lines, top / path), 0)
        return _merge_diffs(statuses, stats)

    async def commits(
        self,
        base: str,
        head: str = 'HEAD',
        *,
        merge_base: bool = False,
        paths: list[str] | None = None,
    ) -> list[CommitInfo]:
        """Return commits reachable from ``head`` but not ``base``, newest first."""
        rev = f'{base}...{head}' if merge_base else f'{base}..{head}'
        fmt = f'{_RECORD_SEP}%H{_FIELD_SEP}%an{_FIELD_SEP}%aI{_FIELD_SEP}%s'
        args = ['log', '--no-renames', '--name-only', f'--pretty=format:{fmt}', rev]
        if paths:
            args.extend(['--', *paths])
        result = await self._checked(*args)
        commits: list[CommitInfo] = []
        for record in result.stdout.split(_RECORD_SEP):
            if not record.strip():
                continue
            header, _, rest = record.partition('\n')
            fields = header.split(_FIELD_SEP)
            fields += [''] * (4 - len(fields))
            files = tuple(line for line in rest.splitlines() if line.strip())
            commits.append(CommitInfo(sha=fields[0], author=fields[1], date=fields[2], subject=fields[3], files=files))
        return commits

    async def commit(self, message: str, *, paths: list[str] | None = None) -> CommandResult:
        """Create a commit, staging specified paths first."""
        if paths:
            await self._checked('add', '--', *paths)
        else:
            await self._checked('add', '-A')
        log.info('commit', message=message[:80])
        return await self._checked('commit', '-m', message)

    async def tag(self, tag_name: str, *, message: str | None = None) -> CommandResult:
        """Create an annotated tag."""
        log.info('tag', tag=tag_name)
        return await self._checked('tag', '-a', tag_name, '-m', message or tag_name)

    async def tag_exists(self, tag_name: str) -> bool:
        """Return ``True`` if the tag exists."""
        result = await asyncio.to_thread(self._git, 'tag', '-l', tag_name)
        return result.stdout.strip() == tag_name


__all__ = [
    'GitCLIBackend',
]
