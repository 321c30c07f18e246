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

"""Git port for wsrelease.

The :class:`GitPort` protocol defines the version-control operations the
change detector and the ``version --tag`` flow need. The default
implementation is :class:`~wsrelease.backends.vcs.git.GitCLIBackend`;
tests substitute an in-memory fake.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from wsrelease.backends._run import CommandResult
from wsrelease.backends.vcs._types import ADDED, DELETED, MODIFIED, CommitInfo, FileDiff
from wsrelease.backends.vcs.git import GitCLIBackend as GitCLIBackend


@runtime_checkable
class GitPort(Protocol):
    """Protocol for git operations.

    All methods are async to avoid blocking the event loop when
    shelling out to ``git``.
    """

    async def toplevel(self) -> Path:
        """Return the absolute repository root."""
        ...

    async def current_branch(self) -> str:
        """Return the checked-out branch name."""
        ...

    async def current_sha(self) -> str:
        """Return the current HEAD commit SHA."""
        ...

    async def diff(self, base: str, head: str = 'HEAD', *, merge_base: bool = False) -> list[FileDiff]:
        """Return files changed between ``base`` and ``head``.

        Args:
            base: Base revision.
            head: Head revision.
            merge_base: Diff against the merge base (three-dot form).
        """
        ...

    async def working_tree_diff(self, *, staged: bool = True, unstaged: bool = True) -> list[FileDiff]:
        """Return uncommitted changes relative to ``HEAD``."""
        ...

    async def commits(
        self,
        base: str,
        head: str = 'HEAD',
        *,
        merge_base: bool = False,
        paths: list[str] | None = None,
    ) -> list[CommitInfo]:
        """Return commits in ``base..head`` (or ``base...head``)."""
        ...

    async def commit(self, message: str, *, paths: list[str] | None = None) -> CommandResult:
        """Stage ``paths`` and create a commit."""
        ...

    async def tag(self, tag_name: str, *, message: str | None = None) -> CommandResult:
        """Create an annotated tag."""
        ...


__all__ = [
    'ADDED',
    'DELETED',
    'MODIFIED',
    'CommitInfo',
    'FileDiff',
    'GitCLIBackend',
    'GitPort',
]
