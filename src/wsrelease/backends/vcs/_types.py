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

"""Value types returned by :class:`~wsrelease.backends.vcs.GitPort`."""

from __future__ import annotations

from dataclasses import dataclass

ADDED = 'added'
MODIFIED = 'modified'
DELETED = 'deleted'


@dataclass(frozen=True)
class FileDiff:
    """One changed file.

    Attributes:
        path: Repository-relative POSIX path.
        status: ``added``, ``modified`` or ``deleted``.
        lines_added: Inserted lines (0 for binary files).
        lines_deleted: Removed lines (0 for binary files).
    """

    path: str
    status: str
    lines_added: int = 0
    lines_deleted: int = 0


@dataclass(frozen=True)
class CommitInfo:
    """One commit in a range.

    Attributes:
        sha: Full commit SHA.
        author: Author name.
        date: Author date, ISO-8601.
        subject: First line of the message.
        files: Repository-relative paths touched by the commit.
    """

    sha: str
    author: str = ''
    date: str = ''
    subject: str = ''
    files: tuple[str, ...] = ()


__all__ = [
    'ADDED',
    'DELETED',
    'MODIFIED',
    'CommitInfo',
    'FileDiff',
]
