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

"""Shared file I/O helpers.

Reads go through ``aiofiles`` so that manifest and changeset fan-out does
not block the event loop. Writes that must survive a crash go through
:func:`write_atomic` (temp file in the same directory, fsync, then
``os.replace``). Every ``OSError`` is re-raised as
:class:`~wsrelease.errors.IoError` annotated with the absolute path.
"""

from __future__ import annotations

import hashlib
import os
import tempfile
from pathlib import Path

import aiofiles

from wsrelease.errors import E, IoError


async def read_file(path: Path) -> str:
    """Read a UTF-8 text file asynchronously via aiofiles."""
    try:
        async with aiofiles.open(path, encoding='utf-8') as f:
            return await f.read()
    except OSError as exc:
        raise IoError(
            E.IO_READ_FAILED,
            f'Failed to read {path}: {exc}',
            hint=f'Check that {path} exists and is readable.',
            paths=[path],
        ) from exc


def write_atomic(path: Path, data: bytes | str, *, fsync: bool = True) -> None:
    """Atomically replace ``path`` with ``data``.

    The content is written to a temporary file in the same directory and
    renamed over the target, so readers see either the old or the new
    file, never a partial one.

    Args:
        path: Destination file. Parent directories are created.
        data: Content; ``str`` is encoded as UTF-8.
        fsync: Flush the temporary file to disk before the rename.

    Raises:
        IoError: If any step fails. The temporary file is removed.
    """
    payload = data.encode('utf-8') if isinstance(data, str) else data
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f'.{path.name}.', suffix='.tmp')
    except OSError as exc:
        raise IoError(
            E.IO_WRITE_FAILED,
            f'Failed to create a temporary file next to {path}: {exc}',
            hint=f'Check file permissions for {path.parent}.',
            paths=[path],
        ) from exc

    closed = False
    step = E.IO_WRITE_FAILED
    try:
        view = memoryview(payload)
        while view:
            view = view[os.write(fd, view) :]
        if fsync:
            step = E.IO_FSYNC_FAILED
            os.fsync(fd)
        os.close(fd)
        closed = True
        step = E.IO_RENAME_FAILED
        os.replace(tmp_path, path)
    except OSError as exc:
        if not closed:
            os.close(fd)
        Path(tmp_path).unlink(missing_ok=True)
        raise IoError(
            step,
            f'Failed to write {path}: {exc}',
            hint=f'Check free disk space and permissions for {path.parent}.',
            paths=[path],
        ) from exc
    except BaseException:
        if not closed:
            os.close(fd)
        Path(tmp_path).unlink(missing_ok=True)
        raise


def fsync_dir(path: Path) -> None:
    """Flush a directory entry to disk. No-op on Windows."""
    if os.name == 'nt':
        return
    try:
        fd = os.open(path, os.O_RDONLY)
    except OSError as exc:
        raise IoError(E.IO_FSYNC_FAILED, f'Failed to open {path}: {exc}', paths=[path]) from exc
    try:
        os.fsync(fd)
    except OSError as exc:
        raise IoError(E.IO_FSYNC_FAILED, f'Failed to fsync {path}: {exc}', paths=[path]) from exc
    finally:
        os.close(fd)


def sha256_file(path: Path) -> str:
    """Compute SHA-256 hash of a file's contents."""
    try:
        return hashlib.sha256(path.read_bytes()).hexdigest()
    except OSError as exc:
        raise IoError(E.IO_READ_FAILED, f'Failed to read {path}: {exc}', paths=[path]) from exc


__all__ = [
    'fsync_dir',
    'read_file',
    'sha256_file',
    'write_atomic',
]
