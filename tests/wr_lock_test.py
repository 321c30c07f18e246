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


"""Tests for wsrelease.lock module."""

from __future__ import annotations

import json
import os
import socket
import time
from pathlib import Path

import pytest
from wsrelease.errors import E, LockError
from wsrelease.lock import (
    LOCK_FILENAME,
    LockInfo,
    acquire_lock,
    check_shared,
    exclusive_lock,
    is_stale,
    read_lock,
    release_lock_file,
    shared_lock,
)

# PID 0 is never a live user process.
_DEAD_PID = 0


def _write_lock(backup_root: Path, *, pid: int, hostname: str | None = None, age: float = 0.0) -> Path:
    backup_root.mkdir(parents=True, exist_ok=True)
    path = backup_root / LOCK_FILENAME
    data = {'pid': pid, 'hostname': hostname or socket.gethostname(), 'timestamp': time.time() - age, 'user': 'ci'}
    path.write_text(json.dumps(data), encoding='utf-8')
    return path


class TestAcquireLock:
    """Tests for acquire_lock and release_lock_file."""

    def test_lock_and_release(self, tmp_path: Path) -> None:
        """Acquire creates the lock file; release removes it."""
        lock_path = acquire_lock(tmp_path / '.workspace-backups')
        if lock_path.name != LOCK_FILENAME:
            raise AssertionError(f'Wrong filename: {lock_path.name}')
        info = read_lock(lock_path)
        if info is None or info.pid != os.getpid():
            raise AssertionError(f'Unexpected lock contents: {info}')
        release_lock_file(lock_path)
        if lock_path.exists():
            raise AssertionError('Lock file not removed')

    def test_second_acquire_fails(self, tmp_path: Path) -> None:
        """The lock is not re-entrant."""
        lock_path = acquire_lock(tmp_path)
        try:
            with pytest.raises(LockError) as exc_info:
                acquire_lock(tmp_path)
            if exc_info.value.code != E.LOCK_HELD:
                raise AssertionError(f'Wrong code: {exc_info.value.code}')
        finally:
            release_lock_file(lock_path)

    def test_live_holder_blocks(self, tmp_path: Path) -> None:
        """A lock held by another live process is respected."""
        _write_lock(tmp_path, pid=os.getppid())
        with pytest.raises(LockError):
            acquire_lock(tmp_path)

    def test_dead_holder_is_stale(self, tmp_path: Path) -> None:
        """A lock whose process is gone is removed and re-acquired."""
        _write_lock(tmp_path, pid=_DEAD_PID)
        lock_path = acquire_lock(tmp_path)
        info = read_lock(lock_path)
        if info is None or info.pid != os.getpid():
            raise AssertionError('Stale lock was not replaced')
        release_lock_file(lock_path)

    def test_old_lock_is_stale(self, tmp_path: Path) -> None:
        """A lock older than the timeout is stale even on another host."""
        _write_lock(tmp_path, pid=12345, hostname='elsewhere', age=10.0)
        lock_path = acquire_lock(tmp_path, stale_timeout=5.0)
        release_lock_file(lock_path)

    def test_corrupt_lock_replaced(self, tmp_path: Path) -> None:
        """An unreadable lock file is replaced."""
        (tmp_path / LOCK_FILENAME).write_text('not json', encoding='utf-8')
        lock_path = acquire_lock(tmp_path)
        release_lock_file(lock_path)

    def test_release_keeps_foreign_lock(self, tmp_path: Path) -> None:
        """Release never deletes another process's lock."""
        path = _write_lock(tmp_path, pid=os.getppid())
        release_lock_file(path)
        if not path.exists():
            raise AssertionError('Foreign lock was removed')


class TestIsStale:
    """Tests for is_stale."""

    def test_remote_recent_lock(self) -> None:
        """A recent lock from another host is not stale."""
        info = LockInfo(pid=1, hostname='elsewhere', timestamp=time.time())
        if is_stale(info):
            raise AssertionError('Recent remote lock reported stale')


class TestContextManagers:
    """Tests for exclusive_lock and shared_lock."""

    def test_exclusive_released_on_error(self, tmp_path: Path) -> None:
        """The lock is released when the block raises."""
        with pytest.raises(RuntimeError):
            with exclusive_lock(tmp_path):
                raise RuntimeError('boom')
        if (tmp_path / LOCK_FILENAME).exists():
            raise AssertionError('Lock leaked')

    def test_shared_creates_nothing(self, tmp_path: Path) -> None:
        """Readers never create the lock file or the directory."""
        backup_root = tmp_path / '.workspace-backups'
        with shared_lock(backup_root):
            pass
        if backup_root.exists():
            raise AssertionError('Shared lock created the backup directory')

    def test_shared_refuses_live_writer(self, tmp_path: Path) -> None:
        """Readers fail while a live writer holds the lock."""
        _write_lock(tmp_path, pid=os.getppid())
        with pytest.raises(LockError):
            check_shared(tmp_path)

    def test_shared_inside_own_exclusive(self, tmp_path: Path) -> None:
        """The holder itself may read."""
        with exclusive_lock(tmp_path):
            check_shared(tmp_path)
