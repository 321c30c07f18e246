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

"""Advisory workspace lock.

Mutating commands (``version``, ``upgrade apply``, ``recover``...) hold
``<backup_dir>/.lock`` exclusively for their whole run. The file holds
the PID, hostname, timestamp and user of the holder. Read-only commands
(``changes``, ``audit``) take a *shared* lock: they refuse to start while
a live process holds the exclusive lock, but never create the file.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Exclusive lock      │ A sign on the door: "editing the workspace,   │
    │                     │ come back later".                              │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Shared lock         │ Reading is fine as long as nobody is editing. │
    │                     │ Readers only look at the sign.                │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Stale detection     │ If the holder's process is gone (same host)   │
    │                     │ or the sign is very old, we take it down.     │
    └─────────────────────┴────────────────────────────────────────────────┘

Usage::

    from wsrelease.lock import exclusive_lock, shared_lock

    with exclusive_lock(backup_root):
        ...  # safe to mutate the workspace
"""

from __future__ import annotations

import atexit
import json
import os
import socket
import time
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path

from wsrelease.errors import E, LockError
from wsrelease.logging import get_logger

logger = get_logger(__name__)

LOCK_FILENAME = '.lock'

# Default stale timeout: 2 hours.
DEFAULT_STALE_TIMEOUT: float = 7200.0


@dataclass(frozen=True)
class LockInfo:
    """Metadata stored in the lock file.

    Attributes:
        pid: Process ID that holds the lock.
        hostname: Machine hostname.
        timestamp: Unix timestamp when the lock was acquired.
        user: Username of the lock holder.
    """

    pid: int
    hostname: str
    timestamp: float
    user: str = ''


def lock_path_for(backup_root: Path) -> Path:
    """Return ``<backup_root>/.lock``."""
    return backup_root / LOCK_FILENAME


def read_lock(lock_path: Path) -> LockInfo | None:
    """Read and parse an existing lock file, returning None if absent/corrupt."""
    if not lock_path.exists():
        return None
    try:
        data = json.loads(lock_path.read_text(encoding='utf-8'))
        return LockInfo(
            pid=int(data['pid']),
            hostname=str(data['hostname']),
            timestamp=float(data['timestamp']),
            user=str(data.get('user', '')),
        )
    except (OSError, json.JSONDecodeError, KeyError, ValueError, TypeError):
        logger.warning('lock_file_corrupt', path=str(lock_path))
        return None


def is_process_alive(pid: int) -> bool:
    """Return True if a process with the given PID exists on this host."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Process exists but we lack permission to signal it.
        return True
    except OSError:
        return False
    return True


def is_stale(info: LockInfo, stale_timeout: float = DEFAULT_STALE_TIMEOUT) -> bool:
    """Return True if the holder is gone (same host) or the lock is too old."""
    if time.time() - info.timestamp > stale_timeout:
        return True
    return info.hostname == socket.gethostname() and not is_process_alive(info.pid)


def _held_error(lock_path: Path, info: LockInfo | None) -> LockError:
    pid = info.pid if info else '?'
    host = info.hostname if info else '?'
    user = info.user if info else ''
    return LockError(
        E.LOCK_HELD,
        f'Workspace lock held by PID {pid} on {host} (user={user!r})',
        hint=f"Wait for it to finish. If the process is no longer running, delete '{lock_path}'.",
        paths=[lock_path],
    )


def acquire_lock(backup_root: Path, *, stale_timeout: float = DEFAULT_STALE_TIMEOUT) -> Path:
    """Acquire the exclusive workspace lock.

    Args:
        backup_root: The backup directory (created if missing).
        stale_timeout: Seconds after which a lock is considered stale.

    Returns:
        Path to the lock file.

    Raises:
        LockError: ``WR-LOCK-HELD`` if another live process holds the
            lock, ``WR-LOCK-ACQUISITION-FAILED`` if it cannot be written.
    """
    lock_path = lock_path_for(backup_root)
    existing = read_lock(lock_path)
    if existing is not None:
        if existing.pid == os.getpid() and existing.hostname == socket.gethostname():
            raise _held_error(lock_path, existing)
        if not is_stale(existing, stale_timeout):
            raise _held_error(lock_path, existing)
        logger.warning('stale_lock_removed', path=str(lock_path), pid=existing.pid, hostname=existing.hostname)
        lock_path.unlink(missing_ok=True)
    elif lock_path.exists():
        logger.warning('corrupt_lock_removed', path=str(lock_path))
        lock_path.unlink(missing_ok=True)

    info = LockInfo(
        pid=os.getpid(),
        hostname=socket.gethostname(),
        timestamp=time.time(),
        user=os.environ.get('USER', os.environ.get('USERNAME', '')),
    )
    content = json.dumps(asdict(info), indent=2) + '\n'
    try:
        backup_root.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(lock_path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError:
        raise _held_error(lock_path, read_lock(lock_path)) from None
    except OSError as exc:
        raise LockError(
            E.LOCK_ACQUISITION_FAILED,
            f'Failed to write lock file: {exc}',
            hint='Check file permissions on the backup directory.',
            paths=[lock_path],
        ) from exc
    try:
        os.write(fd, content.encode('utf-8'))
    except BaseException:
        os.close(fd)
        lock_path.unlink(missing_ok=True)
        raise
    os.close(fd)

    logger.info('lock_acquired', path=str(lock_path), pid=info.pid)
    atexit.register(_atexit_cleanup, lock_path, info.pid)
    return lock_path


def release_lock_file(lock_path: Path) -> None:
    """Remove the lock file if this process owns it. Safe to call twice."""
    existing = read_lock(lock_path)
    if existing is not None and existing.pid != os.getpid():
        logger.warning('lock_owned_by_other', path=str(lock_path), owner_pid=existing.pid, current_pid=os.getpid())
        return
    lock_path.unlink(missing_ok=True)
    logger.info('lock_released', path=str(lock_path))


def _atexit_cleanup(lock_path: Path, owner_pid: int) -> None:
    """Atexit handler that removes the lock if we still own it."""
    if os.getpid() != owner_pid:
        return
    existing = read_lock(lock_path)
    if existing is not None and existing.pid == owner_pid:
        lock_path.unlink(missing_ok=True)


def check_shared(backup_root: Path, *, stale_timeout: float = DEFAULT_STALE_TIMEOUT) -> None:
    """Refuse to read while another live process holds the exclusive lock.

    Raises:
        LockError: ``WR-LOCK-HELD``.
    """
    lock_path = lock_path_for(backup_root)
    existing = read_lock(lock_path)
    if existing is None or existing.pid == os.getpid():
        return
    if not is_stale(existing, stale_timeout):
        raise _held_error(lock_path, existing)


@contextmanager
def exclusive_lock(backup_root: Path, *, stale_timeout: float = DEFAULT_STALE_TIMEOUT) -> Generator[Path]:
    """Hold the exclusive workspace lock for the duration of the block."""
    lock_path = acquire_lock(backup_root, stale_timeout=stale_timeout)
    try:
        yield lock_path
    finally:
        release_lock_file(lock_path)


@contextmanager
def shared_lock(backup_root: Path, *, stale_timeout: float = DEFAULT_STALE_TIMEOUT) -> Generator[None]:
    """Read-only guard: checks for a live exclusive holder, creates nothing."""
    check_shared(backup_root, stale_timeout=stale_timeout)
    yield


__all__ = [
    'LOCK_FILENAME',
    'LockInfo',
    'acquire_lock',
    'check_shared',
    'exclusive_lock',
    'is_process_alive',
    'is_stale',
    'lock_path_for',
    'read_lock',
    'release_lock_file',
    'shared_lock',
]
