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

"""Run snapshots under ``<root>/.workspace-backups/<run-id>/``.

Every mutating run first copies each file it will touch into its own
run directory, records the originals in ``backup.json`` and drops a
``pending.json`` marker. The marker is removed only after the run
finished cleanly, so its presence on startup means "interrupted
mutation; rollback required".

Layout::

    .workspace-backups/
      .lock
      20261019T120000Z-3f2a9c/
        backup.json          # manifest of originals (always)
        pending.json         # present ⇢ crash recovery needed
        packages/core/package.json
        .changesets/add-feature.yaml

A run directory without ``pending.json`` is a retained backup of a
successful run; ``upgrade rollback`` can restore it later.
"""

from __future__ import annotations

import json
import os
import shutil
import socket
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from wsrelease._io import fsync_dir, sha256_file, write_atomic
from wsrelease.errors import E, IoError, LockError, RollbackError
from wsrelease.lock import is_process_alive
from wsrelease.logging import get_logger

logger = get_logger(__name__)

PENDING_MARKER = 'pending.json'
BACKUP_MANIFEST = 'backup.json'


def new_run_id(moment: datetime | None = None) -> str:
    """Return a sortable run id: ``<UTC timestamp>-<6 hex chars>``."""
    moment = moment or datetime.now(timezone.utc)
    return f'{moment.strftime("%Y%m%dT%H%M%SZ")}-{uuid.uuid4().hex[:6]}'


@dataclass(frozen=True)
class BackupFile:
    """One snapshotted file.

    Attributes:
        path: Path relative to the workspace root (POSIX separators).
        existed: Whether the file existed before the run. Files that did
            not are deleted on rollback.
        sha256: Hash of the original content (``''`` when it did not exist).
    """

    path: str
    existed: bool
    sha256: str = ''


@dataclass
class BackupRecord:
    """A run directory and its manifest of originals."""

    run_id: str
    directory: Path
    operation: str = 'version'
    created_at: str = ''
    pid: int = 0
    hostname: str = ''
    files: list[BackupFile] = field(default_factory=list)
    directories: list[str] = field(default_factory=list)
    pending: bool = False

    def to_dict(self) -> dict[str, object]:
        """Return the JSON document stored in ``backup.json``/``pending.json``."""
        return {
            'run_id': self.run_id,
            'operation': self.operation,
            'created_at': self.created_at,
            'pid': self.pid,
            'hostname': self.hostname,
            'files': [{'path': f.path, 'existed': f.existed, 'sha256': f.sha256} for f in self.files],
            'directories': list(self.directories),
        }

    @classmethod
    def from_dict(cls, directory: Path, data: dict[str, object], *, pending: bool) -> BackupRecord:
        """Rebuild a record from its JSON document."""
        raw_files = data.get('files')
        raw_dirs = data.get('directories')
        files = [
            BackupFile(path=str(f['path']), existed=bool(f['existed']), sha256=str(f.get('sha256', '')))
            for f in (raw_files if isinstance(raw_files, list) else [])
            if isinstance(f, dict)
        ]
        return cls(
            run_id=str(data.get('run_id', directory.name)),
            directory=directory,
            operation=str(data.get('operation', '')),
            created_at=str(data.get('created_at', '')),
            pid=int(str(data.get('pid') or 0)),
            hostname=str(data.get('hostname', '')),
            files=files,
            directories=[str(d) for d in raw_dirs] if isinstance(raw_dirs, list) else [],
            pending=pending,
        )


def _relative(root: Path, path: Path) -> str:
    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        raise IoError(
            E.IO_WRITE_FAILED,
            f'Refusing to touch {path}: it is outside the workspace root {root}',
            paths=[path],
        ) from None


def _missing_parents(root: Path, path: Path) -> list[str]:
    """Ancestors of ``path`` below ``root`` that do not exist yet, relative."""
    missing: list[str] = []
    parent = path.parent
    while parent != root and not parent.exists():
        missing.append(_relative(root, parent))
        parent = parent.parent
    return missing


def snapshot(root: Path, backup_root: Path, paths: list[Path], *, operation: str, run_id: str = '') -> BackupRecord:
    """Phase 1: copy every file in ``paths`` and mark the run pending.

    Args:
        root: Workspace root.
        backup_root: The backup directory (``<root>/.workspace-backups``).
        paths: Absolute paths the run will modify, create or delete.
        operation: ``version`` or ``upgrade``.
        run_id: Optional explicit run id.

    Returns:
        The pending :class:`BackupRecord`.

    Raises:
        IoError: If a copy, manifest write or fsync fails. The partial
            run directory is removed.
    """
    run_id = run_id or new_run_id()
    run_dir = backup_root / run_id
    record = BackupRecord(
        run_id=run_id,
        directory=run_dir,
        operation=operation,
        created_at=datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ'),
        pid=os.getpid(),
        hostname=socket.gethostname(),
        pending=True,
    )
    try:
        run_dir.mkdir(parents=True, exist_ok=False)
    except OSError as exc:
        raise IoError(E.IO_WRITE_FAILED, f'Failed to create {run_dir}: {exc}', paths=[run_dir]) from exc
    try:
        for path in sorted(set(paths)):
            rel = _relative(root, path)
            if path.exists():
                dest = run_dir / rel
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(path, dest)
                record.files.append(BackupFile(path=rel, existed=True, sha256=sha256_file(path)))
            else:
                record.files.append(BackupFile(path=rel, existed=False))
                for directory in _missing_parents(root, path):
                    if directory not in record.directories:
                        record.directories.append(directory)
        document = json.dumps(record.to_dict(), indent=2) + '\n'
        write_atomic(run_dir / BACKUP_MANIFEST, document)
        write_atomic(run_dir / PENDING_MARKER, document)
        fsync_dir(run_dir)
        fsync_dir(backup_root)
    except OSError as exc:
        shutil.rmtree(run_dir, ignore_errors=True)
        raise IoError(
            E.IO_WRITE_FAILED,
            f'Failed to snapshot files into {run_dir}: {exc}',
            hint='Check free disk space and permissions for the backup directory.',
            paths=[run_dir],
        ) from exc
    except BaseException:
        shutil.rmtree(run_dir, ignore_errors=True)
        raise
    logger.info('snapshot_written', run_id=run_id, files=len(record.files), directory=str(run_dir))
    return record


def restore(root: Path, record: BackupRecord) -> None:
    """Put every file in ``record`` back the way it was.

    Existing files are restored byte for byte after checking the backup
    copy against the recorded SHA-256; files that did not exist are
    deleted, along with any directory the run created that is empty
    again. Every file is attempted before any failure is reported.

    Raises:
        RollbackError: If any file could not be restored.
    """
    failures: list[str] = []
    failed_paths: list[Path] = []
    for entry in sorted(record.files, key=lambda f: f.path, reverse=True):
        target = root / entry.path
        try:
            if entry.existed:
                copy = record.directory / entry.path
                if sha256_file(copy) != entry.sha256:
                    logger.error('restore_hash_mismatch', path=str(target), backup=str(copy))
                    failures.append(f'{entry.path}: backup copy does not match its recorded SHA-256')
                    failed_paths.append(target)
                    continue
                write_atomic(target, copy.read_bytes())
                shutil.copystat(copy, target)
            else:
                target.unlink(missing_ok=True)
        except (OSError, IoError) as exc:
            logger.error('restore_failed', path=str(target), error=str(exc))
            failures.append(f'{entry.path}: {exc}')
            failed_paths.append(target)
    # Deepest first; a directory that gained other files is left alone.
    for rel in sorted(record.directories, key=lambda d: d.count('/'), reverse=True):
        directory = root / rel
        try:
            directory.rmdir()
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.debug('created_dir_kept', path=str(directory), error=str(exc))
    if failures:
        raise RollbackError(
            E.ROLLBACK_FAILED,
            f'Failed to restore {len(failures)} file(s) from backup {record.run_id}',
            hint=f"The originals are still in '{record.directory}'. Copy them back by hand.",
            paths=failed_paths,
            details=failures,
        )
    logger.info('backup_restored', run_id=record.run_id, files=len(record.files))


def mark_complete(record: BackupRecord, *, keep: bool) -> None:
    """Finish a successful run: drop the marker, then the snapshot unless kept."""
    marker = record.directory / PENDING_MARKER
    try:
        marker.unlink(missing_ok=True)
        fsync_dir(record.directory)
    except OSError as exc:
        raise IoError(E.IO_WRITE_FAILED, f'Failed to remove {marker}: {exc}', paths=[marker]) from exc
    record.pending = False
    if keep:
        logger.info('backup_retained', run_id=record.run_id, directory=str(record.directory))
    else:
        shutil.rmtree(record.directory, ignore_errors=True)
        logger.debug('backup_removed', run_id=record.run_id)


def discard(record: BackupRecord) -> None:
    """Remove a run directory after it was rolled back."""
    shutil.rmtree(record.directory, ignore_errors=True)


def _load_record(run_dir: Path) -> BackupRecord | None:
    pending = (run_dir / PENDING_MARKER).is_file()
    source = run_dir / PENDING_MARKER if pending else run_dir / BACKUP_MANIFEST
    if not source.is_file():
        return None
    try:
        data = json.loads(source.read_text(encoding='utf-8'))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning('backup_manifest_unreadable', path=str(source), error=str(exc))
        return None
    if not isinstance(data, dict):
        return None
    return BackupRecord.from_dict(run_dir, data, pending=pending)


def _run_dirs(backup_root: Path) -> list[Path]:
    if not backup_root.is_dir():
        return []
    return sorted(p for p in backup_root.iterdir() if p.is_dir())


def find_pending_runs(backup_root: Path) -> list[BackupRecord]:
    """Every run whose ``pending.json`` is still present, oldest first."""
    records = [_load_record(d) for d in _run_dirs(backup_root)]
    return [r for r in records if r is not None and r.pending]


def list_backups(backup_root: Path) -> list[BackupRecord]:
    """Retained backups of successful runs, oldest first."""
    records = [_load_record(d) for d in _run_dirs(backup_root)]
    return [r for r in records if r is not None and not r.pending]


def owned_by_live_process(record: BackupRecord) -> bool:
    """Whether another live process on this host is still running ``record``."""
    if record.pid == os.getpid():
        return False
    return record.hostname == socket.gethostname() and is_process_alive(record.pid)


def ensure_no_active_run(backup_root: Path) -> list[BackupRecord]:
    """Return the interrupted runs, refusing if one is still in progress.

    Raises:
        LockError: ``WR-LOCK-PENDING-RUN`` if a pending run belongs to a
            live process.
    """
    pending = find_pending_runs(backup_root)
    for record in pending:
        if owned_by_live_process(record):
            raise LockError(
                E.LOCK_PENDING_RUN,
                f'Run {record.run_id} (PID {record.pid}) is still in progress',
                hint='Wait for the other run to finish before starting a new one.',
                paths=[record.directory / PENDING_MARKER],
            )
    return pending


def recover(root: Path, backup_root: Path) -> list[str]:
    """Roll back every interrupted run, newest first.

    Returns:
        The run ids that were restored.
    """
    restored: list[str] = []
    for record in reversed(ensure_no_active_run(backup_root)):
        logger.warning('recovering_interrupted_run', run_id=record.run_id, operation=record.operation)
        restore(root, record)
        discard(record)
        restored.append(record.run_id)
    return restored


def rollback_backup(root: Path, backup_root: Path, backup_id: str | None = None) -> BackupRecord:
    """Restore a retained backup (the newest when ``backup_id`` is None).

    Raises:
        RollbackError: ``WR-ROLLBACK-BACKUP-NOT-FOUND`` if there is no such
            backup, or ``WR-ROLLBACK-FAILED`` if restoring fails.
    """
    backups = list_backups(backup_root)
    if backup_id is None:
        record = backups[-1] if backups else None
    else:
        record = next((b for b in backups if b.run_id == backup_id), None)
    if record is None:
        raise RollbackError(
            E.BACKUP_NOT_FOUND,
            f'No retained backup {backup_id!r}' if backup_id else 'No retained backups',
            hint="List backups with 'wsrelease upgrade backups'.",
            paths=[backup_root],
        )
    restore(root, record)
    discard(record)
    return record


def evict_backups(backup_root: Path, max_backups: int) -> list[str]:
    """Delete retained backups beyond ``max_backups``, oldest first."""
    backups = list_backups(backup_root)
    excess = len(backups) - max(max_backups, 0)
    evicted: list[str] = []
    for record in backups[: max(excess, 0)]:
        shutil.rmtree(record.directory, ignore_errors=True)
        evicted.append(record.run_id)
    if evicted:
        logger.info('backups_evicted', run_ids=evicted)
    return evicted


def backup_age(record: BackupRecord) -> float:
    """Seconds since ``record`` was created (0 when unknown)."""
    try:
        created = datetime.strptime(record.created_at, '%Y-%m-%dT%H:%M:%SZ').replace(tzinfo=timezone.utc)
    except ValueError:
        return 0.0
    return max(time.time() - created.timestamp(), 0.0)


__all__ = [
    'BACKUP_MANIFEST',
    'PENDING_MARKER',
    'BackupFile',
    'BackupRecord',
    'backup_age',
    'discard',
    'ensure_no_active_run',
    'evict_backups',
    'find_pending_runs',
    'list_backups',
    'mark_complete',
    'new_run_id',
    'owned_by_live_process',
    'recover',
    'restore',
    'rollback_backup',
    'snapshot',
]
