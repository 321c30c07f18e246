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

"""Apply a :class:`~wsrelease.plan.Plan` as one atomic batch.

Either every manifest edit, changelog section, new file and changeset
move in the plan lands, or none of them does.

Protocol::

    validation gates ──► phase 1: snapshot ──► phase 2: mutate ──► done
         │                 copy originals        manifests          drop pending.json
         │                 backup.json           changelogs         drop (or keep) snapshot
         │                 pending.json          new files
         │                 fsync                 changeset archive
         │                                       post-validation
         ▼                                           │ any exception
      PlanError                                      ▼
                                             restore snapshot ──► re-raise
                                                     │ restore fails
                                                     ▼
                                               RollbackError

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Validation gates    │ Check the whole plan still fits the files on  │
    │                     │ disk before touching anything.                │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Snapshot            │ Photocopy every page before writing on it.    │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ pending.json        │ A sticky note: "I'm halfway through". If we   │
    │                     │ crash, the next run sees it and undoes us.    │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Rollback            │ Put the photocopies back. Ctrl-C counts too.  │
    └─────────────────────┴────────────────────────────────────────────────┘

Usage::

    applier = Applier(plan, backup_root=root / '.workspace-backups', history_path=store.history_path)
    result = await applier.execute()
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from wsrelease._io import read_file, write_atomic
from wsrelease.backups import BackupRecord, discard, evict_backups, mark_complete, restore, snapshot
from wsrelease.changelog import merge_changelog
from wsrelease.changesets import history_timestamp
from wsrelease.errors import E, ChangesetError, IoError, PlanError, ReleaseError, RollbackError
from wsrelease.logging import bind_run, get_logger
from wsrelease.manifest import Manifest, parse_manifest
from wsrelease.plan import VERSION_POINTER, ManifestEdit, Plan
from wsrelease.semver import Version

logger = get_logger(__name__)

# Called after every completed write with a step label and the file path.
WriteHook = Callable[[str, Path], None]


@dataclass
class ApplyResult:
    """Outcome of a successful apply.

    Attributes:
        run_id: Backup run id.
        manifests: Manifests rewritten, in application order.
        changelogs: Changelogs written.
        skipped_changelogs: Changelogs that already had the version heading.
        new_files: Files created.
        archived: History paths of archived changesets.
        backup_dir: The retained backup directory, if kept.
    """

    run_id: str = ''
    manifests: list[Path] = field(default_factory=list)
    changelogs: list[Path] = field(default_factory=list)
    skipped_changelogs: list[Path] = field(default_factory=list)
    new_files: list[Path] = field(default_factory=list)
    archived: list[Path] = field(default_factory=list)
    backup_dir: Path | None = None

    def to_dict(self, root: Path) -> dict[str, object]:
        """Return a JSON-serializable representation with root-relative paths."""

        def rel(paths: list[Path]) -> list[str]:
            return [_rel(root, p) for p in paths]

        return {
            'run_id': self.run_id,
            'manifests': rel(self.manifests),
            'changelogs': rel(self.changelogs),
            'skipped_changelogs': rel(self.skipped_changelogs),
            'new_files': rel(self.new_files),
            'archived': rel(self.archived),
            'backup_dir': _rel(root, self.backup_dir) if self.backup_dir else None,
        }


def _rel(root: Path, path: Path) -> str:
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def _group_edits(edits: list[ManifestEdit]) -> list[tuple[Path, list[ManifestEdit]]]:
    """Group edits per file in (path, pointer) order, dropping exact duplicates."""
    grouped: dict[Path, dict[str, ManifestEdit]] = {}
    for edit in sorted(edits, key=lambda e: e.sort_key):
        grouped.setdefault(edit.path, {}).setdefault(edit.pointer, edit)
    return [(path, list(by_pointer.values())) for path, by_pointer in sorted(grouped.items(), key=lambda i: str(i[0]))]


class Applier:
    """Executes one plan with snapshot and rollback.

    Args:
        plan: The plan to apply.
        backup_root: Directory holding run snapshots.
        history_path: Changeset history directory (needed when the plan
            archives changesets).
        keep_backup: Retain the snapshot after success.
        max_backups: Evict retained snapshots beyond this count.
        moment: Timestamp used for archive file names.
        on_write: Optional hook called after every completed write.
    """

    def __init__(
        self,
        plan: Plan,
        *,
        backup_root: Path,
        history_path: Path | None = None,
        keep_backup: bool = False,
        max_backups: int | None = None,
        moment: datetime | None = None,
        on_write: WriteHook | None = None,
    ) -> None:
        """Initialize the applier."""
        self._plan = plan
        self._backup_root = backup_root
        self._history_path = history_path
        self._keep_backup = keep_backup
        self._max_backups = max_backups
        self._moment = moment or datetime.now(timezone.utc)
        self._on_write = on_write
        self._record: BackupRecord | None = None

    @property
    def plan(self) -> Plan:
        """The plan being applied."""
        return self._plan

    @property
    def record(self) -> BackupRecord | None:
        """The snapshot taken by :meth:`prepare`, if any."""
        return self._record

    def archive_destination(self, source: Path) -> Path:
        """History path a pending changeset moves to."""
        if self._history_path is None:
            raise PlanError(
                E.PLAN_CONFLICTING_EDITS,
                'The plan archives changesets but no history directory was given',
                paths=[source],
            )
        return self._history_path / f'{history_timestamp(self._moment)}-{source.name}'

    def touched_files(self) -> list[Path]:
        """Every path phase 2 writes, creates, moves or deletes."""
        paths = set(self._plan.touched_files())
        paths.update(self.archive_destination(a.path) for a in self._plan.archived_changesets)
        return sorted(paths)

    def validate(self) -> None:
        """Run the validation gates without touching the filesystem.

        Raises:
            PlanError: If two edits disagree on one pointer, a version is
                not valid semver, or a file changed since planning.
            WorkspaceError: If a target manifest does not parse.
            IoError: If a target manifest cannot be read.
            ChangesetError: If a changeset to archive is gone.
        """
        problems: list[str] = []
        problem_paths: list[Path] = []
        code = E.PLAN_CONFLICTING_EDITS

        seen: dict[tuple[Path, str], ManifestEdit] = {}
        for edit in self._plan.manifest_edits:
            key = (edit.path, edit.pointer)
            other = seen.get(key)
            if other is not None and other.new != edit.new:
                problems.append(f'{edit.path} {edit.pointer}: {other.new!r} vs {edit.new!r}')
                problem_paths.append(edit.path)
            seen.setdefault(key, edit)
            if edit.pointer == VERSION_POINTER and not Version.is_valid(edit.new):
                code = E.PLAN_INVALID_VERSION if not problems else code
                problems.append(f'{edit.path}: {edit.new!r} is not a valid semver version')
                problem_paths.append(edit.path)
        for change in self._plan.version_changes:
            if not Version.is_valid(change.new):
                code = E.PLAN_INVALID_VERSION if not problems else code
                problems.append(f'{change.name}: {change.new!r} is not a valid semver version')
                problem_paths.append(change.manifest)
        if problems:
            raise PlanError(
                code,
                f'The plan failed validation ({len(problems)} problem(s))',
                hint='Re-run the command to compute a fresh plan.',
                paths=problem_paths,
                details=problems,
            )

        for path, edits in _group_edits(self._plan.manifest_edits):
            if not path.is_file():
                raise IoError(E.IO_READ_FAILED, f'Manifest {path} does not exist', paths=[path])
            try:
                text = path.read_text(encoding='utf-8')
            except OSError as exc:
                raise IoError(E.IO_READ_FAILED, f'Failed to read {path}: {exc}', paths=[path]) from exc
            manifest = parse_manifest(text, path)
            for edit in edits:
                current = manifest.get(edit.pointer)
                if current != edit.old:
                    problems.append(f'{path} {edit.pointer}: expected {edit.old!r}, found {current!r}')
                    problem_paths.append(path)
        if problems:
            raise PlanError(
                E.PLAN_CONFLICTING_EDITS,
                'Manifests changed since the plan was computed',
                hint='Re-run the command to compute a fresh plan.',
                paths=problem_paths,
                details=problems,
            )

        for new_file in self._plan.new_files:
            if new_file.path.exists():
                raise PlanError(
                    E.PLAN_CONFLICTING_EDITS,
                    f'{new_file.path} already exists',
                    paths=[new_file.path],
                )
        for archived in self._plan.archived_changesets:
            if not archived.path.is_file():
                raise ChangesetError(
                    E.CHANGESET_NOT_FOUND,
                    f'Changeset {archived.id!r} disappeared before it could be archived',
                    paths=[archived.path],
                )

    def prepare(self) -> BackupRecord:
        """Validation gates plus phase 1. Leaves ``pending.json`` in place."""
        self.validate()
        self._record = snapshot(
            self._plan.root,
            self._backup_root,
            self.touched_files(),
            operation=self._plan.operation,
        )
        return self._record

    def _written(self, step: str, path: Path) -> None:
        logger.debug('file_written', step=step, path=str(path))
        if self._on_write is not None:
            self._on_write(step, path)

    async def _apply_manifests(self, result: ApplyResult) -> None:
        for path, edits in _group_edits(self._plan.manifest_edits):
            manifest = parse_manifest(await read_file(path), path)
            for edit in edits:
                try:
                    manifest.set(edit.pointer, edit.new)
                except KeyError as exc:
                    raise PlanError(
                        E.PLAN_CONFLICTING_EDITS,
                        f'{path}: cannot set {edit.pointer}: {exc}',
                        paths=[path],
                    ) from exc
            write_atomic(path, manifest.dumps())
            result.manifests.append(path)
            self._written('manifest', path)
            await asyncio.sleep(0)

    async def _apply_changelogs(self, result: ApplyResult) -> None:
        for update in sorted(self._plan.changelog_updates, key=lambda u: str(u.path)):
            existing = await read_file(update.path) if update.path.exists() else None
            merged = merge_changelog(existing, update.content)
            if merged is None:
                logger.info('changelog_version_exists', path=str(update.path), version=update.version)
                result.skipped_changelogs.append(update.path)
                continue
            write_atomic(update.path, merged)
            result.changelogs.append(update.path)
            self._written('changelog', update.path)
            await asyncio.sleep(0)

    async def _apply_new_files(self, result: ApplyResult) -> None:
        for new_file in sorted(self._plan.new_files, key=lambda f: str(f.path)):
            write_atomic(new_file.path, new_file.content)
            result.new_files.append(new_file.path)
            self._written('new_file', new_file.path)
            await asyncio.sleep(0)

    async def _archive_changesets(self, result: ApplyResult) -> None:
        for archived in sorted(self._plan.archived_changesets, key=lambda a: a.id):
            dest = self.archive_destination(archived.path)
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
                os.replace(archived.path, dest)
            except OSError as exc:
                raise IoError(
                    E.IO_RENAME_FAILED,
                    f'Failed to archive {archived.path} to {dest}: {exc}',
                    paths=[archived.path, dest],
                ) from exc
            logger.info('changeset_archived', id=archived.id, path=str(dest))
            result.archived.append(dest)
            self._written('archive', dest)
            await asyncio.sleep(0)

    async def _post_validate(self) -> None:
        """Re-read every edited manifest and check the planned values landed."""
        for path, edits in _group_edits(self._plan.manifest_edits):
            manifest: Manifest = parse_manifest(await read_file(path), path)
            for edit in edits:
                if manifest.get(edit.pointer) != edit.new:
                    raise PlanError(
                        E.PLAN_CONFLICTING_EDITS,
                        f'{path} {edit.pointer} is {manifest.get(edit.pointer)!r} after writing {edit.new!r}',
                        paths=[path],
                    )
            if manifest.version and not Version.is_valid(manifest.version):
                raise PlanError(E.PLAN_INVALID_VERSION, f'{path}: invalid version {manifest.version!r}', paths=[path])

    async def execute(self) -> ApplyResult:
        """Run gates, phase 1 and phase 2; roll back on any failure.

        Raises:
            ReleaseError: The error that aborted phase 2, after the
                workspace was restored.
            RollbackError: If restoring the snapshot failed too.
        """
        if self._plan.is_empty:
            logger.info('plan_empty')
            return ApplyResult()

        record = self._record or self.prepare()
        result = ApplyResult(run_id=record.run_id)
        with bind_run(record.run_id):
            logger.info('apply_started', operation=self._plan.operation, files=len(record.files))
            try:
                await self._apply_manifests(result)
                await self._apply_changelogs(result)
                await self._apply_new_files(result)
                await self._archive_changesets(result)
                await self._post_validate()
            except BaseException as exc:
                reason = exc.info.message if isinstance(exc, ReleaseError) else repr(exc)
                logger.warning('apply_failed_rolling_back', error=reason)
                try:
                    restore(self._plan.root, record)
                except RollbackError as rollback_exc:
                    raise rollback_exc from exc
                discard(record)
                logger.info('rollback_complete')
                raise

            mark_complete(record, keep=self._keep_backup)
            if self._keep_backup:
                result.backup_dir = record.directory
                if self._max_backups is not None:
                    evict_backups(self._backup_root, self._max_backups)
            logger.info(
                'apply_complete',
                manifests=len(result.manifests),
                changelogs=len(result.changelogs),
                archived=len(result.archived),
            )
        return result


__all__ = [
    'ApplyResult',
    'Applier',
    'WriteHook',
]
