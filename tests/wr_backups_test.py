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


"""Tests for wsrelease.backups."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest
from tests._fakes import tree_digest
from wsrelease.backups import (
    BACKUP_MANIFEST,
    PENDING_MARKER,
    backup_age,
    ensure_no_active_run,
    evict_backups,
    find_pending_runs,
    list_backups,
    mark_complete,
    new_run_id,
    recover,
    restore,
    rollback_backup,
    snapshot,
)
from wsrelease.errors import E, IoError, LockError, RollbackError


def _tree(root: Path) -> tuple[Path, Path]:
    a = root / 'packages' / 'a' / 'package.json'
    a.parent.mkdir(parents=True)
    a.write_text('{"name": "a"}\n', encoding='utf-8')
    return a, root / 'packages' / 'a' / 'CHANGELOG.md'


class TestSnapshot:
    """Tests for snapshot and restore."""

    def test_layout(self, tmp_path: Path) -> None:
        """Originals are copied and both markers are written."""
        a, changelog = _tree(tmp_path)
        backup_root = tmp_path / '.workspace-backups'
        record = snapshot(tmp_path, backup_root, [a, changelog], operation='version', run_id='r1')
        assert record.pending
        assert (record.directory / 'packages/a/package.json').read_text(encoding='utf-8') == '{"name": "a"}\n'
        assert (record.directory / BACKUP_MANIFEST).is_file()
        assert (record.directory / PENDING_MARKER).is_file()
        assert [(f.path, f.existed) for f in record.files] == [
            ('packages/a/CHANGELOG.md', False),
            ('packages/a/package.json', True),
        ]

    def test_restore(self, tmp_path: Path) -> None:
        """Restore rewrites originals and deletes created files."""
        a, changelog = _tree(tmp_path)
        before = tree_digest(tmp_path)
        record = snapshot(tmp_path, tmp_path / '.workspace-backups', [a, changelog], operation='version')
        a.write_text('{"name": "a", "version": "9.9.9"}\n', encoding='utf-8')
        changelog.write_text('# Changelog\n', encoding='utf-8')
        restore(tmp_path, record)
        assert tree_digest(tmp_path) == before

    def test_restore_removes_created_directories(self, tmp_path: Path) -> None:
        """Directories made for new files go away unless something else now lives there."""
        a, _ = _tree(tmp_path)
        notes = tmp_path / 'packages' / 'a' / 'docs' / 'notes' / 'NEW.md'
        history = tmp_path / '.changesets' / 'history' / 'x.yaml'
        record = snapshot(tmp_path, tmp_path / '.workspace-backups', [a, notes, history], operation='version')
        assert record.directories == ['.changesets/history', '.changesets', 'packages/a/docs/notes', 'packages/a/docs']

        for path in (notes, history):
            path.parent.mkdir(parents=True)
            path.write_text('x\n', encoding='utf-8')
        (tmp_path / '.changesets' / 'user.yaml').write_text('entries: {}\n', encoding='utf-8')
        restore(tmp_path, record)

        assert not (tmp_path / 'packages' / 'a' / 'docs').exists()
        assert not (tmp_path / '.changesets' / 'history').exists()
        assert [p.name for p in (tmp_path / '.changesets').iterdir()] == ['user.yaml']
        assert a.is_file()

    def test_tampered_copy(self, tmp_path: Path) -> None:
        """A backup copy that no longer matches its hash is not restored."""
        a, _ = _tree(tmp_path)
        record = snapshot(tmp_path, tmp_path / '.workspace-backups', [a], operation='version')
        (record.directory / 'packages/a/package.json').write_text('garbage', encoding='utf-8')
        with pytest.raises(RollbackError) as exc_info:
            restore(tmp_path, record)
        assert exc_info.value.code == E.ROLLBACK_FAILED

    def test_outside_root(self, tmp_path: Path) -> None:
        """Paths outside the workspace are refused and nothing is left behind."""
        root = tmp_path / 'ws'
        root.mkdir()
        outside = tmp_path / 'elsewhere.json'
        outside.write_text('{}', encoding='utf-8')
        backup_root = root / '.workspace-backups'
        with pytest.raises(IoError):
            snapshot(root, backup_root, [outside], operation='version', run_id='r1')
        assert not (backup_root / 'r1').exists()

    def test_run_id_sorts_by_time(self) -> None:
        """Run ids start with a UTC timestamp."""
        run_id = new_run_id()
        assert len(run_id) == len('20261019T120000Z-abcdef')
        assert run_id[8] == 'T'


class TestLifecycle:
    """Tests for completion, recovery and retention."""

    def test_mark_complete_drops_snapshot(self, tmp_path: Path) -> None:
        """Without keep the run directory is removed."""
        a, _ = _tree(tmp_path)
        record = snapshot(tmp_path, tmp_path / '.workspace-backups', [a], operation='version')
        mark_complete(record, keep=False)
        assert not record.directory.exists()

    def test_mark_complete_keeps_backup(self, tmp_path: Path) -> None:
        """With keep the run becomes a retained backup."""
        a, _ = _tree(tmp_path)
        backup_root = tmp_path / '.workspace-backups'
        record = snapshot(tmp_path, backup_root, [a], operation='upgrade')
        mark_complete(record, keep=True)
        assert find_pending_runs(backup_root) == []
        backups = list_backups(backup_root)
        assert [b.run_id for b in backups] == [record.run_id]
        assert backups[0].operation == 'upgrade'
        assert backup_age(backups[0]) < 3600

    def test_recover(self, tmp_path: Path) -> None:
        """Pending runs are restored and removed."""
        a, _ = _tree(tmp_path)
        backup_root = tmp_path / '.workspace-backups'
        before = tree_digest(tmp_path)
        record = snapshot(tmp_path, backup_root, [a], operation='version')
        a.write_text('{"name": "a", "version": "2.0.0"}\n', encoding='utf-8')
        assert recover(tmp_path, backup_root) == [record.run_id]
        assert tree_digest(tmp_path) == before
        assert not record.directory.exists()
        assert recover(tmp_path, backup_root) == []

    def test_live_pending_run(self, tmp_path: Path) -> None:
        """A pending run of another live process blocks recovery."""
        a, _ = _tree(tmp_path)
        backup_root = tmp_path / '.workspace-backups'
        record = snapshot(tmp_path, backup_root, [a], operation='version')
        marker = record.directory / PENDING_MARKER
        data = json.loads(marker.read_text(encoding='utf-8'))
        data['pid'] = os.getppid()
        marker.write_text(json.dumps(data), encoding='utf-8')
        with pytest.raises(LockError) as exc_info:
            ensure_no_active_run(backup_root)
        assert exc_info.value.code == E.LOCK_PENDING_RUN

    def test_rollback_backup(self, tmp_path: Path) -> None:
        """A retained backup can be restored later."""
        a, _ = _tree(tmp_path)
        backup_root = tmp_path / '.workspace-backups'
        record = snapshot(tmp_path, backup_root, [a], operation='upgrade')
        mark_complete(record, keep=True)
        a.write_text('{"name": "a", "version": "5.0.0"}\n', encoding='utf-8')
        restored = rollback_backup(tmp_path, backup_root)
        assert restored.run_id == record.run_id
        assert a.read_text(encoding='utf-8') == '{"name": "a"}\n'
        assert list_backups(backup_root) == []

    def test_rollback_missing(self, tmp_path: Path) -> None:
        """Rolling back without backups fails."""
        with pytest.raises(RollbackError) as exc_info:
            rollback_backup(tmp_path, tmp_path / '.workspace-backups', 'nope')
        assert exc_info.value.code == E.BACKUP_NOT_FOUND

    def test_evict(self, tmp_path: Path) -> None:
        """Only the newest max_backups are kept."""
        a, _ = _tree(tmp_path)
        backup_root = tmp_path / '.workspace-backups'
        ids = []
        for run_id in ('20260101T000000Z-aaaaaa', '20260102T000000Z-bbbbbb', '20260103T000000Z-cccccc'):
            record = snapshot(tmp_path, backup_root, [a], operation='upgrade', run_id=run_id)
            mark_complete(record, keep=True)
            ids.append(run_id)
        assert evict_backups(backup_root, 2) == ids[:1]
        assert [b.run_id for b in list_backups(backup_root)] == ids[1:]
