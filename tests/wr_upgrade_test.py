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


"""Tests for wsrelease.upgrade."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest
from tests._fakes import FakeRegistry, metadata, tree_digest, write_workspace
from wsrelease.changesets import ChangesetStore
from wsrelease.config import BackupConfig, ChangesetConfig, RepoConfig, UpgradeConfig
from wsrelease.errors import ConfigError
from wsrelease.semver import Version
from wsrelease.upgrade import (
    UpgradePolicy,
    apply_upgrades,
    check_upgrades,
    classify,
    collect_dependencies,
    list_backups,
    parse_policy,
    rollback,
    select_version,
)
from wsrelease.versioning import PATCH
from wsrelease.workspace import Workspace, load_workspace

MOMENT = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

APP = {'packages/app': {'name': 'app', 'version': '1.0.0', 'dependencies': {'lodash': '^4.17.0'}}}


async def _ws(root: Path, members: dict[str, dict[str, Any]]) -> Workspace:
    return await load_workspace(write_workspace(root, members))


def _store(root: Path) -> ChangesetStore:
    return ChangesetStore(root, ChangesetConfig(), clock=lambda: MOMENT)


class TestSelectVersion:
    """Tests for select_version() under each policy."""

    VERSIONS = ['1.0.0', '1.2.0', '1.2.5', '1.3.0', '2.0.0', '2.1.0-beta.0']

    @pytest.mark.parametrize(
        ('policy', 'expected'),
        [
            (UpgradePolicy.LATEST, '2.0.0'),
            (UpgradePolicy.MINOR, '1.3.0'),
            (UpgradePolicy.PATCH, '1.2.5'),
        ],
    )
    def test_policies(self, policy: UpgradePolicy, expected: str) -> None:
        """Each policy caps how far the version may move."""
        meta = metadata('x', self.VERSIONS)
        assert str(select_version(meta, Version.parse('1.2.0'), policy)) == expected

    def test_skips_deprecated(self) -> None:
        """Deprecated versions are never selected."""
        meta = metadata('x', self.VERSIONS, deprecated={'2.0.0': 'broken'})
        assert str(select_version(meta, Version.parse('1.2.0'), UpgradePolicy.LATEST)) == '1.3.0'

    def test_prerelease_only_from_prerelease(self) -> None:
        """Prereleases are candidates only when the current version is one."""
        meta = metadata('x', self.VERSIONS)
        assert str(select_version(meta, Version.parse('2.1.0-alpha.0'), UpgradePolicy.LATEST)) == '2.1.0-beta.0'

    def test_already_newest(self) -> None:
        """Nothing newer means no upgrade."""
        assert select_version(metadata('x', ['1.0.0']), Version.parse('1.0.0'), UpgradePolicy.LATEST) is None

    @pytest.mark.parametrize(
        ('current', 'target', 'kind'),
        [
            ('4.17.0', '4.17.21', 'patch'),
            ('4.17.0', '4.18.0', 'minor'),
            ('4.17.0', '5.0.0', 'major'),
            ('1.0.0-rc.1', '1.0.0', 'prerelease'),
        ],
    )
    def test_classify(self, current: str, target: str, kind: str) -> None:
        """Upgrades are classified by the highest changed component."""
        assert classify(Version.parse(current), Version.parse(target)) == kind


class TestCheck:
    """Tests for collect_dependencies() and check_upgrades()."""

    @pytest.mark.asyncio()
    async def test_collect_filters(self, tmp_path: Path) -> None:
        """Only external registry edges of the wanted classes are collected."""
        ws = await _ws(
            tmp_path,
            {
                'packages/core': {'name': 'core', 'version': '1.0.0'},
                'packages/app': {
                    'name': 'app',
                    'version': '1.0.0',
                    'dependencies': {'core': '^1.0.0', 'lodash': '^4.17.0', 'local': 'file:../local'},
                    'devDependencies': {'typescript': '~5.4.0'},
                    'peerDependencies': {'react': '^18.0.0'},
                },
            },
        )
        assert [(d.key, d.dep_class) for d in collect_dependencies(ws)] == [
            ('lodash', 'runtime'),
            ('typescript', 'dev'),
        ]
        assert [d.key for d in collect_dependencies(ws, classes={'runtime', 'peer'})] == ['lodash', 'react']

    @pytest.mark.asyncio()
    async def test_one_query_per_package(self, tmp_path: Path) -> None:
        """Two members sharing a dependency cause a single registry query."""
        ws = await _ws(
            tmp_path,
            {
                **APP,
                'packages/web': {'name': 'web', 'version': '1.0.0', 'dependencies': {'lodash': '~4.17.0'}},
            },
        )
        registry = FakeRegistry({'lodash': ['4.17.0', '4.17.21']})
        report = await check_upgrades(ws, registry)
        assert registry.queries == ['lodash']
        assert [(u.dependency.member, u.new_spec) for u in report.upgrades] == [
            ('app', '^4.17.21'),
            ('web', '~4.17.21'),
        ]
        assert report.touched_members == ['app', 'web']

    @pytest.mark.asyncio()
    async def test_alias_and_skips(self, tmp_path: Path) -> None:
        """Aliases query the real name; unknown and compound ranges are skipped."""
        ws = await _ws(
            tmp_path,
            {
                'packages/app': {
                    'name': 'app',
                    'version': '1.0.0',
                    'dependencies': {
                        'ld': 'npm:lodash@^4.0.0',
                        'ghost': '^1.0.0',
                        'react': '>=17.0.0 <19.0.0',
                    },
                },
            },
        )
        registry = FakeRegistry({'lodash': ['4.17.21'], 'react': ['17.0.0', '18.3.1']})
        report = await check_upgrades(ws, registry)
        assert [u.new_spec for u in report.upgrades] == ['npm:lodash@^4.17.21']
        assert sorted((s.dependency.key, s.reason) for s in report.skipped) == [
            ('ghost', 'not found on the registry'),
            ('react', "complex range '>=17.0.0 <19.0.0' left as is"),
        ]

    @pytest.mark.asyncio()
    async def test_report_output(self, tmp_path: Path) -> None:
        """The table and dict forms name the change."""
        ws = await _ws(tmp_path, APP)
        report = await check_upgrades(ws, FakeRegistry({'lodash': ['4.17.21']}))
        assert '^4.17.0' in report.format_table()
        assert report.to_dict()['upgrades'][0]['to'] == '^4.17.21'  # type: ignore[index]

    def test_parse_policy(self) -> None:
        """Unknown policies are a config error."""
        assert parse_policy('minor') is UpgradePolicy.MINOR
        with pytest.raises(ConfigError):
            parse_policy('newest')


class TestApply:
    """Tests for apply_upgrades() and rollback()."""

    @pytest.mark.asyncio()
    async def test_auto_changeset(self, tmp_path: Path) -> None:
        """lodash ^4.17.0 moves to ^4.17.21 and a patch changeset is added."""
        ws = await _ws(tmp_path, APP)
        store = _store(tmp_path)
        report = await check_upgrades(ws, FakeRegistry({'lodash': ['4.16.0', '4.17.0', '4.17.21']}))
        plan, result = await apply_upgrades(ws, report, RepoConfig(), store, moment=MOMENT)

        manifest = json.loads((tmp_path / 'packages' / 'app' / 'package.json').read_text(encoding='utf-8'))
        assert manifest['dependencies']['lodash'] == '^4.17.21'
        assert manifest['version'] == '1.0.0'
        assert plan.operation == 'upgrade'
        assert len(result.new_files) == 1

        pending = await store.read_pending()
        assert len(pending.changesets) == 1
        assert pending.changesets[0].entries == {'app': PATCH}
        assert 'lodash ^4.17.0 → ^4.17.21' in pending.changesets[0].summary
        assert list_backups(tmp_path, RepoConfig()) == []

    @pytest.mark.asyncio()
    async def test_no_changeset(self, tmp_path: Path) -> None:
        """auto_changeset = false edits manifests only."""
        ws = await _ws(tmp_path, APP)
        report = await check_upgrades(ws, FakeRegistry({'lodash': ['4.17.21']}))
        config = RepoConfig(upgrade=UpgradeConfig(auto_changeset=False))
        _, result = await apply_upgrades(ws, report, config, _store(tmp_path), moment=MOMENT)
        assert result.new_files == []
        assert not (tmp_path / '.changesets').exists()

    @pytest.mark.asyncio()
    async def test_retained_backup_rollback(self, tmp_path: Path) -> None:
        """A kept snapshot undoes the upgrade later."""
        ws = await _ws(tmp_path, APP)
        before = tree_digest(tmp_path)
        config = RepoConfig(upgrade=UpgradeConfig(backup=BackupConfig(keep_after_success=True)))
        report = await check_upgrades(ws, FakeRegistry({'lodash': ['4.17.21']}))
        _, result = await apply_upgrades(ws, report, config, _store(tmp_path), moment=MOMENT)

        assert [b.run_id for b in list_backups(tmp_path, config)] == [result.run_id]
        record = rollback(tmp_path, config)
        assert record.run_id == result.run_id
        assert tree_digest(tmp_path) == before
