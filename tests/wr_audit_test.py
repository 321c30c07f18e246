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


"""Tests for wsrelease.audit."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
from tests._fakes import FakeRegistry, write_workspace
from wsrelease.audit import CRITICAL, INFO, WARNING, AuditReport, run_audit
from wsrelease.changesets import ChangesetStore
from wsrelease.config import AuditConfig, AuditSectionsConfig, ChangesetConfig
from wsrelease.versioning import PATCH
from wsrelease.workspace import Workspace, load_workspace

MOMENT = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

MEMBERS = {
    'packages/a': {'name': 'a', 'version': '1.0.0', 'dependencies': {'b': '^1.0.0', 'lodash': '^4.17.0'}},
    'packages/b': {'name': 'b', 'version': '1.0.0', 'dependencies': {'a': '^1.0.0'}},
    'packages/c': {'name': 'c', 'version': '1.0.0', 'dependencies': {'a': '^2.0.0'}},
}


async def _setup(root: Path) -> tuple[Workspace, ChangesetStore]:
    write_workspace(root, MEMBERS)
    store = ChangesetStore(root, ChangesetConfig(), clock=lambda: MOMENT)
    store.add(store.create({'ghost': PATCH}, slug='ghost'))
    (root / '.changesets' / 'broken.yaml').write_text('entries: [unclosed\n', encoding='utf-8')
    return await load_workspace(root), store


class TestRunAudit:
    """Tests for run_audit()."""

    @pytest.mark.asyncio()
    async def test_all_sections(self, tmp_path: Path) -> None:
        """Every section reports at info level."""
        workspace, store = await _setup(tmp_path)
        registry = FakeRegistry({'lodash': ['4.17.21']})
        report = await run_audit(workspace, AuditConfig(min_severity=INFO), store, registry)

        assert report.checks == ['cycles', 'version_consistency', 'changesets', 'upgrades']
        found = sorted((i.check, i.severity) for i in report.issues)
        assert found == [
            ('changesets', CRITICAL),
            ('changesets', WARNING),
            ('cycles', CRITICAL),
            ('upgrades', INFO),
            ('version_consistency', WARNING),
        ]
        assert not report.ok

        cycle = next(i for i in report.issues if i.check == 'cycles')
        assert cycle.message == 'Circular dependency: a → b → a'
        consistency = next(i for i in report.issues if i.check == 'version_consistency')
        assert consistency.package == 'c'
        assert '^2.0.0' in consistency.message

    @pytest.mark.asyncio()
    async def test_min_severity(self, tmp_path: Path) -> None:
        """Issues below the threshold are dropped."""
        workspace, store = await _setup(tmp_path)
        report = await run_audit(workspace, AuditConfig(), store, min_severity=CRITICAL)
        assert {i.severity for i in report.issues} == {CRITICAL}
        assert 'upgrades' not in report.checks

    @pytest.mark.asyncio()
    async def test_sections_toggle(self, tmp_path: Path) -> None:
        """Disabled sections do not run."""
        workspace, store = await _setup(tmp_path)
        config = AuditConfig(sections=AuditSectionsConfig(cycles=False, changesets=False))
        report = await run_audit(workspace, config, store, FakeRegistry())
        assert report.checks == ['version_consistency', 'upgrades']
        assert report.ok


class TestReport:
    """Tests for AuditReport rendering."""

    def test_empty(self) -> None:
        """A clean report says so."""
        report = AuditReport(checks=['cycles'])
        assert report.ok
        assert report.format_text() == '✅ No issues found.\n\n1 checks: 0 critical, 0 warnings, 0 info'
        assert report.to_dict() == {'ok': True, 'min_severity': 'warning', 'checks': ['cycles'], 'issues': []}
