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

"""Read-only workspace health report.

Checks (each toggled by ``[audit.sections]``)::

    cycles               runtime/dev cycles → critical, peer cycles → warning
    version_consistency  internal semver edge rejecting the target's
                         current version → warning
    changesets           unparsable pending file → critical,
                         validation finding → warning
    upgrades             available upgrade (needs a registry) → info

Issues below ``audit.min_severity`` are dropped from the report.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from wsrelease.backends.registry import RegistryClient
from wsrelease.changesets import ChangesetStore
from wsrelease.config import ALLOWED_SEVERITIES, AuditConfig
from wsrelease.logging import get_logger
from wsrelease.semver import SemverError
from wsrelease.specifiers import Protocol
from wsrelease.upgrade import check_upgrades
from wsrelease.workspace import Workspace

logger = get_logger(__name__)

INFO = 'info'
WARNING = 'warning'
CRITICAL = 'critical'

_RANK: dict[str, int] = {name: i for i, name in enumerate(ALLOWED_SEVERITIES)}


@dataclass(frozen=True)
class AuditIssue:
    """One audit finding.

    Attributes:
        check: Section that produced it (``cycles``, ``changesets``, ...).
        severity: ``info``, ``warning`` or ``critical``.
        message: Human-readable description.
        package: Package concerned, if any.
        path: File concerned, if any.
        hint: Suggested fix.
    """

    check: str
    severity: str
    message: str
    package: str = ''
    path: str = ''
    hint: str = ''

    def to_dict(self) -> dict[str, str]:
        """Return a JSON-serializable representation."""
        data = {'check': self.check, 'severity': self.severity, 'message': self.message}
        for key in ('package', 'path', 'hint'):
            value = getattr(self, key)
            if value:
                data[key] = value
        return data


@dataclass
class AuditReport:
    """Collected audit findings.

    Attributes:
        issues: Findings at or above ``min_severity``.
        checks: Sections that ran.
        min_severity: Threshold applied.
    """

    issues: list[AuditIssue] = field(default_factory=list)
    checks: list[str] = field(default_factory=list)
    min_severity: str = WARNING

    def add(self, issue: AuditIssue) -> None:
        """Record ``issue`` if it meets the severity threshold."""
        if _RANK.get(issue.severity, 0) < _RANK.get(self.min_severity, 0):
            return
        self.issues.append(issue)
        log = {CRITICAL: logger.error, WARNING: logger.warning}.get(issue.severity, logger.info)
        log('audit_issue', check=issue.check, severity=issue.severity, message=issue.message)

    def count(self, severity: str) -> int:
        """Number of issues with exactly ``severity``."""
        return sum(1 for i in self.issues if i.severity == severity)

    @property
    def ok(self) -> bool:
        """True when nothing critical was found."""
        return self.count(CRITICAL) == 0

    def summary(self) -> str:
        """Return a human-readable summary."""
        parts = [f'{len(self.checks)} checks:']
        parts.append(f'{self.count(CRITICAL)} critical')
        parts.append(f'{self.count(WARNING)} warnings')
        parts.append(f'{self.count(INFO)} info')
        return ', '.join(parts)

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable representation."""
        return {
            'ok': self.ok,
            'min_severity': self.min_severity,
            'checks': list(self.checks),
            'issues': [i.to_dict() for i in self.issues],
        }

    def format_text(self) -> str:
        """Render the report for a terminal."""
        icons = {CRITICAL: '❌', WARNING: '⚠️ ', INFO: 'ℹ️ '}
        lines = [f'{icons.get(i.severity, "-")} [{i.check}] {i.message}' for i in self.issues]
        if not lines:
            lines.append('✅ No issues found.')
        lines.append('')
        lines.append(self.summary())
        return '\n'.join(lines)


def _audit_cycles(workspace: Workspace, report: AuditReport) -> None:
    for cycle in workspace.graph.cycles:
        report.add(
            AuditIssue(
                'cycles',
                CRITICAL,
                f'Circular dependency: {" → ".join([*cycle, cycle[0]])}',
                package=cycle[0],
                hint='Break the cycle, or move one edge to peerDependencies.',
            )
        )
    for cycle in workspace.graph.peer_cycles:
        report.add(
            AuditIssue(
                'cycles',
                WARNING,
                f'Peer dependency cycle: {" → ".join([*cycle, cycle[0]])}',
                package=cycle[0],
            )
        )


def _audit_version_consistency(workspace: Workspace, report: AuditReport) -> None:
    for member in sorted(workspace.members.values(), key=lambda m: m.name):
        for edge in member.dep_edges:
            target = workspace.members.get(edge.target_name)
            if target is None or edge.spec.protocol not in (Protocol.SEMVER, Protocol.NPM):
                continue
            try:
                accepted = edge.spec.accepts(target.version)
            except SemverError:
                accepted = True
            if not accepted:
                report.add(
                    AuditIssue(
                        'version_consistency',
                        WARNING,
                        f'{member.name} requires {edge.target} {edge.spec.raw}, '
                        f'but the workspace has {target.name}@{target.version}',
                        package=member.name,
                        path=str(member.manifest_path),
                        hint=f'Update the range to accept {target.version} or use workspace:^.',
                    )
                )


async def _audit_changesets(workspace: Workspace, store: ChangesetStore, report: AuditReport) -> None:
    pending = await store.read_pending()
    for failure in pending.failures:
        report.add(AuditIssue('changesets', CRITICAL, failure.message, path=str(failure.path)))
    for changeset in pending.changesets:
        for diagnostic in store.validate(changeset, workspace.names):
            report.add(
                AuditIssue(
                    'changesets',
                    WARNING,
                    diagnostic.message,
                    package=diagnostic.package,
                    path=str(changeset.path) if changeset.path else '',
                )
            )


async def _audit_upgrades(workspace: Workspace, registry: RegistryClient, report: AuditReport) -> None:
    upgrades = await check_upgrades(workspace, registry)
    for upgrade in upgrades.upgrades:
        dep = upgrade.dependency
        report.add(
            AuditIssue(
                'upgrades',
                INFO,
                f'{dep.member}: {dep.key} {dep.spec.raw} → {upgrade.new_spec} ({upgrade.kind})',
                package=dep.member,
            )
        )


async def run_audit(
    workspace: Workspace,
    config: AuditConfig,
    store: ChangesetStore,
    registry: RegistryClient | None = None,
    *,
    min_severity: str | None = None,
) -> AuditReport:
    """Run the enabled audit sections.

    Args:
        workspace: Loaded workspace.
        config: ``[audit]`` settings.
        store: Changeset store for the ``changesets`` section.
        registry: Registry client; the ``upgrades`` section is skipped
            without one.
        min_severity: Overrides ``config.min_severity``.
    """
    report = AuditReport(min_severity=min_severity or config.min_severity)
    sections = config.sections
    if sections.cycles:
        report.checks.append('cycles')
        _audit_cycles(workspace, report)
    if sections.version_consistency:
        report.checks.append('version_consistency')
        _audit_version_consistency(workspace, report)
    if sections.changesets:
        report.checks.append('changesets')
        await _audit_changesets(workspace, store, report)
    if sections.upgrades and registry is not None:
        report.checks.append('upgrades')
        await _audit_upgrades(workspace, registry, report)
    logger.info('audit_complete', summary=report.summary())
    return report


__all__ = [
    'CRITICAL',
    'INFO',
    'WARNING',
    'AuditIssue',
    'AuditReport',
    'run_audit',
]
