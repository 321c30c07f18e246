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

"""Registry-backed upgrades of external dependencies.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ External dependency │ Something in package.json that is not part of │
    │                     │ this workspace, e.g. lodash ^4.17.0.          │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Policy              │ How far we may jump: latest (any newer), minor │
    │                     │ (same major) or patch (same major.minor).     │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Synthetic changeset │ A changeset written for you so the upgrade    │
    │                     │ shows up in the next release.                 │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Backup              │ Upgrades go through the same snapshot and     │
    │                     │ rollback as ``version``; keep the snapshot    │
    │                     │ to undo later with ``upgrade rollback``.      │
    └─────────────────────┴────────────────────────────────────────────────┘

Flow::

    members ──► external SEMVER/NPM edges ──► one metadata query per
    (registry, package), fanned out under a semaphore ──► pick the
    highest allowed version ──► manifest edits (+ synthetic changeset)
    ──► transactional applier
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from wsrelease.applier import Applier, ApplyResult
from wsrelease.backends.registry import PackageMetadata, RegistryClient
from wsrelease.backups import BackupRecord, list_backups as list_backup_records, rollback_backup
from wsrelease.changesets import Changeset, ChangesetStore, serialize_changeset
from wsrelease.config import RepoConfig
from wsrelease.errors import E, ConfigError
from wsrelease.logging import get_logger
from wsrelease.plan import ManifestEdit, NewFile, Plan
from wsrelease.semver import Range, SemverError, Version
from wsrelease.specifiers import VersionRange, raise_floor
from wsrelease.versioning import parse_bump
from wsrelease.workspace import Workspace, members_matching

logger = get_logger(__name__)

DEFAULT_CLASSES: frozenset[str] = frozenset({'runtime', 'dev'})
DEFAULT_CONCURRENCY = 8


class UpgradePolicy(str, Enum):
    """How far an upgrade may move."""

    LATEST = 'latest'
    MINOR = 'minor'
    PATCH = 'patch'


@dataclass(frozen=True)
class ExternalDependency:
    """One external registry edge of a member.

    Attributes:
        member: Member that declares the dependency.
        manifest: The member's ``package.json``.
        key: Dependency key in the manifest (the alias for ``npm:`` edges).
        package: Name queried on the registry.
        dep_class: ``runtime``, ``dev``, ``peer`` or ``optional``.
        pointer: JSON pointer of the specifier.
        spec: Parsed specifier.
    """

    member: str
    manifest: Path
    key: str
    package: str
    dep_class: str
    pointer: str
    spec: VersionRange


@dataclass(frozen=True)
class Upgrade:
    """A planned upgrade of one dependency edge.

    Attributes:
        dependency: The edge being upgraded.
        current: Lower bound of the existing range.
        target: Version selected under the policy.
        new_spec: Replacement specifier text.
        kind: ``major``, ``minor``, ``patch`` or ``prerelease``.
        registry_url: Registry that supplied the version.
    """

    dependency: ExternalDependency
    current: str
    target: str
    new_spec: str
    kind: str
    registry_url: str = ''

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable representation."""
        dep = self.dependency
        return {
            'member': dep.member,
            'dependency': dep.key,
            'package': dep.package,
            'class': dep.dep_class,
            'from': dep.spec.raw,
            'to': self.new_spec,
            'current': self.current,
            'target': self.target,
            'kind': self.kind,
            'registry': self.registry_url,
        }


@dataclass(frozen=True)
class SkippedDependency:
    """An external edge that was looked at but not upgraded."""

    dependency: ExternalDependency
    reason: str


@dataclass
class UpgradeReport:
    """Result of an upgrade check."""

    policy: UpgradePolicy = UpgradePolicy.LATEST
    upgrades: list[Upgrade] = field(default_factory=list)
    skipped: list[SkippedDependency] = field(default_factory=list)

    @property
    def touched_members(self) -> list[str]:
        """Members whose manifests an apply would edit, sorted."""
        return sorted({u.dependency.member for u in self.upgrades})

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable representation."""
        return {
            'policy': self.policy.value,
            'upgrades': [u.to_dict() for u in self.upgrades],
            'skipped': [
                {'member': s.dependency.member, 'dependency': s.dependency.key, 'reason': s.reason}
                for s in self.skipped
            ],
        }

    def format_table(self) -> str:
        """Human-readable table of available upgrades."""
        if not self.upgrades:
            return 'All dependencies are up to date.'
        headers = ['Member', 'Dependency', 'From', 'To', 'Kind']
        rows = [
            [u.dependency.member, u.dependency.key, u.dependency.spec.raw, u.new_spec, u.kind] for u in self.upgrades
        ]
        widths = [max(len(h), *(len(r[i]) for r in rows)) for i, h in enumerate(headers)]
        fmt = '  '.join(f'{{:<{w}}}' for w in widths)
        lines = [fmt.format(*headers), fmt.format(*('─' * w for w in widths))]
        lines.extend(fmt.format(*row) for row in rows)
        lines.append('')
        lines.append(f'{len(self.upgrades)} upgrade(s) across {len(self.touched_members)} package(s)')
        return '\n'.join(lines)


def collect_dependencies(
    workspace: Workspace,
    *,
    classes: Iterable[str] = DEFAULT_CLASSES,
    selector: str | list[str] | None = None,
) -> list[ExternalDependency]:
    """Flatten the external ``SEMVER``/``NPM`` edges of the selected members.

    Edges that resolve to a workspace member are internal and skipped.
    """
    wanted = set(classes)
    result: list[ExternalDependency] = []
    for member in sorted(members_matching(workspace, selector), key=lambda m: m.name):
        for edge in member.dep_edges:
            if edge.dep_class not in wanted or not edge.spec.is_registry:
                continue
            if edge.target_name in workspace.members:
                continue
            result.append(
                ExternalDependency(
                    member=member.name,
                    manifest=member.manifest_path,
                    key=edge.target,
                    package=edge.target_name,
                    dep_class=edge.dep_class,
                    pointer=edge.pointer,
                    spec=edge.spec,
                )
            )
    return sorted(result, key=lambda d: (d.member, d.pointer))


def current_version(spec: VersionRange) -> Version | None:
    """Lower bound of the specifier's range (``^4.17.0`` → ``4.17.0``)."""
    try:
        return Range.parse(spec.expr).min_version()
    except SemverError:
        return None


def select_version(metadata: PackageMetadata, current: Version, policy: UpgradePolicy) -> Version | None:
    """Highest version newer than ``current`` allowed by ``policy``.

    Deprecated versions are skipped; prereleases are considered only when
    ``current`` is itself a prerelease.
    """
    best: Version | None = None
    for candidate in metadata.candidates(include_prerelease=current.is_prerelease):
        if not current < candidate:
            continue
        if policy == UpgradePolicy.MINOR and candidate.major != current.major:
            continue
        if policy == UpgradePolicy.PATCH and candidate.release_tuple[:2] != current.release_tuple[:2]:
            continue
        if best is None or best < candidate:
            best = candidate
    return best


def classify(current: Version, target: Version) -> str:
    """``major``/``minor``/``patch``/``prerelease`` distance between versions."""
    if target.major != current.major:
        return 'major'
    if target.minor != current.minor:
        return 'minor'
    if target.patch != current.patch:
        return 'patch'
    return 'prerelease'


def _new_spec(spec: VersionRange, target: Version) -> str | None:
    floor = raise_floor(spec.expr, target)
    if floor is None:
        return None
    if spec.alias:
        return f'npm:{spec.alias}@{floor}'
    return floor


async def check_upgrades(
    workspace: Workspace,
    registry: RegistryClient,
    *,
    policy: UpgradePolicy = UpgradePolicy.LATEST,
    classes: Iterable[str] = DEFAULT_CLASSES,
    selector: str | list[str] | None = None,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> UpgradeReport:
    """Query the registry and compute available upgrades (read-only).

    Each distinct ``(registry_url, package)`` is fetched once; queries run
    concurrently, bounded by ``concurrency``.

    Raises:
        RegistryError: If a registry query fails after retries.
    """
    dependencies = collect_dependencies(workspace, classes=classes, selector=selector)
    report = UpgradeReport(policy=policy)

    keys = sorted({(registry.registry_url_for(d.package), d.package) for d in dependencies})
    semaphore = asyncio.Semaphore(max(concurrency, 1))

    async def _fetch(key: tuple[str, str]) -> tuple[tuple[str, str], PackageMetadata | None]:
        async with semaphore:
            logger.debug('registry_query', registry=key[0], package=key[1])
            return key, await registry.package_metadata(key[1])

    cache: dict[tuple[str, str], PackageMetadata | None] = dict(await asyncio.gather(*(_fetch(k) for k in keys)))

    for dep in dependencies:
        registry_url = registry.registry_url_for(dep.package)
        metadata = cache.get((registry_url, dep.package))
        if metadata is None:
            report.skipped.append(SkippedDependency(dep, 'not found on the registry'))
            continue
        current = current_version(dep.spec)
        if current is None:
            report.skipped.append(SkippedDependency(dep, 'range has no lower bound'))
            continue
        target = select_version(metadata, current, policy)
        if target is None:
            continue
        new_spec = _new_spec(dep.spec, target)
        if new_spec is None:
            report.skipped.append(SkippedDependency(dep, f'complex range {dep.spec.raw!r} left as is'))
            continue
        report.upgrades.append(
            Upgrade(
                dependency=dep,
                current=str(current),
                target=str(target),
                new_spec=new_spec,
                kind=classify(current, target),
                registry_url=registry_url,
            )
        )
    logger.info(
        'upgrades_checked',
        dependencies=len(dependencies),
        queries=len(keys),
        upgrades=len(report.upgrades),
        skipped=len(report.skipped),
    )
    return report


def upgrade_changeset(report: UpgradeReport, config: RepoConfig, store: ChangesetStore) -> Changeset:
    """Synthetic changeset bumping every touched member by ``upgrade.changeset_bump``."""
    bump = parse_bump(config.upgrade.changeset_bump, default_prerelease_tag=config.version.prerelease_tag)
    lines = ['Upgrade dependencies:', '']
    lines.extend(
        f'- {u.dependency.member}: {u.dependency.key} {u.dependency.spec.raw} → {u.new_spec}' for u in report.upgrades
    )
    return store.create(
        dict.fromkeys(report.touched_members, bump),
        summary='\n'.join(lines),
        environments=config.changeset.default_environments,
        slug='upgrade-dependencies',
    )


def build_upgrade_plan(
    workspace: Workspace,
    report: UpgradeReport,
    config: RepoConfig,
    store: ChangesetStore | None = None,
) -> Plan:
    """Turn an upgrade report into a :class:`Plan` for the applier."""
    edits = sorted(
        (
            ManifestEdit(
                path=u.dependency.manifest,
                pointer=u.dependency.pointer,
                old=u.dependency.spec.raw,
                new=u.new_spec,
                package=u.dependency.member,
            )
            for u in report.upgrades
        ),
        key=lambda e: e.sort_key,
    )
    new_files: list[NewFile] = []
    if edits and config.upgrade.auto_changeset and store is not None:
        changeset = upgrade_changeset(report, config, store)
        new_files.append(NewFile(path=store.path / f'{changeset.id}.yaml', content=serialize_changeset(changeset)))
    return Plan(
        root=workspace.root,
        strategy=config.version.strategy,
        environments=list(config.changeset.default_environments),
        manifest_edits=edits,
        new_files=new_files,
        operation='upgrade',
    )


def backup_root(root: Path, config: RepoConfig) -> Path:
    """Absolute backup directory for ``root``."""
    return root / config.upgrade.backup.backup_dir


async def apply_upgrades(
    workspace: Workspace,
    report: UpgradeReport,
    config: RepoConfig,
    store: ChangesetStore | None = None,
    *,
    moment: datetime | None = None,
) -> tuple[Plan, ApplyResult]:
    """Apply ``report`` through the transactional applier.

    The snapshot is kept after success when both
    ``upgrade.backup.enabled`` and ``keep_after_success`` are set.
    """
    plan = build_upgrade_plan(workspace, report, config, store)
    backup = config.upgrade.backup
    keep = backup.enabled and backup.keep_after_success
    applier = Applier(
        plan,
        backup_root=backup_root(workspace.root, config),
        keep_backup=keep,
        max_backups=backup.max_backups if keep else None,
        moment=moment,
    )
    result = await applier.execute()
    logger.info('upgrades_applied', edits=len(plan.manifest_edits), changeset=bool(plan.new_files))
    return plan, result


def rollback(root: Path, config: RepoConfig, backup_id: str | None = None) -> BackupRecord:
    """Restore a retained upgrade backup (the newest by default)."""
    record = rollback_backup(root, backup_root(root, config), backup_id)
    logger.info('upgrade_rolled_back', run_id=record.run_id)
    return record


def list_backups(root: Path, config: RepoConfig) -> list[BackupRecord]:
    """Retained backups, oldest first."""
    return list_backup_records(backup_root(root, config))


def parse_policy(text: str) -> UpgradePolicy:
    """Parse ``latest``/``minor``/``patch``.

    Raises:
        ConfigError: For anything else.
    """
    try:
        return UpgradePolicy(text)
    except ValueError:
        raise ConfigError(
            E.CONFIG_INVALID_VALUE,
            f'Unknown upgrade policy {text!r}',
            hint='Use one of: latest, minor, patch.',
        ) from None


__all__ = [
    'DEFAULT_CLASSES',
    'ExternalDependency',
    'SkippedDependency',
    'Upgrade',
    'UpgradePolicy',
    'UpgradeReport',
    'apply_upgrades',
    'backup_root',
    'build_upgrade_plan',
    'check_upgrades',
    'classify',
    'collect_dependencies',
    'current_version',
    'list_backups',
    'parse_policy',
    'rollback',
    'select_version',
    'upgrade_changeset',
]
