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

"""Version planner: workspace + changesets → :class:`~wsrelease.plan.Plan`.

The planner is synchronous and pure given its inputs (the only file it
may read is a custom changelog template). Identical inputs produce
byte-identical plans.

Pipeline::

    changesets ──filter by environment──▶ seed bumps (max per package)
                                              │
                                              ▼
                             propagate along reverse dependency edges
                                              │
                                              ▼
                     final = max(seed, induced) ──▶ target versions
                                              │        (independent | unified)
                                              ▼
                  manifest edits (/version + dependent ranges)
                                              │
                                              ▼
                  changelog sections, archived changesets, tags

Propagation rules::

    ┌───────────────────────────┬──────────────────────────────────────────┐
    │ Edge                      │ Carries a bump to the dependent?         │
    ├───────────────────────────┼──────────────────────────────────────────┤
    │ runtime / dev / optional  │ yes (dependency.propagate_*)             │
    │ peer                      │ no, unless propagate_peer = true         │
    │ workspace:, npm:, semver  │ yes                                      │
    │ file: / link: / portal:   │ no, while skip_*_protocol = true         │
    │ anything else (git, tags) │ never                                    │
    └───────────────────────────┴──────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Iterable

from wsrelease.changelog import (
    BREAKING,
    DEPENDENCIES,
    OTHER,
    Changelog,
    ChangelogEntry,
    changelog_file,
    compare_link,
    group_entries,
    render_changelog,
    render_changelog_template,
    section_for,
)
from wsrelease.changesets import Changeset
from wsrelease.config import DependencyConfig, RepoConfig
from wsrelease.errors import E, ChangesetError, ConfigError, PlanError
from wsrelease.graph import Edge
from wsrelease.logging import get_logger
from wsrelease.plan import (
    VERSION_POINTER,
    ArchivedChangeset,
    ChangelogUpdate,
    ChangeReason,
    GitTag,
    ManifestEdit,
    Plan,
    VersionChange,
)
from wsrelease.semver import SemverError, Version
from wsrelease.specifiers import Protocol, rewrite_specifier
from wsrelease.versioning import NONE, Bump, BumpType, apply_bump, bump_between, max_bump, parse_bump
from wsrelease.workspace import Workspace

logger = get_logger(__name__)

UNIFIED = 'unified'
_SYNC_NOTE = 'Version synchronized with the workspace release.'


def edge_propagates(edge: Edge, config: DependencyConfig) -> bool:
    """Whether a bump of ``edge.target`` carries over to ``edge.source``."""
    if edge.dep_class not in config.propagating_classes:
        return False
    protocol = edge.spec.protocol
    if protocol == Protocol.OTHER:
        return False
    if protocol == Protocol.FILE:
        return not config.skip_file_protocol
    if protocol == Protocol.LINK:
        return not config.skip_link_protocol
    if protocol == Protocol.PORTAL:
        return not config.skip_portal_protocol
    return True


def filter_changesets(
    changesets: Iterable[Changeset],
    environments: Iterable[str],
    default_environments: Iterable[str],
) -> list[Changeset]:
    """Changesets whose environments intersect ``environments``, sorted by id."""
    active = list(environments)
    defaults = list(default_environments)
    return sorted((cs for cs in changesets if cs.targets(active, defaults)), key=lambda c: c.id)


def seed_bumps(workspace: Workspace, changesets: list[Changeset]) -> dict[str, Bump]:
    """Combine every changeset's bump per package.

    Raises:
        ChangesetError: ``WR-CHANGESET-UNKNOWN-PACKAGE`` listing every
            unknown name, or ``WR-CHANGESET-CONFLICTING-BUMPS``.
    """
    unknown = sorted({(name, cs.id) for cs in changesets for name in cs.entries if name not in workspace.members})
    if unknown:
        raise ChangesetError(
            E.CHANGESET_UNKNOWN_PACKAGE,
            f'{len(unknown)} changeset entr{"y" if len(unknown) == 1 else "ies"} reference unknown packages',
            hint=f'Workspace members: {", ".join(workspace.names) or "(none)"}',
            paths=[cs.path for cs in changesets if cs.path is not None and set(cs.entries) - set(workspace.members)],
            details=[f"'{name}' in changeset '{cs_id}'" for name, cs_id in unknown],
        )
    seeds: dict[str, Bump] = {}
    for cs in changesets:
        for name, bump in cs.entries.items():
            try:
                seeds[name] = max_bump(seeds.get(name, NONE), bump)
            except ChangesetError as exc:
                raise ChangesetError(
                    exc.code,
                    f'{name}: {exc.info.message}',
                    hint=exc.hint,
                    paths=[c.path for c in changesets if c.path is not None and name in c.entries],
                ) from exc
    return seeds


def propagate(workspace: Workspace, seeds: dict[str, Bump], config: DependencyConfig) -> dict[str, Bump]:
    """Walk reverse dependency edges breadth first from every seeded package.

    Returns:
        ``induced``: the propagation bump for every dependent reached.

    Raises:
        PlanError: ``WR-PLAN-PROPAGATION-DEPTH`` when more than
            ``max_depth`` levels are needed and ``fail_on_circular`` is set.
    """
    bump = parse_bump(config.propagation_bump)
    induced: dict[str, Bump] = {}
    if bump.is_none:
        return induced

    visited = {name for name, b in seeds.items() if not b.is_none}
    frontier = sorted(visited)
    depth = 0
    while frontier:
        reached: set[str] = set()
        for name in frontier:
            for edge in workspace.graph.dependents(name):
                if edge_propagates(edge, config):
                    reached.add(edge.source)
        if not reached:
            break
        fresh = sorted(reached - visited)
        if fresh:
            depth += 1
            if depth > config.max_depth:
                if config.fail_on_circular:
                    raise PlanError(
                        E.PLAN_PROPAGATION_DEPTH,
                        f'Bump propagation needs more than {config.max_depth} levels (next: {", ".join(fresh)})',
                        hint='Raise dependency.max_depth or set dependency.fail_on_circular = false.',
                    )
                logger.warning('propagation_depth_exceeded', max_depth=config.max_depth, skipped=fresh)
                break
        for name in sorted(reached):
            induced[name] = max_bump(induced.get(name, NONE), bump)
        visited.update(fresh)
        frontier = fresh

    logger.debug('propagated_bumps', seeds=len(visited) - len(induced), induced=len(induced))
    return induced


def combine(seed: Bump, induced: Bump) -> Bump:
    """Final bump for a package.

    Explicit pre-release and exact bumps are kept as written; otherwise
    the stronger of the two wins.
    """
    if seed.type in (BumpType.PRERELEASE, BumpType.EXACT):
        return seed
    return max_bump(seed, induced)


def _target_versions(
    workspace: Workspace,
    final: dict[str, Bump],
    config: RepoConfig,
) -> dict[str, Version]:
    current = {name: m.version for name, m in workspace.members.items()}
    bumped = sorted(name for name, b in final.items() if not b.is_none)
    if config.version.strategy != UNIFIED:
        return {name: apply_bump(current[name], final[name]) for name in bumped}
    if not bumped:
        return {}
    shared = max(apply_bump(current[name], final.get(name, NONE)) for name in current)
    targets = sorted(current) if config.version.unified_sync_all else bumped
    return {name: shared for name in targets}


def _format_template(template: str, key: str, **values: str) -> str:
    try:
        return template.format(**values)
    except (KeyError, IndexError, ValueError) as exc:
        raise ConfigError(
            E.CONFIG_INVALID_VALUE,
            f'{key}: cannot render template {template!r}: unknown placeholder {exc}',
            hint=f'Allowed placeholders: {", ".join("{" + k + "}" for k in values)}',
        ) from exc


def build_plan(
    workspace: Workspace,
    changesets: Iterable[Changeset],
    config: RepoConfig,
    *,
    environments: Iterable[str] | None = None,
    date: str = '',
    tag: bool = False,
    version_overrides: dict[str, Version] | None = None,
) -> Plan:
    """Compute the release plan.

    Args:
        workspace: The loaded workspace.
        changesets: Pending changesets (all of which parsed).
        config: The repository configuration.
        environments: Active environments; defaults to
            ``changeset.default_environments``.
        date: Release date for changelog headings.
        tag: Include git tags in the plan.
        version_overrides: Replace computed target versions (snapshot
            releases). Snapshot plans write no changelogs, archive no
            changesets and create no tags.

    Returns:
        The :class:`Plan`. It is empty when no changeset targets the
        active environments.

    Raises:
        ChangesetError: Unknown environment or package, conflicting bumps.
        PlanError: Propagation depth, non-monotonic version, bad range,
            conflicting edits.
    """
    active = list(environments or config.changeset.default_environments)
    unknown_envs = [e for e in active if e not in config.changeset.available_environments]
    if unknown_envs:
        raise ChangesetError(
            E.CHANGESET_INVALID_ENVIRONMENT,
            f'Unknown environment(s): {", ".join(unknown_envs)}',
            hint=f'Available environments: {", ".join(config.changeset.available_environments)}',
        )

    plan = Plan(root=workspace.root, strategy=config.version.strategy, environments=active)
    selected = filter_changesets(changesets, active, config.changeset.default_environments)
    if not selected:
        logger.info('plan_empty', environments=active)
        return plan

    seeds = seed_bumps(workspace, selected)
    induced = propagate(workspace, seeds, config.dependency)
    final = {name: combine(seeds.get(name, NONE), induced.get(name, NONE)) for name in set(seeds) | set(induced)}
    snapshot = version_overrides is not None
    targets = dict(version_overrides) if snapshot else _target_versions(workspace, final, config)

    # Version changes.
    mentions: dict[str, list[Changeset]] = {}
    for cs in selected:
        for name in cs.entries:
            mentions.setdefault(name, []).append(cs)
    new_versions: dict[str, Version] = {}
    for name in sorted(targets):
        member = workspace.member(name)
        new, old = targets[name], member.version
        bump = final.get(name, NONE)
        if new == old:
            continue
        if new < old and bump.type != BumpType.EXACT:
            raise PlanError(
                E.PLAN_NOT_MONOTONIC,
                f'{name}: planned version {new} is lower than current {old}',
                hint='Only an exact bump may move a package to a lower version.',
                paths=[member.manifest_path],
            )
        if not seeds.get(name, NONE).is_none:
            reason = ChangeReason.CHANGESET
        elif not induced.get(name, NONE).is_none:
            reason = ChangeReason.DEPENDENCY
        else:
            reason = ChangeReason.UNIFIED
        shown = bump if not bump.is_none and config.version.strategy != UNIFIED else bump_between(old, new)
        plan.version_changes.append(
            VersionChange(
                name=name,
                manifest=member.manifest_path,
                old=str(old),
                new=str(new),
                bump=str(shown),
                reason=reason,
                changesets=tuple(cs.id for cs in mentions.get(name, [])),
            )
        )
        new_versions[name] = new

    plan.manifest_edits = _manifest_edits(workspace, new_versions, config)

    if not snapshot:
        if config.changelog.enabled:
            plan.changelog_updates = _changelog_updates(workspace, plan, mentions, new_versions, config, date)
        plan.archived_changesets = [ArchivedChangeset(id=cs.id, path=cs.path) for cs in selected if cs.path]
        if tag:
            plan.git_tags = _git_tags(workspace, plan, config)

    logger.info(
        'plan_built',
        environments=active,
        changesets=len(selected),
        packages=len(plan.version_changes),
        edits=len(plan.manifest_edits),
    )
    return plan


def _manifest_edits(workspace: Workspace, new_versions: dict[str, Version], config: RepoConfig) -> list[ManifestEdit]:
    edits: dict[tuple[str, str], ManifestEdit] = {}

    def _add(edit: ManifestEdit) -> None:
        existing = edits.get(edit.sort_key)
        if existing is not None and existing.new != edit.new:
            raise PlanError(
                E.PLAN_CONFLICTING_EDITS,
                f'{edit.path} {edit.pointer}: conflicting values {existing.new!r} and {edit.new!r}',
                paths=[edit.path],
            )
        edits[edit.sort_key] = edit

    for name, new in new_versions.items():
        member = workspace.member(name)
        _add(
            ManifestEdit(
                path=member.manifest_path,
                pointer=VERSION_POINTER,
                old=member.manifest.get(VERSION_POINTER),
                new=str(new),
                package=name,
            )
        )

    rewrite_workspace = not config.dependency.skip_workspace_protocol
    for member in workspace.members.values():
        for dep in member.dep_edges:
            target = dep.target_name
            if target not in new_versions or target not in workspace.members:
                continue
            try:
                rewritten = rewrite_specifier(dep.spec, new_versions[target], rewrite_workspace=rewrite_workspace)
            except SemverError as exc:
                raise PlanError(
                    E.PLAN_RANGE_REWRITE,
                    f'{member.name}: cannot rewrite {dep.section}.{dep.target} = {dep.spec.raw!r}: {exc}',
                    paths=[member.manifest_path],
                ) from exc
            if rewritten is None or rewritten == dep.spec.raw:
                continue
            _add(
                ManifestEdit(
                    path=member.manifest_path,
                    pointer=dep.pointer,
                    old=dep.spec.raw,
                    new=rewritten,
                    package=member.name,
                )
            )
    return [edits[key] for key in sorted(edits)]


def _tag_format(workspace: Workspace, config: RepoConfig) -> str:
    if config.version.strategy == UNIFIED or not workspace.is_monorepo:
        return config.changelog.root_tag_format
    return config.changelog.version_tag_format


def _changelog_updates(
    workspace: Workspace,
    plan: Plan,
    mentions: dict[str, list[Changeset]],
    new_versions: dict[str, Version],
    config: RepoConfig,
    date: str,
) -> list[ChangelogUpdate]:
    cl_config = config.changelog
    tag_format = _tag_format(workspace, config)
    template = workspace.root / cl_config.template if cl_config.template else None
    updates: list[ChangelogUpdate] = []
    for change in plan.version_changes:
        member = workspace.member(change.name)
        entries: list[ChangelogEntry] = []
        for cs in mentions.get(change.name, []):
            breaking = bool(cs.breaking_notes)
            if cs.summary:
                section = section_for(cs.entries[change.name], breaking=breaking)
                entries.append(
                    ChangelogEntry(section=section, description=cs.summary, changeset=cs.id, author=cs.author)
                )
            if breaking:
                entries.append(
                    ChangelogEntry(section=BREAKING, description=cs.breaking_notes, changeset=cs.id, author=cs.author)
                )
        deps = sorted(
            {dep.target_name for dep in member.dep_edges if dep.target_name in new_versions}
            - {change.name}
        )
        if deps:
            updated = ', '.join(f'{d}@{new_versions[d]}' for d in deps)
            entries.append(ChangelogEntry(section=DEPENDENCIES, description=f'Updated dependencies: {updated}'))
        if not entries:
            entries.append(ChangelogEntry(section=OTHER, description=_SYNC_NOTE))

        changelog = Changelog(
            package=change.name,
            version=change.new,
            previous_version=change.old,
            sections=group_entries(entries),
            date=date,
            compare_url=compare_link(cl_config, tag_format, change.name, change.old, change.new),
        )
        if template is not None:
            content = render_changelog_template(changelog, template)
        else:
            content = render_changelog(changelog, cl_config.format)
        updates.append(
            ChangelogUpdate(
                package=change.name,
                path=changelog_file(member.path, cl_config),
                version=change.new,
                content=content,
            )
        )
    return sorted(updates, key=lambda u: str(u.path))


def _git_tags(workspace: Workspace, plan: Plan, config: RepoConfig) -> list[GitTag]:
    tag_format = _tag_format(workspace, config)
    names: dict[str, GitTag] = {}
    for change in plan.version_changes:
        name = _format_template(tag_format, 'changelog tag format', name=change.name, version=change.new)
        names.setdefault(name, GitTag(name=name, message=f'Release {name}'))
    return [names[n] for n in sorted(names)]


def snapshot_versions(plan: Plan, sha: str, fmt: str, *, timestamp: str = '') -> dict[str, Version]:
    """Render ``version.snapshot_format`` for every package in ``plan``.

    Placeholders: ``{version}``, ``{commit}``, ``{short_commit}`` and
    ``{timestamp}``.

    Raises:
        PlanError: ``WR-PLAN-INVALID-VERSION`` if a rendered snapshot is
            not valid semver.
    """
    result: dict[str, Version] = {}
    for change in plan.version_changes:
        try:
            text = fmt.format(version=change.new, commit=sha, short_commit=sha[:7], timestamp=timestamp)
        except (KeyError, IndexError, ValueError) as exc:
            raise PlanError(
                E.PLAN_INVALID_VERSION,
                f'version.snapshot_format {fmt!r} has an unknown placeholder: {exc}',
                hint='Allowed placeholders: {version}, {commit}, {short_commit}, {timestamp}.',
            ) from exc
        try:
            result[change.name] = Version.parse(text)
        except SemverError as exc:
            raise PlanError(
                E.PLAN_INVALID_VERSION,
                f'{change.name}: snapshot version {text!r} is not valid semver',
                hint='Numeric pre-release identifiers may not have leading zeros; prefix the commit with a letter.',
            ) from exc
    return result


def merge_commit_message(plan: Plan, config: RepoConfig, *, monorepo: bool = True) -> str:
    """Render the release commit message from the ``[git]`` templates."""
    git = config.git
    summary = '\n'.join(f'- {c.name}: {c.old} → {c.new}' for c in plan.version_changes)
    if not monorepo and len(plan.version_changes) == 1:
        change = plan.version_changes[0]
        message = _format_template(
            git.merge_commit_template,
            'git.merge_commit_template',
            package_name=change.name,
            version=change.new,
            changelog_summary=summary,
        )
    else:
        versions = sorted({c.new for c in plan.version_changes})
        if plan.strategy == UNIFIED and len(versions) == 1:
            version = versions[0]
        else:
            version = ', '.join(f'{c.name}@{c.new}' for c in plan.version_changes)
        message = _format_template(
            git.monorepo_merge_commit_template,
            'git.monorepo_merge_commit_template',
            version=version,
            changelog_summary=summary,
        )
    breaking = sum(1 for c in plan.version_changes if c.bump == BumpType.MAJOR.value)
    if git.include_breaking_warning and breaking:
        warning = _format_template(
            git.breaking_warning_template,
            'git.breaking_warning_template',
            breaking_changes_count=str(breaking),
        )
        message = f'{message.rstrip()}\n\n{warning}'
    return message.rstrip() + '\n'


__all__ = [
    'build_plan',
    'combine',
    'edge_propagates',
    'filter_changesets',
    'merge_commit_message',
    'propagate',
    'seed_bumps',
    'snapshot_versions',
]
