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

"""CLI entry point for wsrelease.

Constructs backend instances and injects them into the pipeline modules.

Subcommands::

    wsrelease init        Scaffold repo.config.toml and the changeset dirs
    wsrelease config      Show or validate the configuration
    wsrelease changeset   Add, list, show, update, remove changesets
    wsrelease version     Plan and apply version bumps from changesets
    wsrelease changes     Report which packages a diff touched
    wsrelease upgrade     Check, apply or roll back dependency upgrades
    wsrelease audit       Read-only workspace health report
    wsrelease recover     Roll back runs interrupted mid-apply
    wsrelease explain     Explain an error code

Usage::

    # Record a change:
    wsrelease changeset add --package core=minor --summary 'Add search'

    # Preview, then apply:
    wsrelease version --dry-run
    wsrelease version --env production

    # Upgrade external dependencies within the current major:
    wsrelease upgrade apply --policy minor

Exit codes: 0 ok, 1 validation, 2 I/O / lock / registry / rollback,
3 cancelled.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import tomlkit
from rich.prompt import Confirm
from rich_argparse import RichHelpFormatter

from wsrelease import __version__
from wsrelease.applier import Applier
from wsrelease.audit import run_audit
from wsrelease.backends.registry import NpmRegistry, load_npmrc
from wsrelease.backends.vcs import GitCLIBackend, GitPort
from wsrelease.backups import backup_age, ensure_no_active_run, recover
from wsrelease.changesets import Changeset, ChangesetStore, serialize_changeset
from wsrelease.config import CONFIG_FILENAMES, RepoConfig, default_config_document, load_config
from wsrelease.detection import CommitRange, detect_changes, select_mode
from wsrelease.errors import (
    E,
    EXIT_CANCELLED,
    EXIT_OK,
    EXIT_VALIDATION,
    ChangesetError,
    LockError,
    ReleaseError,
    explain,
    render_error,
)
from wsrelease.init import print_scaffold_preview, scaffold
from wsrelease.lock import exclusive_lock, shared_lock
from wsrelease.logging import configure_logging, get_logger
from wsrelease.manifest import MANIFEST_NAME
from wsrelease.plan import Plan
from wsrelease.planner import build_plan, filter_changesets, merge_commit_message, snapshot_versions
from wsrelease.upgrade import (
    DEFAULT_CLASSES,
    UpgradeReport,
    apply_upgrades,
    backup_root,
    check_upgrades,
    list_backups,
    parse_policy,
    rollback,
)
from wsrelease.versioning import Bump, parse_bump
from wsrelease.workspace import Workspace, load_workspace

logger = get_logger(__name__)


class Cancelled(Exception):
    """The user declined a prompt."""


@dataclass(frozen=True)
class Context:
    """Per-invocation settings shared by every command handler."""

    root: Path
    config: RepoConfig
    json: bool = False
    quiet: bool = False
    yes: bool = False

    @property
    def backup_root(self) -> Path:
        """Backup and lock directory."""
        return backup_root(self.root, self.config)

    def store(self) -> ChangesetStore:
        """Changeset store for the workspace."""
        return ChangesetStore(self.root, self.config.changeset, prerelease_tag=self.config.version.prerelease_tag)


def _find_workspace_root(start: Path) -> Path:
    """Walk up from ``start`` to the workspace root.

    The first directory holding a ``repo.config.*`` file wins; failing
    that, the nearest directory with a ``package.json``; failing that,
    ``start`` itself.
    """
    start = start.resolve()
    for candidate in (start, *start.parents):
        if any((candidate / name).is_file() for name in CONFIG_FILENAMES):
            return candidate
    for candidate in (start, *start.parents):
        if (candidate / MANIFEST_NAME).is_file():
            return candidate
    return start


def _context(args: argparse.Namespace, *, discover: bool = True) -> Context:
    start = Path(args.root) if args.root else Path.cwd()
    root = _find_workspace_root(start) if discover and not args.root else start.resolve()
    return Context(
        root=root,
        config=load_config(root),
        json=args.json,
        quiet=args.quiet,
        yes=args.yes,
    )


def _emit(ctx: Context, data: object, text: str) -> None:
    """Print one JSON document under ``--json``, otherwise ``text`` unless quiet."""
    if ctx.json:
        print(json.dumps(data, indent=2, ensure_ascii=False))  # noqa: T201 - CLI output
    elif not ctx.quiet and text:
        print(text)  # noqa: T201 - CLI output


def _recover_first(ctx: Context) -> list[str]:
    """Offer to roll back interrupted runs before a mutating command.

    Raises:
        LockError: A live process owns a pending run, or a pending run
            exists and no prompt is possible without ``--yes``.
        Cancelled: The user declined the rollback.
    """
    pending = ensure_no_active_run(ctx.backup_root)
    if not pending:
        return []
    ids = ', '.join(r.run_id for r in pending)
    if not ctx.yes:
        if not sys.stdin.isatty():
            raise LockError(
                E.LOCK_PENDING_RUN,
                f'Interrupted run(s) need recovery: {ids}',
                hint="Run 'wsrelease recover', or pass --yes to roll back automatically.",
                paths=[r.directory for r in pending],
            )
        if not Confirm.ask(f'Interrupted run(s) found ({ids}). Roll back now?', default=True):
            raise Cancelled(ids)
    restored = recover(ctx.root, ctx.backup_root)
    logger.info('recovered_before_command', run_ids=restored)
    return restored


@contextmanager
def _mutating(ctx: Context) -> Iterator[None]:
    """Exclusive lock plus crash recovery."""
    with exclusive_lock(ctx.backup_root):
        _recover_first(ctx)
        yield


def _today() -> str:
    return datetime.now(timezone.utc).strftime('%Y-%m-%d')


def _parse_entries(values: list[str] | None, config: RepoConfig) -> dict[str, Bump]:
    """Parse ``NAME=BUMP`` options; a bare ``NAME`` uses ``version.default_bump``."""
    entries: dict[str, Bump] = {}
    for value in values or []:
        name, sep, bump_text = value.rpartition('=')
        if not sep:
            name, bump_text = value, config.version.default_bump
        entries[name.strip()] = parse_bump(bump_text.strip(), default_prerelease_tag=config.version.prerelease_tag)
    return entries


def _check_changeset(store: ChangesetStore, changeset: Changeset, workspace: Workspace) -> None:
    """Refuse changesets with unknown packages or environments."""
    errors = [d for d in store.validate(changeset, workspace.names) if d.severity == 'error']
    if errors:
        raise ChangesetError(
            errors[0].code,
            f'Changeset {changeset.id!r} is invalid',
            hint=f'Known packages: {", ".join(workspace.names)}',
            details=[d.message for d in errors],
        )


def _format_changesets(changesets: list[Changeset]) -> str:
    if not changesets:
        return 'No pending changesets.'
    lines = []
    for cs in changesets:
        entries = ', '.join(f'{name}:{bump}' for name, bump in cs.entries.items())
        envs = ','.join(cs.environments) or '(default)'
        lines.append(f'  📝 {cs.id}  [{envs}]  {entries}')
        if cs.summary:
            lines.append(f'     {cs.summary.splitlines()[0]}')
    return '\n'.join(lines)


# init / config / explain


def _cmd_init(args: argparse.Namespace) -> int:
    """Handle the ``init`` subcommand."""
    ctx = _context(args, discover=False)
    result = scaffold(ctx.root, force=args.force)
    if ctx.json:
        _emit(ctx, result.to_dict(ctx.root), '')
        return EXIT_OK
    if ctx.quiet:
        return EXIT_OK
    if result.config_written:
        print_scaffold_preview(result.config_text)
        print('  ✅ Configuration written')  # noqa: T201 - CLI output
    else:
        print(f'  ℹ️  {result.config_path.name} already exists (use --force to overwrite)')  # noqa: T201 - CLI output
    for path in result.created:
        print(f'  📁 {path.relative_to(ctx.root).as_posix()}')  # noqa: T201 - CLI output
    return EXIT_OK


def _cmd_config(args: argparse.Namespace) -> int:
    """Handle ``config show`` and ``config validate``."""
    ctx = _context(args)
    source = str(ctx.config.config_path) if ctx.config.config_path else None
    if args.config_command == 'validate':
        _emit(ctx, {'valid': True, 'path': source}, f'  ✅ {source or "defaults"} is valid')
        return EXIT_OK
    _emit(ctx, {'path': source, 'config': ctx.config.to_dict()}, tomlkit.dumps(default_config_document(ctx.config)))
    return EXIT_OK


def _cmd_explain(args: argparse.Namespace) -> int:
    """Handle the ``explain`` subcommand."""
    result = explain(args.code)
    if result is None:
        print(f'Unknown error code: {args.code}')  # noqa: T201 - CLI output
        return EXIT_VALIDATION
    print(result)  # noqa: T201 - CLI output
    return EXIT_OK


# changeset


async def _cmd_changeset(args: argparse.Namespace) -> int:
    """Handle the ``changeset`` subcommands."""
    ctx = _context(args)
    store = ctx.store()
    command = args.changeset_command

    if command == 'list':
        with shared_lock(ctx.backup_root):
            pending = await store.read_pending()
        data = {
            'changesets': [cs.to_dict() for cs in pending.changesets],
            'failures': [{'path': str(f.path), 'message': f.message} for f in pending.failures],
        }
        text = _format_changesets(pending.changesets)
        for failure in pending.failures:
            text += f'\n  ⚠️  {failure.path.name}: {failure.message}'
        _emit(ctx, data, text)
        return EXIT_OK

    if command == 'show':
        with shared_lock(ctx.backup_root):
            changeset = await store.load(args.id)
        _emit(ctx, changeset.to_dict(), serialize_changeset(changeset).rstrip())
        return EXIT_OK

    if command == 'history':
        with shared_lock(ctx.backup_root):
            history = await store.list_history(args.package)
        _emit(ctx, [cs.to_dict() for cs in history], _format_changesets(history))
        return EXIT_OK

    with _mutating(ctx):
        if command == 'add':
            workspace = await load_workspace(ctx.root)
            entries = _parse_entries(args.package, ctx.config)
            changeset = store.create(
                entries,
                summary=args.summary or '',
                environments=args.env or (),
                author=args.author or '',
                breaking_notes=args.breaking or '',
                slug=args.title or '',
            )
            _check_changeset(store, changeset, workspace)
            path = store.add(changeset)
            _emit(ctx, {'id': changeset.id, 'path': str(path)}, f'  ✅ Added {path.relative_to(ctx.root).as_posix()}')
            return EXIT_OK

        if command == 'update':
            workspace = await load_workspace(ctx.root)
            updated = await store.update(
                args.id,
                entries=_parse_entries(args.package, ctx.config) or None,
                environments=args.env,
                summary=args.summary,
                author=args.author,
                breaking_notes=args.breaking,
            )
            _check_changeset(store, updated, workspace)
            _emit(ctx, updated.to_dict(), f'  ✅ Updated {updated.id}')
            return EXIT_OK

        path = store.remove(args.id)
        _emit(ctx, {'id': args.id, 'path': str(path)}, f'  🗑️  Removed {args.id}')
        return EXIT_OK


# version


async def _unreleased_changes(
    workspace: Workspace,
    git: GitPort,
    since: str,
    changesets: list[Changeset],
) -> list[str]:
    """Packages changed since ``since`` that no selected changeset mentions."""
    report = await detect_changes(workspace, git, CommitRange(from_ref=since, to_ref='HEAD'))
    mentioned = {name for cs in changesets for name in cs.entries}
    missing = [name for name in report.changed_packages if name not in mentioned]
    for name in missing:
        logger.warning('changed_without_changeset', package=name, since=since)
    return missing


async def _plan_version(ctx: Context, args: argparse.Namespace, git: GitPort) -> tuple[Plan, list[str]]:
    workspace = await load_workspace(ctx.root)
    store = ctx.store()
    pending = await store.read_pending()
    pending.raise_on_failures()
    environments = args.env or None

    plan = build_plan(workspace, pending.changesets, ctx.config, environments=environments, date=_today(), tag=args.tag)
    if args.snapshot:
        stamp = datetime.now(timezone.utc).strftime('%Y%m%d%H%M%S')
        overrides = snapshot_versions(plan, args.snapshot, ctx.config.version.snapshot_format, timestamp=stamp)
        plan = build_plan(
            workspace,
            pending.changesets,
            ctx.config,
            environments=environments,
            date=_today(),
            version_overrides=overrides,
        )

    unreleased: list[str] = []
    if args.since:
        selected = filter_changesets(
            pending.changesets,
            plan.environments,
            ctx.config.changeset.default_environments,
        )
        unreleased = await _unreleased_changes(workspace, git, args.since, selected)
    return plan, unreleased


async def _cmd_version(args: argparse.Namespace) -> int:
    """Handle the ``version`` subcommand."""
    ctx = _context(args)
    git = GitCLIBackend(ctx.root)

    if args.dry_run:
        with shared_lock(ctx.backup_root):
            plan, unreleased = await _plan_version(ctx, args, git)
        data = {**plan.to_dict(), 'dry_run': True, 'unreleased_changes': unreleased}
        _emit(ctx, data, plan.format_table())
        return EXIT_OK

    with _mutating(ctx):
        plan, unreleased = await _plan_version(ctx, args, git)
        applier = Applier(plan, backup_root=ctx.backup_root, history_path=ctx.store().history_path)
        result = await applier.execute()

        tags: list[str] = []
        if plan.git_tags and not plan.is_empty:
            store = ctx.store()
            paths = sorted({str(p) for p in (*result.manifests, *result.changelogs)} | {str(store.path)})
            await git.commit(merge_commit_message(plan, ctx.config), paths=paths)
            for tag in plan.git_tags:
                await git.tag(tag.name, message=tag.message)
                tags.append(tag.name)

    data = {**plan.to_dict(), 'dry_run': False, 'result': result.to_dict(ctx.root), 'tags': tags}
    data['unreleased_changes'] = unreleased
    text = plan.format_table()
    if not plan.is_empty:
        text += f'\n\n  ✅ Applied ({len(result.manifests)} manifest(s), {len(result.archived)} changeset(s) archived)'
    for tag in tags:
        text += f'\n  🏷️  {tag}'
    _emit(ctx, data, text)
    return EXIT_OK


# changes


async def _cmd_changes(args: argparse.Namespace) -> int:
    """Handle the ``changes`` subcommand."""
    ctx = _context(args)
    mode = select_mode(
        branch=args.branch,
        from_ref=args.from_ref,
        to_ref=args.to_ref,
        staged=args.staged,
        unstaged=args.unstaged,
    )
    with shared_lock(ctx.backup_root):
        workspace = await load_workspace(ctx.root)
        report = await detect_changes(workspace, GitCLIBackend(ctx.root), mode)

    lines = [f'Changes ({report.mode}):']
    for name in sorted(report.packages):
        changes = report.packages[name]
        if not changes.changed:
            continue
        marker = ' (package.json)' if changes.manifest_changed else ''
        lines.append(
            f'  📦 {name}: +{len(changes.files_added)} ~{len(changes.files_modified)} -{len(changes.files_deleted)} '
            f'files, +{changes.lines_added}/-{changes.lines_deleted} lines, {changes.commit_count} commit(s){marker}'
        )
    if len(lines) == 1:
        lines.append('  No changes.')
    _emit(ctx, report.to_dict(), '\n'.join(lines))
    return EXIT_OK


# upgrade


async def _registry(ctx: Context) -> NpmRegistry:
    registry_config = ctx.config.upgrade.registry
    npmrc = await load_npmrc(ctx.root) if registry_config.read_npmrc else None
    return NpmRegistry(registry_config, npmrc=npmrc)


def _upgrade_classes(args: argparse.Namespace) -> frozenset[str]:
    """Dependency classes to upgrade; the class flags narrow or widen the default."""
    flagged = {name for name, on in (('dev', args.dev), ('peer', args.peer), ('optional', args.optional)) if on}
    if not flagged:
        return DEFAULT_CLASSES
    return frozenset({'runtime', *flagged})


async def _check(ctx: Context, args: argparse.Namespace, workspace: Workspace) -> UpgradeReport:
    return await check_upgrades(
        workspace,
        await _registry(ctx),
        policy=parse_policy(args.policy),
        classes=_upgrade_classes(args),
        selector=args.package,
    )


async def _cmd_upgrade(args: argparse.Namespace) -> int:
    """Handle the ``upgrade`` subcommands."""
    ctx = _context(args)
    command = args.upgrade_command

    if command == 'check':
        with shared_lock(ctx.backup_root):
            workspace = await load_workspace(ctx.root)
            report = await _check(ctx, args, workspace)
        _emit(ctx, report.to_dict(), report.format_table())
        return EXIT_OK

    if command == 'backups':
        records = list_backups(ctx.root, ctx.config)
        data = [{**r.to_dict(), 'age_secs': int(backup_age(r))} for r in records]
        lines = [f'  💾 {r.run_id}  {r.operation}  {len(r.files)} file(s)' for r in records]
        _emit(ctx, data, '\n'.join(lines) or 'No retained backups.')
        return EXIT_OK

    with _mutating(ctx):
        if command == 'rollback':
            record = rollback(ctx.root, ctx.config, args.id)
            _emit(ctx, record.to_dict(), f'  ⏪ Restored {record.run_id} ({len(record.files)} file(s))')
            return EXIT_OK

        workspace = await load_workspace(ctx.root)
        report = await _check(ctx, args, workspace)
        plan, result = await apply_upgrades(workspace, report, ctx.config, ctx.store())

    data = {'report': report.to_dict(), 'plan': plan.to_dict(), 'result': result.to_dict(ctx.root)}
    text = report.format_table()
    for path in result.new_files:
        text += f'\n  📝 {path.relative_to(ctx.root).as_posix()}'
    if result.backup_dir is not None:
        text += f'\n  💾 Backup kept: {result.run_id}'
    _emit(ctx, data, text)
    return EXIT_OK


# audit / recover


async def _cmd_audit(args: argparse.Namespace) -> int:
    """Handle the ``audit`` subcommand.

    Exits 1 when a critical issue is found.
    """
    ctx = _context(args)
    audit_config = ctx.config.audit
    with shared_lock(ctx.backup_root):
        workspace = await load_workspace(ctx.root)
        registry = None
        if audit_config.sections.upgrades and not args.offline:
            registry = await _registry(ctx)
        report = await run_audit(workspace, audit_config, ctx.store(), registry, min_severity=args.min_severity)
    _emit(ctx, report.to_dict(), report.format_text())
    return EXIT_OK if report.ok else EXIT_VALIDATION


def _cmd_recover(args: argparse.Namespace) -> int:
    """Handle the ``recover`` subcommand."""
    ctx = _context(args)
    with exclusive_lock(ctx.backup_root):
        restored = recover(ctx.root, ctx.backup_root)
    lines = [f'  ⏪ Rolled back {run_id}' for run_id in restored] or ['  ✅ Nothing to recover.']
    _emit(ctx, {'restored': restored}, '\n'.join(lines))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    Returns:
        Configured :class:`argparse.ArgumentParser`.
    """
    RichHelpFormatter.styles['argparse.groups'] = 'bold yellow'
    parser = argparse.ArgumentParser(
        prog='wsrelease',
        description='Changeset-driven releases for JavaScript and TypeScript workspaces.',
        formatter_class=RichHelpFormatter,
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--root', metavar='DIR', default=None, help='Workspace root (default: discovered from CWD).')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging.')
    parser.add_argument('--quiet', '-q', action='store_true', help='Only warnings and errors; no stdout report.')
    parser.add_argument('--json', action='store_true', help='Print one JSON document per command.')
    parser.add_argument('--json-log', action='store_true', help='Emit structured JSON logs on stderr.')
    parser.add_argument('--yes', '-y', action='store_true', help='Assume yes to prompts (e.g. crash recovery).')

    subparsers = parser.add_subparsers(dest='command')

    init_parser = subparsers.add_parser(
        'init',
        help='Scaffold repo.config.toml, .changesets/ and the backup directory.',
        formatter_class=RichHelpFormatter,
    )
    init_parser.add_argument('--force', action='store_true', help='Overwrite an existing configuration.')

    config_parser = subparsers.add_parser(
        'config',
        help='Inspect the configuration.',
        formatter_class=RichHelpFormatter,
    )
    config_sub = config_parser.add_subparsers(dest='config_command', required=True)
    config_sub.add_parser('show', help='Print the effective configuration.')
    config_sub.add_parser('validate', help='Validate the configuration file.')

    cs_parser = subparsers.add_parser('changeset', help='Manage pending changesets.', formatter_class=RichHelpFormatter)
    cs_sub = cs_parser.add_subparsers(dest='changeset_command', required=True)

    def _entry_options(sub: argparse.ArgumentParser, *, required: bool) -> None:
        sub.add_argument(
            '--package',
            '-p',
            action='append',
            required=required,
            metavar='NAME[=BUMP]',
            help='Package and bump (patch, minor, major, prerelease[:tag], exact:X.Y.Z). Repeatable.',
        )
        sub.add_argument('--env', '-e', action='append', metavar='ENV', help='Target environment. Repeatable.')
        sub.add_argument('--summary', '-m', default=None, help='Summary for the changelog.')
        sub.add_argument('--author', default=None, help='Author.')
        sub.add_argument('--breaking', default=None, metavar='NOTES', help='Breaking-change notes.')

    add_parser = cs_sub.add_parser('add', help='Create a changeset.')
    _entry_options(add_parser, required=True)
    add_parser.add_argument('--title', default=None, help='Text the id is derived from (default: the summary).')
    cs_sub.add_parser('list', help='List pending changesets.')
    show_parser = cs_sub.add_parser('show', help='Show one pending changeset.')
    show_parser.add_argument('id')
    update_parser = cs_sub.add_parser('update', help='Edit a pending changeset (BUMP=none drops a package).')
    update_parser.add_argument('id')
    _entry_options(update_parser, required=False)
    remove_parser = cs_sub.add_parser('remove', help='Delete a pending changeset.')
    remove_parser.add_argument('id')
    history_parser = cs_sub.add_parser('history', help='List archived changesets.')
    history_parser.add_argument('--package', '-p', default=None, help='Only changesets for this package.')

    version_parser = subparsers.add_parser(
        'version',
        help='Bump versions, rewrite ranges, write changelogs, archive changesets.',
        formatter_class=RichHelpFormatter,
    )
    version_parser.add_argument('--env', '-e', action='append', metavar='ENV', help='Active environment. Repeatable.')
    version_parser.add_argument('--dry-run', action='store_true', help='Print the plan without applying it.')
    version_parser.add_argument('--tag', action='store_true', help='Commit the release and create git tags.')
    version_parser.add_argument('--snapshot', metavar='SHA', default=None, help='Snapshot release for this commit.')
    version_parser.add_argument(
        '--since',
        metavar='REF',
        default=None,
        help='Warn about packages changed since REF that no changeset mentions.',
    )

    changes_parser = subparsers.add_parser(
        'changes',
        help='Report which packages a diff touched.',
        formatter_class=RichHelpFormatter,
    )
    changes_parser.add_argument('--staged', action='store_true', help='Index against HEAD.')
    changes_parser.add_argument('--unstaged', action='store_true', help='Work tree against the index.')
    changes_parser.add_argument('--from', dest='from_ref', metavar='REF', default=None, help='Range start.')
    changes_parser.add_argument('--to', dest='to_ref', metavar='REF', default=None, help='Range end (default HEAD).')
    changes_parser.add_argument('--branch', metavar='TARGET', default=None, help='Compare HEAD with TARGET...HEAD.')

    upgrade_parser = subparsers.add_parser(
        'upgrade',
        help='Upgrade external dependencies from the registry.',
        formatter_class=RichHelpFormatter,
    )
    upgrade_sub = upgrade_parser.add_subparsers(dest='upgrade_command', required=True)
    for name, text in (('check', 'Report available upgrades.'), ('apply', 'Apply available upgrades.')):
        sub = upgrade_sub.add_parser(name, help=text)
        sub.add_argument('--policy', choices=['latest', 'minor', 'patch'], default='latest', help='How far to move.')
        sub.add_argument('--dev', action='store_true', help='Include devDependencies.')
        sub.add_argument('--peer', action='store_true', help='Include peerDependencies.')
        sub.add_argument('--optional', action='store_true', help='Include optionalDependencies.')
        sub.add_argument('--package', '-p', action='append', metavar='SEL', help='Member name or glob. Repeatable.')
    rollback_parser = upgrade_sub.add_parser('rollback', help='Restore a retained upgrade backup.')
    rollback_parser.add_argument('id', nargs='?', default=None, help='Backup id (default: the newest).')
    upgrade_sub.add_parser('backups', help='List retained backups.')

    audit_parser = subparsers.add_parser('audit', help='Workspace health report.', formatter_class=RichHelpFormatter)
    audit_parser.add_argument(
        '--min-severity',
        choices=['info', 'warning', 'critical'],
        default=None,
        help='Hide issues below this severity.',
    )
    audit_parser.add_argument('--offline', action='store_true', help='Skip the registry-backed upgrades section.')

    subparsers.add_parser('recover', help='Roll back runs interrupted mid-apply.', formatter_class=RichHelpFormatter)

    explain_parser = subparsers.add_parser('explain', help='Explain an error code.', formatter_class=RichHelpFormatter)
    explain_parser.add_argument('code', help='Error code, e.g. WR-LOCK-HELD.')

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Args:
        argv: Arguments (default: ``sys.argv[1:]``).

    Returns:
        Exit code (see module docstring).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose, quiet=args.quiet, json_log=args.json_log)

    try:
        command = args.command
        if command == 'init':
            return _cmd_init(args)
        if command == 'config':
            return _cmd_config(args)
        if command == 'changeset':
            return asyncio.run(_cmd_changeset(args))
        if command == 'version':
            return asyncio.run(_cmd_version(args))
        if command == 'changes':
            return asyncio.run(_cmd_changes(args))
        if command == 'upgrade':
            return asyncio.run(_cmd_upgrade(args))
        if command == 'audit':
            return asyncio.run(_cmd_audit(args))
        if command == 'recover':
            return _cmd_recover(args)
        if command == 'explain':
            return _cmd_explain(args)

        parser.print_help()  # noqa: T201 - CLI output
        print(  # noqa: T201 - CLI output
            f'\n{parser.prog}: error: please provide a command',
            file=sys.stderr,
        )
        return EXIT_VALIDATION

    except ReleaseError as exc:
        render_error(exc)
        return exc.exit_code
    except Cancelled:
        logger.info('cancelled')
        return EXIT_CANCELLED
    except KeyboardInterrupt:
        logger.info('interrupted')
        return EXIT_CANCELLED


def _main() -> None:
    """Wrapper for pyproject.toml [project.scripts] entry point."""
    sys.exit(main())


__all__ = [
    'build_parser',
    'main',
]
