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

"""Changeset store.

A changeset is a small YAML file, written by a developer together with
their change, that says which packages need which bump in which release
environments. Pending changesets live directly under ``.changesets/``;
once a release consumes them they move to ``.changesets/history/``.

Key Concepts (ELI5)::

    ┌─────────────────────────┬─────────────────────────────────────────────┐
    │ Concept                 │ Plain-English                               │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Changeset file          │ A YAML file in ``.changesets/`` that        │
    │                         │ declares which packages get bumped and by   │
    │                         │ how much (major/minor/patch/...).           │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Environment             │ A release stream (dev, staging, production).│
    │                         │ A changeset is only used by runs whose      │
    │                         │ environments overlap with its own.          │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Archive                 │ After a release, consumed changeset files   │
    │                         │ move to ``history/`` with a timestamp       │
    │                         │ prefix so they sort chronologically.        │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Two-stage failures      │ Listing reports each malformed file as a    │
    │                         │ warning; planning refuses to run until      │
    │                         │ every pending file parses.                  │
    └─────────────────────────┴─────────────────────────────────────────────┘

Changeset file format (``.changesets/add-streaming-20261019120000.yaml``)::

    ---
    id: add-streaming-20261019120000
    timestamp: '2026-10-19T12:00:00Z'
    author: jane
    environments:
    - production
    entries:
      '@acme/core': minor
      '@acme/web': patch
    summary: Add streaming support.
    ---

The id is the filename stem. Text after the closing ``---`` is used as
the summary when the front matter has none, and a file without ``---``
delimiters is read as plain YAML.

Usage::

    from wsrelease.changesets import ChangesetStore

    store = ChangesetStore(root, config.changeset)
    pending = await store.read_pending()
    for failure in pending.failures:
        print(failure.path, failure.message)
"""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from wsrelease._io import read_file, write_atomic
from wsrelease.config import ChangesetConfig
from wsrelease.errors import E, ChangesetError, ErrorCode, IoError, ReleaseError
from wsrelease.logging import get_logger
from wsrelease.versioning import DEFAULT_PRERELEASE_TAG, Bump, parse_bump

logger = get_logger(__name__)

CHANGESET_SUFFIXES: tuple[str, ...] = ('.yaml', '.yml', '.md')

_SLUG_RE = re.compile(r'[^a-z0-9]+')
_HISTORY_PREFIX_RE = re.compile(r'^\d{8}T\d{6}Z-')
_FRONT_MATTER_DELIM = '---'


def utc_now() -> datetime:
    """Current UTC time, truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def format_timestamp(moment: datetime) -> str:
    """Render ``2026-10-19T12:00:00Z``."""
    return moment.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def short_timestamp(moment: datetime) -> str:
    """Render ``20261019120000`` for file names."""
    return moment.astimezone(timezone.utc).strftime('%Y%m%d%H%M%S')


def history_timestamp(moment: datetime) -> str:
    """Render ``20261019T120000Z`` (ISO-8601 basic) for archive prefixes."""
    return moment.astimezone(timezone.utc).strftime('%Y%m%dT%H%M%SZ')


def slugify(text: str, *, max_length: int = 40) -> str:
    """Turn free text into a file-name slug."""
    slug = _SLUG_RE.sub('-', text.lower()).strip('-')
    slug = slug[:max_length].rstrip('-')
    return slug or 'changeset'


@dataclass(frozen=True)
class Changeset:
    """A single changeset record.

    Attributes:
        id: Identifier; equals the file name stem.
        timestamp: Creation time, ISO-8601 UTC.
        environments: Target environments. Empty means the configured
            default environments.
        entries: Package name → bump, in file order.
        summary: Free-form summary, preserved verbatim in changelogs.
        author: Optional author.
        breaking_notes: Optional notes on breaking changes.
        path: File the changeset was read from, if any.
    """

    id: str
    timestamp: str
    environments: tuple[str, ...] = ()
    entries: dict[str, Bump] = field(default_factory=dict)
    summary: str = ''
    author: str = ''
    breaking_notes: str = ''
    path: Path | None = field(default=None, compare=False)

    def effective_environments(self, defaults: Iterable[str]) -> tuple[str, ...]:
        """Environments this changeset targets, falling back to ``defaults``."""
        return self.environments or tuple(defaults)

    def targets(self, active: Iterable[str], defaults: Iterable[str]) -> bool:
        """Whether the changeset applies to a run over ``active`` environments."""
        return bool(set(self.effective_environments(defaults)) & set(active))

    def to_dict(self) -> dict[str, Any]:
        """Return the front matter mapping in canonical key order."""
        data: dict[str, Any] = {'id': self.id, 'timestamp': self.timestamp}
        if self.author:
            data['author'] = self.author
        data['environments'] = list(self.environments)
        data['entries'] = {name: str(bump) for name, bump in self.entries.items()}
        data['summary'] = self.summary
        if self.breaking_notes:
            data['breaking_notes'] = self.breaking_notes
        return data


@dataclass(frozen=True)
class ChangesetFailure:
    """A pending file that could not be parsed."""

    path: Path
    message: str


@dataclass(frozen=True)
class PendingChangesets:
    """Result of reading the pending directory.

    Attributes:
        changesets: Parsed changesets, sorted by id.
        failures: Files that failed to parse.
    """

    changesets: list[Changeset] = field(default_factory=list)
    failures: list[ChangesetFailure] = field(default_factory=list)

    def raise_on_failures(self) -> None:
        """Raise one aggregated error listing every malformed file.

        Raises:
            ChangesetError: ``WR-CHANGESET-PARSE-ERROR``.
        """
        if not self.failures:
            return
        raise ChangesetError(
            E.CHANGESET_PARSE_ERROR,
            f'{len(self.failures)} pending changeset(s) could not be parsed',
            hint='Fix or remove every file listed before planning a release.',
            paths=[f.path for f in self.failures],
            details=[f'{f.path.name}: {f.message}' for f in self.failures],
        )


@dataclass(frozen=True)
class Diagnostic:
    """A validation finding for one changeset.

    Attributes:
        severity: ``error`` or ``warning``.
        code: Matching error code.
        message: Human-readable description.
        package: Package the finding concerns, if any.
    """

    severity: str
    code: ErrorCode
    message: str
    package: str = ''


def serialize_changeset(changeset: Changeset) -> str:
    """Render a changeset as front-matter YAML."""
    body = yaml.safe_dump(
        changeset.to_dict(),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )
    return f'{_FRONT_MATTER_DELIM}\n{body}{_FRONT_MATTER_DELIM}\n'


def _split_front_matter(text: str) -> tuple[str, str]:
    """Return (yaml, body). Plain YAML files have an empty body."""
    lines = text.splitlines()
    if not lines or lines[0].strip() != _FRONT_MATTER_DELIM:
        return text, ''
    for i, line in enumerate(lines[1:], start=1):
        if line.strip() == _FRONT_MATTER_DELIM:
            return '\n'.join(lines[1:i]), '\n'.join(lines[i + 1 :]).strip()
    raise ValueError('unclosed front matter (missing closing ---)')


def _as_text(value: object) -> str:
    if isinstance(value, datetime):
        return format_timestamp(value if value.tzinfo else value.replace(tzinfo=timezone.utc))
    return '' if value is None else str(value)


def parse_changeset(
    text: str,
    path: Path,
    *,
    prerelease_tag: str = DEFAULT_PRERELEASE_TAG,
) -> Changeset:
    """Parse changeset file text.

    Raises:
        ChangesetError: ``WR-CHANGESET-PARSE-ERROR`` for malformed YAML or
            fields, ``WR-CHANGESET-INVALID-BUMP`` for unknown bumps.
    """

    def _fail(message: str, code: ErrorCode = E.CHANGESET_PARSE_ERROR) -> ChangesetError:
        return ChangesetError(code, f'{path.name}: {message}', paths=[path])

    try:
        front, body = _split_front_matter(text)
        data = yaml.safe_load(front)
    except (ValueError, yaml.YAMLError) as exc:
        raise _fail(str(exc)) from exc
    if not isinstance(data, dict):
        raise _fail('front matter must be a YAML mapping')

    stem = path.stem
    declared_id = _as_text(data.get('id', '')).strip()
    if declared_id and declared_id != stem:
        logger.warning('changeset_id_mismatch', path=str(path), declared=declared_id, file_id=stem)

    environments = data.get('environments') or []
    if isinstance(environments, str):
        environments = [environments]
    if not isinstance(environments, list) or not all(isinstance(e, str) for e in environments):
        raise _fail('environments must be a list of strings')

    raw_entries = data.get('entries')
    if raw_entries is None:
        raw_entries = {}
    if not isinstance(raw_entries, dict):
        raise _fail('entries must be a mapping of package name to bump')
    entries: dict[str, Bump] = {}
    for name, raw_bump in raw_entries.items():
        try:
            entries[str(name)] = parse_bump(_as_text(raw_bump), default_prerelease_tag=prerelease_tag)
        except ChangesetError as exc:
            raise _fail(f'{name}: {exc.info.message}', E.CHANGESET_INVALID_BUMP) from exc

    summary = _as_text(data.get('summary'))
    if not summary.strip() and body:
        summary = body
    return Changeset(
        id=stem,
        timestamp=_as_text(data.get('timestamp')),
        environments=tuple(environments),
        entries=entries,
        summary=summary,
        author=_as_text(data.get('author')),
        breaking_notes=_as_text(data.get('breaking_notes')),
        path=path,
    )


def _is_candidate(path: Path) -> bool:
    name = path.name
    if name.startswith('.') or name.startswith('README'):
        return False
    return path.is_file() and path.suffix.lower() in CHANGESET_SUFFIXES


class ChangesetStore:
    """Reads, writes and archives changesets under a workspace root.

    Args:
        root: Workspace root.
        config: The ``[changeset]`` configuration.
        prerelease_tag: Tag for bare ``prerelease`` bumps.
        clock: Source of the current time (UTC).
    """

    def __init__(
        self,
        root: Path,
        config: ChangesetConfig,
        *,
        prerelease_tag: str = DEFAULT_PRERELEASE_TAG,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the store."""
        self._root = root
        self._config = config
        self._prerelease_tag = prerelease_tag
        self._clock = clock

    @property
    def path(self) -> Path:
        """Absolute pending directory."""
        return (self._root / self._config.path).absolute()

    @property
    def history_path(self) -> Path:
        """Absolute history directory."""
        return (self._root / self._config.history_path).absolute()

    @property
    def config(self) -> ChangesetConfig:
        """The ``[changeset]`` configuration."""
        return self._config

    def now(self) -> datetime:
        """Current time from the store's clock."""
        return self._clock()

    def _pending_files(self) -> list[Path]:
        if not self.path.is_dir():
            logger.debug('changeset_dir_not_found', path=str(self.path))
            return []
        history = self.history_path
        return sorted(p for p in self.path.iterdir() if p != history and _is_candidate(p))

    async def _read(self, path: Path) -> Changeset:
        text = await read_file(path)
        return parse_changeset(text, path, prerelease_tag=self._prerelease_tag)

    async def read_pending(self) -> PendingChangesets:
        """Read every pending changeset, collecting per-file failures."""
        changesets: list[Changeset] = []
        failures: list[ChangesetFailure] = []
        for path in self._pending_files():
            try:
                cs = await self._read(path)
            except ReleaseError as exc:
                logger.warning('changeset_parse_failed', path=str(path), error=exc.info.message)
                failures.append(ChangesetFailure(path=path, message=exc.info.message))
                continue
            changesets.append(cs)
            logger.debug('changeset_read', path=str(path), packages=len(cs.entries))
        changesets.sort(key=lambda c: c.id)
        logger.info('changesets_total', count=len(changesets), failed=len(failures))
        return PendingChangesets(changesets=changesets, failures=failures)

    async def list_pending(self) -> list[Changeset]:
        """Return the parsed pending changesets, sorted by id.

        Malformed files are logged as warnings and left out.
        """
        return (await self.read_pending()).changesets

    def pending_file(self, changeset_id: str) -> Path | None:
        """Return the pending file for ``changeset_id``, if any."""
        for suffix in CHANGESET_SUFFIXES:
            candidate = self.path / f'{changeset_id}{suffix}'
            if candidate.is_file():
                return candidate
        return None

    def exists(self, changeset_id: str) -> bool:
        """Whether a pending changeset with this id exists."""
        return self.pending_file(changeset_id) is not None

    def _require(self, changeset_id: str) -> Path:
        path = self.pending_file(changeset_id)
        if path is None:
            raise ChangesetError(
                E.CHANGESET_NOT_FOUND,
                f"Changeset '{changeset_id}' not found in {self.path}",
                hint="Run 'wsrelease changeset list' to see pending changesets.",
            )
        return path

    async def load(self, changeset_id: str) -> Changeset:
        """Read one pending changeset by id.

        Raises:
            ChangesetError: ``WR-CHANGESET-NOT-FOUND`` or a parse error.
        """
        return await self._read(self._require(changeset_id))

    def new_id(self, title: str, moment: datetime | None = None) -> str:
        """Build ``<slug>-<short-timestamp>`` from free text."""
        return f'{slugify(title)}-{short_timestamp(moment or self.now())}'

    def create(
        self,
        entries: dict[str, Bump],
        *,
        summary: str = '',
        environments: Iterable[str] = (),
        author: str = '',
        breaking_notes: str = '',
        slug: str = '',
    ) -> Changeset:
        """Build a new changeset with a fresh id and timestamp (not yet written)."""
        moment = self.now()
        return Changeset(
            id=self.new_id(slug or summary or 'changeset', moment),
            timestamp=format_timestamp(moment),
            environments=tuple(environments),
            entries=dict(entries),
            summary=summary,
            author=author,
            breaking_notes=breaking_notes,
        )

    def add(self, changeset: Changeset) -> Path:
        """Write a new pending changeset atomically.

        Returns:
            The path of the new file, ``<changeset_path>/<id>.yaml``.

        Raises:
            ChangesetError: ``WR-CHANGESET-EXISTS`` if the id is taken.
        """
        if self.exists(changeset.id):
            raise ChangesetError(
                E.CHANGESET_EXISTS,
                f"Changeset '{changeset.id}' already exists",
                hint='Pick another title or wait a second before adding another changeset.',
            )
        path = self.path / f'{changeset.id}.yaml'
        write_atomic(path, serialize_changeset(changeset))
        logger.info('changeset_added', id=changeset.id, path=str(path), packages=len(changeset.entries))
        return path

    async def update(
        self,
        changeset_id: str,
        *,
        entries: dict[str, Bump] | None = None,
        environments: Iterable[str] | None = None,
        summary: str | None = None,
        author: str | None = None,
        breaking_notes: str | None = None,
    ) -> Changeset:
        """Rewrite fields of a pending changeset in place.

        ``entries`` are merged into the existing ones; a ``none`` bump
        removes the package from the changeset.
        """
        path = self._require(changeset_id)
        current = await self._read(path)
        merged = dict(current.entries)
        for name, bump in (entries or {}).items():
            if bump.is_none:
                merged.pop(name, None)
            else:
                merged[name] = bump
        updated = replace(
            current,
            entries=merged,
            environments=tuple(environments) if environments is not None else current.environments,
            summary=summary if summary is not None else current.summary,
            author=author if author is not None else current.author,
            breaking_notes=breaking_notes if breaking_notes is not None else current.breaking_notes,
        )
        write_atomic(path, serialize_changeset(updated))
        logger.info('changeset_updated', id=changeset_id, path=str(path))
        return updated

    def remove(self, changeset_id: str) -> Path:
        """Delete a pending changeset file."""
        path = self._require(changeset_id)
        try:
            path.unlink()
        except OSError as exc:
            raise IoError(E.IO_WRITE_FAILED, f'Failed to delete {path}: {exc}', paths=[path]) from exc
        logger.info('changeset_removed', id=changeset_id, path=str(path))
        return path

    def archive_destination(self, source: Path, moment: datetime) -> Path:
        """History path for ``source``: ``<history>/<ts>-<filename>``."""
        return self.history_path / f'{history_timestamp(moment)}-{source.name}'

    def archive(self, ids: Iterable[str], *, moment: datetime | None = None) -> list[Path]:
        """Move pending changesets into the history directory.

        Returns:
            Destination paths, in the order of ``ids``.
        """
        moment = moment or self.now()
        moved: list[Path] = []
        self.history_path.mkdir(parents=True, exist_ok=True)
        for changeset_id in ids:
            source = self._require(changeset_id)
            dest = self.archive_destination(source, moment)
            try:
                os.replace(source, dest)
            except OSError as exc:
                raise IoError(
                    E.IO_RENAME_FAILED,
                    f'Failed to archive {source} to {dest}: {exc}',
                    paths=[source, dest],
                ) from exc
            logger.info('changeset_archived', id=changeset_id, path=str(dest))
            moved.append(dest)
        return moved

    async def list_history(self, package: str | None = None) -> list[Changeset]:
        """Return archived changesets, oldest first, optionally for one package."""
        if not self.history_path.is_dir():
            return []
        result: list[Changeset] = []
        for path in sorted(p for p in self.history_path.iterdir() if _is_candidate(p)):
            try:
                cs = await self._read(path)
            except ReleaseError as exc:
                logger.warning('history_parse_failed', path=str(path), error=exc.info.message)
                continue
            cs = replace(cs, id=_HISTORY_PREFIX_RE.sub('', path.stem))
            if package is None or package in cs.entries:
                result.append(cs)
        return result

    def validate(self, changeset: Changeset, known_packages: Iterable[str] | None = None) -> list[Diagnostic]:
        """Check a changeset against the workspace and configuration."""
        diagnostics: list[Diagnostic] = []
        if not changeset.entries:
            diagnostics.append(
                Diagnostic('warning', E.CHANGESET_PARSE_ERROR, f"Changeset '{changeset.id}' has no entries")
            )
        if known_packages is not None:
            known = set(known_packages)
            for name in changeset.entries:
                if name not in known:
                    diagnostics.append(
                        Diagnostic(
                            'error',
                            E.CHANGESET_UNKNOWN_PACKAGE,
                            f"Changeset '{changeset.id}' references unknown package '{name}'",
                            package=name,
                        )
                    )
        available = self._config.available_environments
        for env in changeset.environments:
            if env not in available:
                diagnostics.append(
                    Diagnostic(
                        'error',
                        E.CHANGESET_INVALID_ENVIRONMENT,
                        f"Changeset '{changeset.id}' targets unknown environment '{env}'"
                        f' (available: {", ".join(available)})',
                    )
                )
        return diagnostics


__all__ = [
    'CHANGESET_SUFFIXES',
    'Changeset',
    'ChangesetFailure',
    'ChangesetStore',
    'Diagnostic',
    'PendingChangesets',
    'format_timestamp',
    'history_timestamp',
    'parse_changeset',
    'serialize_changeset',
    'short_timestamp',
    'slugify',
    'utc_now',
]
