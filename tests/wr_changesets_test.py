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


"""Tests for wsrelease.changesets."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
from wsrelease.changesets import (
    Changeset,
    ChangesetStore,
    parse_changeset,
    serialize_changeset,
    slugify,
)
from wsrelease.config import ChangesetConfig
from wsrelease.errors import E, ChangesetError
from wsrelease.versioning import MINOR, NONE, PATCH, Bump, BumpType

MOMENT = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)

VALID = """\
---
id: add-search
timestamp: '2026-10-19T12:00:00Z'
author: jane
environments:
- production
entries:
  '@acme/core': minor
  '@acme/web': patch
summary: Add search.
---
"""


def _store(root: Path) -> ChangesetStore:
    return ChangesetStore(root, ChangesetConfig(), clock=lambda: MOMENT)


def _write(root: Path, name: str, text: str) -> Path:
    path = root / '.changesets' / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding='utf-8')
    return path


class TestParse:
    """Tests for parse_changeset and serialize_changeset."""

    def test_front_matter(self) -> None:
        """All fields are read and the id comes from the file stem."""
        cs = parse_changeset(VALID, Path('.changesets/add-search.yaml'))
        assert cs.id == 'add-search'
        assert cs.environments == ('production',)
        assert cs.entries == {'@acme/core': MINOR, '@acme/web': PATCH}
        assert list(cs.entries) == ['@acme/core', '@acme/web']
        assert cs.summary == 'Add search.'
        assert cs.author == 'jane'

    def test_body_is_summary_fallback(self) -> None:
        """Markdown after the front matter becomes the summary."""
        text = '---\nentries:\n  api: major\n---\n\nRemoved the v1 endpoints.\n'
        cs = parse_changeset(text, Path('drop-v1.md'))
        assert cs.summary == 'Removed the v1 endpoints.'
        assert cs.environments == ()

    def test_plain_yaml(self) -> None:
        """A file without delimiters is read as YAML."""
        cs = parse_changeset('entries:\n  api: prerelease:beta\n', Path('x.yaml'))
        assert cs.entries['api'] == Bump(BumpType.PRERELEASE, tag='beta')

    def test_unquoted_timestamp(self) -> None:
        """YAML datetimes are normalized to the Z form."""
        cs = parse_changeset('timestamp: 2026-10-19T12:00:00Z\nentries: {}\n', Path('x.yaml'))
        assert cs.timestamp == '2026-10-19T12:00:00Z'

    @pytest.mark.parametrize(
        'text',
        [
            '---\nentries:\n  api: minor\n',
            'entries: [api]\n',
            '- just\n- a list\n',
            'environments: {prod: true}\n',
            'entries: {api: [minor\n',
        ],
    )
    def test_malformed(self, text: str) -> None:
        """Structural problems raise CHANGESET_PARSE_ERROR."""
        with pytest.raises(ChangesetError) as exc_info:
            parse_changeset(text, Path('bad.yaml'))
        assert exc_info.value.code == E.CHANGESET_PARSE_ERROR

    def test_invalid_bump(self) -> None:
        """Unknown bump kinds raise CHANGESET_INVALID_BUMP."""
        with pytest.raises(ChangesetError) as exc_info:
            parse_changeset('entries:\n  api: huge\n', Path('bad.yaml'))
        assert exc_info.value.code == E.CHANGESET_INVALID_BUMP

    def test_serialize_round_trip(self) -> None:
        """Serialized changesets parse back to an equal record."""
        cs = Changeset(
            id='x',
            timestamp='2026-10-19T12:00:00Z',
            environments=('staging',),
            entries={'api': Bump(BumpType.EXACT, version='2.0.0'), 'web': MINOR},
            summary='Multi\nline',
            breaking_notes='Drops Node 16.',
        )
        assert parse_changeset(serialize_changeset(cs), Path('x.yaml')) == cs

    def test_summary_whitespace_survives(self) -> None:
        """Leading indentation and trailing newlines in the summary are kept byte for byte."""
        cs = Changeset(
            id='x',
            timestamp='2026-10-19T12:00:00Z',
            entries={'api': MINOR},
            summary='  Indented code:\n\n    x = 1\n',
        )
        text = serialize_changeset(cs)
        parsed = parse_changeset(text, Path('x.yaml'))
        assert parsed.summary == '  Indented code:\n\n    x = 1\n'
        assert serialize_changeset(parsed) == text


class TestStore:
    """Tests for ChangesetStore."""

    @pytest.mark.asyncio()
    async def test_missing_directory(self, tmp_path: Path) -> None:
        """No changeset directory means nothing pending."""
        pending = await _store(tmp_path).read_pending()
        assert pending.changesets == []
        assert pending.failures == []

    @pytest.mark.asyncio()
    async def test_skips_readme_dotfiles_and_history(self, tmp_path: Path) -> None:
        """README*, dot files, other suffixes and history/ are ignored."""
        _write(tmp_path, 'README-example.yaml', VALID)
        _write(tmp_path, '.draft.yaml', VALID)
        _write(tmp_path, 'notes.txt', 'x')
        _write(tmp_path, 'history/20260101T000000Z-old.yaml', VALID)
        _write(tmp_path, 'add-search.yaml', VALID)
        pending = await _store(tmp_path).read_pending()
        assert [c.id for c in pending.changesets] == ['add-search']

    @pytest.mark.asyncio()
    async def test_failures_collected(self, tmp_path: Path) -> None:
        """Malformed files are reported without hiding valid ones."""
        _write(tmp_path, 'a.yaml', VALID)
        _write(tmp_path, 'b.yaml', 'entries: [oops]\n')
        _write(tmp_path, 'c.yaml', 'entries:\n  api: gigantic\n')
        pending = await _store(tmp_path).read_pending()
        assert [c.id for c in pending.changesets] == ['a']
        assert [f.path.name for f in pending.failures] == ['b.yaml', 'c.yaml']
        with pytest.raises(ChangesetError) as exc_info:
            pending.raise_on_failures()
        assert exc_info.value.code == E.CHANGESET_PARSE_ERROR

    @pytest.mark.asyncio()
    async def test_list_pending_skips_malformed(self, tmp_path: Path) -> None:
        """list_pending returns only the parsed changesets, sorted by id."""
        _write(tmp_path, 'b.yaml', VALID)
        _write(tmp_path, 'broken.yaml', 'entries: [oops]\n')
        _write(tmp_path, 'a.yaml', VALID)
        changesets = await _store(tmp_path).list_pending()
        assert [c.id for c in changesets] == ['a', 'b']
        assert len(exc_info.value.details) == 2

    @pytest.mark.asyncio()
    async def test_add_and_load(self, tmp_path: Path) -> None:
        """create + add writes <id>.yaml that loads back."""
        store = _store(tmp_path)
        cs = store.create({'api': MINOR}, summary='Add Search API!')
        assert cs.id == 'add-search-api-20261019120000'
        assert cs.timestamp == '2026-10-19T12:00:00Z'
        path = store.add(cs)
        assert path == store.path / f'{cs.id}.yaml'
        assert await store.load(cs.id) == cs

    def test_add_existing(self, tmp_path: Path) -> None:
        """Adding an existing id fails with CHANGESET_EXISTS."""
        store = _store(tmp_path)
        cs = store.create({'api': MINOR}, slug='dup')
        store.add(cs)
        with pytest.raises(ChangesetError) as exc_info:
            store.add(cs)
        assert exc_info.value.code == E.CHANGESET_EXISTS

    @pytest.mark.asyncio()
    async def test_update_merges_entries(self, tmp_path: Path) -> None:
        """update merges entries and a none bump drops a package."""
        store = _store(tmp_path)
        cs = store.create({'api': MINOR, 'web': PATCH}, slug='x')
        store.add(cs)
        updated = await store.update(cs.id, entries={'web': NONE, 'cli': PATCH}, summary='Changed.')
        assert updated.entries == {'api': MINOR, 'cli': PATCH}
        assert (await store.load(cs.id)).summary == 'Changed.'

    @pytest.mark.asyncio()
    async def test_missing_id(self, tmp_path: Path) -> None:
        """Unknown ids raise CHANGESET_NOT_FOUND."""
        with pytest.raises(ChangesetError) as exc_info:
            await _store(tmp_path).load('nope')
        assert exc_info.value.code == E.CHANGESET_NOT_FOUND

    def test_remove(self, tmp_path: Path) -> None:
        """remove deletes the pending file."""
        store = _store(tmp_path)
        path = store.add(store.create({'api': PATCH}, slug='gone'))
        store.remove(path.stem)
        assert not path.exists()

    @pytest.mark.asyncio()
    async def test_archive_and_history(self, tmp_path: Path) -> None:
        """Archived files get a timestamp prefix and show up in history."""
        store = _store(tmp_path)
        _write(tmp_path, 'add-search.yaml', VALID)
        moved = store.archive(['add-search'], moment=MOMENT)
        assert moved == [store.history_path / '20261019T120000Z-add-search.yaml']
        assert not store.exists('add-search')
        history = await store.list_history('@acme/core')
        assert [c.id for c in history] == ['add-search']
        assert await store.list_history('other') == []

    def test_validate(self, tmp_path: Path) -> None:
        """Unknown packages and environments are errors; empty entries warn."""
        store = _store(tmp_path)
        cs = Changeset(id='x', timestamp='', environments=('qa',), entries={'ghost': PATCH})
        findings = store.validate(cs, ['api'])
        assert [(d.severity, d.code) for d in findings] == [
            ('error', E.CHANGESET_UNKNOWN_PACKAGE),
            ('error', E.CHANGESET_INVALID_ENVIRONMENT),
        ]
        empty = store.validate(Changeset(id='y', timestamp=''))
        assert [d.severity for d in empty] == ['warning']


class TestHelpers:
    """Tests for small helpers."""

    @pytest.mark.parametrize(
        ('text', 'slug'),
        [('Add Search API!', 'add-search-api'), ('  ', 'changeset'), ('@acme/core: fix', 'acme-core-fix')],
    )
    def test_slugify(self, text: str, slug: str) -> None:
        """Slugs are lowercase words joined by dashes."""
        assert slugify(text) == slug

    def test_targets(self) -> None:
        """An empty environment list falls back to the defaults."""
        cs = Changeset(id='x', timestamp='')
        assert cs.targets(['production'], ['production'])
        assert not cs.targets(['dev'], ['production'])
