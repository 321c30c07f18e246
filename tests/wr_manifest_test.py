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


"""Tests for wsrelease.manifest."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from wsrelease.errors import E, WorkspaceError
from wsrelease.manifest import (
    detect_indent,
    json_pointer,
    load_manifest,
    parse_manifest,
    split_pointer,
)

P = Path('/ws/packages/api/package.json')


class TestPointers:
    """Tests for JSON pointer helpers."""

    def test_escapes_scoped_names(self) -> None:
        """Slashes in scoped names are escaped as ~1."""
        assert json_pointer('dependencies', '@scope/core') == '/dependencies/@scope~1core'

    def test_escapes_tilde_first(self) -> None:
        """A literal ~ becomes ~0 and does not collide with ~1."""
        assert json_pointer('a~/b') == '/a~0~1b'
        assert split_pointer('/a~0~1b') == ['a~/b']

    def test_split_round_trip(self) -> None:
        """split_pointer undoes json_pointer."""
        tokens = ['devDependencies', '@acme/ui']
        assert split_pointer(json_pointer(*tokens)) == tokens

    def test_empty_pointer_is_root(self) -> None:
        """The empty pointer has no tokens."""
        assert split_pointer('') == []

    def test_relative_pointer_rejected(self) -> None:
        """Pointers must start with a slash."""
        with pytest.raises(ValueError):
            split_pointer('version')


class TestDetectIndent:
    """Tests for detect_indent."""

    def test_two_spaces_default(self) -> None:
        """Compact JSON falls back to two spaces."""
        assert detect_indent('{"name": "a"}') == 2

    def test_four_spaces(self) -> None:
        """Four-space documents are detected."""
        assert detect_indent('{\n    "name": "a"\n}\n') == 4

    def test_tabs(self) -> None:
        """Tab indentation is kept as a literal string."""
        assert detect_indent('{\n\t"name": "a"\n}\n') == '\t'


class TestParseManifest:
    """Tests for parse_manifest and Manifest."""

    def test_fields(self) -> None:
        """name, version and dependency maps are exposed."""
        m = parse_manifest('{"name": "api", "version": "1.0.0", "dependencies": {"lodash": "^4.0.0"}}', P)
        assert m.name == 'api'
        assert m.version == '1.0.0'
        assert m.dependencies('dependencies') == {'lodash': '^4.0.0'}
        assert m.dependencies('peerDependencies') == {}

    def test_invalid_json(self) -> None:
        """Malformed JSON raises WORKSPACE_MANIFEST_PARSE naming the path."""
        with pytest.raises(WorkspaceError) as exc_info:
            parse_manifest('{"name": ', P)
        assert exc_info.value.code == E.WORKSPACE_MANIFEST_PARSE
        assert str(P) in exc_info.value.paths

    def test_top_level_array(self) -> None:
        """A JSON array is not a manifest."""
        with pytest.raises(WorkspaceError):
            parse_manifest('[]', P)

    def test_non_string_version(self) -> None:
        """A numeric version is rejected."""
        with pytest.raises(WorkspaceError):
            parse_manifest('{"name": "api", "version": 1}', P)

    def test_non_object_dependencies(self) -> None:
        """A dependency section must be an object."""
        with pytest.raises(WorkspaceError):
            parse_manifest('{"name": "api", "dependencies": ["lodash"]}', P)

    def test_get_and_set(self) -> None:
        """Pointers read and write nested values."""
        m = parse_manifest('{"name": "api", "dependencies": {"@acme/core": "^1.0.0"}}', P)
        pointer = json_pointer('dependencies', '@acme/core')
        assert m.get(pointer) == '^1.0.0'
        m.set(pointer, '^1.1.0')
        assert m.get(pointer) == '^1.1.0'
        assert m.get('/devDependencies/x') is None

    def test_set_missing_parent(self) -> None:
        """Setting under a missing object raises KeyError."""
        m = parse_manifest('{"name": "api"}', P)
        with pytest.raises(KeyError):
            m.set('/devDependencies/x', '1.0.0')

    def test_dumps_preserves_order_and_indent(self) -> None:
        """Only the edited value changes in the serialized text."""
        data = {'version': '1.0.0', 'name': 'api', 'scripts': {'build': 'tsc'}, 'description': 'café'}
        text = json.dumps(data, indent=4, ensure_ascii=False) + '\n'
        m = parse_manifest(text, P)
        m.set('/version', '1.1.0')
        assert m.dumps() == text.replace('1.0.0', '1.1.0')

    def test_unmodified_dump_is_identical(self) -> None:
        """A canonical document round-trips byte for byte."""
        text = '{\n  "name": "api",\n  "version": "1.0.0"\n}\n'
        assert parse_manifest(text, P).dumps() == text

    def test_copy_is_deep(self) -> None:
        """Editing a copy leaves the original untouched."""
        m = parse_manifest('{"name": "api", "dependencies": {"x": "1.0.0"}}', P)
        clone = m.copy()
        clone.set('/dependencies/x', '2.0.0')
        assert m.get('/dependencies/x') == '1.0.0'


class TestLoadManifest:
    """Tests for load_manifest."""

    @pytest.mark.asyncio()
    async def test_reads_file(self, tmp_path: Path) -> None:
        """The manifest is read from disk with its path recorded."""
        path = tmp_path / 'package.json'
        path.write_text('{\n  "name": "api",\n  "version": "0.1.0"\n}\n', encoding='utf-8')
        m = await load_manifest(path)
        assert m.name == 'api'
        assert m.path == path
