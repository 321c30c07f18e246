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

"""``package.json`` codec.

A :class:`Manifest` keeps the decoded JSON object in the key order it was
read in, plus the indentation it was written with. Serializing it back
re-emits the same order and indentation with a terminating newline, and
every field the tool does not understand is carried through untouched.

Edits are addressed with RFC 6901 JSON pointers, so a dependency on a
scoped package is written as ``/dependencies/@scope~1core``.
"""

from __future__ import annotations

import copy
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from wsrelease._io import read_file
from wsrelease.errors import E, WorkspaceError

MANIFEST_NAME = 'package.json'

# Manifest field → dependency class.
DEPENDENCY_SECTIONS: dict[str, str] = {
    'dependencies': 'runtime',
    'devDependencies': 'dev',
    'peerDependencies': 'peer',
    'optionalDependencies': 'optional',
}

_INDENT_RE = re.compile(r'^\{\s*\n([ \t]+)"', re.MULTILINE)


def escape_pointer_token(token: str) -> str:
    """Escape one JSON pointer reference token (``~`` then ``/``)."""
    return token.replace('~', '~0').replace('/', '~1')


def unescape_pointer_token(token: str) -> str:
    """Reverse :func:`escape_pointer_token`."""
    return token.replace('~1', '/').replace('~0', '~')


def json_pointer(*tokens: str) -> str:
    """Build a JSON pointer from raw tokens.

    >>> json_pointer('dependencies', '@scope/core')
    '/dependencies/@scope~1core'
    """
    return ''.join('/' + escape_pointer_token(t) for t in tokens)


def split_pointer(pointer: str) -> list[str]:
    """Split a JSON pointer into unescaped tokens."""
    if pointer == '':
        return []
    if not pointer.startswith('/'):
        raise ValueError(f'JSON pointer must start with "/": {pointer!r}')
    return [unescape_pointer_token(t) for t in pointer[1:].split('/')]


def detect_indent(text: str) -> int | str:
    """Guess the indentation of a JSON document (default two spaces)."""
    m = _INDENT_RE.search(text)
    if m is None:
        return 2
    indent = m.group(1)
    if '\t' in indent:
        return indent
    return len(indent)


def _parse_json(text: str, path: Path) -> dict[str, Any]:  # noqa: ANN401 - JSON dict values are inherently untyped
    """Parse JSON text, raising a WorkspaceError on failure."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise WorkspaceError(
            E.WORKSPACE_MANIFEST_PARSE,
            f'Failed to parse {path}: {exc}',
            hint=f'Check that {path} contains valid JSON.',
            paths=[path],
        ) from exc
    if not isinstance(data, dict):
        raise WorkspaceError(
            E.WORKSPACE_MANIFEST_PARSE,
            f'{path} is not a JSON object',
            hint=f'Expected a JSON object (dict) at the top level of {path}.',
            paths=[path],
        )
    return data


@dataclass
class Manifest:
    """A decoded ``package.json``.

    Attributes:
        path: Absolute path of the file.
        data: The JSON object, in original key order.
        indent: Indentation hint (spaces count or a literal tab string).
    """

    path: Path
    data: dict[str, Any] = field(default_factory=dict)
    indent: int | str = 2

    @property
    def name(self) -> str:
        """The ``name`` field, or an empty string."""
        value = self.data.get('name', '')
        return value if isinstance(value, str) else ''

    @property
    def version(self) -> str:
        """The ``version`` field, or an empty string."""
        value = self.data.get('version', '')
        return value if isinstance(value, str) else ''

    def dependencies(self, section: str) -> dict[str, str]:
        """Return one dependency map (e.g. ``devDependencies``) as ``{name: spec}``."""
        value = self.data.get(section)
        if not isinstance(value, dict):
            return {}
        return {k: v for k, v in value.items() if isinstance(v, str)}

    def get(self, pointer: str) -> Any:  # noqa: ANN401 - JSON values are inherently untyped
        """Resolve a JSON pointer, returning ``None`` if any token is missing."""
        node: Any = self.data
        for token in split_pointer(pointer):
            if not isinstance(node, dict) or token not in node:
                return None
            node = node[token]
        return node

    def set(self, pointer: str, value: Any) -> None:  # noqa: ANN401 - JSON values are inherently untyped
        """Set the value at a JSON pointer.

        Intermediate objects must already exist; existing keys keep their
        position, new keys are appended.

        Raises:
            KeyError: If an intermediate object is missing.
        """
        tokens = split_pointer(pointer)
        if not tokens:
            raise KeyError('Cannot replace the manifest root')
        node: Any = self.data
        for token in tokens[:-1]:
            if not isinstance(node, dict) or not isinstance(node.get(token), dict):
                raise KeyError(f'{pointer}: missing object at {token!r}')
            node = node[token]
        node[tokens[-1]] = value

    def dumps(self) -> str:
        """Serialize with the original key order and indentation."""
        return json.dumps(self.data, indent=self.indent, ensure_ascii=False) + '\n'

    def copy(self) -> Manifest:
        """Return a deep copy."""
        return Manifest(path=self.path, data=copy.deepcopy(self.data), indent=self.indent)


def parse_manifest(text: str, path: Path) -> Manifest:
    """Decode ``package.json`` text.

    Raises:
        WorkspaceError: ``WR-WORKSPACE-MANIFEST-PARSE`` if the text is not
            a JSON object or ``name``/``version`` are not strings.
    """
    data = _parse_json(text, path)
    for key in ('name', 'version'):
        if key in data and not isinstance(data[key], str):
            raise WorkspaceError(
                E.WORKSPACE_MANIFEST_PARSE,
                f'{path}: field {key!r} must be a string',
                paths=[path],
            )
    for section in DEPENDENCY_SECTIONS:
        if section in data and not isinstance(data[section], dict):
            raise WorkspaceError(
                E.WORKSPACE_MANIFEST_PARSE,
                f'{path}: field {section!r} must be an object',
                paths=[path],
            )
    return Manifest(path=path, data=data, indent=detect_indent(text))


async def load_manifest(path: Path) -> Manifest:
    """Read and decode a ``package.json`` file."""
    text = await read_file(path)
    return parse_manifest(text, path)


__all__ = [
    'DEPENDENCY_SECTIONS',
    'MANIFEST_NAME',
    'Manifest',
    'detect_indent',
    'escape_pointer_token',
    'json_pointer',
    'load_manifest',
    'parse_manifest',
    'split_pointer',
    'unescape_pointer_token',
]
