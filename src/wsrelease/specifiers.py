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

"""Dependency specifiers and range rewriting.

A dependency value in ``package.json`` is parsed into a
:class:`VersionRange` tagged with its protocol::

    ^1.2.0 | ~1.2 | >=1 <2 | *        SEMVER
    workspace:* | workspace:^1.0.0    WORKSPACE (inner = sigil or range)
    npm:real-name@^2.0.0              NPM       (alias + inner range)
    file:../x | link:../x | portal:.. FILE / LINK / PORTAL
    latest | git+https://... | http:  OTHER (never edited)

Rewriting keeps the protocol. When a dependency target moves to a new
version, :func:`rewrite_specifier` returns the new specifier text, or
``None`` when the specifier must stay as it is:

    ┌──────────────────────────┬──────────────────────────────────────────┐
    │ Existing                 │ After target moves to 1.4.0              │
    ├──────────────────────────┼──────────────────────────────────────────┤
    │ ^1.2.0, ~1.2.0, 1.2.0    │ ^1.4.0, ~1.4.0, 1.4.0 (operator kept)    │
    │ >=1.2.0, >1.2.0          │ >=1.4.0                                  │
    │ >=1.0.0 <2.0.0           │ unchanged (already accepts 1.4.0)        │
    │ >=1.0.0 <1.3.0           │ ^1.4.0                                   │
    │ *, x, ""                 │ unchanged                                │
    │ workspace:^, workspace:* │ unchanged                                │
    │ npm:real@^1.2.0          │ npm:real@^1.4.0                          │
    │ file:, link:, portal:    │ unchanged                                │
    └──────────────────────────┴──────────────────────────────────────────┘
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from wsrelease.semver import Range, SemverError, Version


class Protocol(Enum):
    """Specifier protocol of a dependency edge."""

    SEMVER = 'semver'
    WORKSPACE = 'workspace'
    FILE = 'file'
    LINK = 'link'
    PORTAL = 'portal'
    NPM = 'npm'
    OTHER = 'other'


# Sigils of the workspace protocol that bind to the in-tree version.
WORKSPACE_SIGILS: frozenset[str] = frozenset({'*', '^', '~', ''})

_LOCAL_PROTOCOLS: frozenset[Protocol] = frozenset({Protocol.FILE, Protocol.LINK, Protocol.PORTAL})

_SINGLE_RE = re.compile(
    r'^(?P<op>\^|~|>=|>|=)?\s*v?'
    r'(?P<version>\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?)$'
)
_PARTIAL_CARET_TILDE_RE = re.compile(r'^(?P<op>\^|~)\s*v?\d+(?:\.(?:\d+|[xX*]))?(?:\.[xX*])?$')


@dataclass(frozen=True)
class VersionRange:
    """A parsed dependency specifier.

    Attributes:
        protocol: Which variant this is.
        raw: The exact text from the manifest.
        expr: The semver expression: the whole range for ``SEMVER``, the
            sigil or nested range for ``WORKSPACE``, the inner range for
            ``NPM``.
        alias: Real package name for ``NPM`` aliases.
        path: Target path for ``FILE``, ``LINK`` and ``PORTAL``.
    """

    protocol: Protocol
    raw: str
    expr: str = ''
    alias: str = ''
    path: str = ''

    @property
    def is_local(self) -> bool:
        """Whether this is a ``file:``, ``link:`` or ``portal:`` reference."""
        return self.protocol in _LOCAL_PROTOCOLS

    @property
    def is_workspace_sigil(self) -> bool:
        """Whether this is ``workspace:*``, ``workspace:^`` or ``workspace:~``."""
        return self.protocol == Protocol.WORKSPACE and self.expr in WORKSPACE_SIGILS

    @property
    def is_registry(self) -> bool:
        """Whether this resolves against a registry (``SEMVER`` or ``NPM``)."""
        return self.protocol in (Protocol.SEMVER, Protocol.NPM)

    def lookup_name(self, key: str) -> str:
        """Return the registry name to query for a dependency keyed ``key``."""
        return self.alias if self.protocol == Protocol.NPM and self.alias else key

    def accepts(self, version: Version) -> bool:
        """Return True if the semver part of this specifier accepts ``version``.

        Sigils, local paths and unknown protocols accept everything.
        """
        if self.protocol not in (Protocol.SEMVER, Protocol.NPM, Protocol.WORKSPACE):
            return True
        if self.is_workspace_sigil:
            return True
        return Range.parse(self.expr).satisfied_by(version, include_prerelease=True)

    def __str__(self) -> str:
        """Return the original text."""
        return self.raw


def parse_specifier(text: str) -> VersionRange:
    """Parse a dependency specifier.

    Never raises: anything that is not understood becomes
    :attr:`Protocol.OTHER`.
    """
    raw = text
    text = text.strip()
    for prefix, protocol in (
        ('workspace:', Protocol.WORKSPACE),
        ('file:', Protocol.FILE),
        ('link:', Protocol.LINK),
        ('portal:', Protocol.PORTAL),
    ):
        if text.startswith(prefix):
            rest = text[len(prefix) :]
            if protocol == Protocol.WORKSPACE:
                if rest not in WORKSPACE_SIGILS and not Range.is_valid(rest):
                    return VersionRange(Protocol.OTHER, raw)
                return VersionRange(protocol, raw, expr=rest)
            return VersionRange(protocol, raw, path=rest)

    if text.startswith('npm:'):
        rest = text[len('npm:') :]
        at = rest.rfind('@')
        if at > 0:
            alias, inner = rest[:at], rest[at + 1 :]
        else:
            alias, inner = rest, ''
        if not alias or not Range.is_valid(inner):
            return VersionRange(Protocol.OTHER, raw)
        return VersionRange(Protocol.NPM, raw, expr=inner, alias=alias)

    if Range.is_valid(text):
        return VersionRange(Protocol.SEMVER, raw, expr=text)
    return VersionRange(Protocol.OTHER, raw)


def reshape_expr(expr: str, new: Version) -> str | None:
    """Reshape a semver range so that it follows ``new``.

    Returns:
        The new expression, or ``None`` if ``expr`` must stay as is.

    Raises:
        SemverError: If ``expr`` is not a valid range.
    """
    text = expr.strip()
    if text in ('', '*', 'x', 'X'):
        return None

    single = _SINGLE_RE.match(text)
    if single:
        op = single.group('op') or ''
        if op == '>':
            op = '>='
        rewritten = f'{op}{new}'
        return None if rewritten == text else rewritten

    rng = Range.parse(text)
    if rng.satisfied_by(new, include_prerelease=True):
        return None
    partial = _PARTIAL_CARET_TILDE_RE.match(text)
    if partial:
        return f'{partial.group("op")}{new}'
    return f'^{new}'


def raise_floor(expr: str, new: Version) -> str | None:
    """Move the lower bound of a simple range up to ``new``, keeping its operator.

    ``^4.17.0`` → ``^4.17.21``, ``~1.2`` → ``~1.2.5``, ``1.0.0`` → ``1.0.1``.
    Wildcards and compound ranges return ``None``.
    """
    text = expr.strip()
    single = _SINGLE_RE.match(text)
    if single:
        op = single.group('op') or ''
        if op == '>':
            op = '>='
        rewritten = f'{op}{new}'
        return None if rewritten == text else rewritten
    partial = _PARTIAL_CARET_TILDE_RE.match(text)
    if partial:
        return f'{partial.group("op")}{new}'
    return None


def rewrite_specifier(spec: VersionRange, new: Version, *, rewrite_workspace: bool = False) -> str | None:
    """Return ``spec`` rewritten to follow ``new``, or ``None`` for no edit.

    Args:
        spec: The existing specifier.
        new: The target's new version.
        rewrite_workspace: Reshape ``workspace:<range>`` specifiers.
            Sigil forms are never touched.

    Raises:
        SemverError: If the embedded range cannot be parsed.
    """
    if spec.protocol == Protocol.SEMVER:
        return reshape_expr(spec.expr, new)

    if spec.protocol == Protocol.NPM:
        reshaped = reshape_expr(spec.expr, new)
        if reshaped is None:
            return None
        return f'npm:{spec.alias}@{reshaped}'

    if spec.protocol == Protocol.WORKSPACE:
        if spec.is_workspace_sigil or not rewrite_workspace:
            return None
        reshaped = reshape_expr(spec.expr, new)
        if reshaped is None:
            return None
        return f'workspace:{reshaped}'

    return None


__all__ = [
    'WORKSPACE_SIGILS',
    'Protocol',
    'SemverError',
    'VersionRange',
    'parse_specifier',
    'raise_floor',
    'reshape_expr',
    'rewrite_specifier',
]
