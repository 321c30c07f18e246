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

"""Semantic Versioning 2.0.0 versions and npm-style ranges.

Versions are totally ordered by semver precedence (build metadata is
ignored). Ranges use the npm grammar and are desugared into sets of
primitive comparators, the same way the npm ``semver`` package does::

    ^1.2.3        →  >=1.2.3 <2.0.0-0
    ~1.2          →  >=1.2.0 <1.3.0-0
    1.x           →  >=1.0.0 <2.0.0-0
    1.2.3 - 2.3   →  >=1.2.3 <2.4.0-0
    >=1 <2 || 3   →  (>=1.0.0 <2.0.0-0) or (>=3.0.0 <4.0.0-0)

A pre-release version only satisfies a comparator set that mentions a
pre-release on the same ``major.minor.patch`` tuple, so ``^1.0.0`` does
not accept ``1.1.0-beta.1``.

Usage::

    from wsrelease.semver import Range, Version

    Range.parse('^1.2.0').satisfied_by(Version.parse('1.4.0'))  # True
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass, field

_IDENT = r'[0-9A-Za-z-]+'
_DOTTED = rf'{_IDENT}(?:\.{_IDENT})*'
_NUM = r'0|[1-9]\d*'

_VERSION_RE = re.compile(
    rf'^v?(?P<major>{_NUM})\.(?P<minor>{_NUM})\.(?P<patch>{_NUM})'
    rf'(?:-(?P<pre>{_DOTTED}))?(?:\+(?P<build>{_DOTTED}))?$'
)

_XR = r'\*|x|X|\d+'
_PARTIAL_RE = re.compile(
    rf'^(?P<op><=|>=|<|>|=|\^|~>?)?\s*v?'
    rf'(?P<major>{_XR})(?:\.(?P<minor>{_XR})(?:\.(?P<patch>{_XR})'
    rf'(?:-(?P<pre>{_DOTTED}))?(?:\+(?P<build>{_DOTTED}))?)?)?$'
)
_HYPHEN_RE = re.compile(r'^\s*(?P<lo>\S+)\s+-\s+(?P<hi>\S+)\s*$')
_OP_SPACE_RE = re.compile(r'(<=|>=|<|>|=|\^|~>?)\s+')


class SemverError(ValueError):
    """Raised for unparsable versions or ranges."""


def _parse_prerelease(text: str | None) -> tuple[int | str, ...]:
    if not text:
        return ()
    parts: list[int | str] = []
    for ident in text.split('.'):
        if ident.isdigit():
            if len(ident) > 1 and ident.startswith('0'):
                raise SemverError(f'Numeric pre-release identifier has a leading zero: {ident!r}')
            parts.append(int(ident))
        else:
            parts.append(ident)
    return tuple(parts)


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A semver 2.0.0 version.

    Attributes:
        major: Major component.
        minor: Minor component.
        patch: Patch component.
        prerelease: Dot-separated pre-release identifiers; numeric ones
            are stored as ``int``.
        build: Build metadata identifiers (not part of precedence).
    """

    major: int
    minor: int
    patch: int
    prerelease: tuple[int | str, ...] = ()
    build: tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> Version:
        """Parse a full ``MAJOR.MINOR.PATCH[-pre][+build]`` string.

        A single leading ``v`` is tolerated.

        Raises:
            SemverError: If ``text`` is not a valid semver version.
        """
        m = _VERSION_RE.match(text.strip())
        if m is None:
            raise SemverError(f'Invalid semver version: {text!r}')
        build = m.group('build')
        return cls(
            major=int(m.group('major')),
            minor=int(m.group('minor')),
            patch=int(m.group('patch')),
            prerelease=_parse_prerelease(m.group('pre')),
            build=tuple(build.split('.')) if build else (),
        )

    @classmethod
    def is_valid(cls, text: str) -> bool:
        """Return True if ``text`` parses as a semver version."""
        try:
            cls.parse(text)
        except SemverError:
            return False
        return True

    @property
    def is_prerelease(self) -> bool:
        """Whether the version carries pre-release identifiers."""
        return bool(self.prerelease)

    @property
    def release_tuple(self) -> tuple[int, int, int]:
        """The ``(major, minor, patch)`` triple."""
        return (self.major, self.minor, self.patch)

    def finalize(self) -> Version:
        """Drop pre-release and build metadata."""
        return Version(self.major, self.minor, self.patch)

    def with_prerelease(self, *identifiers: int | str) -> Version:
        """Return a copy with the given pre-release identifiers."""
        return Version(self.major, self.minor, self.patch, tuple(identifiers))

    def _key(self) -> tuple[object, ...]:
        pre = tuple((0, p) if isinstance(p, int) else (1, p) for p in self.prerelease)
        return (self.major, self.minor, self.patch, 0 if self.prerelease else 1, pre)

    def __eq__(self, other: object) -> bool:
        """Compare by precedence; build metadata is ignored."""
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: Version) -> bool:
        """Order by semver precedence."""
        if not isinstance(other, Version):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        """Hash consistently with :meth:`__eq__`."""
        return hash(self._key())

    def __str__(self) -> str:
        """Render the canonical string form."""
        text = f'{self.major}.{self.minor}.{self.patch}'
        if self.prerelease:
            text += '-' + '.'.join(str(p) for p in self.prerelease)
        if self.build:
            text += '+' + '.'.join(self.build)
        return text


@dataclass(frozen=True)
class Comparator:
    """A primitive ``<op><version>`` test."""

    op: str
    version: Version

    def test(self, version: Version) -> bool:
        """Return True if ``version`` passes this comparator."""
        if self.op == '=':
            return version == self.version
        if self.op == '<':
            return version < self.version
        if self.op == '<=':
            return version <= self.version
        if self.op == '>':
            return version > self.version
        return version >= self.version

    def __str__(self) -> str:
        """Render as ``op`` + version (``=`` is implicit)."""
        return f'{"" if self.op == "=" else self.op}{self.version}'


# An impossible comparator, used for ``<*`` and ``>*``.
_NOTHING = Comparator('<', Version(0, 0, 0, (0,)))


def _is_x(part: str | None) -> bool:
    return part is None or part in ('*', 'x', 'X')


def _desugar(token: str) -> list[Comparator]:
    """Turn one range token (``^1.2``, ``>=1``, ``1.x``) into comparators."""
    m = _PARTIAL_RE.match(token)
    if m is None:
        raise SemverError(f'Invalid range token: {token!r}')
    op = m.group('op') or ''
    if op == '~>':
        op = '~'
    major_s, minor_s, patch_s = m.group('major'), m.group('minor'), m.group('patch')
    pre = _parse_prerelease(m.group('pre'))

    if _is_x(major_s):
        if op in ('<', '>'):
            return [_NOTHING]
        return []

    major = int(major_s)
    if _is_x(minor_s):
        minor_x = True
        minor = 0
    else:
        minor_x = False
        minor = int(minor_s)
    patch_x = minor_x or _is_x(patch_s)
    patch = 0 if patch_x else int(patch_s)
    lower = Version(major, minor, patch, pre)

    def upper(ma: int, mi: int, pa: int) -> Comparator:
        return Comparator('<', Version(ma, mi, pa, (0,)))

    if op == '^':
        if minor_x:
            return [Comparator('>=', lower), upper(major + 1, 0, 0)]
        if major > 0:
            return [Comparator('>=', lower), upper(major + 1, 0, 0)]
        if patch_x:
            return [Comparator('>=', lower), upper(0, minor + 1, 0)]
        if minor > 0:
            return [Comparator('>=', lower), upper(0, minor + 1, 0)]
        return [Comparator('>=', lower), upper(0, 0, patch + 1)]

    if op == '~':
        if minor_x:
            return [Comparator('>=', lower), upper(major + 1, 0, 0)]
        return [Comparator('>=', lower), upper(major, minor + 1, 0)]

    if op in ('', '='):
        if minor_x:
            return [Comparator('>=', lower), upper(major + 1, 0, 0)]
        if patch_x:
            return [Comparator('>=', lower), upper(major, minor + 1, 0)]
        return [Comparator('=', lower)]

    if op == '>':
        if minor_x:
            return [Comparator('>=', Version(major + 1, 0, 0))]
        if patch_x:
            return [Comparator('>=', Version(major, minor + 1, 0))]
        return [Comparator('>', lower)]

    if op == '>=':
        return [Comparator('>=', lower)]

    if op == '<':
        if patch_x:
            return [Comparator('<', Version(major, minor, 0, (0,)))]
        return [Comparator('<', lower)]

    # op == '<='
    if minor_x:
        return [upper(major + 1, 0, 0)]
    if patch_x:
        return [upper(major, minor + 1, 0)]
    return [Comparator('<=', lower)]


def _hyphen(lo: str, hi: str) -> list[Comparator]:
    lo_cmp = [c for c in _desugar('>=' + lo)]
    m = _PARTIAL_RE.match(hi)
    if m is None or m.group('op'):
        raise SemverError(f'Invalid hyphen range upper bound: {hi!r}')
    if _is_x(m.group('major')):
        return lo_cmp
    if _is_x(m.group('minor')) or _is_x(m.group('patch')):
        return lo_cmp + _desugar('<=' + hi)
    return lo_cmp + [Comparator('<=', Version.parse(hi))]


@dataclass(frozen=True)
class Range:
    """A parsed npm range: a disjunction of comparator sets.

    Attributes:
        raw: The original text.
        sets: Comparator sets; the range matches if any set matches. An
            empty set matches every release version.
    """

    raw: str
    sets: tuple[tuple[Comparator, ...], ...] = field(default_factory=tuple)

    @classmethod
    def parse(cls, text: str) -> Range:
        """Parse an npm range expression.

        Raises:
            SemverError: If any part of the expression is invalid.
        """
        sets: list[tuple[Comparator, ...]] = []
        for alternative in text.split('||'):
            alternative = alternative.strip()
            hyphen = _HYPHEN_RE.match(alternative)
            if hyphen:
                sets.append(tuple(_hyphen(hyphen.group('lo'), hyphen.group('hi'))))
                continue
            joined = _OP_SPACE_RE.sub(lambda mo: mo.group(1), alternative)
            comparators: list[Comparator] = []
            for token in joined.split():
                comparators.extend(_desugar(token))
            sets.append(tuple(comparators))
        return cls(raw=text, sets=tuple(sets))

    @classmethod
    def is_valid(cls, text: str) -> bool:
        """Return True if ``text`` parses as a range."""
        try:
            cls.parse(text)
        except SemverError:
            return False
        return True

    def satisfied_by(self, version: Version, *, include_prerelease: bool = False) -> bool:
        """Return True if ``version`` is inside the range."""
        for comparators in self.sets:
            if not all(c.test(version) for c in comparators):
                continue
            if not version.is_prerelease or include_prerelease:
                return True
            for c in comparators:
                if c is _NOTHING:
                    continue
                if c.version.is_prerelease and c.version.release_tuple == version.release_tuple:
                    return True
        return False

    def max_satisfying(self, versions: list[Version], *, include_prerelease: bool = False) -> Version | None:
        """Return the highest version in ``versions`` inside the range."""
        matching = [v for v in versions if self.satisfied_by(v, include_prerelease=include_prerelease)]
        return max(matching) if matching else None

    def min_version(self) -> Version | None:
        """Return the lowest version that can satisfy the range."""
        candidates: list[Version] = []
        for comparators in self.sets:
            low = Version(0, 0, 0)
            for c in comparators:
                if c.op in ('>=', '='):
                    low = max(low, c.version)
                elif c.op == '>':
                    bumped = (
                        c.version.finalize()
                        if c.version.is_prerelease
                        else Version(c.version.major, c.version.minor, c.version.patch + 1)
                    )
                    low = max(low, bumped)
            if all(c.test(low) for c in comparators):
                candidates.append(low)
        return min(candidates) if candidates else None

    def __str__(self) -> str:
        """Return the original text."""
        return self.raw


__all__ = [
    'Comparator',
    'Range',
    'SemverError',
    'Version',
]
