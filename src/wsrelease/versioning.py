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

"""Bump kinds and version bump computation.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ BumpType            │ One of: none, patch, minor, major,            │
    │                     │ prerelease or exact.                          │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Bump                │ A BumpType plus its argument: the tag for a   │
    │                     │ prerelease, the target for an exact bump.     │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ max_bump            │ Picks the "strongest" of two bumps. Exact     │
    │                     │ always wins; two different exacts conflict.   │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ apply_bump          │ Turns 1.2.3 + minor into 1.3.0.               │
    └─────────────────────┴────────────────────────────────────────────────┘

    Serialized form (changeset files, CLI)::

        none | patch | minor | major     ordered axis
        prerelease[:<tag>]               1.2.3 → 1.2.4-<tag>.0
        exact:<version> or <version>     jump straight to <version>

Pre-release bumps lose to any ordered bump above ``none``; two
pre-release bumps with different tags conflict, as do two different
exact targets.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from wsrelease.errors import E, ChangesetError
from wsrelease.semver import SemverError, Version


class BumpType(Enum):
    """Semver bump types."""

    MAJOR = 'major'
    MINOR = 'minor'
    PATCH = 'patch'
    PRERELEASE = 'prerelease'
    EXACT = 'exact'
    NONE = 'none'


# Ordered axis, lowest first.
BUMP_ORDER: list[BumpType] = [
    BumpType.NONE,
    BumpType.PATCH,
    BumpType.MINOR,
    BumpType.MAJOR,
]

DEFAULT_PRERELEASE_TAG = 'alpha'


@dataclass(frozen=True)
class Bump:
    """A bump kind with its argument.

    Attributes:
        type: The kind of bump.
        tag: Pre-release tag, only for :attr:`BumpType.PRERELEASE`.
        version: Target version string, only for :attr:`BumpType.EXACT`.
    """

    type: BumpType
    tag: str = ''
    version: str = ''

    @property
    def is_none(self) -> bool:
        """Whether this bump leaves the version unchanged."""
        return self.type == BumpType.NONE

    def __str__(self) -> str:
        """Serialize as ``minor``, ``prerelease:beta`` or ``exact:2.0.0``."""
        if self.type == BumpType.PRERELEASE:
            return f'prerelease:{self.tag}'
        if self.type == BumpType.EXACT:
            return f'exact:{self.version}'
        return self.type.value


NONE = Bump(BumpType.NONE)
PATCH = Bump(BumpType.PATCH)
MINOR = Bump(BumpType.MINOR)
MAJOR = Bump(BumpType.MAJOR)


def parse_bump(text: str, *, default_prerelease_tag: str = DEFAULT_PRERELEASE_TAG) -> Bump:
    """Parse the serialized form of a bump.

    >>> parse_bump('minor')
    Bump(type=<BumpType.MINOR: 'minor'>, tag='', version='')
    >>> str(parse_bump('2.0.0'))
    'exact:2.0.0'

    Raises:
        ChangesetError: ``WR-CHANGESET-INVALID-BUMP`` for unknown kinds,
            invalid exact versions or invalid pre-release tags.
    """
    raw = text.strip()
    lowered = raw.lower()
    for kind in (BumpType.NONE, BumpType.PATCH, BumpType.MINOR, BumpType.MAJOR):
        if lowered == kind.value:
            return Bump(kind)

    if lowered == 'prerelease' or lowered.startswith('prerelease:'):
        tag = raw.partition(':')[2].strip() or default_prerelease_tag
        if not Version.is_valid(f'0.0.0-{tag}'):
            raise ChangesetError(
                E.CHANGESET_INVALID_BUMP,
                f'Invalid pre-release tag {tag!r} in bump {text!r}',
                hint='Pre-release tags may only contain [0-9A-Za-z-] and dots.',
            )
        return Bump(BumpType.PRERELEASE, tag=tag)

    target = raw.partition(':')[2].strip() if lowered.startswith('exact:') else raw
    try:
        version = Version.parse(target)
    except SemverError as exc:
        raise ChangesetError(
            E.CHANGESET_INVALID_BUMP,
            f'Unknown bump {text!r}',
            hint="Use one of none, patch, minor, major, 'prerelease[:tag]' or an exact version.",
        ) from exc
    return Bump(BumpType.EXACT, version=str(version))


def max_bump(a: Bump, b: Bump) -> Bump:
    """Return the stronger of two bumps.

    >>> max_bump(MINOR, PATCH) == MINOR
    True

    Raises:
        ChangesetError: ``WR-CHANGESET-CONFLICTING-BUMPS`` for two
            different exact targets or two different pre-release tags.
    """
    if a.type == BumpType.EXACT and b.type == BumpType.EXACT:
        if Version.parse(a.version) != Version.parse(b.version):
            raise ChangesetError(
                E.CHANGESET_CONFLICTING_BUMPS,
                f'Conflicting exact versions: {a.version} and {b.version}',
                hint='Keep a single exact version per package across pending changesets.',
            )
        return a
    if a.type == BumpType.EXACT:
        return a
    if b.type == BumpType.EXACT:
        return b

    if a.type == BumpType.PRERELEASE and b.type == BumpType.PRERELEASE:
        if a.tag != b.tag:
            raise ChangesetError(
                E.CHANGESET_CONFLICTING_BUMPS,
                f'Conflicting pre-release tags: {a.tag} and {b.tag}',
                hint='Use the same pre-release tag in every changeset for a package.',
            )
        return a
    if a.type == BumpType.PRERELEASE:
        return a if b.is_none else b
    if b.type == BumpType.PRERELEASE:
        return b if a.is_none else a

    return a if BUMP_ORDER.index(a.type) >= BUMP_ORDER.index(b.type) else b


def apply_bump(version: Version, bump: Bump) -> Version:
    """Apply a bump to a version.

    Follows npm ``semver.inc``: bumping a pre-release to the release it
    precedes just drops the pre-release (``2.0.0-rc.1`` + major is
    ``2.0.0``).

    >>> str(apply_bump(Version.parse('1.2.3'), MINOR))
    '1.3.0'
    >>> str(apply_bump(Version.parse('1.2.3'), Bump(BumpType.PRERELEASE, tag='beta')))
    '1.2.4-beta.0'
    """
    major, minor, patch = version.release_tuple
    pre = version.prerelease

    if bump.type == BumpType.NONE:
        return version
    if bump.type == BumpType.EXACT:
        return Version.parse(bump.version)
    if bump.type == BumpType.MAJOR:
        if pre and minor == 0 and patch == 0:
            return version.finalize()
        return Version(major + 1, 0, 0)
    if bump.type == BumpType.MINOR:
        if pre and patch == 0:
            return version.finalize()
        return Version(major, minor + 1, 0)
    if bump.type == BumpType.PATCH:
        if pre:
            return version.finalize()
        return Version(major, minor, patch + 1)

    # Pre-release.
    tag = bump.tag or DEFAULT_PRERELEASE_TAG
    if not pre:
        return Version(major, minor, patch + 1, (tag, 0))
    if str(pre[0]) == tag:
        if len(pre) > 1 and isinstance(pre[-1], int):
            return version.with_prerelease(*pre[:-1], pre[-1] + 1)
        return version.with_prerelease(*pre, 0)
    return version.with_prerelease(tag, 0)


def bump_between(old: Version, new: Version) -> Bump:
    """Classify the difference between two versions as a bump.

    Used for reporting when a version was synchronized or set directly.
    """
    if new == old:
        return NONE
    if new < old:
        return Bump(BumpType.EXACT, version=str(new))
    if new.is_prerelease:
        return Bump(BumpType.PRERELEASE, tag=str(new.prerelease[0]))
    if new.major != old.major:
        return MAJOR
    if new.minor != old.minor:
        return MINOR
    return PATCH


__all__ = [
    'BUMP_ORDER',
    'DEFAULT_PRERELEASE_TAG',
    'MAJOR',
    'MINOR',
    'NONE',
    'PATCH',
    'Bump',
    'BumpType',
    'apply_bump',
    'bump_between',
    'max_bump',
    'parse_bump',
]
