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


"""Tests for wsrelease.semver."""

from __future__ import annotations

import pytest
from wsrelease.semver import Range, SemverError, Version


class TestVersionParse:
    """Tests for Version.parse."""

    def test_release(self) -> None:
        """Plain release parses into its components."""
        v = Version.parse('1.2.3')
        assert v.release_tuple == (1, 2, 3)
        assert not v.is_prerelease

    def test_prerelease_and_build(self) -> None:
        """Pre-release identifiers keep numeric parts as int; build is kept."""
        v = Version.parse('1.0.0-beta.2+sha.abc')
        assert v.prerelease == ('beta', 2)
        assert v.build == ('sha', 'abc')
        assert str(v) == '1.0.0-beta.2+sha.abc'

    def test_leading_v(self) -> None:
        """A single leading v is tolerated."""
        assert Version.parse('v2.0.0') == Version(2, 0, 0)

    @pytest.mark.parametrize('text', ['1.2', '01.0.0', '1.0.0-', 'latest', ''])
    def test_invalid(self, text: str) -> None:
        """Invalid versions raise SemverError."""
        with pytest.raises(SemverError):
            Version.parse(text)
        assert not Version.is_valid(text)


class TestVersionOrdering:
    """Tests for semver precedence."""

    def test_spec_precedence_chain(self) -> None:
        """The semver.org example chain is strictly increasing."""
        chain = [
            '1.0.0-alpha',
            '1.0.0-alpha.1',
            '1.0.0-alpha.beta',
            '1.0.0-beta',
            '1.0.0-beta.2',
            '1.0.0-beta.11',
            '1.0.0-rc.1',
            '1.0.0',
        ]
        versions = [Version.parse(v) for v in chain]
        assert versions == sorted(versions)
        for lower, higher in zip(versions, versions[1:]):
            assert lower < higher

    def test_build_ignored(self) -> None:
        """Build metadata does not affect equality or hashing."""
        a, b = Version.parse('1.0.0+a'), Version.parse('1.0.0+b')
        assert a == b
        assert hash(a) == hash(b)

    def test_finalize(self) -> None:
        """finalize drops pre-release and build."""
        assert str(Version.parse('2.0.0-rc.1+x').finalize()) == '2.0.0'


class TestRange:
    """Tests for Range.parse and satisfied_by."""

    @pytest.mark.parametrize(
        ('expr', 'version', 'expected'),
        [
            ('^1.2.0', '1.9.9', True),
            ('^1.2.0', '2.0.0', False),
            ('^0.2.3', '0.2.9', True),
            ('^0.2.3', '0.3.0', False),
            ('^0.0.3', '0.0.4', False),
            ('~1.2.0', '1.2.9', True),
            ('~1.2.0', '1.3.0', False),
            ('~1', '1.9.0', True),
            ('>=1.0.0 <2.0.0', '1.5.0', True),
            ('>=1.0.0 <2.0.0', '2.0.0', False),
            ('1.2.3 - 2.3.4', '2.3.4', True),
            ('1.2.3 - 2.3', '2.3.9', True),
            ('1.x', '1.4.2', True),
            ('1.x', '2.0.0', False),
            ('*', '99.0.0', True),
            ('', '0.0.1', True),
            ('<1.0.0 || >=3.0.0', '3.1.0', True),
            ('<1.0.0 || >=3.0.0', '2.0.0', False),
            ('>= 1.2.0', '1.2.0', True),
            ('=1.2.3', '1.2.3', True),
        ],
    )
    def test_satisfied_by(self, expr: str, version: str, expected: bool) -> None:
        """Ranges follow npm semantics."""
        assert Range.parse(expr).satisfied_by(Version.parse(version)) is expected

    def test_prerelease_excluded_by_default(self) -> None:
        """Pre-releases only match a comparator on the same release triple."""
        rng = Range.parse('^1.0.0')
        assert not rng.satisfied_by(Version.parse('1.2.0-beta.1'))
        assert rng.satisfied_by(Version.parse('1.2.0-beta.1'), include_prerelease=True)
        assert Range.parse('>=1.2.0-beta.0').satisfied_by(Version.parse('1.2.0-beta.3'))

    def test_invalid(self) -> None:
        """Garbage is rejected."""
        assert not Range.is_valid('not-a-range')
        with pytest.raises(SemverError):
            Range.parse('^a.b')

    def test_max_satisfying(self) -> None:
        """max_satisfying picks the highest matching version."""
        versions = [Version.parse(v) for v in ['1.0.0', '1.4.0', '2.0.0']]
        assert Range.parse('^1.0.0').max_satisfying(versions) == Version.parse('1.4.0')
        assert Range.parse('^3.0.0').max_satisfying(versions) is None

    @pytest.mark.parametrize(
        ('expr', 'expected'),
        [
            ('^4.17.0', '4.17.0'),
            ('~1.2', '1.2.0'),
            ('>1.2.3', '1.2.4'),
            ('>=1.0.0 <2.0.0', '1.0.0'),
            ('*', '0.0.0'),
        ],
    )
    def test_min_version(self, expr: str, expected: str) -> None:
        """min_version is the lowest satisfying release."""
        assert str(Range.parse(expr).min_version()) == expected
