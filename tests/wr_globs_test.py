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


"""Tests for wsrelease.globs."""

from __future__ import annotations

from pathlib import Path

import pytest
from wsrelease.errors import E, WorkspaceError
from wsrelease.globs import expand_workspace_globs, is_glob, match_name, split_patterns, validate_pattern


def _pkg(root: Path, rel: str) -> Path:
    d = root / rel
    d.mkdir(parents=True)
    (d / 'package.json').write_text('{}', encoding='utf-8')
    return d


class TestPatterns:
    """Tests for split_patterns and validate_pattern."""

    def test_split(self) -> None:
        """Leading ! marks an exclude."""
        assert split_patterns(['packages/*', '!packages/scratch', ' apps/* ']) == (
            ['packages/*', 'apps/*'],
            ['packages/scratch'],
        )

    @pytest.mark.parametrize('pattern', ['/abs/*', '../outside/*', 'packages/../../x', '', 'pkgs/[ab'])
    def test_rejected(self, pattern: str) -> None:
        """Escaping, empty and malformed patterns are rejected."""
        with pytest.raises(WorkspaceError) as exc_info:
            validate_pattern(pattern)
        assert exc_info.value.code == E.WORKSPACE_INVALID_GLOB

    @pytest.mark.parametrize('pattern', ['packages/*', './apps/*', 'tools/**', 'pkgs/[ab]*'])
    def test_accepted(self, pattern: str) -> None:
        """Relative globs pass validation."""
        validate_pattern(pattern)


class TestExpand:
    """Tests for expand_workspace_globs."""

    def test_only_dirs_with_manifest(self, tmp_path: Path) -> None:
        """Directories without package.json are ignored."""
        api = _pkg(tmp_path, 'packages/api')
        (tmp_path / 'packages' / 'docs').mkdir()
        assert expand_workspace_globs(tmp_path, ['packages/*']) == [api.resolve()]

    def test_excludes(self, tmp_path: Path) -> None:
        """Negated patterns remove matches."""
        api = _pkg(tmp_path, 'packages/api')
        _pkg(tmp_path, 'packages/scratch')
        assert expand_workspace_globs(tmp_path, ['packages/*', '!packages/scratch']) == [api.resolve()]

    def test_sorted_and_deduplicated(self, tmp_path: Path) -> None:
        """Overlapping patterns yield each directory once, sorted."""
        web = _pkg(tmp_path, 'packages/web')
        api = _pkg(tmp_path, 'packages/api')
        result = expand_workspace_globs(tmp_path, ['packages/*', 'packages/api'])
        assert result == [api.resolve(), web.resolve()]

    def test_recursive_skips_node_modules(self, tmp_path: Path) -> None:
        """** never descends into node_modules."""
        nested = _pkg(tmp_path, 'apps/group/site')
        _pkg(tmp_path, 'apps/node_modules/dep')
        assert expand_workspace_globs(tmp_path, ['apps/**']) == [nested.resolve()]

    def test_escaping_pattern_fails(self, tmp_path: Path) -> None:
        """Expansion validates every pattern first."""
        with pytest.raises(WorkspaceError):
            expand_workspace_globs(tmp_path, ['../*'])


class TestNames:
    """Tests for match_name and is_glob."""

    def test_match_scoped(self) -> None:
        """Scoped globs match scoped names only."""
        assert match_name('@acme/*', '@acme/ui')
        assert not match_name('@acme/*', 'ui')

    def test_is_glob(self) -> None:
        """Metacharacters mark a glob."""
        assert is_glob('@acme/*')
        assert not is_glob('@acme/ui')
