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


"""Tests for wsrelease.errors module."""

from __future__ import annotations

import io
from pathlib import Path

import pytest
from wsrelease.errors import (
    ERRORS,
    EXIT_IO,
    EXIT_VALIDATION,
    ChangesetError,
    ConfigError,
    E,
    ErrorCode,
    IoError,
    LockError,
    PlanError,
    RegistryError,
    ReleaseError,
    RollbackError,
    WorkspaceError,
    explain,
    render_error,
)


class TestErrorCode:
    """Tests for ErrorCode enum."""

    def test_all_codes_have_wr_prefix(self) -> None:
        """Every error code must start with 'WR-'."""
        for code in ErrorCode:
            assert code.value.startswith('WR-'), f'{code.name} does not start with WR-'

    def test_no_duplicate_values(self) -> None:
        """Error code values must be unique."""
        values = [c.value for c in ErrorCode]
        assert len(values) == len(set(values))

    def test_catalog_matches_codes(self) -> None:
        """Every catalog entry is keyed by its own code."""
        for code, info in ERRORS.items():
            assert info.code is code


class TestReleaseError:
    """Tests for the exception hierarchy."""

    def test_message_includes_code(self) -> None:
        """str() carries the code and the message."""
        err = WorkspaceError(E.WORKSPACE_NOT_FOUND, 'No package.json')
        assert str(err) == '[WR-WORKSPACE-NOT-FOUND] No package.json'

    def test_paths_are_absolute_strings(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Relative paths are made absolute."""
        monkeypatch.chdir(tmp_path)
        err = IoError(E.IO_READ_FAILED, 'boom', paths=[Path('a.json'), 'b.json'])
        assert err.paths == (str(tmp_path / 'a.json'), str(tmp_path / 'b.json'))

    @pytest.mark.parametrize(
        ('cls', 'exit_code'),
        [
            (ConfigError, EXIT_VALIDATION),
            (WorkspaceError, EXIT_VALIDATION),
            (ChangesetError, EXIT_VALIDATION),
            (PlanError, EXIT_VALIDATION),
            (IoError, EXIT_IO),
            (LockError, EXIT_IO),
            (RegistryError, EXIT_IO),
            (RollbackError, EXIT_IO),
        ],
    )
    def test_exit_codes(self, cls: type[ReleaseError], exit_code: int) -> None:
        """Validation kinds exit 1, environment kinds exit 2."""
        assert cls(E.IO_READ_FAILED, 'x').exit_code == exit_code

    def test_to_dict(self) -> None:
        """to_dict exposes kind, code, hint and details."""
        err = ChangesetError(E.CHANGESET_PARSE_ERROR, '2 bad files', hint='fix them', details=['a', 'b'])
        assert err.to_dict() == {
            'kind': 'ChangesetError',
            'code': 'WR-CHANGESET-PARSE-ERROR',
            'message': '2 bad files',
            'hint': 'fix them',
            'paths': [],
            'details': ['a', 'b'],
        }


class TestExplain:
    """Tests for explain()."""

    def test_known_code(self) -> None:
        """A catalogued code returns its message and hint."""
        text = explain('WR-LOCK-HELD')
        assert text is not None
        assert text.startswith('WR-LOCK-HELD: Another wsrelease process')
        assert 'Hint:' in text

    def test_uncatalogued_code(self) -> None:
        """A valid code without an entry still gets a line."""
        assert explain('WR-IO-FSYNC-FAILED') == 'WR-IO-FSYNC-FAILED: No detailed explanation available.'

    def test_unknown_code(self) -> None:
        """Unknown codes return None."""
        assert explain('WR-NOPE') is None


class TestRenderError:
    """Tests for render_error() on a plain stream."""

    def test_plain_output(self) -> None:
        """Code, paths, details and hint are all printed."""
        out = io.StringIO()
        err = LockError(
            E.LOCK_HELD,
            'Workspace lock held by PID 4242',
            hint='Wait for it to finish.',
            paths=['/repo/.workspace-backups/.lock'],
            details=['started 2026-10-19T12:00:00Z'],
        )
        render_error(err, file=out)
        assert out.getvalue() == (
            'error[WR-LOCK-HELD]: Workspace lock held by PID 4242\n'
            '  --> /repo/.workspace-backups/.lock\n'
            '  | started 2026-10-19T12:00:00Z\n'
            '  |\n'
            '  = hint: Wait for it to finish.\n'
            '\n'
        )
