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

"""Structured error system for wsrelease.

Every error has a unique ``WR-NAMED-KEY`` code, a human-readable message,
an optional hint with a suggested fix, and the file paths it concerns.
Errors are grouped into kinds; each kind is its own exception class and
maps to a process exit code.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ErrorCode           │ A unique named ID like "WR-LOCK-HELD" for     │
    │                     │ each error. Readable at a glance.             │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ErrorInfo           │ A bundle of code + message + hint + paths.    │
    │                     │ Like an error card with a fix stapled on.     │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ReleaseError        │ The base exception. Subclasses name the kind  │
    │                     │ (WorkspaceError, LockError, ...) and carry    │
    │                     │ the exit code the CLI should return.          │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ explain()           │ Looks up an error code and prints details.    │
    └─────────────────────┴────────────────────────────────────────────────┘

Kinds and exit codes::

    ConfigError      WR-CONFIG-*       exit 1
    WorkspaceError   WR-WORKSPACE-*    exit 1
    ChangesetError   WR-CHANGESET-*    exit 1
    PlanError        WR-PLAN-*         exit 1
    IoError          WR-IO-*, WR-GIT-* exit 2
    LockError        WR-LOCK-*         exit 2
    RegistryError    WR-REGISTRY-*     exit 2
    RollbackError    WR-ROLLBACK-*     exit 2

Usage::

    from wsrelease.errors import E, WorkspaceError

    raise WorkspaceError(
        E.WORKSPACE_NOT_FOUND,
        f'No package.json found in {root}',
        hint="Run wsrelease from the repository root or pass '--root'.",
        paths=[root],
    )
"""

from __future__ import annotations

import sys
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TextIO

from rich.console import Console
from rich.markup import escape as rich_escape

# Process exit codes.
EXIT_OK = 0
EXIT_VALIDATION = 1
EXIT_IO = 2
EXIT_CANCELLED = 3


class ErrorCode(str, Enum):
    """Enumeration of all wsrelease diagnostic codes."""

    # Configuration
    CONFIG_NOT_FOUND = 'WR-CONFIG-NOT-FOUND'
    CONFIG_PARSE_ERROR = 'WR-CONFIG-PARSE-ERROR'
    CONFIG_INVALID_KEY = 'WR-CONFIG-INVALID-KEY'
    CONFIG_INVALID_VALUE = 'WR-CONFIG-INVALID-VALUE'

    # Workspace discovery
    WORKSPACE_NOT_FOUND = 'WR-WORKSPACE-NOT-FOUND'
    WORKSPACE_MANIFEST_PARSE = 'WR-WORKSPACE-MANIFEST-PARSE'
    WORKSPACE_DUPLICATE_PACKAGE = 'WR-WORKSPACE-DUPLICATE-PACKAGE'
    WORKSPACE_INVALID_GLOB = 'WR-WORKSPACE-INVALID-GLOB'
    WORKSPACE_UNKNOWN_PACKAGE = 'WR-WORKSPACE-UNKNOWN-PACKAGE'

    # Changesets
    CHANGESET_PARSE_ERROR = 'WR-CHANGESET-PARSE-ERROR'
    CHANGESET_UNKNOWN_PACKAGE = 'WR-CHANGESET-UNKNOWN-PACKAGE'
    CHANGESET_INVALID_ENVIRONMENT = 'WR-CHANGESET-INVALID-ENVIRONMENT'
    CHANGESET_INVALID_BUMP = 'WR-CHANGESET-INVALID-BUMP'
    CHANGESET_CONFLICTING_BUMPS = 'WR-CHANGESET-CONFLICTING-BUMPS'
    CHANGESET_NOT_FOUND = 'WR-CHANGESET-NOT-FOUND'
    CHANGESET_EXISTS = 'WR-CHANGESET-EXISTS'

    # Planning
    PLAN_PROPAGATION_DEPTH = 'WR-PLAN-PROPAGATION-DEPTH'
    PLAN_INVALID_VERSION = 'WR-PLAN-INVALID-VERSION'
    PLAN_NOT_MONOTONIC = 'WR-PLAN-NOT-MONOTONIC'
    PLAN_CONFLICTING_EDITS = 'WR-PLAN-CONFLICTING-EDITS'
    PLAN_INVALID_TARGET = 'WR-PLAN-INVALID-TARGET'
    PLAN_RANGE_REWRITE = 'WR-PLAN-RANGE-REWRITE'

    # Filesystem and subprocess
    IO_READ_FAILED = 'WR-IO-READ-FAILED'
    IO_WRITE_FAILED = 'WR-IO-WRITE-FAILED'
    IO_RENAME_FAILED = 'WR-IO-RENAME-FAILED'
    IO_FSYNC_FAILED = 'WR-IO-FSYNC-FAILED'
    GIT_COMMAND_FAILED = 'WR-GIT-COMMAND-FAILED'

    # Locking and crash recovery
    LOCK_HELD = 'WR-LOCK-HELD'
    LOCK_ACQUISITION_FAILED = 'WR-LOCK-ACQUISITION-FAILED'
    LOCK_PENDING_RUN = 'WR-LOCK-PENDING-RUN'

    # Registry
    REGISTRY_NETWORK = 'WR-REGISTRY-NETWORK'
    REGISTRY_TIMEOUT = 'WR-REGISTRY-TIMEOUT'
    REGISTRY_AUTH = 'WR-REGISTRY-AUTH'
    REGISTRY_BAD_RESPONSE = 'WR-REGISTRY-BAD-RESPONSE'

    # Rollback
    ROLLBACK_FAILED = 'WR-ROLLBACK-FAILED'
    BACKUP_NOT_FOUND = 'WR-ROLLBACK-BACKUP-NOT-FOUND'


# Convenience alias for shorter imports.
E = ErrorCode


@dataclass(frozen=True)
class ErrorInfo:
    """Metadata for a single error.

    Attributes:
        code: The ``WR-NAMED-KEY`` error code.
        message: Human-readable description of what went wrong.
        hint: Optional suggestion for how to fix the error.
        paths: Absolute paths of the files involved, if any.
        details: Extra lines (one per aggregated problem).
    """

    code: ErrorCode
    message: str
    hint: str = ''
    paths: tuple[str, ...] = ()
    details: tuple[str, ...] = ()


class ReleaseError(Exception):
    """Base exception for all wsrelease errors.

    Carries structured diagnostic information (code, message, hint,
    paths) that can be rendered as a rich terminal message or JSON.

    Args:
        code: The error code from :class:`ErrorCode`.
        message: Human-readable description of what went wrong.
        hint: Optional suggestion for how to fix the error.
        paths: Files the error concerns. Stored as absolute strings.
        details: Extra lines, e.g. one per malformed changeset.
    """

    kind: str = 'ReleaseError'
    exit_code: int = EXIT_VALIDATION

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        hint: str = '',
        *,
        paths: Iterable[Path | str] = (),
        details: Iterable[str] = (),
    ) -> None:
        """Initialize with an error code, message, and optional context."""
        self.info = ErrorInfo(
            code=code,
            message=message,
            hint=hint,
            paths=tuple(str(Path(p).absolute()) for p in paths),
            details=tuple(details),
        )
        super().__init__(f'[{code.value}] {message}')

    @property
    def code(self) -> ErrorCode:
        """The error code."""
        return self.info.code

    @property
    def hint(self) -> str:
        """Suggestion for fixing this error, or empty string."""
        return self.info.hint

    @property
    def paths(self) -> tuple[str, ...]:
        """Absolute paths involved in the error."""
        return self.info.paths

    @property
    def details(self) -> tuple[str, ...]:
        """Aggregated detail lines."""
        return self.info.details

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable representation."""
        return {
            'kind': self.kind,
            'code': self.code.value,
            'message': self.info.message,
            'hint': self.hint,
            'paths': list(self.paths),
            'details': list(self.details),
        }


class ConfigError(ReleaseError):
    """Invalid or unreadable configuration."""

    kind = 'ConfigError'


class WorkspaceError(ReleaseError):
    """Missing root manifest, invalid glob, or member parse failure."""

    kind = 'WorkspaceError'


class ChangesetError(ReleaseError):
    """Changeset parse failure, unknown package, bad environment or bump."""

    kind = 'ChangesetError'


class PlanError(ReleaseError):
    """Propagation depth exceeded, impossible rewrite, or bad version."""

    kind = 'PlanError'


class IoError(ReleaseError):
    """Read, write, rename, fsync or subprocess failure."""

    kind = 'IoError'
    exit_code = EXIT_IO


class LockError(ReleaseError):
    """Another process holds the workspace lock or owns a pending run."""

    kind = 'LockError'
    exit_code = EXIT_IO


class RegistryError(ReleaseError):
    """Network, timeout, or auth failure talking to a package registry."""

    kind = 'RegistryError'
    exit_code = EXIT_IO


class RollbackError(ReleaseError):
    """Snapshot restore failed. The workspace may be inconsistent."""

    kind = 'RollbackError'
    exit_code = EXIT_IO


ERRORS: dict[ErrorCode, ErrorInfo] = {
    E.CONFIG_INVALID_KEY: ErrorInfo(
        code=E.CONFIG_INVALID_KEY,
        message='The configuration file contains an unknown key.',
        hint="Run 'wsrelease config validate' to see the closest valid key.",
    ),
    E.WORKSPACE_NOT_FOUND: ErrorInfo(
        code=E.WORKSPACE_NOT_FOUND,
        message='No root package.json found.',
        hint="Run wsrelease from the repository root or pass '--root'.",
    ),
    E.WORKSPACE_MANIFEST_PARSE: ErrorInfo(
        code=E.WORKSPACE_MANIFEST_PARSE,
        message='One or more member package.json files could not be parsed.',
        hint='Fix every file listed; the workspace is only loaded when all members parse.',
    ),
    E.CHANGESET_PARSE_ERROR: ErrorInfo(
        code=E.CHANGESET_PARSE_ERROR,
        message='A pending changeset file is malformed.',
        hint="Run 'wsrelease changeset list' to see every malformed file at once.",
    ),
    E.CHANGESET_UNKNOWN_PACKAGE: ErrorInfo(
        code=E.CHANGESET_UNKNOWN_PACKAGE,
        message='A changeset references a package that is not a workspace member.',
        hint='Rename the entry or remove it from the changeset.',
    ),
    E.PLAN_PROPAGATION_DEPTH: ErrorInfo(
        code=E.PLAN_PROPAGATION_DEPTH,
        message='Bump propagation exceeded dependency.max_depth levels.',
        hint='Raise dependency.max_depth or set dependency.fail_on_circular = false.',
    ),
    E.LOCK_HELD: ErrorInfo(
        code=E.LOCK_HELD,
        message='Another wsrelease process holds the workspace lock.',
        hint="Wait for it to finish, or delete '.workspace-backups/.lock' if the process is gone.",
    ),
    E.LOCK_PENDING_RUN: ErrorInfo(
        code=E.LOCK_PENDING_RUN,
        message='An interrupted run left a pending.json marker.',
        hint="Run 'wsrelease recover' to restore the snapshot before continuing.",
    ),
    E.ROLLBACK_FAILED: ErrorInfo(
        code=E.ROLLBACK_FAILED,
        message='Restoring the pre-run snapshot failed.',
        hint='Restore the listed files by hand from .workspace-backups/<run-id>/.',
    ),
}


def explain(code: str) -> str | None:
    """Return a detailed explanation for an error code.

    Args:
        code: The error code string, e.g. ``"WR-LOCK-HELD"``.

    Returns:
        A formatted explanation string, or ``None`` if the code is unknown.
    """
    try:
        error_code = ErrorCode(code)
    except ValueError:
        return None

    info = ERRORS.get(error_code)
    if info is None:
        return f'{code}: No detailed explanation available.'

    lines = [f'{code}: {info.message}']
    if info.hint:
        lines.append(f'  Hint: {info.hint}')
    return '\n'.join(lines)


def render_error(exc: ReleaseError, *, file: TextIO | None = None) -> None:
    """Render an error in Rust-compiler style with color.

    Output format::

        error[WR-LOCK-HELD]: Workspace lock held by PID 4242 on build-01.
          --> /repo/.workspace-backups/.lock
          |
          = hint: Wait for it to finish, or delete the lock file.

    Args:
        exc: The error to render.
        file: Output stream (defaults to ``sys.stderr``).
    """
    out = file or sys.stderr

    if out.isatty():
        console = Console(file=out, highlight=False)
        msg = rich_escape(exc.info.message)
        console.print(
            f'[bold red]error[/bold red][bold red]\\[{exc.code.value}][/bold red][bold]: {msg}[/bold]',
        )
        for path in exc.paths:
            console.print(f'  [blue]-->[/blue] {rich_escape(path)}')
        for line in exc.details:
            console.print(f'  [dim]|[/dim] {rich_escape(line)}')
        if exc.hint:
            console.print('  [dim]|[/dim]')
            console.print(f'  [dim]=[/dim] [cyan]hint[/cyan]: {rich_escape(exc.hint)}')
        console.print()
    else:
        print(f'error[{exc.code.value}]: {exc.info.message}', file=out)  # noqa: T201 - CLI output
        for path in exc.paths:
            print(f'  --> {path}', file=out)  # noqa: T201 - CLI output
        for line in exc.details:
            print(f'  | {line}', file=out)  # noqa: T201 - CLI output
        if exc.hint:
            print('  |', file=out)  # noqa: T201 - CLI output
            print(f'  = hint: {exc.hint}', file=out)  # noqa: T201 - CLI output
        print(file=out)  # noqa: T201 - CLI output


__all__ = [
    'E',
    'ERRORS',
    'EXIT_CANCELLED',
    'EXIT_IO',
    'EXIT_OK',
    'EXIT_VALIDATION',
    'ChangesetError',
    'ConfigError',
    'ErrorCode',
    'ErrorInfo',
    'IoError',
    'LockError',
    'PlanError',
    'RegistryError',
    'ReleaseError',
    'RollbackError',
    'WorkspaceError',
    'explain',
    'render_error',
]
