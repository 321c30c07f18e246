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

"""Subprocess runner shared by the git backend.

:func:`run_command` captures text output, enforces a timeout and logs
each invocation at debug level. Failures are returned, not raised; the
caller decides what a non-zero exit means.
"""

from __future__ import annotations

import subprocess  # noqa: S404 - running git is the purpose of this module
import time
from dataclasses import dataclass
from pathlib import Path

from wsrelease.logging import get_logger

log = get_logger('wsrelease.backends.run')

DEFAULT_TIMEOUT_SECONDS = 300


@dataclass(frozen=True)
class CommandResult:
    """Captured outcome of one command.

    Attributes:
        command: Argument vector that was run.
        return_code: Exit status.
        stdout: Decoded standard output.
        stderr: Decoded standard error.
        duration: Wall-clock time in milliseconds.
    """

    command: list[str]
    return_code: int
    stdout: str = ''
    stderr: str = ''
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        """Whether the exit status was zero."""
        return self.return_code == 0

    @property
    def command_str(self) -> str:
        """The argument vector joined with spaces, for messages."""
        return ' '.join(self.command)


def run_command(cmd: list[str], *, cwd: Path | None = None, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> CommandResult:
    """Run ``cmd`` and capture its output as UTF-8 text.

    Raises:
        subprocess.TimeoutExpired: The command ran longer than ``timeout``.
        FileNotFoundError: The executable does not exist.
    """
    cmd_str = ' '.join(cmd)
    start = time.monotonic()
    try:
        proc = subprocess.run(  # noqa: S603 - argument vectors are built by the backends
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding='utf-8',
            errors='surrogateescape',
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        log.error('command_timeout', cmd=cmd_str, timeout=timeout)
        raise
    duration = (time.monotonic() - start) * 1000
    if proc.returncode != 0:
        log.warning('command_failed', cmd=cmd_str, return_code=proc.returncode, stderr=proc.stderr[:500])
    else:
        log.debug('command_ok', cmd=cmd_str, duration=round(duration, 1))
    return CommandResult(
        command=cmd,
        return_code=proc.returncode,
        stdout=proc.stdout,
        stderr=proc.stderr,
        duration=duration,
    )


__all__ = [
    'DEFAULT_TIMEOUT_SECONDS',
    'CommandResult',
    'run_command',
]
