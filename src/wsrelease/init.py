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

"""Workspace scaffolding for wsrelease.

Writes ``repo.config.toml``, creates the changeset and backup
directories, and updates ``.gitignore``. Idempotent: safe to run
multiple times.

Architecture::

    repo.config.toml        .changesets/             .gitignore
         │                  .changesets/history/          │
         ▼                  .workspace-backups/           ▼
    Keep existing           README-example.yaml      Append missing
    (unless --force)             │                   lines only
         │                       ▼
         ▼                  Create if missing
    Write defaults
    (tomlkit)
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path

import tomlkit
from rich.console import Console
from rich.syntax import Syntax

from wsrelease._io import write_atomic
from wsrelease.config import CONFIG_FILENAMES, RepoConfig, default_config_document, find_config_file
from wsrelease.errors import E, IoError
from wsrelease.logging import get_logger

logger = get_logger(__name__)

CONFIG_FILENAME = CONFIG_FILENAMES[0]
EXAMPLE_CHANGESET = 'README-example.yaml'

_EXAMPLE_CONTENT = """\
# Example changeset. Files named README* are never read as changesets.
#
# Create a real one with:  wsrelease changeset add --package my-pkg=minor
---
id: add-search-endpoint
timestamp: '2026-01-01T00:00:00Z'
author: you@example.com
environments:
- production
entries:
  my-pkg: minor
  my-other-pkg: patch
summary: Add a search endpoint.
breaking_notes: ''
---
"""


def gitignore_patterns(config: RepoConfig) -> list[str]:
    """Lines ``init`` makes sure are present in ``.gitignore``."""
    return [config.upgrade.backup.backup_dir.rstrip('/') + '/']


@dataclass
class InitResult:
    """What ``init`` did.

    Attributes:
        config_path: The config file (written or pre-existing).
        config_written: Whether the config file was (re)written.
        created: Directories and files that did not exist before.
        gitignore_added: Lines appended to ``.gitignore``.
        config_text: The generated TOML.
    """

    config_path: Path
    config_written: bool = False
    created: list[Path] = field(default_factory=list)
    gitignore_added: list[str] = field(default_factory=list)
    config_text: str = ''

    def to_dict(self, root: Path) -> dict[str, object]:
        """Return a JSON-serializable representation."""
        return {
            'config_path': self.config_path.relative_to(root).as_posix(),
            'config_written': self.config_written,
            'created': [p.relative_to(root).as_posix() for p in self.created],
            'gitignore_added': list(self.gitignore_added),
        }


def _mkdir(path: Path, created: list[Path]) -> None:
    if path.is_dir():
        return
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise IoError(E.IO_WRITE_FAILED, f'Failed to create {path}: {exc}', paths=[path]) from exc
    created.append(path)


def update_gitignore(gitignore_path: Path, patterns: list[str]) -> list[str]:
    """Append each pattern not already present as a line.

    Returns:
        The lines that were appended.
    """
    existing = ''
    if gitignore_path.exists():
        existing = gitignore_path.read_text(encoding='utf-8')
    present = {line.strip() for line in existing.splitlines()}
    missing = [p for p in patterns if p not in present and p.rstrip('/') not in present]
    if not missing:
        return []

    prefix = ''
    if existing and not existing.endswith('\n'):
        prefix = '\n'
    block = prefix + ('\n' if existing else '') + '# wsrelease backups\n' + ''.join(f'{p}\n' for p in missing)
    write_atomic(gitignore_path, existing + block)
    return missing


def scaffold(root: Path, *, force: bool = False, config: RepoConfig | None = None) -> InitResult:
    """Initialize ``root`` for wsrelease.

    Args:
        root: Workspace root (where ``package.json`` lives).
        force: Overwrite an existing config file with defaults.
        config: Settings to write (defaults when ``None``).

    Returns:
        An :class:`InitResult`.
    """
    config = config or RepoConfig()
    existing = find_config_file(root)
    config_path = existing or root / CONFIG_FILENAME
    config_text = tomlkit.dumps(default_config_document(config))
    result = InitResult(config_path=config_path, config_text=config_text)

    if existing is None or force:
        if existing is not None and existing.name != CONFIG_FILENAME:
            config_path = root / CONFIG_FILENAME
            result.config_path = config_path
        if not config_path.exists():
            result.created.append(config_path)
        write_atomic(config_path, config_text)
        result.config_written = True
        logger.info('config_written', path=str(config_path))
    else:
        logger.info('config_exists', path=str(existing), hint='use --force to overwrite')

    changesets = root / config.changeset.path
    _mkdir(changesets, result.created)
    _mkdir(root / config.changeset.history_path, result.created)
    example = changesets / EXAMPLE_CHANGESET
    if not example.exists():
        write_atomic(example, _EXAMPLE_CONTENT)
        result.created.append(example)
    _mkdir(root / config.upgrade.backup.backup_dir, result.created)

    result.gitignore_added = update_gitignore(root / '.gitignore', gitignore_patterns(config))
    if result.gitignore_added:
        logger.info('gitignore_updated', lines=result.gitignore_added)
    return result


def print_scaffold_preview(toml_text: str) -> None:
    """Print the generated configuration, highlighted on a TTY."""
    if not toml_text:
        return
    if sys.stdout.isatty():
        console = Console()
        console.print(f'\n[bold]Generated {CONFIG_FILENAME}:[/bold]\n')
        console.print(Syntax(toml_text, 'toml', theme='monokai'))
        return
    print(toml_text)  # noqa: T201 - CLI output


__all__ = [
    'CONFIG_FILENAME',
    'EXAMPLE_CHANGESET',
    'InitResult',
    'gitignore_patterns',
    'print_scaffold_preview',
    'scaffold',
    'update_gitignore',
]
