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

"""``.npmrc`` reader.

Only the registry-related keys are interpreted::

    registry=https://registry.npmjs.org
    @myorg:registry=https://npm.myorg.com
    //npm.myorg.com/:_authToken=${NPM_TOKEN}

``${VAR}`` references are expanded from the environment (unset variables
are left as-is). ``~/.npmrc`` is read first; the workspace ``.npmrc``
overrides it.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from wsrelease._io import read_file
from wsrelease.logging import get_logger

logger = get_logger(__name__)

NPMRC_NAME = '.npmrc'

_ENV_RE = re.compile(r'\$\{([^}]+)\}')
# ``//`` only starts a comment after whitespace (never inside ``https://``).
_COMMENT_RE = re.compile(r'\s(#|;|//).*$')


@dataclass
class NpmrcConfig:
    """Registry settings read from ``.npmrc`` files.

    Attributes:
        registry: Default registry URL, if set.
        scoped_registries: Scope (without ``@``) to registry URL.
        auth_tokens: Host-and-path key (``npm.myorg.com``) to token.
        other: Every other key, uninterpreted.
    """

    registry: str | None = None
    scoped_registries: dict[str, str] = field(default_factory=dict)
    auth_tokens: dict[str, str] = field(default_factory=dict)
    other: dict[str, str] = field(default_factory=dict)

    def resolve_registry(self, package_name: str) -> str | None:
        """Scoped registry for ``@scope/name`` packages, else the default."""
        scope = package_scope(package_name)
        if scope and scope in self.scoped_registries:
            return self.scoped_registries[scope]
        return self.registry

    def get_auth_token(self, registry_url: str) -> str | None:
        """Token for ``registry_url``, matching on host and path."""
        if registry_url in self.auth_tokens:
            return self.auth_tokens[registry_url]
        wanted = normalize_registry_key(registry_url)
        for key, token in self.auth_tokens.items():
            if normalize_registry_key(key) == wanted:
                return token
        return None

    def merge_with(self, other: NpmrcConfig) -> None:
        """Overlay ``other`` onto this config (``other`` wins)."""
        if other.registry is not None:
            self.registry = other.registry
        self.scoped_registries.update(other.scoped_registries)
        self.auth_tokens.update(other.auth_tokens)
        self.other.update(other.other)


def package_scope(package_name: str) -> str:
    """``@myorg/utils`` → ``myorg``; unscoped names → ``''``."""
    if package_name.startswith('@') and '/' in package_name:
        return package_name[1:].split('/', 1)[0]
    return ''


def normalize_registry_key(url: str) -> str:
    """Strip scheme, leading ``//`` and trailing ``/`` for token matching."""
    for prefix in ('https://', 'http://', '//'):
        if url.startswith(prefix):
            url = url[len(prefix) :]
            break
    return url.rstrip('/')


def expand_env(value: str, environ: Mapping[str, str] | None = None) -> str:
    """Replace ``${VAR}`` with its environment value; unset ones stay."""
    env = os.environ if environ is None else environ

    def _sub(match: re.Match[str]) -> str:
        return env.get(match.group(1), match.group(0))

    return _ENV_RE.sub(_sub, value)


def parse_npmrc(text: str, *, environ: Mapping[str, str] | None = None) -> NpmrcConfig:
    """Parse ``.npmrc`` content."""
    config = NpmrcConfig()
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith(('#', ';')) or '=' not in line:
            continue
        key, _, value = line.partition('=')
        key = key.strip()
        value = _COMMENT_RE.sub('', value).strip()
        if not value:
            continue
        value = expand_env(value, environ)

        if key.startswith('@') and key.endswith(':registry'):
            config.scoped_registries[key[1 : -len(':registry')]] = value
        elif key.endswith(':_authToken'):
            registry = key[: -len(':_authToken')]
            config.auth_tokens[normalize_registry_key(registry)] = value
        elif key == 'registry':
            config.registry = value
        else:
            config.other[key] = value
    return config


async def load_npmrc(
    workspace_root: Path,
    *,
    home: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> NpmrcConfig:
    """Read ``~/.npmrc`` then ``<workspace_root>/.npmrc``.

    A missing file is skipped. An unreadable user file is logged and
    skipped; an unreadable workspace file raises ``IoError``.
    """
    config = NpmrcConfig()
    home_dir = home if home is not None else Path.home()
    user_file = home_dir / NPMRC_NAME
    if user_file.is_file():
        try:
            config.merge_with(parse_npmrc(await read_file(user_file), environ=environ))
        except Exception as exc:  # noqa: BLE001 - best effort
            logger.warning('user_npmrc_unreadable', path=str(user_file), error=str(exc))
    workspace_file = workspace_root / NPMRC_NAME
    if workspace_file.is_file():
        config.merge_with(parse_npmrc(await read_file(workspace_file), environ=environ))
        logger.debug('npmrc_loaded', path=str(workspace_file))
    return config


__all__ = [
    'NPMRC_NAME',
    'NpmrcConfig',
    'expand_env',
    'load_npmrc',
    'normalize_registry_key',
    'package_scope',
    'parse_npmrc',
]
