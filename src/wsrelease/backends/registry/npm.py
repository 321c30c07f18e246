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

"""npm registry backend for wsrelease.

The :class:`NpmRegistry` implements the :class:`RegistryClient` protocol
using the npm registry API (https://registry.npmjs.org).

API endpoints used:

- ``GET /{package}``: full package metadata ("packument"). Returns
  ``dist-tags``, ``versions`` (with per-version ``deprecated``) and
  ``time``.
  See: https://github.com/npm/registry/blob/main/docs/REGISTRY-API.md

Scoped packages (e.g. ``@myorg/utils``) must be URL-encoded as
``@myorg%2Futils`` in the URL path.

Registry selection, highest precedence first:

1. ``.npmrc`` (``@scope:registry=`` then ``registry=``), when
   ``upgrade.registry.read_npmrc`` is on.
2. ``upgrade.registry.scoped_registries``.
3. ``upgrade.registry.default_registry``.
"""

from __future__ import annotations

import urllib.parse

import httpx

from wsrelease.backends.registry._types import PackageMetadata, VersionInfo
from wsrelease.backends.registry.npmrc import NpmrcConfig, normalize_registry_key, package_scope
from wsrelease.config import RegistryConfig
from wsrelease.errors import E, RegistryError
from wsrelease.logging import get_logger
from wsrelease.net import DEFAULT_POOL_SIZE, http_client, request_with_retry
from wsrelease.semver import Version

log = get_logger('wsrelease.backends.npm')


def _encode_package_name(name: str) -> str:
    """URL-encode a package name for the registry API.

    Scoped packages like ``@myorg/utils`` must be encoded as
    ``@myorg%2Futils`` (the ``/`` becomes ``%2F``).

    Unscoped packages are returned as-is.
    """
    if name.startswith('@'):
        return urllib.parse.quote(name, safe='@')
    return name


class NpmRegistry:
    """Registry client for npm-compatible registries.

    Args:
        config: ``[upgrade.registry]`` settings.
        npmrc: Parsed ``.npmrc`` settings (ignored unless
            ``config.read_npmrc``).
        pool_size: HTTP connection pool size.
        transport: Optional httpx transport (tests use
            ``httpx.MockTransport``).
    """

    #: Base URL for the production npm registry.
    DEFAULT_BASE_URL: str = 'https://registry.npmjs.org'

    def __init__(
        self,
        config: RegistryConfig | None = None,
        *,
        npmrc: NpmrcConfig | None = None,
        pool_size: int = DEFAULT_POOL_SIZE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize with registry settings."""
        self._config = config or RegistryConfig()
        self._npmrc = npmrc if self._config.read_npmrc else None
        self._pool_size = pool_size
        self._transport = transport

    def registry_url_for(self, package_name: str) -> str:
        """Registry base URL (no trailing slash) serving ``package_name``."""
        if self._npmrc is not None:
            url = self._npmrc.resolve_registry(package_name)
            if url:
                return url.rstrip('/')
        scope = package_scope(package_name)
        if scope:
            for key in (scope, f'@{scope}'):
                if key in self._config.scoped_registries:
                    return self._config.scoped_registries[key].rstrip('/')
        return (self._config.default_registry or self.DEFAULT_BASE_URL).rstrip('/')

    def auth_token_for(self, registry_url: str) -> str | None:
        """Bearer token for ``registry_url``, if any is configured."""
        if self._npmrc is not None:
            token = self._npmrc.get_auth_token(registry_url)
            if token:
                return token
        tokens = self._config.auth_tokens
        if registry_url in tokens:
            return tokens[registry_url]
        wanted = normalize_registry_key(registry_url)
        for key, token in tokens.items():
            if normalize_registry_key(key) == wanted:
                return token
        return None

    async def package_metadata(self, package_name: str) -> PackageMetadata | None:
        """Fetch the packument for ``package_name``.

        Returns:
            The metadata, or ``None`` if the registry reports 404.

        Raises:
            RegistryError: ``WR-REGISTRY-AUTH`` on 401/403,
                ``WR-REGISTRY-BAD-RESPONSE`` on other failures or an
                unparsable body, and the network/timeout codes raised by
                :func:`~wsrelease.net.request_with_retry`.
        """
        base = self.registry_url_for(package_name)
        url = f'{base}/{_encode_package_name(package_name)}'
        headers = {'Accept': 'application/json'}
        token = self.auth_token_for(base)
        if token:
            headers['Authorization'] = f'Bearer {token}'

        async with http_client(
            pool_size=self._pool_size,
            timeout=float(self._config.timeout_secs),
            headers=headers,
            transport=self._transport,
        ) as client:
            response = await request_with_retry(
                client,
                'GET',
                url,
                max_retries=max(self._config.retry_attempts, 0),
                backoff_base=self._config.retry_delay_ms / 1000.0,
            )

        if response.status_code == 404:
            log.info('npm_package_not_found', package=package_name, registry=base)
            return None
        if response.status_code in (401, 403):
            raise RegistryError(
                E.REGISTRY_AUTH,
                f'{base} refused access to {package_name} (HTTP {response.status_code})',
                hint='Set a token in .npmrc (//host/:_authToken=...) or upgrade.registry.auth_tokens.',
            )
        if response.status_code != 200:
            raise RegistryError(
                E.REGISTRY_BAD_RESPONSE,
                f'{url} returned HTTP {response.status_code}',
            )
        try:
            data = response.json()
        except ValueError as exc:
            raise RegistryError(E.REGISTRY_BAD_RESPONSE, f'{url} returned invalid JSON: {exc}') from exc
        if not isinstance(data, dict):
            raise RegistryError(E.REGISTRY_BAD_RESPONSE, f'{url} returned a non-object packument')
        return _to_metadata(package_name, base, data)

    async def latest_version(self, package_name: str) -> str | None:
        """Return the ``latest`` dist-tag, or ``None`` if unpublished."""
        metadata = await self.package_metadata(package_name)
        if metadata is None or not metadata.latest:
            return None
        return metadata.latest

    async def list_versions(self, package_name: str) -> list[str]:
        """Return all published versions (newest first)."""
        metadata = await self.package_metadata(package_name)
        if metadata is None:
            return []
        return [v.version for v in reversed(metadata.versions)]


def _to_metadata(package_name: str, registry_url: str, data: dict[str, object]) -> PackageMetadata:
    """Convert a packument into :class:`PackageMetadata`."""
    raw_versions = data.get('versions')
    raw_times = data.get('time')
    raw_tags = data.get('dist-tags')
    times = raw_times if isinstance(raw_times, dict) else {}
    tags = {str(k): str(v) for k, v in raw_tags.items()} if isinstance(raw_tags, dict) else {}

    parsed: list[tuple[Version, VersionInfo]] = []
    for key, body in (raw_versions.items() if isinstance(raw_versions, dict) else []):
        if not Version.is_valid(str(key)):
            log.debug('npm_version_skipped', package=package_name, version=key)
            continue
        deprecated = body.get('deprecated', '') if isinstance(body, dict) else ''
        info = VersionInfo(
            version=str(key),
            deprecated=deprecated if isinstance(deprecated, str) else '',
            published_at=str(times.get(key, '')),
        )
        parsed.append((Version.parse(str(key)), info))
    parsed.sort(key=lambda pair: pair[0])

    return PackageMetadata(
        name=str(data.get('name', package_name)),
        versions=[info for _, info in parsed],
        latest=tags.get('latest', ''),
        dist_tags=tags,
        registry_url=registry_url,
    )


__all__ = [
    'NpmRegistry',
]
