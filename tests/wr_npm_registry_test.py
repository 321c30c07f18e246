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


"""Tests for wsrelease.backends.registry.npm."""

from __future__ import annotations

import httpx
import pytest
from wsrelease.backends.registry import NpmRegistry, RegistryClient
from wsrelease.backends.registry.npmrc import parse_npmrc
from wsrelease.config import RegistryConfig
from wsrelease.errors import E, RegistryError

PACKUMENT = {
    'name': '@acme/ui',
    'dist-tags': {'latest': '2.0.0', 'next': '3.0.0-rc.1'},
    'versions': {
        '2.0.0': {},
        '1.0.0': {'deprecated': 'use 2.x'},
        '3.0.0-rc.1': {},
        'not-semver': {},
        '1.5.0': {},
    },
    'time': {'1.0.0': '2025-01-01T00:00:00Z'},
}

FAST = RegistryConfig(retry_attempts=0, retry_delay_ms=0)


def _registry(
    responses: dict[str, httpx.Response],
    config: RegistryConfig = FAST,
    **kwargs: object,
) -> tuple[NpmRegistry, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return responses.get(str(request.url), httpx.Response(404))

    registry = NpmRegistry(config, transport=httpx.MockTransport(handler), **kwargs)  # type: ignore[arg-type]
    return registry, seen


class TestMetadata:
    """Tests for package_metadata()."""

    @pytest.mark.asyncio()
    async def test_packument(self) -> None:
        """Versions are sorted, non-semver keys dropped, tags kept."""
        url = 'https://registry.npmjs.org/@acme%2Fui'
        registry, seen = _registry({url: httpx.Response(200, json=PACKUMENT)})
        metadata = await registry.package_metadata('@acme/ui')

        assert metadata is not None
        assert [v.version for v in metadata.versions] == ['1.0.0', '1.5.0', '2.0.0', '3.0.0-rc.1']
        assert metadata.versions[0].deprecated == 'use 2.x'
        assert metadata.versions[0].published_at == '2025-01-01T00:00:00Z'
        assert metadata.latest == '2.0.0'
        assert metadata.dist_tags['next'] == '3.0.0-rc.1'
        assert [str(v) for v in metadata.candidates()] == ['1.5.0', '2.0.0']
        assert str(seen[0].url) == url

    @pytest.mark.asyncio()
    async def test_not_found(self) -> None:
        """404 means the package is unpublished."""
        registry, _ = _registry({})
        assert await registry.package_metadata('nope') is None
        assert await registry.latest_version('nope') is None
        assert await registry.list_versions('nope') == []

    @pytest.mark.asyncio()
    async def test_list_versions_newest_first(self) -> None:
        """list_versions returns newest first."""
        url = 'https://registry.npmjs.org/@acme%2Fui'
        registry, _ = _registry({url: httpx.Response(200, json=PACKUMENT)})
        assert await registry.list_versions('@acme/ui') == ['3.0.0-rc.1', '2.0.0', '1.5.0', '1.0.0']

    @pytest.mark.asyncio()
    @pytest.mark.parametrize(
        ('response', 'code'),
        [
            (httpx.Response(401), E.REGISTRY_AUTH),
            (httpx.Response(403), E.REGISTRY_AUTH),
            (httpx.Response(418), E.REGISTRY_BAD_RESPONSE),
            (httpx.Response(200, text='<html>'), E.REGISTRY_BAD_RESPONSE),
            (httpx.Response(200, json=['x']), E.REGISTRY_BAD_RESPONSE),
        ],
    )
    async def test_failures(self, response: httpx.Response, code: E) -> None:
        """Auth and malformed responses raise RegistryError."""
        registry, _ = _registry({'https://registry.npmjs.org/lodash': response})
        with pytest.raises(RegistryError) as exc_info:
            await registry.package_metadata('lodash')
        assert exc_info.value.code == code

    def test_is_registry_client(self) -> None:
        """NpmRegistry satisfies the RegistryClient protocol."""
        assert isinstance(NpmRegistry(), RegistryClient)


class TestRegistrySelection:
    """Registry URL and token precedence."""

    def test_npmrc_wins(self) -> None:
        """.npmrc scoped registry beats the config."""
        config = RegistryConfig(scoped_registries={'@acme': 'https://config.example'})
        npmrc = parse_npmrc('@acme:registry=https://npmrc.example/\n')
        registry = NpmRegistry(config, npmrc=npmrc)
        assert registry.registry_url_for('@acme/ui') == 'https://npmrc.example'

    def test_npmrc_ignored_when_disabled(self) -> None:
        """read_npmrc = false falls back to the config."""
        config = RegistryConfig(scoped_registries={'@acme': 'https://config.example/'}, read_npmrc=False)
        npmrc = parse_npmrc('@acme:registry=https://npmrc.example/\n')
        registry = NpmRegistry(config, npmrc=npmrc)
        assert registry.registry_url_for('@acme/ui') == 'https://config.example'
        assert registry.registry_url_for('lodash') == 'https://registry.npmjs.org'

    @pytest.mark.asyncio()
    async def test_bearer_token(self) -> None:
        """Tokens from the config are sent as a bearer header."""
        config = RegistryConfig(
            default_registry='https://npm.acme.dev/',
            auth_tokens={'//npm.acme.dev/': 'tok'},
            retry_attempts=0,
            read_npmrc=False,
        )
        registry, seen = _registry({'https://npm.acme.dev/left-pad': httpx.Response(200, json={})}, config)
        metadata = await registry.package_metadata('left-pad')
        assert metadata is not None and metadata.versions == []
        assert seen[0].headers['authorization'] == 'Bearer tok'
