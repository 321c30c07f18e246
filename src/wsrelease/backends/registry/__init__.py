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


"""Registry protocol for wsrelease.

The :class:`RegistryClient` protocol defines the async interface the
upgrade orchestrator uses to learn which versions of an external
dependency exist. Implementations:

- :class:`~wsrelease.backends.registry.npm.NpmRegistry`: npm registry API

Operations are async because they involve network I/O with potential
latency and rate limiting.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from wsrelease.backends.registry._types import PackageMetadata as PackageMetadata, VersionInfo as VersionInfo
from wsrelease.backends.registry.npm import NpmRegistry as NpmRegistry
from wsrelease.backends.registry.npmrc import NpmrcConfig as NpmrcConfig, load_npmrc as load_npmrc

__all__ = [
    'NpmRegistry',
    'NpmrcConfig',
    'PackageMetadata',
    'RegistryClient',
    'VersionInfo',
    'load_npmrc',
]


@runtime_checkable
class RegistryClient(Protocol):
    """Protocol for package registry queries."""

    def registry_url_for(self, package_name: str) -> str:
        """Return the registry base URL that serves ``package_name``.

        Args:
            package_name: Package name (may be scoped).
        """
        ...

    async def package_metadata(self, package_name: str) -> PackageMetadata | None:
        """Return every published version of a package.

        Args:
            package_name: Package name to query.

        Returns:
            The metadata, or ``None`` if the package does not exist.
        """
        ...
