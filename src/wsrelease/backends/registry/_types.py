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

"""Shared types for the registry subpackage."""

from __future__ import annotations

from dataclasses import dataclass, field

from wsrelease.semver import Version


@dataclass(frozen=True)
class VersionInfo:
    """One published version.

    Attributes:
        version: Version string as published.
        deprecated: Deprecation message, or ``''`` if not deprecated.
        published_at: ISO-8601 publish time from the packument ``time`` map.
    """

    version: str
    deprecated: str = ''
    published_at: str = ''


@dataclass(frozen=True)
class PackageMetadata:
    """What the registry knows about one package.

    Attributes:
        name: Package name.
        versions: Every published version, ascending semver order.
            Entries that do not parse as semver are dropped.
        latest: The ``latest`` dist-tag (``''`` if missing).
        dist_tags: All dist-tags.
        registry_url: The registry that answered.
    """

    name: str
    versions: list[VersionInfo] = field(default_factory=list)
    latest: str = ''
    dist_tags: dict[str, str] = field(default_factory=dict)
    registry_url: str = ''

    def candidates(self, *, include_prerelease: bool = False, include_deprecated: bool = False) -> list[Version]:
        """Parsed versions eligible for an upgrade, ascending."""
        result: list[Version] = []
        for info in self.versions:
            if info.deprecated and not include_deprecated:
                continue
            version = Version.parse(info.version)
            if version.is_prerelease and not include_prerelease:
                continue
            result.append(version)
        return result


__all__ = [
    'PackageMetadata',
    'VersionInfo',
]
