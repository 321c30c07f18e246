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


"""Protocol-based backend shim layer for wsrelease.

All external tool calls (git, the npm registry) go through injectable
Protocol interfaces defined here. Swap in a fake backend for tests.

Protocols (defined in subpackage ``__init__.py`` files):

- :class:`GitPort`: diffs, commits, tags (default: :class:`GitCLIBackend`)
- :class:`RegistryClient`: package metadata (default: :class:`NpmRegistry`)
"""

from wsrelease.backends._run import CommandResult, run_command
from wsrelease.backends.registry import NpmRegistry, PackageMetadata, RegistryClient
from wsrelease.backends.vcs import GitCLIBackend, GitPort

__all__ = [
    'CommandResult',
    'GitCLIBackend',
    'GitPort',
    'NpmRegistry',
    'PackageMetadata',
    'RegistryClient',
    'run_command',
]
