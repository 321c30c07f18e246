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


"""Shared test fakes for wsrelease.

Provides in-memory implementations of the Git and registry protocols so
that individual test modules don't need to duplicate boilerplate classes.

Usage::

    from tests._fakes import FakeGit, FakeRegistry

    git = FakeGit(top=tmp_path, diffs={('main', 'HEAD'): [FileDiff('a.ts', MODIFIED)]})
    registry = FakeRegistry({'lodash': ['4.17.0', '4.17.21']})
"""

from tests._fakes._git import OK as OK, FakeGit as FakeGit
from tests._fakes._registry import FakeRegistry as FakeRegistry, metadata as metadata
from tests._fakes._tree import (
    tree_digest as tree_digest,
    write_manifest as write_manifest,
    write_workspace as write_workspace,
)

__all__ = [
    'OK',
    'FakeGit',
    'FakeRegistry',
    'metadata',
    'tree_digest',
    'write_manifest',
    'write_workspace',
]
