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


"""Tests for wsrelease.config."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import tomlkit
from wsrelease.config import (
    CONFIG_FILENAMES,
    RepoConfig,
    default_config_document,
    find_config_file,
    load_config,
    parse_config,
)
from wsrelease.errors import E, ConfigError


class TestDefaults:
    """Tests for the built-in defaults."""

    def test_defaults(self) -> None:
        """An empty document yields the documented defaults."""
        cfg = parse_config({})
        assert cfg.changeset.path == '.changesets'
        assert cfg.changeset.default_environments == ['production']
        assert cfg.version.strategy == 'independent'
        assert cfg.dependency.propagation_bump == 'patch'
        assert cfg.dependency.propagating_classes == frozenset({'runtime', 'dev', 'optional'})
        assert cfg.upgrade.registry.default_registry == 'https://registry.npmjs.org'
        assert cfg.upgrade.backup.max_backups == 5

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        """No config file is not an error."""
        assert load_config(tmp_path) == RepoConfig()

    def test_generated_document_round_trips(self) -> None:
        """The scaffolded TOML parses back to the defaults."""
        text = tomlkit.dumps(default_config_document())
        assert parse_config(tomlkit.parse(text).unwrap()) == RepoConfig()


class TestValidation:
    """Tests for parse_config validation."""

    def test_unknown_section_suggests(self) -> None:
        """A typo in a section name gets a suggestion."""
        with pytest.raises(ConfigError) as exc_info:
            parse_config({'changest': {}})
        assert exc_info.value.code == E.CONFIG_INVALID_KEY
        assert "'changeset'" in exc_info.value.hint

    def test_unknown_key_suggests(self) -> None:
        """A typo in a key gets a suggestion."""
        with pytest.raises(ConfigError) as exc_info:
            parse_config({'version': {'stratgy': 'unified'}})
        assert exc_info.value.code == E.CONFIG_INVALID_KEY
        assert "'strategy'" in exc_info.value.hint

    @pytest.mark.parametrize(
        'raw',
        [
            {'version': {'strategy': 'lockstep'}},
            {'version': {'default_bump': 'none'}},
            {'version': {'snapshot_format': 'snap-{short_commit}'}},
            {'version': {'unified_sync_all': 'yes'}},
            {'dependency': {'propagation_bump': 'huge'}},
            {'dependency': {'max_depth': 0}},
            {'dependency': {'max_depth': True}},
            {'changeset': {'default_environments': ['qa']}},
            {'changeset': {'available_environments': []}},
            {'changeset': {'history_path': '.changesets/'}},
            {'changeset': {'available_environments': ['dev', 3]}},
            {'upgrade': {'registry': {'default_registry': 'ftp://example.com'}}},
            {'upgrade': {'registry': {'scoped_registries': {'@acme': 'registry.acme.dev'}}}},
            {'upgrade': {'registry': {'timeout_secs': 0}}},
            {'upgrade': {'backup': {'max_backups': 0}}},
            {'changelog': {'format': 'markdown'}},
            {'changelog': {'version_tag_format': ''}},
            {'audit': {'min_severity': 'fatal'}},
            {'audit': 'on'},
        ],
    )
    def test_invalid_values(self, raw: dict[str, Any]) -> None:
        """Bad types, enums and cross-field combinations are rejected."""
        with pytest.raises(ConfigError) as exc_info:
            parse_config(raw)
        assert exc_info.value.code == E.CONFIG_INVALID_VALUE

    def test_nested_tables(self) -> None:
        """Nested upgrade and audit tables are parsed."""
        cfg = parse_config({
            'upgrade': {
                'changeset_bump': 'minor',
                'registry': {'scoped_registries': {'@acme': 'https://npm.acme.dev'}, 'retry_attempts': 0},
                'backup': {'keep_after_success': True},
            },
            'audit': {'min_severity': 'info', 'sections': {'upgrades': False}},
        })
        assert cfg.upgrade.changeset_bump == 'minor'
        assert cfg.upgrade.registry.scoped_registries == {'@acme': 'https://npm.acme.dev'}
        assert cfg.upgrade.backup.keep_after_success
        assert cfg.audit.min_severity == 'info'
        assert not cfg.audit.sections.upgrades
        assert cfg.audit.sections.cycles

    def test_backups_disabled_allow_zero(self) -> None:
        """max_backups is only checked while backups are enabled."""
        cfg = parse_config({'upgrade': {'backup': {'enabled': False, 'max_backups': 0}}})
        assert not cfg.upgrade.backup.enabled


class TestLoadConfig:
    """Tests for find_config_file and load_config."""

    def test_toml_first(self, tmp_path: Path) -> None:
        """repo.config.toml wins over the other formats."""
        (tmp_path / 'repo.config.json').write_text('{}', encoding='utf-8')
        (tmp_path / 'repo.config.toml').write_text('', encoding='utf-8')
        assert find_config_file(tmp_path) == tmp_path / CONFIG_FILENAMES[0]

    def test_toml(self, tmp_path: Path) -> None:
        """TOML files are parsed and the path is recorded."""
        path = tmp_path / 'repo.config.toml'
        path.write_text('[version]\nstrategy = "unified"\n', encoding='utf-8')
        cfg = load_config(tmp_path)
        assert cfg.version.strategy == 'unified'
        assert cfg.config_path == path

    def test_yaml(self, tmp_path: Path) -> None:
        """YAML files are accepted."""
        (tmp_path / 'repo.config.yaml').write_text('changelog:\n  enabled: false\n', encoding='utf-8')
        assert not load_config(tmp_path).changelog.enabled

    def test_json(self, tmp_path: Path) -> None:
        """JSON files are accepted."""
        (tmp_path / 'repo.config.json').write_text(json.dumps({'git': {'include_breaking_warning': False}}))
        assert not load_config(tmp_path).git.include_breaking_warning

    def test_parse_error(self, tmp_path: Path) -> None:
        """Malformed TOML raises CONFIG_PARSE_ERROR."""
        (tmp_path / 'repo.config.toml').write_text('[version\n', encoding='utf-8')
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path)
        assert exc_info.value.code == E.CONFIG_PARSE_ERROR

    def test_validation_error_carries_path(self, tmp_path: Path) -> None:
        """Validation errors point at the config file."""
        path = tmp_path / 'repo.config.toml'
        path.write_text('[version]\nstrategy = "lockstep"\n', encoding='utf-8')
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path)
        assert exc_info.value.paths == (str(path),)
