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

"""Configuration reader for wsrelease.

Reads ``repo.config.toml`` (or ``.yaml``, ``.yml``, ``.json``; the first
one found wins) from the workspace root and returns a validated, frozen
:class:`RepoConfig`. A repository without a config file gets the
defaults.

Key Concepts (ELI5)::

    ┌─────────────────────────┬────────────────────────────────────────────┐
    │ Concept                 │ ELI5 Explanation                           │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ RepoConfig              │ A settings object for the release tool,   │
    │                         │ one frozen sub-object per [section].      │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ load_config()           │ Find the config file, parse it, check     │
    │                         │ every key and value, return RepoConfig.   │
    ├─────────────────────────┼────────────────────────────────────────────┤
    │ Fuzzy key matching      │ If you typo a config key, we suggest the  │
    │                         │ closest valid key. Like "did you mean?"   │
    │                         │ in a search engine.                       │
    └─────────────────────────┴────────────────────────────────────────────┘

Validation Pipeline::

    repo.config.toml
    ┌──────────────────────┐
    │ [changeset]          │
    │ pth = ".changesets"  │  ← typo!
    └──────────┬───────────┘
               ▼
    ┌──────────────────┐     ┌──────────────────────────────┐
    │ 1. Unknown key   │────→│ WR-CONFIG-INVALID-KEY:       │
    │    detection     │     │ hint: "Did you mean 'path'?" │
    └────────┬─────────┘     └──────────────────────────────┘
             ▼
    ┌──────────────────┐     ┌──────────────────────────────┐
    │ 2. Type check    │────→│ WR-CONFIG-INVALID-VALUE:     │
    │    each value    │     │ 'max_depth' must be int      │
    └────────┬─────────┘     └──────────────────────────────┘
             ▼
    ┌──────────────────┐     ┌──────────────────────────────┐
    │ 3. Value check   │────→│ WR-CONFIG-INVALID-VALUE:     │
    │ (enums, subsets) │     │ default_environments must be │
    └────────┬─────────┘     │ a subset of available ones   │
             ▼               └──────────────────────────────┘
    ┌──────────────────┐
    │ RepoConfig()     │  ← frozen dataclass, ready to use
    └──────────────────┘

Supported sections::

    [changeset]   path, history_path, available_environments, default_environments
    [version]     strategy, default_bump, snapshot_format, unified_sync_all, prerelease_tag
    [dependency]  propagation_bump, propagate_{runtime,dev,peer,optional}, max_depth,
                  fail_on_circular, skip_{workspace,file,link,portal}_protocol
    [upgrade]     auto_changeset, changeset_bump
    [upgrade.registry] default_registry, scoped_registries, auth_tokens,
                  timeout_secs, retry_attempts, retry_delay_ms, read_npmrc
    [upgrade.backup]   enabled, backup_dir, keep_after_success, max_backups
    [changelog]   enabled, format, include_commit_links, filename,
                  version_tag_format, root_tag_format, template, repository_url
    [git]         merge_commit_template, monorepo_merge_commit_template,
                  include_breaking_warning, breaking_warning_template
    [audit]       enabled, min_severity
    [audit.sections] cycles, version_consistency, changesets, upgrades

Usage::

    from wsrelease.config import load_config

    cfg = load_config(Path('.'))
    print(cfg.changeset.path)  # ".changesets"
"""

from __future__ import annotations

import dataclasses
import difflib
import json
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any

import tomlkit
import tomlkit.exceptions
import yaml

from wsrelease.errors import E, ConfigError
from wsrelease.logging import get_logger

logger = get_logger(__name__)

# Candidate config file names, in lookup order.
CONFIG_FILENAMES: tuple[str, ...] = (
    'repo.config.toml',
    'repo.config.yaml',
    'repo.config.yml',
    'repo.config.json',
)

ALLOWED_STRATEGIES: frozenset[str] = frozenset({'independent', 'unified'})
ALLOWED_DEFAULT_BUMPS: frozenset[str] = frozenset({'patch', 'minor', 'major'})
ALLOWED_PROPAGATION_BUMPS: frozenset[str] = frozenset({'none', 'patch', 'minor', 'major'})
ALLOWED_CHANGELOG_FORMATS: frozenset[str] = frozenset({'keep-a-changelog', 'conventional'})
ALLOWED_SEVERITIES: tuple[str, ...] = ('info', 'warning', 'critical')


@dataclass(frozen=True)
class ChangesetConfig:
    """``[changeset]``: where changesets live and which environments exist.

    Attributes:
        path: Pending changesets directory, relative to the root.
        history_path: Archive directory; must differ from ``path``.
        available_environments: Ordered, non-empty list of environments.
        default_environments: Environments used when none are given.
    """

    path: str = '.changesets'
    history_path: str = '.changesets/history'
    available_environments: list[str] = field(default_factory=lambda: ['dev', 'staging', 'production'])
    default_environments: list[str] = field(default_factory=lambda: ['production'])


@dataclass(frozen=True)
class VersionConfig:
    """``[version]``: how target versions are computed.

    Attributes:
        strategy: ``independent`` or ``unified``.
        default_bump: Bump suggested by ``changeset add``.
        snapshot_format: Template for snapshot versions; must contain
            ``{version}``. Also accepts ``{commit}``, ``{short_commit}``
            and ``{timestamp}``.
        unified_sync_all: Under ``unified``, move every member to the
            shared version (not only bumped ones).
        prerelease_tag: Tag used by a bare ``prerelease`` bump.
    """

    strategy: str = 'independent'
    default_bump: str = 'patch'
    snapshot_format: str = '{version}-snapshot.{short_commit}'
    unified_sync_all: bool = True
    prerelease_tag: str = 'alpha'


@dataclass(frozen=True)
class DependencyConfig:
    """``[dependency]``: how bumps propagate to dependents."""

    propagation_bump: str = 'patch'
    propagate_runtime: bool = True
    propagate_dev: bool = True
    propagate_peer: bool = False
    propagate_optional: bool = True
    max_depth: int = 10
    fail_on_circular: bool = True
    skip_workspace_protocol: bool = True
    skip_file_protocol: bool = True
    skip_link_protocol: bool = True
    skip_portal_protocol: bool = True

    @property
    def propagating_classes(self) -> frozenset[str]:
        """Dependency classes whose edges carry a bump to the dependent."""
        enabled = {
            'runtime': self.propagate_runtime,
            'dev': self.propagate_dev,
            'peer': self.propagate_peer,
            'optional': self.propagate_optional,
        }
        return frozenset(k for k, v in enabled.items() if v)


@dataclass(frozen=True)
class RegistryConfig:
    """``[upgrade.registry]``: npm registry access."""

    default_registry: str = 'https://registry.npmjs.org'
    scoped_registries: dict[str, str] = field(default_factory=dict)
    auth_tokens: dict[str, str] = field(default_factory=dict)
    timeout_secs: int = 30
    retry_attempts: int = 3
    retry_delay_ms: int = 1000
    read_npmrc: bool = True


@dataclass(frozen=True)
class BackupConfig:
    """``[upgrade.backup]``: snapshot retention.

    Attributes:
        enabled: Keep a snapshot for every upgrade run.
        backup_dir: Backup root, relative to the workspace root.
        keep_after_success: Retain the snapshot after a successful run.
        max_backups: Retained snapshots beyond this count are evicted
            oldest first.
    """

    enabled: bool = True
    backup_dir: str = '.workspace-backups'
    keep_after_success: bool = False
    max_backups: int = 5


@dataclass(frozen=True)
class UpgradeConfig:
    """``[upgrade]``: registry-backed dependency upgrades."""

    auto_changeset: bool = True
    changeset_bump: str = 'patch'
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)


@dataclass(frozen=True)
class ChangelogConfig:
    """``[changelog]``: per-package changelog output."""

    enabled: bool = True
    format: str = 'keep-a-changelog'
    include_commit_links: bool = False
    filename: str = 'CHANGELOG.md'
    version_tag_format: str = '{name}@{version}'
    root_tag_format: str = 'v{version}'
    template: str = ''
    repository_url: str = ''


@dataclass(frozen=True)
class GitConfig:
    """``[git]``: release commit message templates."""

    merge_commit_template: str = 'chore(release): {package_name}@{version}\n\n{changelog_summary}'
    monorepo_merge_commit_template: str = 'chore(release): {version}\n\n{changelog_summary}'
    include_breaking_warning: bool = True
    breaking_warning_template: str = 'BREAKING CHANGE: {breaking_changes_count} breaking change(s) in this release.'


@dataclass(frozen=True)
class AuditSectionsConfig:
    """``[audit.sections]``: which audit checks run."""

    cycles: bool = True
    version_consistency: bool = True
    changesets: bool = True
    upgrades: bool = True


@dataclass(frozen=True)
class AuditConfig:
    """``[audit]``: audit reporting."""

    enabled: bool = True
    min_severity: str = 'warning'
    sections: AuditSectionsConfig = field(default_factory=AuditSectionsConfig)


@dataclass(frozen=True)
class RepoConfig:
    """Validated configuration for a wsrelease run.

    Attributes:
        config_path: The file that was loaded, or ``None`` for defaults.
    """

    changeset: ChangesetConfig = field(default_factory=ChangesetConfig)
    version: VersionConfig = field(default_factory=VersionConfig)
    dependency: DependencyConfig = field(default_factory=DependencyConfig)
    upgrade: UpgradeConfig = field(default_factory=UpgradeConfig)
    changelog: ChangelogConfig = field(default_factory=ChangelogConfig)
    git: GitConfig = field(default_factory=GitConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)
    config_path: Path | None = None

    def to_dict(self) -> dict[str, Any]:  # noqa: ANN401 - config values are heterogeneous
        """Return the settings as plain data (without ``config_path``)."""
        data = dataclasses.asdict(self)
        data.pop('config_path', None)
        return data


_CHANGESET_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    'path': str,
    'history_path': str,
    'available_environments': list,
    'default_environments': list,
}
_VERSION_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    'strategy': str,
    'default_bump': str,
    'snapshot_format': str,
    'unified_sync_all': bool,
    'prerelease_tag': str,
}
_DEPENDENCY_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    'propagation_bump': str,
    'propagate_runtime': bool,
    'propagate_dev': bool,
    'propagate_peer': bool,
    'propagate_optional': bool,
    'max_depth': int,
    'fail_on_circular': bool,
    'skip_workspace_protocol': bool,
    'skip_file_protocol': bool,
    'skip_link_protocol': bool,
    'skip_portal_protocol': bool,
}
_UPGRADE_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    'auto_changeset': bool,
    'changeset_bump': str,
    'registry': dict,
    'backup': dict,
}
_REGISTRY_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    'default_registry': str,
    'scoped_registries': dict,
    'auth_tokens': dict,
    'timeout_secs': int,
    'retry_attempts': int,
    'retry_delay_ms': int,
    'read_npmrc': bool,
}
_BACKUP_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    'enabled': bool,
    'backup_dir': str,
    'keep_after_success': bool,
    'max_backups': int,
}
_CHANGELOG_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    'enabled': bool,
    'format': str,
    'include_commit_links': bool,
    'filename': str,
    'version_tag_format': str,
    'root_tag_format': str,
    'template': str,
    'repository_url': str,
}
_GIT_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    'merge_commit_template': str,
    'monorepo_merge_commit_template': str,
    'include_breaking_warning': bool,
    'breaking_warning_template': str,
}
_AUDIT_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    'enabled': bool,
    'min_severity': str,
    'sections': dict,
}
_AUDIT_SECTIONS_TYPE_MAP: dict[str, type | tuple[type, ...]] = {
    'cycles': bool,
    'version_consistency': bool,
    'changesets': bool,
    'upgrades': bool,
}

# All recognized top-level sections.
VALID_SECTIONS: frozenset[str] = frozenset({
    'changeset',
    'version',
    'dependency',
    'upgrade',
    'changelog',
    'git',
    'audit',
})

VALID_CHANGESET_KEYS: frozenset[str] = frozenset(_CHANGESET_TYPE_MAP)
VALID_VERSION_KEYS: frozenset[str] = frozenset(_VERSION_TYPE_MAP)
VALID_DEPENDENCY_KEYS: frozenset[str] = frozenset(_DEPENDENCY_TYPE_MAP)
VALID_UPGRADE_KEYS: frozenset[str] = frozenset(_UPGRADE_TYPE_MAP)
VALID_REGISTRY_KEYS: frozenset[str] = frozenset(_REGISTRY_TYPE_MAP)
VALID_BACKUP_KEYS: frozenset[str] = frozenset(_BACKUP_TYPE_MAP)
VALID_CHANGELOG_KEYS: frozenset[str] = frozenset(_CHANGELOG_TYPE_MAP)
VALID_GIT_KEYS: frozenset[str] = frozenset(_GIT_TYPE_MAP)
VALID_AUDIT_KEYS: frozenset[str] = frozenset(_AUDIT_TYPE_MAP)
VALID_AUDIT_SECTIONS_KEYS: frozenset[str] = frozenset(_AUDIT_SECTIONS_TYPE_MAP)


def _suggest_key(unknown: str, valid: frozenset[str]) -> str | None:
    """Return the closest valid key for a typo, or None."""
    matches = difflib.get_close_matches(unknown, sorted(valid), n=1, cutoff=0.6)
    return matches[0] if matches else None


def _check_keys(raw: dict[str, Any], valid: frozenset[str], context: str) -> None:  # noqa: ANN401
    for key in raw:
        if key not in valid:
            suggestion = _suggest_key(key, valid)
            if suggestion:
                hint = f"Did you mean '{suggestion}'?"
            else:
                hint = f'Valid keys for {context}: {", ".join(sorted(valid))}.'
            raise ConfigError(
                E.CONFIG_INVALID_KEY,
                f"Unknown key '{key}' in {context}",
                hint=hint,
            )


def _validate_value_type(
    key: str,
    value: Any,  # noqa: ANN401 - dynamic config values
    type_map: dict[str, type | tuple[type, ...]],
    *,
    context: str,
) -> None:
    """Raise if a config value has the wrong type."""
    expected = type_map.get(key)
    if expected is None:
        return
    wrong_bool = isinstance(value, bool) and expected is int
    if wrong_bool or not isinstance(value, expected):
        type_name = expected.__name__ if isinstance(expected, type) else str(expected)
        raise ConfigError(
            E.CONFIG_INVALID_VALUE,
            f"'{key}' must be {type_name}, got {type(value).__name__}",
            hint=f'Check the value of {key} in {context}.',
        )


def _validate_string_list(key: str, items: list[object], context: str) -> None:
    """Raise if any item in a list is not a string."""
    for item in items:
        if not isinstance(item, str):
            raise ConfigError(
                E.CONFIG_INVALID_VALUE,
                f"'{key}' items must be strings, got {type(item).__name__}: {item!r}",
                hint=f'Each {key} entry should be a string in {context}.',
            )


def _validate_string_map(key: str, items: dict[str, object], context: str) -> None:
    for name, item in items.items():
        if not isinstance(item, str):
            raise ConfigError(
                E.CONFIG_INVALID_VALUE,
                f"'{key}.{name}' must be str, got {type(item).__name__}",
                hint=f'Check the value of {key} in {context}.',
            )


def _validate_choice(key: str, value: str, allowed: frozenset[str] | tuple[str, ...], context: str) -> None:
    if value not in allowed:
        raise ConfigError(
            E.CONFIG_INVALID_VALUE,
            f"{key} must be one of {sorted(allowed)}, got '{value}'",
            hint=f'Check the value of {key} in {context}.',
        )


def _validate_registry_url(key: str, url: str) -> None:
    if not url.startswith(('http://', 'https://')):
        raise ConfigError(
            E.CONFIG_INVALID_VALUE,
            f"{key} must start with http:// or https://, got '{url}'",
            hint='Example: default_registry = "https://registry.npmjs.org"',
        )


def _section(
    raw: dict[str, Any],  # noqa: ANN401
    name: str,
    valid: frozenset[str],
    type_map: dict[str, type | tuple[type, ...]],
) -> dict[str, Any]:  # noqa: ANN401
    """Pull one table out of ``raw`` and check its keys and value types."""
    value = raw.get(name, {})
    context = f'[{name}]'
    if not isinstance(value, dict):
        raise ConfigError(
            E.CONFIG_INVALID_VALUE,
            f'{context} must be a table, got {type(value).__name__}',
        )
    section = dict(value)
    _check_keys(section, valid, context)
    for key, item in section.items():
        _validate_value_type(key, item, type_map, context=context)
    return section


def _parse_changeset(raw: dict[str, Any]) -> ChangesetConfig:  # noqa: ANN401
    data = _section(raw, 'changeset', VALID_CHANGESET_KEYS, _CHANGESET_TYPE_MAP)
    for key in ('available_environments', 'default_environments'):
        if key in data:
            _validate_string_list(key, data[key], '[changeset]')
    cfg = ChangesetConfig(**data)

    if not cfg.available_environments:
        raise ConfigError(
            E.CONFIG_INVALID_VALUE,
            'changeset.available_environments must not be empty',
            hint='Example: available_environments = ["dev", "staging", "production"]',
        )
    if not cfg.default_environments:
        raise ConfigError(
            E.CONFIG_INVALID_VALUE,
            'changeset.default_environments must not be empty',
            hint='Pick at least one of changeset.available_environments.',
        )
    unknown = [env for env in cfg.default_environments if env not in cfg.available_environments]
    if unknown:
        raise ConfigError(
            E.CONFIG_INVALID_VALUE,
            f'changeset.default_environments contains unknown environment(s): {", ".join(unknown)}',
            hint=f'Available environments: {", ".join(cfg.available_environments)}',
        )
    if PurePosixPath(cfg.path.rstrip('/') or '.') == PurePosixPath(cfg.history_path.rstrip('/') or '.'):
        raise ConfigError(
            E.CONFIG_INVALID_VALUE,
            'changeset.history_path must differ from changeset.path',
            hint='Use a subdirectory such as ".changesets/history".',
        )
    return cfg


def _parse_version(raw: dict[str, Any]) -> VersionConfig:  # noqa: ANN401
    data = _section(raw, 'version', VALID_VERSION_KEYS, _VERSION_TYPE_MAP)
    cfg = VersionConfig(**data)
    _validate_choice('version.strategy', cfg.strategy, ALLOWED_STRATEGIES, '[version]')
    _validate_choice('version.default_bump', cfg.default_bump, ALLOWED_DEFAULT_BUMPS, '[version]')
    if '{version}' not in cfg.snapshot_format:
        raise ConfigError(
            E.CONFIG_INVALID_VALUE,
            "version.snapshot_format must contain the '{version}' placeholder",
            hint='Example: snapshot_format = "{version}-snapshot.{short_commit}"',
        )
    if not cfg.prerelease_tag:
        raise ConfigError(E.CONFIG_INVALID_VALUE, 'version.prerelease_tag must not be empty')
    return cfg


def _parse_dependency(raw: dict[str, Any]) -> DependencyConfig:  # noqa: ANN401
    data = _section(raw, 'dependency', VALID_DEPENDENCY_KEYS, _DEPENDENCY_TYPE_MAP)
    cfg = DependencyConfig(**data)
    _validate_choice('dependency.propagation_bump', cfg.propagation_bump, ALLOWED_PROPAGATION_BUMPS, '[dependency]')
    if cfg.max_depth < 1:
        raise ConfigError(
            E.CONFIG_INVALID_VALUE,
            f'dependency.max_depth must be at least 1, got {cfg.max_depth}',
        )
    return cfg


def _parse_upgrade(raw: dict[str, Any]) -> UpgradeConfig:  # noqa: ANN401
    data = _section(raw, 'upgrade', VALID_UPGRADE_KEYS, _UPGRADE_TYPE_MAP)
    registry_raw = _section(data, 'registry', VALID_REGISTRY_KEYS, _REGISTRY_TYPE_MAP)
    backup_raw = _section(data, 'backup', VALID_BACKUP_KEYS, _BACKUP_TYPE_MAP)
    data.pop('registry', None)
    data.pop('backup', None)

    for key in ('scoped_registries', 'auth_tokens'):
        if key in registry_raw:
            _validate_string_map(key, registry_raw[key], '[upgrade.registry]')
    registry = RegistryConfig(**registry_raw)
    _validate_registry_url('upgrade.registry.default_registry', registry.default_registry)
    for scope, url in registry.scoped_registries.items():
        _validate_registry_url(f'upgrade.registry.scoped_registries.{scope}', url)
    if registry.timeout_secs <= 0:
        raise ConfigError(E.CONFIG_INVALID_VALUE, 'upgrade.registry.timeout_secs must be positive')
    if registry.retry_attempts < 0 or registry.retry_delay_ms < 0:
        raise ConfigError(
            E.CONFIG_INVALID_VALUE,
            'upgrade.registry.retry_attempts and retry_delay_ms must not be negative',
        )

    backup = BackupConfig(**backup_raw)
    if backup.enabled and backup.max_backups <= 0:
        raise ConfigError(
            E.CONFIG_INVALID_VALUE,
            'upgrade.backup.max_backups must be greater than 0 when backups are enabled',
        )
    if not backup.backup_dir:
        raise ConfigError(E.CONFIG_INVALID_VALUE, 'upgrade.backup.backup_dir must not be empty')

    cfg = UpgradeConfig(**data, registry=registry, backup=backup)
    _validate_choice('upgrade.changeset_bump', cfg.changeset_bump, ALLOWED_DEFAULT_BUMPS, '[upgrade]')
    return cfg


def _parse_changelog(raw: dict[str, Any]) -> ChangelogConfig:  # noqa: ANN401
    data = _section(raw, 'changelog', VALID_CHANGELOG_KEYS, _CHANGELOG_TYPE_MAP)
    cfg = ChangelogConfig(**data)
    _validate_choice('changelog.format', cfg.format, ALLOWED_CHANGELOG_FORMATS, '[changelog]')
    for key in ('version_tag_format', 'root_tag_format', 'filename'):
        if not getattr(cfg, key):
            raise ConfigError(E.CONFIG_INVALID_VALUE, f'changelog.{key} must not be empty')
    return cfg


def _parse_git(raw: dict[str, Any]) -> GitConfig:  # noqa: ANN401
    return GitConfig(**_section(raw, 'git', VALID_GIT_KEYS, _GIT_TYPE_MAP))


def _parse_audit(raw: dict[str, Any]) -> AuditConfig:  # noqa: ANN401
    data = _section(raw, 'audit', VALID_AUDIT_KEYS, _AUDIT_TYPE_MAP)
    sections = AuditSectionsConfig(**_section(data, 'sections', VALID_AUDIT_SECTIONS_KEYS, _AUDIT_SECTIONS_TYPE_MAP))
    data.pop('sections', None)
    cfg = AuditConfig(**data, sections=sections)
    _validate_choice('audit.min_severity', cfg.min_severity, ALLOWED_SEVERITIES, '[audit]')
    return cfg


def find_config_file(root: Path) -> Path | None:
    """Return the first ``repo.config.*`` file under ``root``, or None."""
    for name in CONFIG_FILENAMES:
        candidate = root / name
        if candidate.is_file():
            return candidate
    return None


def _parse_text(text: str, path: Path) -> dict[str, Any]:  # noqa: ANN401
    """Decode a config file according to its extension."""
    suffix = path.suffix.lower()
    try:
        if suffix == '.toml':
            raw: Any = tomlkit.parse(text).unwrap()
        elif suffix in ('.yaml', '.yml'):
            raw = yaml.safe_load(text) or {}
        else:
            raw = json.loads(text) if text.strip() else {}
    except (tomlkit.exceptions.TOMLKitError, yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigError(
            E.CONFIG_PARSE_ERROR,
            f'Failed to parse {path}: {exc}',
            hint=f'Check the syntax of {path.name}.',
            paths=[path],
        ) from exc
    if not isinstance(raw, dict):
        raise ConfigError(
            E.CONFIG_PARSE_ERROR,
            f'{path} must contain a table/mapping at the top level',
            paths=[path],
        )
    return raw


def parse_config(raw: dict[str, Any], *, config_path: Path | None = None) -> RepoConfig:  # noqa: ANN401
    """Validate decoded config data.

    Raises:
        ConfigError: On unknown keys, wrong types or invalid values.
    """
    for key in raw:
        if key not in VALID_SECTIONS:
            suggestion = _suggest_key(key, VALID_SECTIONS)
            raise ConfigError(
                E.CONFIG_INVALID_KEY,
                f"Unknown section '{key}'",
                hint=(
                    f"Did you mean '{suggestion}'?"
                    if suggestion
                    else f'Valid sections: {", ".join(sorted(VALID_SECTIONS))}.'
                ),
                paths=[config_path] if config_path else [],
            )
    try:
        return RepoConfig(
            changeset=_parse_changeset(raw),
            version=_parse_version(raw),
            dependency=_parse_dependency(raw),
            upgrade=_parse_upgrade(raw),
            changelog=_parse_changelog(raw),
            git=_parse_git(raw),
            audit=_parse_audit(raw),
            config_path=config_path,
        )
    except ConfigError as exc:
        if config_path is None or exc.paths:
            raise
        raise ConfigError(exc.code, exc.info.message, exc.hint, paths=[config_path]) from exc


def load_config(root: Path) -> RepoConfig:
    """Load and validate ``repo.config.*`` from ``root``.

    Args:
        root: Workspace root.

    Returns:
        A validated :class:`RepoConfig`; the defaults if no file exists.

    Raises:
        ConfigError: If the file cannot be read, parsed or validated.
    """
    config_path = find_config_file(root)
    if config_path is None:
        logger.debug('no_repo_config', root=str(root))
        return RepoConfig()

    try:
        text = config_path.read_text(encoding='utf-8')
    except OSError as exc:
        raise ConfigError(
            E.CONFIG_NOT_FOUND,
            f'Failed to read {config_path}: {exc}',
            paths=[config_path],
        ) from exc

    raw = _parse_text(text, config_path)
    cfg = parse_config(raw, config_path=config_path)
    logger.debug('config_loaded', path=str(config_path))
    return cfg


def default_config_document(cfg: RepoConfig | None = None) -> tomlkit.TOMLDocument:
    """Build a commented ``repo.config.toml`` document from ``cfg``."""
    cfg = cfg or RepoConfig()
    doc = tomlkit.document()
    doc.add(tomlkit.comment('wsrelease configuration. See `wsrelease config show` for every option.'))
    doc.add(tomlkit.nl())

    def _table(values: dict[str, Any], skip: tuple[str, ...] = ()) -> tomlkit.items.Table:  # noqa: ANN401
        table = tomlkit.table()
        for key, value in values.items():
            if key in skip:
                continue
            if isinstance(value, dict):
                inline = tomlkit.inline_table()
                inline.update(value)
                table.add(key, inline)
            else:
                table.add(key, tomlkit.item(value))
        return table

    data = cfg.to_dict()
    doc.add('changeset', _table(data['changeset']))
    doc.add('version', _table(data['version']))
    doc.add('dependency', _table(data['dependency']))

    upgrade = _table(data['upgrade'], skip=('registry', 'backup'))
    upgrade.add('registry', _table(data['upgrade']['registry']))
    upgrade.add('backup', _table(data['upgrade']['backup']))
    doc.add('upgrade', upgrade)

    doc.add('changelog', _table(data['changelog']))
    doc.add('git', _table(data['git']))

    audit = _table(data['audit'], skip=('sections',))
    audit.add('sections', _table(data['audit']['sections']))
    doc.add('audit', audit)
    return doc


__all__ = [
    'ALLOWED_SEVERITIES',
    'CONFIG_FILENAMES',
    'AuditConfig',
    'AuditSectionsConfig',
    'BackupConfig',
    'ChangelogConfig',
    'ChangesetConfig',
    'DependencyConfig',
    'GitConfig',
    'RegistryConfig',
    'RepoConfig',
    'UpgradeConfig',
    'VersionConfig',
    'default_config_document',
    'find_config_file',
    'load_config',
    'parse_config',
]
