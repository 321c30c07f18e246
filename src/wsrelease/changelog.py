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

"""Per-package changelog sections built from changesets.

Each released package gets one new section in its ``CHANGELOG.md``,
grouped by the severity of the bump each changeset asked for. Summaries
are copied verbatim.

Key Concepts (ELI5)::

    ┌─────────────────────────┬─────────────────────────────────────────────┐
    │ Concept                 │ Plain-English                               │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ ChangelogEntry          │ One changeset summary (or breaking note)    │
    │                         │ for one package.                            │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ ChangelogSection        │ A group of entries under one heading, e.g.  │
    │                         │ "Features" or "Bug Fixes".                  │
    ├─────────────────────────┼─────────────────────────────────────────────┤
    │ Changelog               │ All sections for one package version.       │
    └─────────────────────────┴─────────────────────────────────────────────┘

Section mapping::

    major bump or breaking_notes   → Breaking Changes
    minor bump                     → Features
    patch bump                     → Bug Fixes
    prerelease / exact / none      → Other Changes
    bumped only via a dependency   → Dependencies

Heading formats::

    keep-a-changelog   ## [1.1.0] - 2026-10-19
    conventional       ## 1.1.0 (2026-10-19)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from wsrelease.config import ChangelogConfig
from wsrelease.logging import get_logger
from wsrelease.versioning import Bump, BumpType

logger = get_logger(__name__)

KEEP_A_CHANGELOG = 'keep-a-changelog'
CONVENTIONAL = 'conventional'

BREAKING = 'breaking'
FEATURES = 'features'
FIXES = 'fixes'
OTHER = 'other'
DEPENDENCIES = 'dependencies'

# Section key → heading (display order matters).
_SECTION_ORDER: list[tuple[str, str]] = [
    (BREAKING, 'Breaking Changes'),
    (FEATURES, 'Features'),
    (FIXES, 'Bug Fixes'),
    (OTHER, 'Other Changes'),
    (DEPENDENCIES, 'Dependencies'),
]

_CHANGELOG_HEADING = '# Changelog'


@dataclass(frozen=True)
class ChangelogEntry:
    """A single changelog line.

    Attributes:
        section: Section key (``breaking``, ``features``, ...).
        description: Summary text, verbatim.
        changeset: Id of the changeset the entry came from.
        author: Changeset author, if recorded.
    """

    section: str
    description: str
    changeset: str = ''
    author: str = ''


@dataclass
class ChangelogSection:
    """A group of changelog entries under one heading."""

    heading: str
    entries: list[ChangelogEntry] = field(default_factory=list)


@dataclass
class Changelog:
    """Changelog content for one package version.

    Attributes:
        package: Package name.
        version: New version.
        previous_version: Version before the release.
        sections: Non-empty sections in display order.
        date: Release date (``YYYY-MM-DD``).
        compare_url: Optional link for the version heading.
    """

    package: str
    version: str
    previous_version: str = ''
    sections: list[ChangelogSection] = field(default_factory=list)
    date: str = ''
    compare_url: str = ''


def section_for(bump: Bump, *, breaking: bool = False) -> str:
    """Return the section key for a changeset's bump of one package."""
    if breaking or bump.type == BumpType.MAJOR:
        return BREAKING
    if bump.type == BumpType.MINOR:
        return FEATURES
    if bump.type == BumpType.PATCH:
        return FIXES
    return OTHER


def group_entries(entries: list[ChangelogEntry]) -> list[ChangelogSection]:
    """Group entries into sections in canonical order, dropping empty ones."""
    buckets: dict[str, list[ChangelogEntry]] = {}
    for entry in entries:
        buckets.setdefault(entry.section, []).append(entry)
    return [
        ChangelogSection(heading=heading, entries=buckets[key]) for key, heading in _SECTION_ORDER if buckets.get(key)
    ]


def compare_link(config: ChangelogConfig, tag_format: str, name: str, old: str, new: str) -> str:
    """Return a ``compare/<old>...<new>`` URL, or ``''`` when links are off."""
    if not config.include_commit_links or not config.repository_url or not old:
        return ''
    base = config.repository_url.rstrip('/')
    old_tag = tag_format.format(name=name, version=old)
    new_tag = tag_format.format(name=name, version=new)
    return f'{base}/compare/{old_tag}...{new_tag}'


def _render_entry(entry: ChangelogEntry) -> str:
    """Render one entry as a bullet; continuation lines are indented."""
    first, *rest = entry.description.strip().splitlines() or ['']
    lines = [f'- {first}']
    lines.extend(f'  {line}' if line.strip() else '' for line in rest)
    return '\n'.join(lines)


def version_heading(changelog: Changelog, fmt: str = KEEP_A_CHANGELOG) -> str:
    """Return the ``##`` heading line for ``changelog``."""
    if fmt == CONVENTIONAL:
        version = f'[{changelog.version}]({changelog.compare_url})' if changelog.compare_url else changelog.version
        return f'## {version} ({changelog.date})' if changelog.date else f'## {version}'
    heading = f'## [{changelog.version}]'
    if changelog.compare_url:
        heading += f'({changelog.compare_url})'
    return f'{heading} - {changelog.date}' if changelog.date else heading


def render_changelog(changelog: Changelog, fmt: str = KEEP_A_CHANGELOG) -> str:
    """Render a :class:`Changelog` as a markdown section.

    Args:
        changelog: The changelog to render.
        fmt: ``keep-a-changelog`` or ``conventional``.

    Returns:
        Markdown ending with a single newline.
    """
    lines: list[str] = [version_heading(changelog, fmt), '']
    for section in changelog.sections:
        lines.append(f'### {section.heading}')
        lines.append('')
        for entry in section.entries:
            lines.append(_render_entry(entry))
        lines.append('')
    return '\n'.join(lines).rstrip() + '\n'


def render_changelog_template(changelog: Changelog, template_path: Path) -> str:
    """Render a :class:`Changelog` with a Jinja2 template.

    The template receives ``package``, ``version``, ``previous_version``,
    ``date``, ``compare_url``, ``sections`` and a flat ``entries`` list.

    Raises:
        FileNotFoundError: If the template file does not exist.
    """
    if not template_path.exists():
        raise FileNotFoundError(f'Changelog template not found: {template_path}')

    env = Environment(
        loader=FileSystemLoader(str(template_path.parent)),
        autoescape=True,
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    tmpl = env.get_template(template_path.name)
    rendered = tmpl.render(
        package=changelog.package,
        version=changelog.version,
        previous_version=changelog.previous_version,
        date=changelog.date,
        compare_url=changelog.compare_url,
        sections=changelog.sections,
        entries=[e for s in changelog.sections for e in s.entries],
    )
    return rendered.rstrip() + '\n'


def _heading_key(rendered: str) -> str:
    """Return ``## [1.1.0]`` / ``## 1.1.0`` from a rendered section."""
    first_line = rendered.split('\n', 1)[0].strip()
    match = re.match(r'^##\s+(\[[^\]]+\]|\S+)', first_line)
    return match.group(0) if match else first_line


def has_version(existing: str, rendered: str) -> bool:
    """Whether ``existing`` already holds the version heading of ``rendered``."""
    key = _heading_key(rendered)
    for line in existing.splitlines():
        stripped = line.strip()
        if stripped == key or stripped.startswith(key + ' ') or stripped.startswith(key + '('):
            return True
    return False


def merge_changelog(existing: str | None, rendered: str) -> str | None:
    """Insert ``rendered`` as the newest section of a changelog file.

    The section goes directly below the ``# Changelog`` heading (added
    when missing).

    Returns:
        The new file content, or ``None`` if the version heading is
        already present.
    """
    if existing is None or not existing.strip():
        return f'{_CHANGELOG_HEADING}\n\n{rendered}'
    if has_version(existing, rendered):
        return None
    if existing.lstrip().startswith(_CHANGELOG_HEADING):
        before, after = existing.split(_CHANGELOG_HEADING, 1)
        # Keep any intro paragraph that sits between the title and the first release.
        intro, sep, releases = after.partition('\n## ')
        intro = intro.strip('\n')
        parts = [before + _CHANGELOG_HEADING, '']
        if intro:
            parts.extend([intro, ''])
        parts.append(rendered.rstrip('\n'))
        if sep:
            parts.extend(['', '## ' + releases.rstrip('\n')])
        return '\n'.join(parts) + '\n'
    return f'{_CHANGELOG_HEADING}\n\n{rendered}\n{existing.lstrip()}'


def changelog_file(package_dir: Path, config: ChangelogConfig) -> Path:
    """Path of the changelog for a package directory."""
    return package_dir / config.filename


__all__ = [
    'BREAKING',
    'CONVENTIONAL',
    'DEPENDENCIES',
    'FEATURES',
    'FIXES',
    'KEEP_A_CHANGELOG',
    'OTHER',
    'Changelog',
    'ChangelogEntry',
    'ChangelogSection',
    'changelog_file',
    'compare_link',
    'group_entries',
    'has_version',
    'merge_changelog',
    'render_changelog',
    'render_changelog_template',
    'section_for',
    'version_heading',
]
