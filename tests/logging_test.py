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


"""Tests for wsrelease.logging module."""

from __future__ import annotations

import logging

import structlog
from wsrelease.logging import bind_run, configure_logging, get_logger


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_default_level_is_info(self) -> None:
        """Default logging level should be INFO."""
        configure_logging()
        assert logging.root.level == logging.INFO

    def test_verbose_sets_debug(self) -> None:
        """Verbose flag should set DEBUG level."""
        configure_logging(verbose=True)
        assert logging.root.level == logging.DEBUG

    def test_quiet_wins_over_verbose(self) -> None:
        """Quiet takes precedence when both are given."""
        configure_logging(verbose=True, quiet=True)
        assert logging.root.level == logging.WARNING

    def test_json_log_does_not_crash(self) -> None:
        """JSON log mode should configure without errors."""
        configure_logging(json_log=True)
        get_logger().info('test_json', key='value')


class TestBindRun:
    """Tests for bind_run()."""

    def test_binds_and_unbinds(self) -> None:
        """run_id is visible inside the block only."""
        configure_logging(quiet=True)
        with bind_run('20261019T120000Z-abc123'):
            assert structlog.contextvars.get_contextvars()['run_id'] == '20261019T120000Z-abc123'
            get_logger('test').warning('inside_run')
        assert 'run_id' not in structlog.contextvars.get_contextvars()

    def test_unbinds_on_error(self) -> None:
        """run_id is removed even when the block raises."""
        try:
            with bind_run('r1'):
                raise ValueError('boom')
        except ValueError:
            pass
        assert 'run_id' not in structlog.contextvars.get_contextvars()
