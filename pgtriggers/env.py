# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

These helpers are small, convenient wrappers around ManagerConfig that make
it easy to build a configuration from environment variables.
"""

from __future__ import annotations

import os

from pgtriggers.config import ManagerConfig
from pgtriggers.errors import (
    explain_invalid_int_env,
    explain_invalid_timeout_env,
    explain_missing_database_url_env,
)
from pgtriggers.exceptions import ConfigurationError


def get_database_url() -> str:
    """
    Return TEST_DATABASE_URL, falling back to DATABASE_URL.

    Raises:
        ConfigurationError: If neither variable is set
    """
    url = os.getenv("TEST_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        raise ConfigurationError(explain_missing_database_url_env())
    return url


def _parse_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_int_env(name, value)) from exc
    if number < 0:
        raise ConfigurationError(explain_invalid_int_env(name, value))
    return number


def _parse_timeout(name: str, default: float | None) -> float | None:
    value = os.getenv(name)
    if not value:
        return default
    if value.strip().lower() == "none":
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_timeout_env(name, value)) from exc
    if seconds <= 0:
        raise ConfigurationError(explain_invalid_timeout_env(name, value))
    return seconds


def create_config_from_env() -> ManagerConfig:
    """
    Create a ManagerConfig from environment variables.

    Required (one of):
        - TEST_DATABASE_URL: Preferred, so test runs never hit the app database
        - DATABASE_URL: PostgreSQL connection URL

    Optional environment variables:
        - PGTRIGGERS_MIN_POOL_SIZE: Minimum transaction pool size (default: 1)
        - PGTRIGGERS_MAX_POOL_SIZE: Maximum transaction pool size (default: 10)
        - PGTRIGGERS_HANDLER_TIMEOUT: Seconds per handler call, or 'none' (default: 30)
        - PGTRIGGERS_DISPOSE_TIMEOUT: Seconds per teardown step (default: 5)
    """

    dispose_timeout = _parse_timeout("PGTRIGGERS_DISPOSE_TIMEOUT", 5.0)
    if dispose_timeout is None:
        raise ConfigurationError(
            explain_invalid_timeout_env(
                "PGTRIGGERS_DISPOSE_TIMEOUT", os.getenv("PGTRIGGERS_DISPOSE_TIMEOUT")
            )
        )

    return ManagerConfig(
        connection_url=get_database_url(),
        min_pool_size=_parse_int("PGTRIGGERS_MIN_POOL_SIZE", 1),
        max_pool_size=_parse_int("PGTRIGGERS_MAX_POOL_SIZE", 10),
        handler_timeout=_parse_timeout("PGTRIGGERS_HANDLER_TIMEOUT", 30.0),
        dispose_timeout=dispose_timeout,
    )
