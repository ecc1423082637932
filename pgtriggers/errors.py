# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for pgtriggers.

These helpers centralize wording for common configuration errors so that
all modules present consistent, actionable messages.
"""


def explain_missing_database_url_env() -> str:
    """
    Explain that no database URL environment variable is set.
    """

    return (
        "Database URL is not configured. "
        "Set TEST_DATABASE_URL or DATABASE_URL, or pass connection_url=... to ManagerConfig()."
    )


def explain_unsupported_url_scheme(url: str) -> str:
    """
    Explain that the connection URL is not a PostgreSQL URL.
    """

    scheme = url.split("://", 1)[0] if "://" in url else url
    return (
        f"Unsupported connection URL scheme: {scheme!r}. "
        "Expected 'postgres://' or 'postgresql://'."
    )


def explain_invalid_int_env(name: str, value: str | None) -> str:
    """
    Explain that an integer environment variable is invalid.
    """

    return f"Invalid {name} value: {value!r}. It must be a positive integer."


def explain_invalid_timeout_env(name: str, value: str | None) -> str:
    """
    Explain that a timeout environment variable is invalid.
    """

    return (
        f"Invalid {name} value: {value!r}. "
        "It must be a positive number of seconds, or 'none' to disable the timeout."
    )


def explain_invalid_identifier(kind: str, value: str) -> str:
    """
    Explain that a SQL identifier was rejected.
    """

    return (
        f"Invalid {kind} name: {value!r}. "
        "Use letters, digits and underscores only, starting with a letter or underscore."
    )
