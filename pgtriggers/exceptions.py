# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgtriggers Exceptions - Custom exceptions for the pgtriggers package.
"""


class TriggerError(Exception):
    """Base exception for all pgtriggers errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(TriggerError):
    """Raised when configuration is invalid."""

    pass


class TriggerDefinitionError(TriggerError):
    """Raised when a trigger definition cannot be turned into DDL."""

    pass


class MalformedPayload(TriggerError):
    """Raised when a notification payload cannot be decoded."""

    pass


class TransactionFailure(TriggerError):
    """Raised when a statement inside transaction() fails and the batch is rolled back."""

    pass


class SubscriptionFailure(TriggerError):
    """Raised when the shared LISTEN connection cannot be used or has dropped."""

    pass


class AlreadyDisposed(TriggerError):
    """Raised when an operation is attempted on a disposed manager."""

    pass
