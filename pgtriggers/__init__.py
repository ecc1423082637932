# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgtriggers - PostgreSQL row-change notifications as typed events.

Installs triggers that pg_notify a JSON envelope on INSERT, UPDATE and
DELETE, and delivers those notifications to subscribed handlers over a
single LISTEN connection.
"""

__version__ = "0.1.0"

# Trigger definitions (user-facing API)
from pgtriggers.builder import define_trigger
from pgtriggers.config import ManagerConfig, Operation, TriggerDefinition

# Payloads
from pgtriggers.codec import NotificationPayload, decode, encode

# Manager
from pgtriggers.manager import ManagerState, TriggerManager, create_manager
from pgtriggers.registry import ListenerHandle

# Environment-based configuration (additional helper)
from pgtriggers.env import create_config_from_env

from pgtriggers.exceptions import (
    AlreadyDisposed,
    ConfigurationError,
    MalformedPayload,
    SubscriptionFailure,
    TransactionFailure,
    TriggerDefinitionError,
    TriggerError,
)

__all__ = [
    # Version
    "__version__",
    # Definitions
    "define_trigger",
    "TriggerDefinition",
    "Operation",
    # Configuration
    "ManagerConfig",
    "create_config_from_env",
    # Payloads
    "NotificationPayload",
    "encode",
    "decode",
    # Manager
    "create_manager",
    "TriggerManager",
    "ManagerState",
    "ListenerHandle",
    # Exceptions
    "TriggerError",
    "ConfigurationError",
    "TriggerDefinitionError",
    "MalformedPayload",
    "TransactionFailure",
    "SubscriptionFailure",
    "AlreadyDisposed",
]
