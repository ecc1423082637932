# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgtriggers Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation so that a trigger
definition or manager config cannot change between the moment it is
validated and the moment it is turned into DDL or connections.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, List, Tuple
from urllib.parse import urlparse
import re

# PostgreSQL truncates identifiers longer than NAMEDATALEN - 1 bytes
MAX_IDENTIFIER_LENGTH = 63

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_OLD_REF_RE = re.compile(r"\bOLD\s*\.", re.IGNORECASE)
_NEW_REF_RE = re.compile(r"\bNEW\s*\.", re.IGNORECASE)


class Operation(str, Enum):
    """Row mutation that fires a trigger (mirrors TG_OP)."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


def _validate_identifier(value: str) -> bool:
    """
    Validate a SQL identifier (table, schema, column or channel name).

    Rules:
    - 1-63 characters
    - Letters, digits and underscores
    - Must not start with a digit
    """
    if not isinstance(value, str) or not value:
        return False
    if len(value.encode("utf-8")) > MAX_IDENTIFIER_LENGTH:
        return False
    return bool(_IDENTIFIER_RE.match(value))


def _coerce_operations(events: Iterable[Operation | str]) -> FrozenSet[Operation]:
    """Turn strings like 'insert' into Operation members."""
    if isinstance(events, (str, Operation)):
        events = [events]
    result = set()
    for event in events:
        if isinstance(event, Operation):
            result.add(event)
        else:
            result.add(Operation(str(event).upper()))
    return frozenset(result)


def mask_password(url: str) -> str:
    """Mask password in connection URL for logging."""
    parsed = urlparse(url)
    if parsed.password:
        return url.replace(f":{parsed.password}@", ":***@")
    return url


@dataclass(frozen=True)
class TriggerDefinition:
    """
    Immutable description of a notify trigger.

    One definition produces one notify function and one trigger per event.
    The installed objects are named deterministically from schema, table,
    channel and event, so installing the same definition twice replaces
    rather than duplicates them.
    """

    # Table the trigger is attached to
    table: str

    # Events that fire the trigger: INSERT, UPDATE and/or DELETE
    events: FrozenSet[Operation]

    # NOTIFY channel the payload is sent on
    channel: str

    # Optional boolean SQL expression over OLD/NEW used as the WHEN clause
    condition: str | None = None

    # Schema that holds the table and the notify function
    schema: str = "public"

    # Restrict the row snapshot to these columns (default: whole row)
    columns: Tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        """Normalize and validate the definition after creation."""
        from pgtriggers.errors import explain_invalid_identifier

        errors: List[str] = []

        try:
            object.__setattr__(self, "events", _coerce_operations(self.events))
        except ValueError as e:
            errors.append(f"Invalid event: {e}")
            object.__setattr__(self, "events", frozenset())
        else:
            if not self.events:
                errors.append("events must contain at least one of INSERT, UPDATE, DELETE")

        for kind, value in (
            ("table", self.table),
            ("channel", self.channel),
            ("schema", self.schema),
        ):
            if not _validate_identifier(value):
                errors.append(explain_invalid_identifier(kind, value))

        if self.columns is not None:
            columns = tuple(self.columns)
            object.__setattr__(self, "columns", columns)
            if not columns:
                errors.append("columns must not be empty when given")
            for column in columns:
                if not _validate_identifier(column):
                    errors.append(explain_invalid_identifier("column", column))

        condition = self.condition.strip() if self.condition else None
        object.__setattr__(self, "condition", condition or None)
        if self.condition:
            # WHEN clauses can only see the row images that exist for the event
            if Operation.INSERT in self.events and _OLD_REF_RE.search(self.condition):
                errors.append("condition references OLD but the trigger fires on INSERT")
            if Operation.DELETE in self.events and _NEW_REF_RE.search(self.condition):
                errors.append("condition references NEW but the trigger fires on DELETE")

        if errors:
            from pgtriggers.exceptions import TriggerDefinitionError

            raise TriggerDefinitionError(
                "Trigger definition validation failed",
                details={"errors": errors},
            )

    @property
    def ordered_events(self) -> List[Operation]:
        """Events in INSERT, UPDATE, DELETE order."""
        return [op for op in Operation if op in self.events]


@dataclass(frozen=True)
class ManagerConfig:
    """
    Immutable configuration for a TriggerManager.

    Nothing here opens a connection; the manager connects lazily on its
    first transaction or subscription.
    """

    # PostgreSQL connection URL (postgres:// or postgresql://)
    connection_url: str

    # Pool bounds for transactional connections
    min_pool_size: int = 1
    max_pool_size: int = 10

    # Seconds to wait when establishing a connection
    connect_timeout: float = 10.0

    # Default per-statement timeout in seconds (None: no timeout)
    command_timeout: float | None = None

    # Upper bound for a single handler invocation (None: wait forever)
    handler_timeout: float | None = 30.0

    # Upper bound for each teardown step during dispose()
    dispose_timeout: float = 5.0

    # Extra keyword arguments passed through to asyncpg.connect/create_pool
    connect_kwargs: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not self.connection_url:
            errors.append("connection_url is required")
        elif urlparse(self.connection_url).scheme not in ("postgres", "postgresql"):
            from pgtriggers.errors import explain_unsupported_url_scheme

            errors.append(explain_unsupported_url_scheme(self.connection_url))

        if self.min_pool_size < 0:
            errors.append(f"min_pool_size must be >= 0, got {self.min_pool_size}")

        if self.max_pool_size < 1:
            errors.append(f"max_pool_size must be >= 1, got {self.max_pool_size}")
        elif self.max_pool_size < self.min_pool_size:
            errors.append(
                f"max_pool_size ({self.max_pool_size}) must be >= "
                f"min_pool_size ({self.min_pool_size})"
            )

        for name in ("connect_timeout", "dispose_timeout"):
            value = getattr(self, name)
            if value <= 0:
                errors.append(f"{name} must be > 0, got {value}")

        for name in ("command_timeout", "handler_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                errors.append(f"{name} must be > 0 or None, got {value}")

        # Raise all errors at once
        if errors:
            from pgtriggers.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={
                    "errors": errors,
                    "connection_url": mask_password(self.connection_url or ""),
                },
            )

    def with_updates(self, **kwargs) -> "ManagerConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return ManagerConfig(**current)
