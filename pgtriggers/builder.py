# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgtriggers Builder - Functional builder pattern for trigger definitions.

This module provides pure functions for building TriggerDefinition objects.
Each function takes a definition dict and returns a new dict with the
modification applied (immutable updates).
"""

from typing import Any, Callable, Dict, Iterable, List

from pgtriggers.config import Operation, TriggerDefinition
from pgtriggers.exceptions import TriggerDefinitionError


# Type alias for builder functions
DefinitionDict = Dict[str, Any]
BuilderFunc = Callable[[DefinitionDict], DefinitionDict]


def create_empty_definition() -> DefinitionDict:
    """
    Create an initial empty definition dictionary.

    Returns:
        Dict with default values for all definition fields
    """
    return {
        "table": "",
        "schema": "public",
        "events": [],
        "channel": "",
        "condition": None,
        "columns": None,
    }


def on_table(definition: DefinitionDict, table: str, schema: str = "public") -> DefinitionDict:
    """
    Set the table the trigger is attached to.

    Args:
        definition: Current definition dictionary
        table: Table name
        schema: Schema holding the table (default: public)

    Returns:
        New definition dictionary with table set
    """
    return {**definition, "table": table, "schema": schema}


def on_events(definition: DefinitionDict, *events: Operation | str) -> DefinitionDict:
    """
    Add events that fire the trigger.

    Args:
        definition: Current definition dictionary
        *events: 'insert', 'update', 'delete' or Operation members

    Returns:
        New definition dictionary with events added
    """
    new_events = list(definition["events"])
    for event in events:
        try:
            op = event if isinstance(event, Operation) else Operation(event.upper())
        except ValueError as e:
            raise TriggerDefinitionError(f"Unknown event: {event!r}") from e
        if op not in new_events:
            new_events.append(op)
    return {**definition, "events": new_events}


def on_insert(definition: DefinitionDict) -> DefinitionDict:
    return on_events(definition, Operation.INSERT)


def on_update(definition: DefinitionDict) -> DefinitionDict:
    return on_events(definition, Operation.UPDATE)


def on_delete(definition: DefinitionDict) -> DefinitionDict:
    return on_events(definition, Operation.DELETE)


def when(definition: DefinitionDict, condition: str) -> DefinitionDict:
    """
    Guard the trigger with a WHEN condition.

    The condition is a boolean SQL expression over OLD and NEW, for example
    "NEW.status = 'done' AND OLD.status IS DISTINCT FROM NEW.status".
    INSERT triggers cannot reference OLD and DELETE triggers cannot
    reference NEW.

    Args:
        definition: Current definition dictionary
        condition: SQL boolean expression

    Returns:
        New definition dictionary with condition set
    """
    return {**definition, "condition": condition}


def notify_channel(definition: DefinitionDict, channel: str) -> DefinitionDict:
    """
    Set the NOTIFY channel payloads are sent on.

    Args:
        definition: Current definition dictionary
        channel: Channel name

    Returns:
        New definition dictionary with channel set
    """
    return {**definition, "channel": channel}


def only_columns(definition: DefinitionDict, columns: List[str]) -> DefinitionDict:
    """
    Restrict the row snapshot to the given columns.

    Useful for wide tables whose full row would exceed the 8000 byte
    NOTIFY payload limit.

    Args:
        definition: Current definition dictionary
        columns: Column names to include in the payload data

    Returns:
        New definition dictionary with columns set
    """
    return {**definition, "columns": tuple(columns)}


def build_definition(definition: DefinitionDict) -> TriggerDefinition:
    """
    Build an immutable TriggerDefinition from a dictionary.

    Raises:
        TriggerDefinitionError: If the definition is invalid
    """
    return TriggerDefinition(
        table=definition["table"],
        events=frozenset(definition["events"]),
        channel=definition["channel"],
        condition=definition["condition"],
        schema=definition["schema"],
        columns=definition["columns"],
    )


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose builder functions left to right.

    Example:
        make = pipe(
            lambda d: on_table(d, "items"),
            on_insert,
            lambda d: notify_channel(d, "insert_test"),
        )
        definition = build_definition(make(create_empty_definition()))
    """

    def composed(definition: DefinitionDict) -> DefinitionDict:
        result = definition
        for func in funcs:
            result = func(result)
        return result

    return composed


def define_trigger(
    table: str,
    *,
    events: Iterable[Operation | str],
    channel: str,
    condition: str | None = None,
    schema: str = "public",
    columns: List[str] | None = None,
) -> TriggerDefinition:
    """
    Create a trigger definition from simple parameters.

    This is the recommended user-facing API for describing triggers.

    Example:
        definition = define_trigger(
            "items",
            events=["insert"],
            channel="insert_test",
        )

        # Only notify when status flips to 'done'
        definition = define_trigger(
            "items",
            events=["update"],
            channel="condition_test",
            condition="NEW.status = 'done' AND OLD.status IS DISTINCT FROM NEW.status",
        )
    """
    definition = on_table(create_empty_definition(), table, schema)
    definition = on_events(definition, *([events] if isinstance(events, str) else events))
    definition = notify_channel(definition, channel)
    if condition:
        definition = when(definition, condition)
    if columns:
        definition = only_columns(definition, columns)
    return build_definition(definition)
