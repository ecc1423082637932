# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Trigger DDL - SQL text for notify functions and their triggers.

Everything here is pure string generation. The statements are executed by
pgtriggers.executor inside a single transaction, so a batch either installs
every function and trigger or none of them.

CREATE OR REPLACE TRIGGER requires PostgreSQL 14 or newer.
"""

import hashlib
from typing import List

from pgtriggers.codec import DATA_KEY, OPERATION_KEY, TIMESTAMP_KEY
from pgtriggers.config import MAX_IDENTIFIER_LENGTH, Operation, TriggerDefinition


def quote_ident(name: str) -> str:
    """Quote a SQL identifier."""
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    """Quote a SQL string literal."""
    return "'" + value.replace("'", "''") + "'"


def _fit_identifier(name: str) -> str:
    """Shorten a generated name to the identifier limit with a stable hash suffix."""
    if len(name.encode("utf-8")) <= MAX_IDENTIFIER_LENGTH:
        return name
    digest = hashlib.sha1(name.encode("utf-8")).hexdigest()[:8]
    return f"{name[:MAX_IDENTIFIER_LENGTH - 9]}_{digest}"


def _definition_digest(definition: TriggerDefinition) -> str:
    key = "\x00".join((definition.schema, definition.table, definition.channel))
    return hashlib.sha1(key.encode("utf-8")).hexdigest()[:8]


def notify_function_name(definition: TriggerDefinition) -> str:
    """
    Name of the notify function shared by all events of a definition.

    Functions live schema-wide, and table and channel names may both contain
    underscores, so the name carries a digest of (schema, table, channel).
    Trigger names need no digest: they are scoped to their table.
    """
    return _fit_identifier(
        f"notify_{definition.table}_{definition.channel}_{_definition_digest(definition)}"
    )


def trigger_name(definition: TriggerDefinition, event: Operation) -> str:
    """Name of the trigger installed for one event of a definition."""
    return _fit_identifier(
        f"{definition.table}_{definition.channel}_{event.value.lower()}"
    )


def qualified_table(definition: TriggerDefinition) -> str:
    return f"{quote_ident(definition.schema)}.{quote_ident(definition.table)}"


def qualified_function(definition: TriggerDefinition) -> str:
    return f"{quote_ident(definition.schema)}.{quote_ident(notify_function_name(definition))}"


def _row_snapshot(definition: TriggerDefinition, record: str) -> str:
    """SQL expression producing the JSON snapshot of OLD or NEW."""
    if not definition.columns:
        return f"row_to_json({record})"
    pairs = ", ".join(
        f"{quote_literal(column)}, {record}.{quote_ident(column)}"
        for column in definition.columns
    )
    return f"json_build_object({pairs})"


def _notify_call(definition: TriggerDefinition, record: str) -> str:
    return f"""PERFORM pg_notify(
      {quote_literal(definition.channel)},
      json_build_object(
        {quote_literal(OPERATION_KEY)}, TG_OP,
        {quote_literal(TIMESTAMP_KEY)}, NOW(),
        {quote_literal(DATA_KEY)}, {_row_snapshot(definition, record)}
      )::text
    );"""


def build_function_sql(definition: TriggerDefinition) -> str:
    """
    Build the CREATE OR REPLACE FUNCTION statement for a definition.

    DELETE snapshots OLD (pre-image); INSERT and UPDATE snapshot NEW
    (post-image). The function is shared by every trigger of the definition.
    """
    return f"""
CREATE OR REPLACE FUNCTION {qualified_function(definition)}()
RETURNS TRIGGER AS $$
BEGIN
  IF TG_OP = 'DELETE' THEN
    {_notify_call(definition, "OLD")}
    RETURN OLD;
  END IF;
  {_notify_call(definition, "NEW")}
  RETURN NEW;
END;
$$ LANGUAGE plpgsql;
""".strip()


def build_event_trigger_sql(definition: TriggerDefinition, event: Operation) -> str:
    """Build the CREATE OR REPLACE TRIGGER statement for one event."""
    lines = [
        f"CREATE OR REPLACE TRIGGER {quote_ident(trigger_name(definition, event))}",
        f"AFTER {event.value} ON {qualified_table(definition)}",
        "FOR EACH ROW",
    ]
    if definition.condition:
        lines.append(f"WHEN ({definition.condition})")
    lines.append(f"EXECUTE FUNCTION {qualified_function(definition)}();")
    return "\n".join(lines)


def build_trigger_sql(definition: TriggerDefinition) -> List[str]:
    """
    Build every statement needed to install a definition.

    Args:
        definition: Trigger definition to install

    Returns:
        The function statement, one trigger statement per event, then a
        DROP TRIGGER IF EXISTS for each event the definition does not cover
    """
    statements = [build_function_sql(definition)]
    for event in definition.ordered_events:
        statements.append(build_event_trigger_sql(definition, event))
    # Re-installing a narrower definition must not leave stale triggers behind
    for event in Operation:
        if event not in definition.events:
            statements.append(_drop_trigger_sql(definition, event))
    return statements


def _drop_trigger_sql(definition: TriggerDefinition, event: Operation) -> str:
    return (
        f"DROP TRIGGER IF EXISTS {quote_ident(trigger_name(definition, event))} "
        f"ON {qualified_table(definition)};"
    )


def build_drop_sql(definition: TriggerDefinition) -> List[str]:
    """
    Build the statements that remove a definition's triggers and function.

    Triggers for every operation are dropped, not only the definition's
    current events.
    """
    statements = [_drop_trigger_sql(definition, event) for event in Operation]
    statements.append(f"DROP FUNCTION IF EXISTS {qualified_function(definition)}();")
    return statements
