# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Payload Codec - JSON envelope carried by pg_notify.

Every notification sent by a generated trigger function is a JSON object:

    {"operation": "INSERT", "timestamp": "2026-01-01T12:00:00.123+00:00",
     "data": {"id": 1, "name": "item"}}

``data`` holds the post-image for INSERT/UPDATE and the pre-image for DELETE.
PostgreSQL rejects NOTIFY payloads of 8000 bytes or more, so very wide rows
should be narrowed with ``TriggerDefinition.columns``.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping

import structlog

from pgtriggers.config import Operation
from pgtriggers.exceptions import MalformedPayload

logger = structlog.get_logger()

# Envelope keys, shared with the SQL generated in pgtriggers.sql
OPERATION_KEY = "operation"
TIMESTAMP_KEY = "timestamp"
DATA_KEY = "data"

# pg_notify payloads must be shorter than this many bytes
MAX_PAYLOAD_BYTES = 8000


@dataclass(frozen=True)
class NotificationPayload:
    """A decoded row-change notification."""

    operation: Operation
    timestamp: datetime
    data: Mapping[str, Any]
    channel: str | None = None


def encode(operation: Operation | str, timestamp: datetime, row: Mapping[str, Any]) -> str:
    """
    Encode a row change into the notification envelope.

    Args:
        operation: INSERT, UPDATE or DELETE
        timestamp: When the change happened
        row: Row snapshot (column name -> value)

    Returns:
        JSON text suitable for pg_notify
    """
    op = operation if isinstance(operation, Operation) else Operation(str(operation).upper())
    text = json.dumps(
        {
            OPERATION_KEY: op.value,
            TIMESTAMP_KEY: timestamp.isoformat(),
            DATA_KEY: dict(row),
        },
        default=str,
    )

    size = len(text.encode("utf-8"))
    if size >= MAX_PAYLOAD_BYTES:
        logger.warning(
            "payload_exceeds_notify_limit",
            operation=op.value,
            size_bytes=size,
            limit_bytes=MAX_PAYLOAD_BYTES,
        )

    return text


def decode(text: str, channel: str | None = None) -> NotificationPayload:
    """
    Decode notification text into a NotificationPayload.

    Raises:
        MalformedPayload: If the text is not a valid envelope
    """
    details = {"channel": channel, "payload": text[:200] if isinstance(text, str) else text}

    try:
        document = json.loads(text)
    except (TypeError, ValueError) as e:
        raise MalformedPayload(f"Payload is not valid JSON: {e}", details=details) from e

    if not isinstance(document, dict):
        raise MalformedPayload("Payload must be a JSON object", details=details)

    missing = [k for k in (OPERATION_KEY, TIMESTAMP_KEY, DATA_KEY) if k not in document]
    if missing:
        raise MalformedPayload(
            f"Payload is missing keys: {', '.join(missing)}", details=details
        )

    try:
        operation = Operation(str(document[OPERATION_KEY]).upper())
    except ValueError as e:
        raise MalformedPayload(
            f"Unknown operation: {document[OPERATION_KEY]!r}", details=details
        ) from e

    raw_timestamp = document[TIMESTAMP_KEY]
    try:
        timestamp = datetime.fromisoformat(raw_timestamp)
    except (TypeError, ValueError) as e:
        raise MalformedPayload(
            f"Invalid timestamp: {raw_timestamp!r}", details=details
        ) from e

    data = document[DATA_KEY]
    if not isinstance(data, dict):
        raise MalformedPayload("Payload data must be a JSON object", details=details)

    return NotificationPayload(
        operation=operation,
        timestamp=timestamp,
        data=MappingProxyType(data),
        channel=channel,
    )
