# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example FastAPI Application with pgtriggers Integration.

Installs INSERT/UPDATE/DELETE triggers on an ``items`` table at startup and
keeps the most recent row changes in memory so they can be inspected over
HTTP.

Run with:
    uvicorn examples.basic_app:app --reload

Environment variables:
    DATABASE_URL: PostgreSQL connection URL (required)
    PGTRIGGERS_HANDLER_TIMEOUT: Seconds a handler may run (optional)
"""

from collections import deque
from datetime import datetime
from typing import Any, Dict

import structlog
from fastapi import Depends, FastAPI
from pydantic import BaseModel

from pgtriggers import (
    NotificationPayload,
    TriggerManager,
    create_config_from_env,
    define_trigger,
)
from pgtriggers.integrations import trigger_lifespan, trigger_manager_dependency

logger = structlog.get_logger()

CHANNEL = "items_changed"

definitions = [
    define_trigger("items", events=["insert", "update", "delete"], channel=CHANNEL),
]

recent_changes: deque = deque(maxlen=100)


class Change(BaseModel):
    """A row change as seen by a subscriber."""

    operation: str
    timestamp: datetime
    data: Dict[str, Any]


def record_change(payload: NotificationPayload) -> None:
    recent_changes.append(
        Change(
            operation=payload.operation.value,
            timestamp=payload.timestamp,
            data=dict(payload.data),
        )
    )


def report_error(error: BaseException) -> None:
    logger.error("item_listener_error", error=str(error))


async def lifespan(app: FastAPI):
    async with trigger_lifespan(app, create_config_from_env(), definitions, on_error=report_error):
        await app.state.trigger_manager.subscribe(CHANNEL, record_change)
        yield


app = FastAPI(
    title="My App with pgtriggers",
    description="Example application streaming row changes from PostgreSQL",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/changes")
async def list_changes(limit: int = 20) -> list[Change]:
    """Most recent row changes, newest first."""
    return list(reversed(recent_changes))[:limit]


@app.get("/admin/triggers")
async def list_triggers(manager: TriggerManager = Depends(trigger_manager_dependency)):
    """Triggers currently installed on the items table."""
    return await manager.list_triggers("items")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
