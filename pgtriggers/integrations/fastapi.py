# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pgtriggers FastAPI Integration - Lifespan management for FastAPI applications.

The lifespan creates a TriggerManager on startup, installs the given trigger
definitions, exposes the manager on ``app.state`` and disposes it on
shutdown:

    definitions = [define_trigger("items", events=["insert"], channel="insert_test")]

    app = FastAPI(lifespan=lambda app: trigger_lifespan(app, config, definitions))

    @app.post("/watch")
    async def watch(manager: TriggerManager = Depends(trigger_manager_dependency)):
        await manager.subscribe("insert_test", handle_insert)
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

import structlog
from fastapi import FastAPI, Request

from pgtriggers.config import ManagerConfig, TriggerDefinition
from pgtriggers.manager import TriggerManager, create_manager
from pgtriggers.registry import ErrorHandler

logger = structlog.get_logger()


@asynccontextmanager
async def trigger_lifespan(
    app: FastAPI,
    config: ManagerConfig,
    definitions: Iterable[TriggerDefinition] = (),
    on_error: ErrorHandler | None = None,
) -> AsyncIterator[None]:
    """
    Lifespan context manager for FastAPI.

    Args:
        app: FastAPI application
        config: Manager configuration
        definitions: Triggers to install (in one transaction) on startup
        on_error: Optional registry-wide error callback
    """
    logger.info("pgtriggers_lifespan_starting")

    manager = create_manager(config, on_error=on_error)
    app.state.trigger_manager = manager

    try:
        definitions = list(definitions)
        if definitions:
            await manager.install(*definitions)
            logger.info(
                "pgtriggers_definitions_installed",
                channels=[d.channel for d in definitions],
            )

        logger.info("pgtriggers_lifespan_started")
        yield
    finally:
        logger.info("pgtriggers_lifespan_stopping")
        await manager.dispose()
        app.state.trigger_manager = None
        logger.info("pgtriggers_lifespan_stopped")


def get_trigger_manager(app: FastAPI) -> TriggerManager:
    """
    Get the TriggerManager from a FastAPI app.

    Raises:
        RuntimeError: If trigger_lifespan is not running
    """
    manager = getattr(app.state, "trigger_manager", None)
    if manager is None:
        raise RuntimeError("pgtriggers not initialized. Use trigger_lifespan as the app lifespan.")
    return manager


def trigger_manager_dependency(request: Request) -> TriggerManager:
    """FastAPI dependency returning the app's TriggerManager."""
    return get_trigger_manager(request.app)
