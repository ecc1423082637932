# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Transactional Executor - Run a batch of statements atomically.

This is the only place in pgtriggers that begins, commits or rolls back a
transaction. Each call acquires its own pooled connection, so concurrent
transaction() calls never share one.
"""

from typing import Any, Awaitable, Callable, List, Protocol, TypeVar

import structlog

from pgtriggers.config import TriggerDefinition
from pgtriggers.exceptions import TransactionFailure
from pgtriggers.sql import build_drop_sql, build_trigger_sql

logger = structlog.get_logger()

T = TypeVar("T")


class DataAccessClient(Protocol):
    """
    Protocol for anything that can execute statements.

    Any data-access collaborator that provides these coroutines can be
    handed to code that only needs to run SQL inside a transaction.
    """

    async def execute(self, query: str, *args: Any) -> str:
        ...

    async def fetch(self, query: str, *args: Any) -> List[Any]:
        ...


class TransactionHandle:
    """
    Statement handle scoped to one transactional connection.

    Only valid inside the transaction() call that created it.
    """

    def __init__(self, connection: Any):
        self._connection = connection

    async def execute(self, query: str, *args: Any) -> str:
        """Execute a parameterized statement ($1, $2, ...)."""
        return await self._connection.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> List[Any]:
        return await self._connection.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> Any:
        return await self._connection.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        return await self._connection.fetchval(query, *args)

    async def unsafe(self, query: str) -> str:
        """
        Execute a raw, unparameterized statement.

        Multiple statements separated by semicolons are allowed. Never pass
        untrusted input here.
        """
        return await self._connection.execute(query)

    async def install(self, definition: TriggerDefinition) -> None:
        """Create or replace the notify function and triggers of a definition."""
        for statement in build_trigger_sql(definition):
            await self._connection.execute(statement)
        logger.info(
            "trigger_installed",
            table=definition.table,
            channel=definition.channel,
            events=[op.value for op in definition.ordered_events],
        )

    async def uninstall(self, definition: TriggerDefinition) -> None:
        """Drop the triggers and notify function of a definition, if present."""
        for statement in build_drop_sql(definition):
            await self._connection.execute(statement)
        logger.info(
            "trigger_uninstalled",
            table=definition.table,
            channel=definition.channel,
        )


class TransactionalExecutor:
    """
    Runs caller-supplied batches inside a single transaction.

    Args:
        pool: asyncpg pool (or anything exposing acquire() as an async
              context manager yielding a connection)
        acquire_timeout: Seconds to wait for a free connection
    """

    def __init__(self, pool: Any, acquire_timeout: float | None = None):
        self._pool = pool
        self._acquire_timeout = acquire_timeout

    async def transaction(self, fn: Callable[[TransactionHandle], Awaitable[T]]) -> T:
        """
        Run fn inside a transaction.

        Commits when fn returns, rolls back when it raises. The connection is
        released back to the pool on every exit path.

        Args:
            fn: Async function receiving a TransactionHandle

        Returns:
            Whatever fn returns

        Raises:
            TransactionFailure: If the connection, BEGIN, fn or COMMIT fails (the
                                batch is rolled back)
        """
        try:
            async with self._pool.acquire(timeout=self._acquire_timeout) as connection:
                return await self._run(connection, fn)
        except TransactionFailure:
            raise
        except Exception as e:
            # Acquiring or releasing the connection failed
            logger.warning("transaction_connection_failed", error=str(e))
            raise TransactionFailure(
                f"Transaction connection failed: {e}",
                details={"error_type": type(e).__name__},
            ) from e

    async def _run(self, connection: Any, fn: Callable[[TransactionHandle], Awaitable[T]]) -> T:
        tx = connection.transaction()
        try:
            await tx.start()
        except Exception as e:
            logger.warning("transaction_begin_failed", error=str(e))
            raise TransactionFailure(
                f"Transaction begin failed: {e}",
                details={"error_type": type(e).__name__},
            ) from e

        try:
            result = await fn(TransactionHandle(connection))
        except BaseException as e:
            await self._rollback(tx, e)
            if isinstance(e, Exception):
                raise TransactionFailure(
                    f"Transaction rolled back: {e}",
                    details={"error_type": type(e).__name__},
                ) from e
            raise

        try:
            await tx.commit()
        except Exception as e:
            # A failed COMMIT ends the transaction server-side
            logger.warning("transaction_commit_failed", error=str(e))
            raise TransactionFailure(
                f"Transaction commit failed: {e}",
                details={"error_type": type(e).__name__},
            ) from e

        logger.debug("transaction_committed")
        return result

    async def _rollback(self, tx: Any, cause: BaseException) -> None:
        try:
            await tx.rollback()
        except Exception as e:
            # The connection is released (and reset by the pool) regardless
            logger.warning("transaction_rollback_failed", error=str(e), cause=str(cause))
        else:
            logger.warning(
                "transaction_rolled_back",
                error=str(cause),
                error_type=type(cause).__name__,
            )
