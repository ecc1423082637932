# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Listener Registry - LISTEN subscriptions on one dedicated connection.

The registry owns a single long-lived asyncpg connection used only for
receiving notifications. asyncpg invokes the registered listener callback
for every NOTIFY; the callback only enqueues ``(channel, payload)`` and a
single background task decodes each item and calls the handlers of that
channel in registration order. Notifications on one channel are therefore
delivered in the order the server sent them. Nothing is promised across
channels.

Handlers may be plain functions or coroutine functions. Coroutine handlers
are bounded by ``handler_timeout``; plain functions run inline on the
event loop and should return quickly.
"""

import asyncio
import inspect
import itertools
from typing import Any, Awaitable, Callable, Dict, List, Set

import structlog

from pgtriggers.codec import NotificationPayload, decode
from pgtriggers.exceptions import AlreadyDisposed, MalformedPayload, SubscriptionFailure

logger = structlog.get_logger()

Handler = Callable[[NotificationPayload], Awaitable[None] | None]
ErrorHandler = Callable[[BaseException], Awaitable[None] | None]
ConnectFunc = Callable[[], Awaitable[Any]]

# Queue marker for a dropped connection
_CONNECTION_LOST = object()


class ListenerHandle:
    """
    A single handler registered on a channel.

    Cancelling the handle removes only this handler; the channel's LISTEN is
    released when its last handler goes away.
    """

    def __init__(
        self,
        registry: "ListenerRegistry",
        channel: str,
        handler: Handler,
        on_error: ErrorHandler | None,
        token: int,
    ):
        self.channel = channel
        self.handler = handler
        self.on_error = on_error
        self.token = token
        self.active = True
        self._registry = registry

    async def unlisten(self) -> None:
        """Stop delivery to this handler. Safe to call more than once."""
        await self._registry.unsubscribe(self)

    def __repr__(self) -> str:
        state = "active" if self.active else "cancelled"
        return f"<ListenerHandle channel={self.channel!r} token={self.token} {state}>"


class ListenerRegistry:
    """
    Owns channel subscriptions and the receive loop.

    Args:
        connect: Coroutine function returning a new asyncpg connection
        handler_timeout: Seconds a coroutine handler may run (None: no limit)
        dispose_timeout: Seconds each teardown step may take in dispose_all()
        on_error: Called with every decode failure, handler failure and
                  connection loss, in addition to per-handle on_error
    """

    def __init__(
        self,
        connect: ConnectFunc,
        *,
        handler_timeout: float | None = 30.0,
        dispose_timeout: float = 5.0,
        on_error: ErrorHandler | None = None,
    ):
        self._connect = connect
        self._handler_timeout = handler_timeout
        self._dispose_timeout = dispose_timeout
        self._on_error = on_error

        self._connection: Any = None
        self._handlers: Dict[str, List[ListenerHandle]] = {}
        self._handles: Set[ListenerHandle] = set()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._reader_task: asyncio.Task | None = None
        self._lock = asyncio.Lock()
        self._tokens = itertools.count(1)
        self._failure: SubscriptionFailure | None = None
        self._closing = False
        self._closed = False

    @property
    def connected(self) -> bool:
        return self._connection is not None and self._failure is None

    def channels(self) -> List[str]:
        """Channels that currently have at least one handler."""
        return list(self._handlers)

    def handler_count(self, channel: str) -> int:
        return len(self._handlers.get(channel, ()))

    async def subscribe(
        self,
        channel: str,
        handler: Handler,
        on_error: ErrorHandler | None = None,
    ) -> ListenerHandle:
        """
        Register a handler on a channel.

        Opens the receiving connection on first use and issues LISTEN the
        first time a channel is subscribed.

        Args:
            channel: NOTIFY channel name
            handler: Called with each NotificationPayload on the channel
            on_error: Called with this handler's failures and with a
                      SubscriptionFailure if the connection drops

        Returns:
            ListenerHandle that can be passed to unsubscribe()

        Raises:
            SubscriptionFailure: If the connection cannot be opened, the
                                 LISTEN fails, or the connection was lost
            AlreadyDisposed: If dispose_all() has been called
        """
        if self._closed:
            raise AlreadyDisposed("Listener registry has been disposed")
        if not channel or not isinstance(channel, str):
            raise SubscriptionFailure(f"Invalid channel name: {channel!r}")

        async with self._lock:
            if self._closed:
                raise AlreadyDisposed("Listener registry has been disposed")

            connection = await self._ensure_connection()

            if channel not in self._handlers:
                try:
                    await connection.add_listener(channel, self._on_notification)
                except Exception as e:
                    raise SubscriptionFailure(
                        f"Failed to LISTEN on channel {channel!r}: {e}",
                        details={"channel": channel},
                    ) from e
                # dispose_all() does not take the lock; it may have run during the await
                if self._closed:
                    raise AlreadyDisposed("Listener registry was disposed during subscribe")
                self._handlers[channel] = []
                logger.info("channel_listening", channel=channel)

            handle = ListenerHandle(self, channel, handler, on_error, next(self._tokens))
            self._handlers[channel].append(handle)
            self._handles.add(handle)

        logger.debug("handler_subscribed", channel=channel, token=handle.token)
        return handle

    async def unsubscribe(self, handle: ListenerHandle) -> None:
        """
        Remove a handler. Unsubscribing an already removed handle is a no-op.
        """
        if not handle.active:
            return
        handle.active = False

        async with self._lock:
            if handle not in self._handles:
                return
            self._handles.discard(handle)

            handlers = self._handlers.get(handle.channel)
            if handlers is not None and handle in handlers:
                handlers.remove(handle)
            if handlers is not None and not handlers:
                del self._handlers[handle.channel]
                await self._unlisten(handle.channel)

        logger.debug("handler_unsubscribed", channel=handle.channel, token=handle.token)

    async def dispose_all(self) -> List[BaseException]:
        """
        Cancel every handle, release every channel and close the connection.

        Each step is bounded by dispose_timeout. Failures are logged and
        collected instead of raised so that every resource gets a release
        attempt.

        Returns:
            Errors encountered during teardown (empty on a clean shutdown)
        """
        if self._closed:
            return []
        self._closed = True
        errors: List[BaseException] = []

        for handle in self._handles:
            handle.active = False
        channels = list(self._handlers)
        self._handles.clear()
        self._handlers.clear()

        connection = self._connection
        self._closing = True

        if connection is not None and self._failure is None:
            for channel in channels:
                error = await self._unlisten(channel, connection)
                if error is not None:
                    errors.append(error)

        if self._reader_task is not None:
            task = self._reader_task
            self._reader_task = None
            task.cancel()
            if task is asyncio.current_task():
                # dispose_all() called from a handler; the loop stops at its next await
                done = {task}
            else:
                done, _ = await asyncio.wait({task}, timeout=self._dispose_timeout)
            if not done:
                error = SubscriptionFailure("Receive loop did not stop in time")
                errors.append(error)
                logger.warning("dispose_step_failed", step="stop_receive_loop", error=str(error))
            elif not task.cancelled() and task.exception() is not None:
                errors.append(task.exception())

        if connection is not None:
            self._connection = None
            try:
                await asyncio.wait_for(connection.close(), timeout=self._dispose_timeout)
            except Exception as e:
                errors.append(e)
                logger.warning("dispose_step_failed", step="close_connection", error=str(e))
                try:
                    connection.terminate()
                except Exception as terminate_error:
                    logger.warning(
                        "dispose_step_failed",
                        step="terminate_connection",
                        error=str(terminate_error),
                    )

        logger.info("listener_registry_disposed", channels=channels, errors=len(errors))
        return errors

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    async def _ensure_connection(self) -> Any:
        if self._failure is not None:
            raise SubscriptionFailure(
                "Listen connection was lost; create a new manager to resubscribe",
                details={"cause": self._failure.message},
            )

        if self._connection is None:
            try:
                connection = await self._connect()
            except Exception as e:
                raise SubscriptionFailure(f"Failed to open listen connection: {e}") from e

            if self._closed:
                # dispose_all() ran while the connection was being opened
                await self._discard_connection(connection)
                raise AlreadyDisposed("Listener registry was disposed during subscribe")

            connection.add_termination_listener(self._on_connection_lost)
            self._connection = connection
            self._reader_task = asyncio.create_task(
                self._receive_loop(), name="pgtriggers-receive-loop"
            )
            logger.info("listener_connection_opened")

        return self._connection

    async def _discard_connection(self, connection: Any) -> None:
        try:
            await asyncio.wait_for(connection.close(), timeout=self._dispose_timeout)
        except Exception as e:
            logger.warning("dispose_step_failed", step="close_connection", error=str(e))
            connection.terminate()

    async def _unlisten(self, channel: str, connection: Any = None) -> BaseException | None:
        connection = connection or self._connection
        if connection is None or self._failure is not None:
            return None
        try:
            await asyncio.wait_for(
                connection.remove_listener(channel, self._on_notification),
                timeout=self._dispose_timeout,
            )
        except Exception as e:
            logger.warning("dispose_step_failed", step="unlisten", channel=channel, error=str(e))
            return e
        logger.info("channel_unlistened", channel=channel)
        return None

    def _on_notification(self, connection: Any, pid: int, channel: str, payload: str) -> None:
        """asyncpg listener callback."""
        self._queue.put_nowait((channel, payload))

    def _on_connection_lost(self, connection: Any) -> None:
        """asyncpg termination callback; also fires on our own close()."""
        if self._closing:
            return
        self._failure = SubscriptionFailure(
            "Listen connection lost",
            details={"channels": list(self._handlers)},
        )
        logger.error("listener_connection_lost", channels=list(self._handlers))
        self._queue.put_nowait((_CONNECTION_LOST, None))

    # ------------------------------------------------------------------
    # Receive loop
    # ------------------------------------------------------------------

    async def _receive_loop(self) -> None:
        while True:
            channel, text = await self._queue.get()

            if channel is _CONNECTION_LOST:
                for handle in [h for handles in self._handlers.values() for h in handles]:
                    await self._call_error_handler(handle.on_error, self._failure)
                await self._call_error_handler(self._on_error, self._failure)
                continue

            try:
                payload = decode(text, channel)
            except MalformedPayload as e:
                logger.warning("notification_dropped", channel=channel, error=str(e))
                await self._report(None, e)
                continue

            # Snapshot so that handlers may unsubscribe while being called
            for handle in list(self._handlers.get(channel, ())):
                if handle.active:
                    await self._invoke(handle, payload)

    async def _invoke(self, handle: ListenerHandle, payload: NotificationPayload) -> None:
        deadline = None
        try:
            result = handle.handler(payload)
            if inspect.isawaitable(result):
                async with asyncio.timeout(self._handler_timeout) as deadline:
                    await result
        except asyncio.CancelledError:
            raise
        except TimeoutError as e:
            if deadline is None or not deadline.expired():
                # Raised by the handler itself, not by handler_timeout
                await self._handler_failed(handle, e)
                return
            logger.error(
                "handler_timed_out",
                channel=handle.channel,
                token=handle.token,
                timeout=self._handler_timeout,
            )
            await self._report(handle, e)
        except Exception as e:
            await self._handler_failed(handle, e)

    async def _handler_failed(self, handle: ListenerHandle, e: Exception) -> None:
        logger.error(
            "handler_failed",
            channel=handle.channel,
            token=handle.token,
            error=str(e),
            error_type=type(e).__name__,
        )
        await self._report(handle, e)

    async def _report(self, handle: ListenerHandle | None, error: BaseException) -> None:
        if handle is not None:
            await self._call_error_handler(handle.on_error, error)
        await self._call_error_handler(self._on_error, error)

    async def _call_error_handler(
        self, callback: ErrorHandler | None, error: BaseException
    ) -> None:
        if callback is None:
            return
        try:
            result = callback(error)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("error_handler_failed", error=str(e), original_error=str(error))
