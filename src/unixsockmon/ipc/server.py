"""IPC server: accept, frame one request, dispatch, respond, close."""

from __future__ import annotations

import asyncio
import contextlib
import contextvars
import inspect
import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from unixsockmon.errors import AcceptError, WriteError
from unixsockmon.ipc.constants import ERROR_SENTINEL
from unixsockmon.ipc.contracts import ConnectionEvent, ConnectionState
from unixsockmon.ipc.transports import UnixSocketTransport
from unixsockmon.workers import WorkerPool

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any

    from unixsockmon.events import EventManager
    from unixsockmon.ipc.contracts import Handler
    from unixsockmon.ipc.endpoint import Endpoint
    from unixsockmon.ipc.framing import Framer
    from unixsockmon.ipc.transports import ServerHandle

logger = logging.getLogger(__name__)


def _settle(future: asyncio.Future[Any], result: Any, exc: BaseException | None) -> None:
    if future.done():
        return
    if exc is not None:
        future.set_exception(exc)
    else:
        future.set_result(result)


class IPCServer:
    """Asynchronous one-request-per-connection server.

    Every accepted connection is handled in isolation: one request is read
    with *framer*, passed to *handler*, and the handler's string (or the
    ``ERR`` sentinel when it raises) is written back before the connection is
    closed. The close is what tells the client the response is complete.

    Synchronous handlers run off the event loop on threads the server owns:
    a thread per connection by default, or a pool of ``max_connections``
    threads when that bound is set. A slow handler only delays its own
    connection. Coroutine handlers run on the event loop.

    ``stop()`` stops accepting, abandons connections whose request has not
    been fully read yet, and waits for the others to be answered.

    Usage::

        def handle(request: str) -> str:
            return f"echo:{request}"


        server = IPCServer(Endpoint("/tmp/app.sock"), LineFramer(), handle)
        await server.start()
        ...
        await server.stop()
    """

    def __init__(
        self,
        endpoint: Endpoint,
        framer: Framer,
        handler: Handler,
        *,
        max_connections: int | None = None,
        events: EventManager[ConnectionEvent] | None = None,
        socket_mode: int | None = None,
        transport: UnixSocketTransport | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._framer = framer
        self._handler = handler
        self._max_connections = max_connections
        self._events = events
        self._socket_mode = socket_mode
        self._transport = transport or UnixSocketTransport(endpoint)
        self._pool: WorkerPool | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._handle: ServerHandle | None = None
        self._ids = itertools.count(1)
        self._previous_exception_handler: Callable[..., Any] | None = None
        self._reads: set[asyncio.Task[str]] = set()
        self._stopping = False

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def handle(self) -> ServerHandle | None:
        """The server handle, available after ``start()``."""
        return self._handle

    @property
    def is_running(self) -> bool:
        """Whether the server is currently listening."""
        return self._handle is not None

    async def start(self) -> ServerHandle:
        """Bind the endpoint and begin accepting connections.

        Raises:
            BindError: If the stale socket file cannot be removed or the
                path cannot be bound.
            RuntimeError: If the server is already running.
        """
        if self._handle is not None:
            msg = "Server is already running"
            raise RuntimeError(msg)

        if self._events is not None:
            self._events.start()
        if self._max_connections is not None:
            self._pool = WorkerPool(self._max_connections, name="connection-worker")
            self._pool.start()
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_connections,
                thread_name_prefix="unixsockmon-handler",
            )

        try:
            self._handle = await self._transport.start_server(
                self._client_connected,
                mode=self._socket_mode,
            )
        except BaseException:
            await self._release_workers()
            raise

        loop = asyncio.get_running_loop()
        self._previous_exception_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._on_loop_exception)

        logger.info(
            "IPC server started: address=%s framing=%s max_connections=%s",
            self._handle.address,
            self._framer.name,
            self._max_connections if self._max_connections is not None else "unbounded",
        )
        return self._handle

    async def serve_forever(self) -> None:
        """Block until the listener is closed or this coroutine is cancelled."""
        if self._handle is None:
            msg = "Server is not running; call start() first"
            raise RuntimeError(msg)
        await self._handle.server.serve_forever()

    async def stop(self) -> None:
        """Stop listening, finish in-flight requests, remove the socket.

        Connections still waiting for their request are closed without a
        response, so an idle client cannot hold up shutdown.
        """
        if self._handle is None:
            return
        self._stopping = True
        try:
            for read in list(self._reads):
                read.cancel()
            await self._handle.close()
        finally:
            self._stopping = False
        self._handle = None

        loop = asyncio.get_running_loop()
        if loop.get_exception_handler() == self._on_loop_exception:
            loop.set_exception_handler(_live_handler(self._previous_exception_handler))
        await self._release_workers()
        logger.info("IPC server stopped")

    def _on_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        """Report failed accepts as ``AcceptError``; pass anything else on.

        The event loop keeps listening after a failed accept. Once this server
        has stopped, every context is passed on.
        """
        exc = context.get("exception")
        if (
            self._handle is not None
            and isinstance(exc, OSError)
            and context.get("message", "").startswith("socket.accept()")
        ):
            error = AcceptError(f"accept failed on {self._endpoint}: {exc}")
            logger.warning("%s; still accepting", error)
            return
        if self._previous_exception_handler is not None:
            self._previous_exception_handler(loop, context)
        else:
            loop.default_exception_handler(context)

    async def _release_workers(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    async def _client_connected(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        conn_id = next(self._ids)
        self._transition(conn_id, ConnectionState.ACCEPTED)
        if self._pool is None:
            await self._handle_connection(conn_id, reader, writer)
            return

        try:
            job = self._pool.submit(lambda: self._handle_connection(conn_id, reader, writer))
        except RuntimeError:
            logger.warning("Connection %d: server is shutting down; dropping", conn_id)
            await self._close_writer(writer)
            self._transition(conn_id, ConnectionState.CLOSED, "server shutting down")
            return
        await job

    async def _handle_connection(
        self,
        conn_id: int,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Run one connection through reading, handling, responding, closed."""
        detail: str | None = None
        try:
            self._transition(conn_id, ConnectionState.READING)
            if self._stopping:
                detail = "server shutting down"
                return
            read = asyncio.ensure_future(self._framer.read(reader))
            self._reads.add(read)
            read.add_done_callback(self._reads.discard)
            try:
                request = await read
            except asyncio.CancelledError:
                task = asyncio.current_task()
                if not self._stopping or (task is not None and task.cancelling()):
                    raise
                logger.info("Connection %d: request abandoned at shutdown", conn_id)
                detail = "server shutting down"
                return
            except OSError as exc:
                logger.warning("Connection %d: framing failed: %s", conn_id, exc)
                detail = f"framing failed: {exc}"
                return

            logger.debug("Connection %d: request %r", conn_id, request)
            self._transition(conn_id, ConnectionState.HANDLING)
            response = await self._dispatch(conn_id, request)

            self._transition(conn_id, ConnectionState.RESPONDING)
            try:
                await self._write_response(writer, response)
            except WriteError as exc:
                logger.warning("Connection %d: %s", conn_id, exc)
                detail = str(exc)
        except Exception:
            logger.exception("Connection %d: unexpected failure", conn_id)
            detail = "unexpected failure"
        finally:
            await self._close_writer(writer)
            self._transition(conn_id, ConnectionState.CLOSED, detail)

    async def _dispatch(self, conn_id: int, request: str) -> str:
        """Invoke the handler; any exception becomes the error sentinel."""
        try:
            if inspect.iscoroutinefunction(self._handler):
                result = await self._handler(request)
            else:
                result = await self._call_in_thread(conn_id, request)
                if inspect.isawaitable(result):
                    result = await result
            if not isinstance(result, str):
                msg = f"handler returned {type(result).__name__}, expected str"
                raise TypeError(msg)
        except Exception:
            logger.exception("Connection %d: handler failed", conn_id)
            return ERROR_SENTINEL
        return result

    async def _call_in_thread(self, conn_id: int, request: str) -> Any:
        """Run the synchronous handler without blocking the event loop."""
        loop = asyncio.get_running_loop()
        context = contextvars.copy_context()
        if self._executor is not None:
            return await loop.run_in_executor(self._executor, context.run, self._handler, request)

        future: asyncio.Future[Any] = loop.create_future()

        def _target() -> None:
            result: Any = None
            error: BaseException | None = None
            try:
                result = context.run(self._handler, request)
            except Exception as exc:
                error = exc
            # The loop may already be closed if the server was torn down.
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(_settle, future, result, error)

        threading.Thread(target=_target, name=f"unixsockmon-handler-{conn_id}", daemon=True).start()
        return await future

    @staticmethod
    async def _write_response(writer: asyncio.StreamWriter, response: str) -> None:
        """Write the raw response bytes; no terminator is added."""
        try:
            writer.write(response.encode("utf-8"))
            await writer.drain()
        except OSError as exc:
            msg = f"failed to write response: {exc}"
            raise WriteError(msg) from exc

    @staticmethod
    async def _close_writer(writer: asyncio.StreamWriter) -> None:
        writer.close()
        with contextlib.suppress(ConnectionError, OSError):
            await writer.wait_closed()

    def _transition(
        self,
        conn_id: int,
        state: ConnectionState,
        detail: str | None = None,
    ) -> None:
        logger.debug("Connection %d: %s", conn_id, state)
        if self._events is None:
            return
        with contextlib.suppress(RuntimeError, asyncio.QueueFull):
            self._events.publish(ConnectionEvent(conn_id, state, detail))


def _live_handler(handler: Callable[..., Any] | None) -> Callable[..., Any] | None:
    """Skip exception handlers left installed by servers that have since stopped."""
    while True:
        owner = getattr(handler, "__self__", None)
        if not isinstance(owner, IPCServer) or owner.is_running:
            return handler
        handler = owner._previous_exception_handler


async def serve(
    endpoint: Endpoint,
    framer: Framer,
    handler: Handler,
    **options: object,
) -> None:
    """Serve *endpoint* until the listener fails or the task is cancelled.

    Keyword options are passed to :class:`IPCServer`. Only bind failures
    (``BindError``) end the loop; per-connection failures are logged.
    """
    server = IPCServer(endpoint, framer, handler, **options)  # type: ignore[arg-type]
    await server.start()
    try:
        await server.serve_forever()
    finally:
        await server.stop()


def run(
    endpoint: Endpoint,
    framer: Framer,
    handler: Handler,
    **options: object,
) -> None:
    """Blocking wrapper around :func:`serve` for synchronous callers."""
    asyncio.run(serve(endpoint, framer, handler, **options))


__all__ = ["IPCServer", "run", "serve"]
