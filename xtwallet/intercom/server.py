"""Privileged intercom endpoint: answers requests and publishes notifications."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable

from loguru import logger

from xtwallet.intercom.errors import UnsupportedRequest, serialize_error
from xtwallet.intercom.transport.base import Port, PortDisconnectedError, Remover, Runtime
from xtwallet.intercom.types import (
    WAKEUP,
    ErrorMessage,
    NotificationMessage,
    RequestMessage,
    ResponseMessage,
    dump_message,
    parse_message,
)
from xtwallet.utils.exceptions import DataCloneError, classify_exception, sanitize_error_message

RequestHandler = Callable[[Any, Port], Any]


class IntercomServer:
    """
    Single entry point of the privileged context.

    Request handlers run in registration order; the first one returning a
    value other than None answers the request. Broadcasts are
    fire-and-forget and go out through the runtime's one-to-many primitive.
    """

    def __init__(self, runtime: Runtime):
        self._runtime = runtime
        self._handlers: list[RequestHandler] = []
        self._ports: set[Port] = set()
        self._disconnect_callbacks: dict[Port, list[Callable[[], Any]]] = {}
        self._tasks: set[asyncio.Task] = set()
        self._removers: list[Remover] = [
            runtime.on_connect(self._handle_connect),
            runtime.on_message(self._handle_wakeup),
        ]

    @property
    def ports(self) -> frozenset[Port]:
        return frozenset(self._ports)

    def on_request(self, handler: RequestHandler) -> Remover:
        """Register a request handler ``(request_data, port) -> result | None``."""
        self._handlers.append(handler)

        def remove() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return remove

    def on_disconnect(self, port: Port, callback: Callable[[], Any]) -> Remover:
        """
        Run ``callback`` once when ``port``'s context goes away.

        A port that is already gone gets the callback on the next loop turn
        and nothing is stored for it.
        """
        if port not in self._ports:
            handle = asyncio.get_running_loop().call_soon(callback)
            return handle.cancel
        callbacks = self._disconnect_callbacks.setdefault(port, [])
        callbacks.append(callback)

        def remove() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return remove

    async def notify(self, port: Port, data: Any) -> bool:
        """Send a notification to one connected context."""
        try:
            await port.post_message(dump_message(NotificationMessage(data=data)))
        except PortDisconnectedError:
            logger.debug(f"notify: port '{port.name}' already gone")
            return False
        return True

    async def broadcast(self, data: Any) -> int:
        """Publish a notification to every connected context. Zero listeners is a no-op."""
        delivered = await self._runtime.broadcast(dump_message(NotificationMessage(data=data)))
        logger.debug(f"Broadcast {_describe(data)} to {delivered} context(s)")
        return delivered

    def close(self) -> None:
        for remove in self._removers:
            remove()
        self._removers.clear()
        for task in list(self._tasks):
            task.cancel()
        for port in list(self._ports):
            port.disconnect()
        self._ports.clear()
        self._disconnect_callbacks.clear()

    def _handle_connect(self, port: Port) -> None:
        self._ports.add(port)
        port.on_message(lambda raw: self._handle_port_message(port, raw))
        port.on_disconnect(lambda: self._handle_port_disconnect(port))
        logger.debug(f"Context connected: '{port.name}' ({len(self._ports)} live)")

    def _handle_port_disconnect(self, port: Port) -> None:
        self._ports.discard(port)
        callbacks = self._disconnect_callbacks.pop(port, [])
        logger.debug(f"Context disconnected: '{port.name}' ({len(self._ports)} live)")
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Unhandled error in disconnect callback")

    def _handle_wakeup(self, message: Any) -> None:
        # Receiving the one-shot is the whole point: it resets the host's idle clock.
        if message == WAKEUP:
            logger.trace("wakeup")
        return None

    def _handle_port_message(self, port: Port, raw: Any) -> None:
        message = parse_message(raw)
        if not isinstance(message, RequestMessage):
            logger.debug(f"Dropping non-request frame from '{port.name}'")
            return
        # Each request runs on its own task so a slow capability never stalls the port.
        task = asyncio.ensure_future(self._process_request(port, message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process_request(self, port: Port, message: RequestMessage) -> None:
        try:
            result = await self._run_handlers(message.data, port)
        except Exception as e:
            code, _ = classify_exception(e)
            logger.warning(
                f"Request {message.req_id} {_describe(message.data)} failed [{code}]: {sanitize_error_message(str(e))}"
            )
            reply = ErrorMessage(req_id=message.req_id, data=serialize_error(e))
        else:
            reply = ResponseMessage(req_id=message.req_id, data=result)

        try:
            try:
                await port.post_message(dump_message(reply))
            except DataCloneError as e:
                logger.error(f"Reply to {_describe(message.data)} is not transferable: {e.message}")
                await port.post_message(dump_message(ErrorMessage(req_id=message.req_id, data=serialize_error(e))))
        except PortDisconnectedError:
            logger.debug(f"Requester '{port.name}' left before reply {message.req_id}")

    async def _run_handlers(self, data: Any, port: Port) -> Any:
        for handler in list(self._handlers):
            result = handler(data, port)
            if inspect.isawaitable(result):
                result = await result
            if result is not None:
                return result
        request_type = data.get("type") if isinstance(data, dict) else None
        raise UnsupportedRequest(request_type)


def _describe(data: Any) -> str:
    if isinstance(data, dict) and "type" in data:
        return str(data["type"])
    return type(data).__name__
