"""WebSocket transport: contexts in separate processes talk to a privileged host.

Frames are JSON objects with a ``kind``:

- ``connect``  first frame of a long-lived port connection (``name``)
- ``port``     a message on an open port (``message``)
- ``oneshot``  a one-shot message; the host answers with ``result`` and closes
"""

from __future__ import annotations

import asyncio
import inspect
import json
from typing import Any

import websockets
from loguru import logger
from websockets.exceptions import ConnectionClosed, WebSocketException

from xtwallet.intercom.transport.base import (
    ConnectHandler,
    DisconnectHandler,
    MessageHandler,
    OneShotHandler,
    Port,
    PortDisconnectedError,
    ReceivingEndMissing,
    Remover,
    Runtime,
)
from xtwallet.intercom.transport.memory import _remover
from xtwallet.utils.exceptions import DataCloneError
from xtwallet.utils.helpers import call_handler


def encode_frame(kind: str, **fields: Any) -> str:
    try:
        return json.dumps({"kind": kind, **fields}, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise DataCloneError(f"value could not be cloned: {e}") from e


def decode_frame(raw: Any) -> dict[str, Any] | None:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


class _WebSocketPort(Port):
    def __init__(self, name: str = ""):
        self.name = name
        self._ws: Any = None
        self._connected = False
        self._message_handlers: list[MessageHandler] = []
        self._disconnect_handlers: list[DisconnectHandler] = []

    @property
    def connected(self) -> bool:
        return self._connected

    def on_message(self, handler: MessageHandler) -> Remover:
        self._message_handlers.append(handler)
        return _remover(self._message_handlers, handler)

    def on_disconnect(self, handler: DisconnectHandler) -> Remover:
        self._disconnect_handlers.append(handler)
        return _remover(self._disconnect_handlers, handler)

    def _deliver(self, raw: Any) -> None:
        frame = decode_frame(raw)
        if frame is None or frame.get("kind") != "port":
            logger.debug(f"port '{self.name}': dropping malformed frame")
            return
        for handler in list(self._message_handlers):
            call_handler(handler, frame.get("message"), label=f"port '{self.name}' message handler")

    def _closed_remotely(self) -> None:
        if not self._connected:
            return
        self._connected = False
        handlers = list(self._disconnect_handlers)
        self._disconnect_handlers.clear()
        for handler in handlers:
            call_handler(handler, label=f"port '{self.name}' disconnect handler")

    async def _send_frame(self, message: Any) -> None:
        frame = encode_frame("port", message=message)
        try:
            await self._ws.send(frame)
        except ConnectionClosed as e:
            raise PortDisconnectedError(f"port '{self.name}' closed: {e}") from e


class ClientWebSocketPort(_WebSocketPort):
    """Port opened by a non-privileged context; connects in the background."""

    def __init__(self, url: str, name: str = ""):
        super().__init__(name)
        self.url = url
        loop = asyncio.get_running_loop()
        self._ready: asyncio.Future[None] = loop.create_future()
        self._closing = False
        self._task = loop.create_task(self._run())

    @property
    def connected(self) -> bool:
        # Optimistic until the handshake fails, like a freshly opened browser port.
        return not self._closing and (self._connected or not self._ready.done())

    async def _run(self) -> None:
        try:
            async with websockets.connect(self.url) as ws:
                self._ws = ws
                await ws.send(encode_frame("connect", name=self.name))
                self._connected = True
                self._ready.set_result(None)
                async for raw in ws:
                    self._deliver(raw)
        except (OSError, WebSocketException) as e:
            logger.debug(f"port '{self.name}' to {self.url} ended: {e}")
        except asyncio.CancelledError:
            pass
        finally:
            if not self._ready.done():
                self._ready.set_exception(PortDisconnectedError(f"could not connect to {self.url}"))
                # Retrieve so an unawaited failure is not reported by the loop.
                self._ready.exception()
            if self._closing:
                self._connected = False
            else:
                self._closed_remotely()

    async def post_message(self, message: Any) -> None:
        if self._closing:
            raise PortDisconnectedError()
        await asyncio.shield(self._ready)
        if not self._connected:
            raise PortDisconnectedError()
        await self._send_frame(message)

    def disconnect(self) -> None:
        if self._closing:
            return
        self._closing = True
        self._connected = False
        self._task.cancel()


class ServerWebSocketPort(_WebSocketPort):
    """Privileged-side end of a connected context."""

    def __init__(self, name: str, ws: Any):
        super().__init__(name)
        self._ws = ws
        self._connected = True
        self._closing = False

    async def post_message(self, message: Any) -> None:
        if not self._connected:
            raise PortDisconnectedError()
        await self._send_frame(message)

    def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        self._closing = True
        asyncio.ensure_future(self._ws.close())


class WebSocketRuntime(Runtime):
    """
    Runtime spread over processes.

    The privileged process calls :meth:`serve`; every other context only
    uses :meth:`connect` and :meth:`send_message` against the same address.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = 8765, *, manifest_version: int = 3):
        self.host = host
        self.port = port
        self._manifest_version = manifest_version
        self._server: Any = None
        self._connect_handlers: list[ConnectHandler] = []
        self._message_handlers: list[OneShotHandler] = []
        self._ports: set[ServerWebSocketPort] = set()

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    @property
    def manifest_version(self) -> int:
        return self._manifest_version

    # Non-privileged side

    def connect(self, name: str = "") -> Port:
        return ClientWebSocketPort(self.url, name)

    async def send_message(self, message: Any) -> Any:
        frame = encode_frame("oneshot", message=message)
        try:
            async with websockets.connect(self.url) as ws:
                await ws.send(frame)
                reply = decode_frame(await ws.recv())
        except (OSError, WebSocketException) as e:
            raise ReceivingEndMissing(f"Could not reach privileged context at {self.url}: {e}") from e
        if reply is None or reply.get("kind") != "oneshot":
            raise ReceivingEndMissing("Privileged context sent no reply")
        return reply.get("result")

    # Privileged side

    async def serve(self) -> None:
        self._server = await websockets.serve(self._handle_connection, self.host, self.port)
        logger.info(f"Privileged context listening on {self.url}")

    async def close(self) -> None:
        for port in list(self._ports):
            port.disconnect()
        self._ports.clear()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            logger.info("Privileged context stopped listening")

    def on_connect(self, handler: ConnectHandler) -> Remover:
        self._connect_handlers.append(handler)
        return _remover(self._connect_handlers, handler)

    def on_message(self, handler: OneShotHandler) -> Remover:
        self._message_handlers.append(handler)
        return _remover(self._message_handlers, handler)

    async def broadcast(self, message: Any) -> int:
        live = [port for port in self._ports if port.connected]
        if not live:
            return 0
        websockets.broadcast([port._ws for port in live], encode_frame("port", message=message))
        return len(live)

    async def _handle_connection(self, ws: Any) -> None:
        try:
            first = decode_frame(await ws.recv())
        except ConnectionClosed:
            return
        kind = first.get("kind") if first else None
        if kind == "oneshot":
            await self._answer_one_shot(ws, first.get("message"))
            return
        if kind != "connect" or not self._connect_handlers:
            await ws.close()
            return

        port = ServerWebSocketPort(str(first.get("name") or ""), ws)
        self._ports.add(port)
        for handler in list(self._connect_handlers):
            call_handler(handler, port, label="connect handler")
        try:
            async for raw in ws:
                port._deliver(raw)
        except ConnectionClosed:
            pass
        finally:
            self._ports.discard(port)
            if not port._closing:
                port._closed_remotely()

    async def _answer_one_shot(self, ws: Any, message: Any) -> None:
        result = None
        for handler in list(self._message_handlers):
            try:
                value = handler(message)
                if inspect.isawaitable(value):
                    value = await value
            except Exception:
                logger.exception("Unhandled error in one-shot message handler")
                continue
            if result is None and value is not None:
                result = value
        try:
            await ws.send(encode_frame("oneshot", result=result))
        except ConnectionClosed:
            pass
