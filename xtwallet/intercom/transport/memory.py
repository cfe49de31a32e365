"""In-process transport: every context lives on one asyncio event loop.

Messages are structurally cloned and delivered on a later loop iteration,
so no context ever sees another context's objects and a sender never runs
the receiver's handlers inline.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable

from loguru import logger

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
from xtwallet.utils.helpers import call_handler, structured_clone


def _soon(callback: Callable[..., Any], *args: Any) -> None:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        callback(*args)
        return
    loop.call_soon(callback, *args)


def _remover(handlers: list, handler: Any) -> Remover:
    def remove() -> None:
        if handler in handlers:
            handlers.remove(handler)

    return remove


class LocalPort(Port):
    """One end of an in-process port pair."""

    def __init__(self, name: str = ""):
        self.name = name
        self._peer: LocalPort | None = None
        self._connected = False
        self._message_handlers: list[MessageHandler] = []
        self._disconnect_handlers: list[DisconnectHandler] = []

    def _link(self, peer: LocalPort) -> None:
        self._peer = peer
        peer._peer = self
        self._connected = True
        peer._connected = True

    @property
    def connected(self) -> bool:
        return self._connected

    async def post_message(self, message: Any) -> None:
        if not self._connected or self._peer is None:
            raise PortDisconnectedError()
        cloned = structured_clone(message)
        _soon(self._peer._deliver, cloned)

    def _deliver(self, message: Any) -> None:
        # Frames still in flight when the port closed are dropped.
        if not self._connected:
            return
        for handler in list(self._message_handlers):
            call_handler(handler, message, label=f"port '{self.name}' message handler")

    def on_message(self, handler: MessageHandler) -> Remover:
        self._message_handlers.append(handler)
        return _remover(self._message_handlers, handler)

    def on_disconnect(self, handler: DisconnectHandler) -> Remover:
        self._disconnect_handlers.append(handler)
        return _remover(self._disconnect_handlers, handler)

    def _fire_disconnect(self) -> None:
        handlers = list(self._disconnect_handlers)
        self._disconnect_handlers.clear()
        for handler in handlers:
            call_handler(handler, label=f"port '{self.name}' disconnect handler")

    def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        peer = self._peer
        if peer is not None and peer._connected:
            peer._connected = False
            _soon(peer._fire_disconnect)


class LocalRuntime(Runtime):
    """In-memory host runtime, including simulated suspension of the privileged context."""

    def __init__(self, *, manifest_version: int = 3):
        self._manifest_version = manifest_version
        self._connect_handlers: list[ConnectHandler] = []
        self._message_handlers: list[OneShotHandler] = []
        self._privileged_ports: set[LocalPort] = set()

    @property
    def manifest_version(self) -> int:
        return self._manifest_version

    @property
    def privileged_alive(self) -> bool:
        return bool(self._connect_handlers or self._message_handlers)

    def connect(self, name: str = "") -> Port:
        own_end = LocalPort(name)
        if not self._connect_handlers:
            logger.debug(f"connect('{name}'): no privileged listener, port born disconnected")
            return own_end
        privileged_end = LocalPort(name)
        own_end._link(privileged_end)
        self._privileged_ports.add(privileged_end)
        for handler in list(self._connect_handlers):
            call_handler(handler, privileged_end, label="connect handler")
        return own_end

    async def send_message(self, message: Any) -> Any:
        if not self._message_handlers:
            raise ReceivingEndMissing()
        cloned = structured_clone(message)
        await asyncio.sleep(0)
        result = None
        for handler in list(self._message_handlers):
            try:
                value = handler(cloned)
                if inspect.isawaitable(value):
                    value = await value
            except Exception:
                logger.exception("Unhandled error in one-shot message handler")
                continue
            if result is None and value is not None:
                result = value
        return structured_clone(result)

    def on_connect(self, handler: ConnectHandler) -> Remover:
        self._connect_handlers.append(handler)
        return _remover(self._connect_handlers, handler)

    def on_message(self, handler: OneShotHandler) -> Remover:
        self._message_handlers.append(handler)
        return _remover(self._message_handlers, handler)

    async def broadcast(self, message: Any) -> int:
        delivered = 0
        for port in list(self._privileged_ports):
            if not port.connected:
                self._privileged_ports.discard(port)
                continue
            try:
                await port.post_message(message)
            except PortDisconnectedError:
                self._privileged_ports.discard(port)
                continue
            delivered += 1
        return delivered

    def suspend(self) -> None:
        """Unload the privileged context the way an idle host would."""
        ports = list(self._privileged_ports)
        for port in ports:
            port.disconnect()
        self._privileged_ports.clear()
        self._connect_handlers.clear()
        self._message_handlers.clear()
        logger.info(f"Privileged context suspended ({len(ports)} ports dropped)")
