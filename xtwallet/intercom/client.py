"""Correlation client: issues requests over one port and matches the replies.

Every non-privileged context owns exactly one client. Requests are tracked in
a private pending map keyed by a per-instance counter; responses may arrive
in any order. Notifications fan out to every subscribed listener.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from loguru import logger

from xtwallet.intercom.errors import ChannelUnavailable, ClientClosed, RequestTimeout, deserialize_error
from xtwallet.intercom.transport.base import Port, Runtime, TransportError
from xtwallet.intercom.types import (
    ErrorMessage,
    NotificationMessage,
    RequestMessage,
    ResponseMessage,
    dump_message,
    parse_message,
)
from xtwallet.utils.exceptions import DataCloneError
from xtwallet.utils.helpers import call_handler

NotificationListener = Callable[[Any], Any]

# Correlation ids wrap here; live ids are skipped on reuse.
_MAX_REQ_ID = 0xFFFFFFFF

_UNSET: Any = object()


@dataclass
class PendingRequest:
    req_id: int
    future: asyncio.Future
    created_at: float = field(default_factory=time.time)


class IntercomClient:
    """Request/response and notification endpoint of a non-privileged context."""

    def __init__(self, runtime: Runtime, *, name: str = "", request_timeout: float | None = None):
        self.name = name
        self.request_timeout = request_timeout
        self._port: Port = runtime.connect(name)
        self._req_ids = itertools.count(0)
        self._pending: dict[int, PendingRequest] = {}
        self._listeners: list[NotificationListener] = []
        self._closed = False
        self._port_lost = False
        self._retiring = False
        self._removers = [
            self._port.on_message(self._handle_message),
            self._port.on_disconnect(self._handle_port_lost),
        ]
        logger.debug(f"Intercom client '{name}' created")

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def port_lost(self) -> bool:
        """True once the privileged context behind the port went away."""
        return self._port_lost

    def _next_req_id(self) -> int:
        while True:
            req_id = next(self._req_ids)
            if req_id > _MAX_REQ_ID:
                self._req_ids = itertools.count(0)
                continue
            if req_id not in self._pending:
                return req_id

    async def request(self, data: Any, *, timeout: float | None = _UNSET) -> Any:
        """
        Send a request to the privileged context and wait for its reply.

        Args:
            data: Structural-copy-safe request payload.
            timeout: Seconds to wait; defaults to the client's request_timeout.
                None waits until a reply arrives or the client is torn down.

        Returns:
            The response payload.

        Raises:
            IntercomError: the privileged side answered with an error.
            ChannelUnavailable: the transport could not take the request.
            ClientClosed: the client was destroyed while waiting.
            RequestTimeout: the deadline passed first.
        """
        if self._closed or self._retiring:
            raise ClientClosed()
        if timeout is _UNSET:
            timeout = self.request_timeout

        req_id = self._next_req_id()
        pending = PendingRequest(req_id=req_id, future=asyncio.get_running_loop().create_future())
        self._pending[req_id] = pending

        if self._port_lost:
            self._reject(req_id, ChannelUnavailable("Connection to the privileged context was lost"))
        else:
            try:
                await self._port.post_message(dump_message(RequestMessage(req_id=req_id, data=data)))
            except (TransportError, DataCloneError) as e:
                logger.debug(f"Intercom request {req_id} could not be sent: {e}")
                self._reject(req_id, ChannelUnavailable(str(e.message)))

        try:
            if timeout is None:
                return await pending.future
            return await asyncio.wait_for(asyncio.shield(pending.future), timeout)
        except asyncio.TimeoutError:
            raise RequestTimeout(req_id, timeout) from None
        finally:
            if self._pending.get(req_id) is pending:
                del self._pending[req_id]
            if self._retiring and not self._pending:
                self.destroy()

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        """Register a notification listener; returns its unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _reject(self, req_id: int, error: BaseException) -> None:
        pending = self._pending.pop(req_id, None)
        if pending is not None and not pending.future.done():
            pending.future.set_exception(error)

    def _handle_message(self, raw: Any) -> None:
        message = parse_message(raw)
        if message is None:
            logger.debug(f"Intercom client '{self.name}': dropping malformed message")
            return

        if isinstance(message, (ResponseMessage, ErrorMessage)):
            pending = self._pending.pop(message.req_id, None)
            if pending is None or pending.future.done():
                # Stale or duplicate delivery.
                return
            if isinstance(message, ResponseMessage):
                pending.future.set_result(message.data)
            else:
                pending.future.set_exception(deserialize_error(message.data))
            return

        if isinstance(message, NotificationMessage):
            for listener in list(self._listeners):
                call_handler(listener, message.data, label="intercom notification listener")

    def _handle_port_lost(self) -> None:
        if self._closed:
            return
        self._port_lost = True
        logger.info(f"Intercom client '{self.name}': privileged context went away ({len(self._pending)} pending)")
        for req_id in list(self._pending):
            self._reject(req_id, ChannelUnavailable("Connection to the privileged context was lost"))

    def close_when_idle(self) -> None:
        """
        Refuse new requests and destroy the client once every pending one settles.

        Requests already in flight keep waiting for their own replies.
        """
        if self._closed:
            return
        self._retiring = True
        if not self._pending:
            self.destroy()

    def destroy(self) -> None:
        """Tear down: reject everything still pending and release the port. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for req_id in list(self._pending):
            self._reject(req_id, ClientClosed())
        self._listeners.clear()
        for remove in self._removers:
            remove()
        self._removers.clear()
        self._port.disconnect()
        logger.debug(f"Intercom client '{self.name}' destroyed")
