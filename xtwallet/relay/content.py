"""Relay between an untrusted page and the privileged context.

The relay runs alongside page code in the same window. It accepts page
requests only when they were posted by its own window, tags them with the
page's origin and forwards them over the intercom. Replies go back to the
exact origin that asked; allow-listed notifications go to the window's own
origin. Nothing is ever posted to ``"*"``.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Iterable

from loguru import logger

from xtwallet.config.schema import Config
from xtwallet.intercom.client import IntercomClient
from xtwallet.intercom.errors import serialize_error
from xtwallet.intercom.transport.base import Runtime
from xtwallet.intercom.types import (
    DAPP_NOTIFICATION_TYPES,
    PING,
    PageMessage,
    PageMessageType,
    XTMessageType,
    parse_page_message,
)
from xtwallet.liveness import DEFAULT_INTERVAL_SECONDS, KeepAlive
from xtwallet.relay.window import PageWindow, WindowMessageEvent


class ContentRelay:
    """Page-facing end of the bus for one window."""

    def __init__(
        self,
        window: PageWindow,
        runtime: Runtime,
        *,
        accepted_notifications: Iterable[str] = DAPP_NOTIFICATION_TYPES,
        request_timeout: float | None = None,
        keepalive_interval: float = DEFAULT_INTERVAL_SECONDS,
        keepalive_enabled: bool | None = None,
        name: str = "content",
    ):
        self.window = window
        self.runtime = runtime
        self.accepted_notifications = frozenset(accepted_notifications)
        self.request_timeout = request_timeout
        self.name = name
        self._intercom: IntercomClient | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._remove_listener: Callable[[], None] | None = None
        self._tasks: set[asyncio.Task] = set()
        # Dropped clients still waiting on in-flight page requests.
        self._retired: set[IntercomClient] = set()
        self.keepalive = KeepAlive(
            runtime,
            interval=keepalive_interval,
            enabled=keepalive_enabled,
            probe=self.test_connection,
        )

    @classmethod
    def from_config(cls, window: PageWindow, runtime: Runtime, config: Config) -> ContentRelay:
        """Build a relay from the intercom, keep-alive and relay config sections."""
        return cls(
            window,
            runtime,
            accepted_notifications=config.relay.accepted_notifications,
            request_timeout=config.intercom.request_timeout_seconds,
            keepalive_interval=config.keepalive.interval_seconds,
            keepalive_enabled=config.keepalive.enabled,
        )

    @property
    def intercom(self) -> IntercomClient | None:
        """The current lazily created client, if any."""
        return self._intercom

    def start(self) -> None:
        if self._remove_listener is not None:
            return
        self._remove_listener = self.window.add_event_listener(self._handle_window_message)
        self.keepalive.start()
        logger.debug(f"Relay attached to {self.window.origin}")

    def get_intercom(self) -> IntercomClient:
        """Return the relay's client, creating and subscribing it on first use."""
        if self._intercom is None:
            self._intercom = IntercomClient(self.runtime, name=self.name, request_timeout=self.request_timeout)
            self._unsubscribe = self._intercom.subscribe(self._handle_wallet_notification)
        return self._intercom

    async def test_connection(self) -> None:
        """
        Probe the privileged context with a page PING.

        On failure the client is dropped so the next request builds a fresh
        one against the restarted privileged context; the error is re-raised.
        Page requests already in flight on the dropped client still settle
        with their own replies.
        """
        intercom = self.get_intercom()
        try:
            await intercom.request({"type": XTMessageType.PAGE_REQUEST.value, "payload": PING})
        except Exception:
            if intercom is self._intercom:
                self._reset_intercom(graceful=not intercom.port_lost)
            raise

    def _reset_intercom(self, *, graceful: bool = False) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        intercom, self._intercom = self._intercom, None
        if intercom is None:
            return
        if graceful:
            intercom.close_when_idle()
            self._retired = {c for c in self._retired if not c.closed}
            if not intercom.closed:
                self._retired.add(intercom)
        else:
            intercom.destroy()
        logger.info("Relay intercom reset; next request reconnects")

    def _handle_window_message(self, event: WindowMessageEvent) -> None:
        if event.source is not self.window:
            return
        message = parse_page_message(event.data)
        if message is None or message.type != PageMessageType.REQUEST.value:
            return
        task = asyncio.ensure_future(self.wallet_request(event.origin, message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wallet_request(self, origin: str, message: PageMessage) -> None:
        """Forward one page request and post the outcome back to ``origin``."""
        try:
            result = await self.get_intercom().request(
                {
                    "type": XTMessageType.PAGE_REQUEST.value,
                    "origin": origin,
                    "payload": message.payload,
                }
            )
        except Exception as e:
            logger.debug(f"Page request from {origin} failed: {e}")
            self._send(
                PageMessage(type=PageMessageType.ERROR_RESPONSE, payload=serialize_error(e), req_id=message.req_id),
                origin,
            )
            return
        if isinstance(result, dict) and result.get("type") == XTMessageType.PAGE_RESPONSE.value:
            self._send(
                PageMessage(type=PageMessageType.RESPONSE, payload=result.get("payload"), req_id=message.req_id),
                origin,
            )

    def _send(self, message: PageMessage, target_origin: str) -> None:
        if not target_origin or target_origin == "*":
            logger.warning("Refusing to post a page reply without a concrete target origin")
            return
        self.window.post_message(message.to_wire(), target_origin)

    def _handle_wallet_notification(self, data: Any) -> None:
        if not isinstance(data, dict) or data.get("type") not in self.accepted_notifications:
            return
        self.window.post_message(data, self.window.origin)

    def destroy(self) -> None:
        """Detach from the window, stop the keep-alive and release the client."""
        self.keepalive.stop()
        if self._remove_listener is not None:
            self._remove_listener()
            self._remove_listener = None
        for task in list(self._tasks):
            task.cancel()
        self._reset_intercom()
        for intercom in list(self._retired):
            intercom.destroy()
        self._retired.clear()
