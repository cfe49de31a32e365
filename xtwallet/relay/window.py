"""Window message bus shared by page code and the relay.

Models the browser's ``window.postMessage``: every listener on a window sees
every message posted to it, tagged with the sender's origin and source
window. Delivery is structural-copy and asynchronous.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from xtwallet.utils.helpers import call_handler, structured_clone

WindowListener = Callable[["WindowMessageEvent"], Any]


@dataclass(frozen=True)
class WindowMessageEvent:
    data: Any
    origin: str
    source: Any


class PageWindow:
    """A top-level browsing context with a fixed origin."""

    def __init__(self, origin: str):
        self.origin = origin
        self._listeners: list[WindowListener] = []

    def add_event_listener(self, listener: WindowListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def post_message(
        self,
        data: Any,
        target_origin: str,
        *,
        source: Any = None,
        origin: str | None = None,
    ) -> bool:
        """
        Post ``data`` to this window.

        ``source`` and ``origin`` describe the sender and default to this
        window itself. Messages whose ``target_origin`` is neither ``"*"``
        nor this window's origin are dropped, as the browser does.
        """
        if target_origin != "*" and target_origin != self.origin:
            logger.debug(f"postMessage to {target_origin!r} dropped by window {self.origin!r}")
            return False
        event = WindowMessageEvent(
            data=structured_clone(data),
            origin=self.origin if origin is None else origin,
            source=self if source is None else source,
        )
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._dispatch(event)
        else:
            loop.call_soon(self._dispatch, event)
        return True

    def _dispatch(self, event: WindowMessageEvent) -> None:
        for listener in list(self._listeners):
            call_handler(listener, event, label=f"window {self.origin!r} message listener")
