"""Privileged request dispatch.

Routes origin-tagged page requests and wallet requests arriving through the
intercom server to the registered capabilities.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from xtwallet.background.capabilities import CapabilitySet
from xtwallet.intercom.server import IntercomServer
from xtwallet.intercom.transport.base import Port, Remover
from xtwallet.intercom.types import PING, PONG, XTMessageType


class Dispatcher:
    """Answers requests for one :class:`IntercomServer` from a :class:`CapabilitySet`."""

    def __init__(self, server: IntercomServer, capabilities: CapabilitySet):
        self.server = server
        self.capabilities = capabilities
        self._remove: Remover | None = server.on_request(self.process_request)

    async def process_request(self, req: Any, port: Port) -> dict[str, Any] | None:
        """Return the response payload, or None when this dispatcher does not handle ``req``."""
        if not isinstance(req, dict):
            return None
        request_type = req.get("type")

        if request_type == XTMessageType.PAGE_REQUEST.value:
            return await self._process_page_request(req)

        entry = self.capabilities.get(request_type)
        if entry is None:
            return None
        result = await entry.handler(req, port)
        if isinstance(result, dict):
            return {**result, "type": entry.response_type}
        if result is None:
            return {"type": entry.response_type}
        return {"type": entry.response_type, "payload": result}

    async def _process_page_request(self, req: dict[str, Any]) -> dict[str, Any] | None:
        if not await self.capabilities.dapp_enabled():
            logger.debug(f"dApp access disabled; page request from {req.get('origin')!r} not handled")
            return None
        payload = req.get("payload")
        if payload == PING:
            return {"type": XTMessageType.PAGE_RESPONSE.value, "payload": PONG}
        origin = req.get("origin")
        if not isinstance(origin, str) or not origin:
            # Only the relay sets the origin; a request without one did not come through it.
            logger.warning("Page request without origin rejected")
            return None
        result = await self.capabilities.process_dapp(origin, payload)
        return {"type": XTMessageType.PAGE_RESPONSE.value, "payload": result}

    def close(self) -> None:
        if self._remove is not None:
            self._remove()
            self._remove = None
