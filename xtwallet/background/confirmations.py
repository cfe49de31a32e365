"""Interactive confirmations routed to one specific wallet UI context.

The privileged side asks the context behind ``port`` to confirm an action,
then waits for that same context to answer with a matching
``XT_CONFIRMATION_REQUEST``. Losing the port or running out of time counts
as a decline. Either way the context is told the prompt expired.
"""

from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from xtwallet.intercom.errors import CapabilityFailure
from xtwallet.intercom.server import IntercomServer
from xtwallet.intercom.transport.base import Port
from xtwallet.intercom.types import XTMessageType

AUTODECLINE_AFTER_SECONDS = 60.0


class ConfirmationDeclined(CapabilityFailure):
    def __init__(self, message: str = "Declined"):
        super().__init__(message)


async def request_confirmation(
    server: IntercomServer,
    port: Port,
    confirmation_id: str,
    payload: Any,
    *,
    timeout: float = AUTODECLINE_AFTER_SECONDS,
) -> Any:
    """
    Ask the context behind ``port`` to confirm ``payload``.

    Returns the confirming request (so callers can read user edits such as
    a modified fee). Raises ConfirmationDeclined on decline, disconnect or
    timeout.
    """
    loop = asyncio.get_running_loop()
    decision: asyncio.Future[dict[str, Any]] = loop.create_future()

    def handle_request(req: Any, req_port: Port) -> dict[str, Any] | None:
        if req_port is not port or not isinstance(req, dict):
            return None
        if req.get("type") != XTMessageType.CONFIRMATION_REQUEST.value or req.get("id") != confirmation_id:
            return None
        if not decision.done():
            if req.get("confirmed"):
                decision.set_result(req)
            else:
                decision.set_exception(ConfirmationDeclined())
        return {"type": XTMessageType.CONFIRMATION_RESPONSE.value}

    def handle_disconnect() -> None:
        if not decision.done():
            decision.set_exception(ConfirmationDeclined())

    stop_request_listening = server.on_request(handle_request)
    stop_disconnect_listening = server.on_disconnect(port, handle_disconnect)
    try:
        delivered = await server.notify(
            port,
            {
                "type": XTMessageType.CONFIRMATION_REQUESTED.value,
                "id": confirmation_id,
                "payload": payload,
            },
        )
        if not delivered:
            logger.info(f"Confirmation {confirmation_id} declined: context '{port.name}' is gone")
            raise ConfirmationDeclined()
        try:
            return await asyncio.wait_for(asyncio.shield(decision), timeout)
        except asyncio.TimeoutError:
            logger.info(f"Confirmation {confirmation_id} auto-declined after {timeout}s")
            raise ConfirmationDeclined() from None
    finally:
        stop_request_listening()
        stop_disconnect_listening()
        if not decision.done():
            decision.cancel()
        elif not decision.cancelled():
            # Consume a decline that nobody awaited.
            decision.exception()
        await server.notify(port, {"type": XTMessageType.CONFIRMATION_EXPIRED.value, "id": confirmation_id})
