"""State-change notifications published by the privileged context.

All of these are fire-and-forget broadcasts: nobody acknowledges them and
having no connected context is not an error.
"""

from __future__ import annotations

from typing import Any

from xtwallet.intercom.server import IntercomServer
from xtwallet.intercom.types import XTMessageType


async def notify_dapps(server: IntercomServer, message: dict[str, Any]) -> int:
    return await server.broadcast(message)


async def notify_network_changed(server: IntercomServer, network_name: str, network_host: str) -> int:
    return await notify_dapps(
        server,
        {
            "type": XTMessageType.DAPP_NETWORK_CHANGED.value,
            "networkName": network_name,
            "networkHost": network_host,
        },
    )


async def notify_permission_removed(server: IntercomServer, url: str) -> int:
    return await notify_dapps(server, {"type": XTMessageType.DAPP_PERMISSION_REMOVED.value, "url": url})


async def notify_account_changed(server: IntercomServer, account_id: str) -> int:
    return await notify_dapps(server, {"type": XTMessageType.DAPP_ACCOUNT_CHANGED.value, "accountId": account_id})


async def notify_account_removed(server: IntercomServer, account_id: str) -> int:
    return await notify_dapps(server, {"type": XTMessageType.DAPP_ACCOUNT_REMOVED.value, "accountId": account_id})


async def notify_state_updated(server: IntercomServer) -> int:
    """Internal signal for wallet UI contexts; relays never forward it to pages."""
    return await server.broadcast({"type": XTMessageType.STATE_UPDATED.value})
