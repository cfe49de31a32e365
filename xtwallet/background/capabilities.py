"""External capability surface of the privileged context.

Wallet operations (signing, state, permissions) live outside the bus. The
dispatcher only knows them as async callables registered against a request
type; each returns a result mapping or raises.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from loguru import logger

from xtwallet.intercom.transport.base import Port

Capability = Callable[[dict[str, Any], Port], Awaitable[Any]]
DAppProcessor = Callable[[str, Any], Awaitable[Any]]
Gate = Callable[[], Any]


@dataclass
class CapabilityEntry:
    request_type: str
    response_type: str
    handler: Capability


async def _always_enabled() -> bool:
    return True


class CapabilitySet:
    """Request-type keyed registry of wallet operations."""

    def __init__(
        self,
        *,
        dapp_enabled: Gate | None = None,
        process_dapp: DAppProcessor | None = None,
    ):
        self._entries: dict[str, CapabilityEntry] = {}
        self._dapp_enabled: Gate = dapp_enabled or _always_enabled
        self._process_dapp = process_dapp

    def register(self, request_type: str, response_type: str, handler: Capability) -> None:
        if request_type in self._entries:
            logger.warning(f"Capability for {request_type} replaced")
        self._entries[request_type] = CapabilityEntry(request_type, response_type, handler)

    def unregister(self, request_type: str) -> None:
        self._entries.pop(request_type, None)

    def get(self, request_type: Any) -> CapabilityEntry | None:
        if not isinstance(request_type, str):
            return None
        return self._entries.get(request_type)

    def __contains__(self, request_type: object) -> bool:
        return request_type in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def dapp_enabled(self) -> bool:
        result = self._dapp_enabled()
        if inspect.isawaitable(result):
            result = await result
        return bool(result)

    async def process_dapp(self, origin: str, payload: Any) -> Any:
        """Run a page request for ``origin``. Without a processor nothing answers."""
        if self._process_dapp is None:
            return None
        return await self._process_dapp(origin, payload)
