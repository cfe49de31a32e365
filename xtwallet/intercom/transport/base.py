"""Transport interface.

The intercom needs very little from the host: named duplex ports between a
context and the privileged context, one-shot messages, and a one-to-many
broadcast from the privileged side to every connected port.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable

from xtwallet.utils.exceptions import ErrorCategory, XTWalletError

MessageHandler = Callable[[Any], Any]
DisconnectHandler = Callable[[], Any]
ConnectHandler = Callable[["Port"], Any]
OneShotHandler = Callable[[Any], Any]
Remover = Callable[[], None]


class TransportError(XTWalletError):
    """Base class for all transport-layer errors."""

    def __init__(self, message: str, code: str = "TRANSPORT_ERROR"):
        super().__init__(message, code=code, category=ErrorCategory.UNAVAILABLE)


class PortDisconnectedError(TransportError):
    """The port (or the context on its other end) is gone."""

    def __init__(self, message: str = "Attempting to use a disconnected port"):
        super().__init__(message, code="PORT_DISCONNECTED")


class ReceivingEndMissing(TransportError):
    """A one-shot message found no listener in the privileged context."""

    def __init__(self, message: str = "Could not establish connection. Receiving end does not exist."):
        super().__init__(message, code="RECEIVING_END_MISSING")


class Port(ABC):
    """One end of a duplex, structural-copy channel."""

    name: str = ""

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether messages can still be posted."""

    @abstractmethod
    async def post_message(self, message: Any) -> None:
        """Send a message to the other end."""

    @abstractmethod
    def on_message(self, handler: MessageHandler) -> Remover:
        """Register an inbound-message handler; returns its remover."""

    @abstractmethod
    def on_disconnect(self, handler: DisconnectHandler) -> Remover:
        """Register a handler fired once when the other end goes away."""

    @abstractmethod
    def disconnect(self) -> None:
        """Close this end. Idempotent."""


class Runtime(ABC):
    """Host messaging surface shared by every context of one extension."""

    @property
    @abstractmethod
    def manifest_version(self) -> int:
        """Host liveness model: 3 means the privileged context is ephemeral."""

    # Non-privileged side

    @abstractmethod
    def connect(self, name: str = "") -> Port:
        """Open a port to the privileged context."""

    @abstractmethod
    async def send_message(self, message: Any) -> Any:
        """One-shot message to the privileged context; returns its reply."""

    # Privileged side

    @abstractmethod
    def on_connect(self, handler: ConnectHandler) -> Remover:
        """Register a handler for newly connected ports."""

    @abstractmethod
    def on_message(self, handler: OneShotHandler) -> Remover:
        """Register a one-shot message listener."""

    @abstractmethod
    async def broadcast(self, message: Any) -> int:
        """Deliver to every connected port. Returns how many received it."""
