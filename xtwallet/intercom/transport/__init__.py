"""Transports the intercom can run over."""

from xtwallet.intercom.transport.base import (
    Port,
    PortDisconnectedError,
    ReceivingEndMissing,
    Runtime,
    TransportError,
)
from xtwallet.intercom.transport.memory import LocalPort, LocalRuntime
from xtwallet.intercom.transport.websocket import WebSocketRuntime

__all__ = [
    "Port",
    "Runtime",
    "TransportError",
    "PortDisconnectedError",
    "ReceivingEndMissing",
    "LocalPort",
    "LocalRuntime",
    "WebSocketRuntime",
]
