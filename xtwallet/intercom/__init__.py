"""Intercom: request/response and notification bus between execution contexts."""

from xtwallet.intercom.client import IntercomClient
from xtwallet.intercom.errors import (
    CapabilityFailure,
    ChannelUnavailable,
    ClientClosed,
    IntercomError,
    RequestTimeout,
    UnsupportedRequest,
    deserialize_error,
    serialize_error,
)
from xtwallet.intercom.server import IntercomServer
from xtwallet.intercom.types import (
    DAPP_NOTIFICATION_TYPES,
    WAKEUP,
    MessageType,
    PageMessageType,
    XTMessageType,
)

__all__ = [
    "IntercomClient",
    "IntercomServer",
    "IntercomError",
    "ChannelUnavailable",
    "ClientClosed",
    "CapabilityFailure",
    "RequestTimeout",
    "UnsupportedRequest",
    "serialize_error",
    "deserialize_error",
    "MessageType",
    "PageMessageType",
    "XTMessageType",
    "DAPP_NOTIFICATION_TYPES",
    "WAKEUP",
]
