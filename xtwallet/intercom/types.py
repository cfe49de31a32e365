"""Intercom wire format: message kinds shared by every execution context.

Request, Response and Error messages are correlated through ``reqId``;
subscription messages (notifications) carry only ``data`` and are broadcast.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError


class MessageType(str, Enum):
    """Intercom message kinds."""

    REQUEST = "INTERCOM_REQUEST"
    RESPONSE = "INTERCOM_RESPONSE"
    ERROR = "INTERCOM_ERROR"
    NOTIFICATION = "INTERCOM_SUBSCRIPTION"


class PageMessageType(str, Enum):
    """Kinds exchanged with the untrusted page via window messages."""

    REQUEST = "SIGNUM_PAGE_REQUEST"
    RESPONSE = "SIGNUM_PAGE_RESPONSE"
    ERROR_RESPONSE = "SIGNUM_PAGE_ERROR_RESPONSE"


class XTMessageType(str, Enum):
    """Payload vocabulary understood by the privileged context."""

    # Notifications
    STATE_UPDATED = "XT_STATE_UPDATED"
    CONFIRMATION_REQUESTED = "XT_CONFIRMATION_REQUESTED"
    CONFIRMATION_EXPIRED = "XT_CONFIRMATION_EXPIRED"

    # dApp notifications
    DAPP_NETWORK_CHANGED = "XT_DAPP_NETWORK_CHANGED"
    DAPP_PERMISSION_REMOVED = "XT_DAPP_PERMISSION_REMOVED"
    DAPP_ACCOUNT_CHANGED = "XT_DAPP_ACCOUNT_CHANGED"
    DAPP_ACCOUNT_REMOVED = "XT_DAPP_ACCOUNT_REMOVED"

    # Request-response pairs
    GET_STATE_REQUEST = "XT_GET_STATE_REQUEST"
    GET_STATE_RESPONSE = "XT_GET_STATE_RESPONSE"
    UNLOCK_REQUEST = "XT_UNLOCK_REQUEST"
    UNLOCK_RESPONSE = "XT_UNLOCK_RESPONSE"
    LOCK_REQUEST = "XT_LOCK_REQUEST"
    LOCK_RESPONSE = "XT_LOCK_RESPONSE"
    SIGN_REQUEST = "XT_SIGN_REQUEST"
    SIGN_RESPONSE = "XT_SIGN_RESPONSE"
    CONFIRMATION_REQUEST = "XT_CONFIRMATION_REQUEST"
    CONFIRMATION_RESPONSE = "XT_CONFIRMATION_RESPONSE"
    DAPP_GET_ALL_SESSIONS_REQUEST = "XT_DAPP_GET_ALL_SESSIONS_REQUEST"
    DAPP_GET_ALL_SESSIONS_RESPONSE = "XT_DAPP_GET_ALL_SESSIONS_RESPONSE"
    DAPP_REMOVE_SESSION_REQUEST = "XT_DAPP_REMOVE_SESSION_REQUEST"
    DAPP_REMOVE_SESSION_RESPONSE = "XT_DAPP_REMOVE_SESSION_RESPONSE"
    PAGE_REQUEST = "PAGE_REQUEST"
    PAGE_RESPONSE = "PAGE_RESPONSE"


# Notification kinds a relay may hand to page code. Everything else is internal.
DAPP_NOTIFICATION_TYPES: frozenset[str] = frozenset(
    {
        XTMessageType.DAPP_NETWORK_CHANGED.value,
        XTMessageType.DAPP_PERMISSION_REMOVED.value,
        XTMessageType.DAPP_ACCOUNT_CHANGED.value,
        XTMessageType.DAPP_ACCOUNT_REMOVED.value,
    }
)

# One-shot message used only to reset the host's idle-suspend clock.
WAKEUP = "wakeup"

# Connection probe payload carried inside a PAGE_REQUEST.
PING = "PING"
PONG = "PONG"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    data: Any = None


class RequestMessage(_WireModel):
    type: Literal["INTERCOM_REQUEST"] = "INTERCOM_REQUEST"
    req_id: int = Field(alias="reqId")


class ResponseMessage(_WireModel):
    type: Literal["INTERCOM_RESPONSE"] = "INTERCOM_RESPONSE"
    req_id: int = Field(alias="reqId")


class ErrorMessage(_WireModel):
    type: Literal["INTERCOM_ERROR"] = "INTERCOM_ERROR"
    req_id: int = Field(alias="reqId")


class NotificationMessage(_WireModel):
    type: Literal["INTERCOM_SUBSCRIPTION"] = "INTERCOM_SUBSCRIPTION"


IntercomMessage = Annotated[
    Union[RequestMessage, ResponseMessage, ErrorMessage, NotificationMessage],
    Field(discriminator="type"),
]

_message_adapter: TypeAdapter[IntercomMessage] = TypeAdapter(IntercomMessage)


def parse_message(raw: Any) -> RequestMessage | ResponseMessage | ErrorMessage | NotificationMessage | None:
    """Validate an inbound intercom frame. Malformed input yields None."""
    if not isinstance(raw, dict):
        return None
    try:
        return _message_adapter.validate_python(raw)
    except ValidationError:
        return None


def dump_message(message: _WireModel) -> dict[str, Any]:
    """Wire representation with camelCase keys. The transport clones the result."""
    return message.model_dump(by_alias=True)


class PageMessage(BaseModel):
    """Frame exchanged with page code over window messages."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", use_enum_values=True)

    type: PageMessageType
    payload: Any = None
    req_id: str | int | None = Field(default=None, alias="reqId")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def parse_page_message(raw: Any) -> PageMessage | None:
    if not isinstance(raw, dict):
        return None
    try:
        return PageMessage.model_validate(raw)
    except ValidationError:
        return None
