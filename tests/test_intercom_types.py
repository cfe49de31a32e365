"""Tests for the intercom wire format."""

from xtwallet.intercom.types import (
    DAPP_NOTIFICATION_TYPES,
    ErrorMessage,
    NotificationMessage,
    PageMessage,
    PageMessageType,
    RequestMessage,
    ResponseMessage,
    XTMessageType,
    dump_message,
    parse_message,
    parse_page_message,
)


def test_request_dumps_with_camel_case_req_id():
    wire = dump_message(RequestMessage(req_id=7, data={"type": "X"}))
    assert wire == {"type": "INTERCOM_REQUEST", "reqId": 7, "data": {"type": "X"}}


def test_parse_message_discriminates_on_type():
    assert isinstance(parse_message({"type": "INTERCOM_REQUEST", "reqId": 1, "data": "ping"}), RequestMessage)
    assert isinstance(parse_message({"type": "INTERCOM_RESPONSE", "reqId": 1, "data": "pong"}), ResponseMessage)
    assert isinstance(parse_message({"type": "INTERCOM_ERROR", "reqId": 1, "data": "boom"}), ErrorMessage)
    note = parse_message({"type": "INTERCOM_SUBSCRIPTION", "data": {"type": "XT_STATE_UPDATED"}})
    assert isinstance(note, NotificationMessage)
    assert note.data == {"type": "XT_STATE_UPDATED"}


def test_parse_message_rejects_malformed_input_without_raising():
    assert parse_message(None) is None
    assert parse_message("INTERCOM_RESPONSE") is None
    assert parse_message({"type": "SOMETHING_ELSE", "reqId": 1}) is None
    # Correlated kinds need a correlation id.
    assert parse_message({"type": "INTERCOM_RESPONSE", "data": 1}) is None


def test_notification_has_no_req_id():
    wire = dump_message(NotificationMessage(data={"type": "XT_DAPP_ACCOUNT_CHANGED"}))
    assert "reqId" not in wire


def test_page_message_round_trips_page_token():
    msg = parse_page_message({"type": "SIGNUM_PAGE_REQUEST", "reqId": "abc-1", "payload": {"type": "x"}})
    assert msg is not None
    assert msg.type == PageMessageType.REQUEST.value
    wire = PageMessage(type=PageMessageType.RESPONSE, payload=1, req_id=msg.req_id).to_wire()
    assert wire == {"type": "SIGNUM_PAGE_RESPONSE", "payload": 1, "reqId": "abc-1"}


def test_parse_page_message_ignores_foreign_messages():
    assert parse_page_message({"type": "webpackOk"}) is None
    assert parse_page_message([1, 2]) is None


def test_allow_list_holds_only_dapp_notifications():
    assert DAPP_NOTIFICATION_TYPES == {
        "XT_DAPP_NETWORK_CHANGED",
        "XT_DAPP_PERMISSION_REMOVED",
        "XT_DAPP_ACCOUNT_CHANGED",
        "XT_DAPP_ACCOUNT_REMOVED",
    }
    assert XTMessageType.STATE_UPDATED.value not in DAPP_NOTIFICATION_TYPES
