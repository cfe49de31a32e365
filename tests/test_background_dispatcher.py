"""Tests for privileged dispatch, confirmations and notifications."""

import asyncio

import pytest

from xtwallet.background.capabilities import CapabilitySet
from xtwallet.background.confirmations import ConfirmationDeclined, request_confirmation
from xtwallet.background.dispatcher import Dispatcher
from xtwallet.background.notifications import (
    notify_account_changed,
    notify_account_removed,
    notify_network_changed,
    notify_permission_removed,
    notify_state_updated,
)
from xtwallet.intercom.client import IntercomClient
from xtwallet.intercom.errors import IntercomError
from xtwallet.intercom.server import IntercomServer
from xtwallet.intercom.transport.memory import LocalRuntime


@pytest.fixture
def capabilities():
    return CapabilitySet()


@pytest.fixture
def dispatcher(server, capabilities):
    d = Dispatcher(server, capabilities)
    yield d
    d.close()


@pytest.mark.asyncio
async def test_page_ping_answers_pong(runtime, dispatcher):
    client = IntercomClient(runtime)
    assert await client.request({"type": "PAGE_REQUEST", "payload": "PING"}) == {
        "type": "PAGE_RESPONSE",
        "payload": "PONG",
    }


@pytest.mark.asyncio
async def test_page_request_without_processor_answers_null_payload(runtime, dispatcher):
    client = IntercomClient(runtime)
    reply = await client.request({"type": "PAGE_REQUEST", "origin": "https://a.example", "payload": {"type": "x"}})
    assert reply == {"type": "PAGE_RESPONSE", "payload": None}


@pytest.mark.asyncio
async def test_page_request_without_origin_is_refused(runtime, dispatcher):
    client = IntercomClient(runtime)
    with pytest.raises(IntercomError, match="Unsupported request"):
        await client.request({"type": "PAGE_REQUEST", "payload": {"type": "x"}})


@pytest.mark.asyncio
async def test_registered_capability_gets_response_type(runtime, dispatcher, capabilities):
    seen_ports = []

    async def get_state(req, port):
        seen_ports.append(port)
        return {"state": {"locked": True}, "type": "spoofed"}

    capabilities.register("XT_GET_STATE_REQUEST", "XT_GET_STATE_RESPONSE", get_state)
    client = IntercomClient(runtime)
    reply = await client.request({"type": "XT_GET_STATE_REQUEST"})
    assert reply == {"type": "XT_GET_STATE_RESPONSE", "state": {"locked": True}}
    assert len(seen_ports) == 1


@pytest.mark.asyncio
async def test_capability_results_are_normalised(runtime, dispatcher, capabilities):
    async def lock(req, port):
        return None

    async def count(req, port):
        return 3

    capabilities.register("XT_LOCK_REQUEST", "XT_LOCK_RESPONSE", lock)
    capabilities.register("XT_COUNT_REQUEST", "XT_COUNT_RESPONSE", count)
    client = IntercomClient(runtime)
    assert await client.request({"type": "XT_LOCK_REQUEST"}) == {"type": "XT_LOCK_RESPONSE"}
    assert await client.request({"type": "XT_COUNT_REQUEST"}) == {"type": "XT_COUNT_RESPONSE", "payload": 3}


@pytest.mark.asyncio
async def test_capability_exception_reaches_caller_as_message(runtime, dispatcher, capabilities):
    async def unlock(req, port):
        raise ValueError("Invalid password")

    capabilities.register("XT_UNLOCK_REQUEST", "XT_UNLOCK_RESPONSE", unlock)
    client = IntercomClient(runtime)
    with pytest.raises(IntercomError, match="Invalid password"):
        await client.request({"type": "XT_UNLOCK_REQUEST", "password": "x"})


@pytest.mark.asyncio
async def test_unknown_request_type_is_unsupported(runtime, dispatcher):
    client = IntercomClient(runtime)
    with pytest.raises(IntercomError, match="Unsupported request: XT_NOPE"):
        await client.request({"type": "XT_NOPE"})


@pytest.mark.asyncio
async def test_async_dapp_gate(runtime, server):
    enabled = {"value": False}

    async def gate():
        return enabled["value"]

    Dispatcher(server, CapabilitySet(dapp_enabled=gate))
    client = IntercomClient(runtime)
    with pytest.raises(IntercomError):
        await client.request({"type": "PAGE_REQUEST", "payload": "PING"})
    enabled["value"] = True
    assert (await client.request({"type": "PAGE_REQUEST", "payload": "PING"}))["payload"] == "PONG"


@pytest.mark.asyncio
async def test_notifications_have_wire_shapes(runtime, server, drain):
    client = IntercomClient(runtime)
    notes = []
    client.subscribe(notes.append)
    await drain()

    assert await notify_network_changed(server, "Signum", "https://europe.signum.network") == 1
    await notify_permission_removed(server, "https://a.example")
    await notify_account_changed(server, "123")
    await notify_account_removed(server, "456")
    await notify_state_updated(server)
    await drain()

    assert notes == [
        {"type": "XT_DAPP_NETWORK_CHANGED", "networkName": "Signum", "networkHost": "https://europe.signum.network"},
        {"type": "XT_DAPP_PERMISSION_REMOVED", "url": "https://a.example"},
        {"type": "XT_DAPP_ACCOUNT_CHANGED", "accountId": "123"},
        {"type": "XT_DAPP_ACCOUNT_REMOVED", "accountId": "456"},
        {"type": "XT_STATE_UPDATED"},
    ]


@pytest.mark.asyncio
async def test_notification_with_nobody_listening():
    server = IntercomServer(LocalRuntime())
    assert await notify_network_changed(server, "Signum", "https://europe.signum.network") == 0


async def _ui_with_port(runtime, server):
    """A wallet UI client plus the server-side port it is connected through."""
    ports = []
    remove = server.on_request(lambda req, port: ports.append(port) or {"type": "HELLO"} if req == "hello" else None)
    ui = IntercomClient(runtime, name="popup")
    await ui.request("hello")
    remove()
    return ui, ports[0]


@pytest.mark.asyncio
async def test_confirmation_accepted_by_the_prompted_context(runtime, server, drain):
    ui, port = await _ui_with_port(runtime, server)
    prompts = []
    ui.subscribe(prompts.append)

    pending = asyncio.ensure_future(request_confirmation(server, port, "c1", {"type": "sign"}))
    await drain()
    assert prompts == [{"type": "XT_CONFIRMATION_REQUESTED", "id": "c1", "payload": {"type": "sign"}}]

    reply = await ui.request({"type": "XT_CONFIRMATION_REQUEST", "id": "c1", "confirmed": True, "fee": 2})
    assert reply == {"type": "XT_CONFIRMATION_RESPONSE"}
    decision = await pending
    assert decision["fee"] == 2
    await drain()
    assert prompts[-1] == {"type": "XT_CONFIRMATION_EXPIRED", "id": "c1"}


@pytest.mark.asyncio
async def test_confirmation_declined(runtime, server, drain):
    ui, port = await _ui_with_port(runtime, server)
    pending = asyncio.ensure_future(request_confirmation(server, port, "c2", {}))
    await drain()
    await ui.request({"type": "XT_CONFIRMATION_REQUEST", "id": "c2", "confirmed": False})
    with pytest.raises(ConfirmationDeclined, match="Declined"):
        await pending


@pytest.mark.asyncio
async def test_confirmation_from_another_context_is_ignored(runtime, server, drain):
    ui, port = await _ui_with_port(runtime, server)
    intruder = IntercomClient(runtime, name="other")
    pending = asyncio.ensure_future(request_confirmation(server, port, "c3", {}, timeout=0.1))
    await drain()
    with pytest.raises(IntercomError, match="Unsupported request"):
        await intruder.request({"type": "XT_CONFIRMATION_REQUEST", "id": "c3", "confirmed": True})
    with pytest.raises(ConfirmationDeclined):
        await pending


@pytest.mark.asyncio
async def test_confirmation_declined_when_context_closes(runtime, server, drain):
    ui, port = await _ui_with_port(runtime, server)
    pending = asyncio.ensure_future(request_confirmation(server, port, "c4", {}))
    await drain()
    ui.destroy()
    with pytest.raises(ConfirmationDeclined):
        await pending


@pytest.mark.asyncio
async def test_confirmation_for_gone_context_declines_at_once(runtime, server, drain):
    ui, port = await _ui_with_port(runtime, server)
    ui.destroy()
    await drain()

    loop = asyncio.get_running_loop()
    started = loop.time()
    with pytest.raises(ConfirmationDeclined):
        await request_confirmation(server, port, "c5", {}, timeout=5.0)
    assert loop.time() - started < 1.0
    assert port not in server._disconnect_callbacks
