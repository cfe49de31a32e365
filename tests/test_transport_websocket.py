"""Tests for the websocket transport (localhost only)."""

import asyncio

import pytest

from xtwallet.intercom.client import IntercomClient
from xtwallet.intercom.errors import ChannelUnavailable
from xtwallet.intercom.server import IntercomServer
from xtwallet.intercom.transport.base import ReceivingEndMissing
from xtwallet.intercom.transport.websocket import WebSocketRuntime, decode_frame, encode_frame
from xtwallet.utils.exceptions import DataCloneError

pytestmark = pytest.mark.network


async def _wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


def test_frames_are_json_objects():
    frame = encode_frame("port", message={"a": 1})
    assert decode_frame(frame) == {"kind": "port", "message": {"a": 1}}
    assert decode_frame(b'{"kind": "oneshot"}') == {"kind": "oneshot"}
    assert decode_frame("not json") is None
    assert decode_frame("[1]") is None
    with pytest.raises(DataCloneError):
        encode_frame("port", message=object())


@pytest.mark.asyncio
async def test_request_response_and_broadcast_over_websocket(free_port):
    host_runtime = WebSocketRuntime("127.0.0.1", free_port)
    server = IntercomServer(host_runtime)
    server.on_request(lambda req, port: {"echo": req})
    await host_runtime.serve()
    try:
        relay_runtime = WebSocketRuntime("127.0.0.1", free_port)
        client = IntercomClient(relay_runtime, name="relay")
        notes = []
        client.subscribe(notes.append)

        assert await client.request({"type": "PAGE_REQUEST", "payload": "PING"}) == {
            "echo": {"type": "PAGE_REQUEST", "payload": "PING"}
        }
        assert len(server.ports) == 1

        assert await server.broadcast({"type": "XT_DAPP_ACCOUNT_CHANGED", "accountId": "1"}) == 1
        await _wait_for(lambda: notes)
        assert notes == [{"type": "XT_DAPP_ACCOUNT_CHANGED", "accountId": "1"}]

        assert await relay_runtime.send_message("wakeup") is None

        client.destroy()
        await _wait_for(lambda: not server.ports)
    finally:
        server.close()
        await host_runtime.close()


@pytest.mark.asyncio
async def test_unreachable_host_surfaces_as_channel_errors(free_port):
    runtime = WebSocketRuntime("127.0.0.1", free_port)
    with pytest.raises(ReceivingEndMissing):
        await runtime.send_message("wakeup")
    client = IntercomClient(runtime)
    with pytest.raises(ChannelUnavailable):
        await client.request("ping")
    client.destroy()


@pytest.mark.asyncio
async def test_host_shutdown_rejects_pending_requests(free_port):
    host_runtime = WebSocketRuntime("127.0.0.1", free_port)
    server = IntercomServer(host_runtime)
    never = asyncio.Event()

    async def stall(req, port):
        await never.wait()

    server.on_request(stall)
    await host_runtime.serve()

    client = IntercomClient(WebSocketRuntime("127.0.0.1", free_port))
    pending = asyncio.ensure_future(client.request("stalls"))
    await _wait_for(lambda: server.ports)
    server.close()
    await host_runtime.close()

    with pytest.raises(ChannelUnavailable):
        await asyncio.wait_for(pending, 2.0)
    client.destroy()


@pytest.mark.asyncio
async def test_one_shot_handler_may_return_any_awaitable(free_port):
    host_runtime = WebSocketRuntime("127.0.0.1", free_port)

    def answer(message):
        reply = asyncio.get_running_loop().create_future()
        reply.set_result({"seen": message})
        return reply

    host_runtime.on_message(answer)
    await host_runtime.serve()
    try:
        sender = WebSocketRuntime("127.0.0.1", free_port)
        assert await sender.send_message("wakeup") == {"seen": "wakeup"}
    finally:
        await host_runtime.close()
