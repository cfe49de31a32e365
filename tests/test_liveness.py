"""Tests for the keep-alive controller."""

import asyncio

import pytest

from xtwallet.intercom.client import IntercomClient
from xtwallet.intercom.transport.base import ReceivingEndMissing
from xtwallet.liveness import KeepAlive, LivenessState, requires_keepalive


class _FlakyRuntime:
    """Runtime stub whose one-shot fails on chosen calls and records call times."""

    manifest_version = 3

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls: list[float] = []
        self.messages: list = []

    async def send_message(self, message):
        self.calls.append(asyncio.get_running_loop().time())
        self.messages.append(message)
        if len(self.calls) in self.fail_on:
            raise ReceivingEndMissing()
        return None


async def _wait_ticks(keepalive, n, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while keepalive.ticks < n:
        assert loop.time() < deadline, "keep-alive stalled"
        await asyncio.sleep(0.005)


def test_manifest_v3_requires_keepalive():
    assert requires_keepalive(3)
    assert not requires_keepalive(2)


def test_invalid_interval_rejected(runtime):
    with pytest.raises(ValueError):
        KeepAlive(runtime, interval=0)


@pytest.mark.asyncio
async def test_legacy_host_stays_dormant(legacy_runtime):
    keepalive = KeepAlive(legacy_runtime, interval=0.01)
    assert keepalive.start() is False
    await asyncio.sleep(0.03)
    assert keepalive.state is LivenessState.DORMANT
    assert keepalive.ticks == 0
    keepalive.stop()


@pytest.mark.asyncio
async def test_pings_wakeup_on_interval():
    runtime = _FlakyRuntime()
    keepalive = KeepAlive(runtime, interval=0.02)
    assert keepalive.state is LivenessState.DORMANT
    assert keepalive.start()
    assert keepalive.state is LivenessState.ACTIVE
    await _wait_ticks(keepalive, 3)
    keepalive.stop()
    assert set(runtime.messages) == {"wakeup"}


@pytest.mark.asyncio
async def test_failed_ping_is_swallowed_and_schedule_holds():
    runtime = _FlakyRuntime(fail_on={1})
    keepalive = KeepAlive(runtime, interval=0.02)
    keepalive.start()
    await _wait_ticks(keepalive, 3)
    keepalive.stop()

    assert keepalive.ticks >= 3
    gaps = [b - a for a, b in zip(runtime.calls, runtime.calls[1:])]
    # The ping after the failure still fires about one interval later.
    assert 0.01 < gaps[0] < 0.06


@pytest.mark.asyncio
async def test_ping_failure_never_touches_in_flight_requests(runtime, server):
    server.on_request(lambda req, port: "pong" if req == "ping" else None)
    client = IntercomClient(runtime)

    async def broken_probe():
        raise RuntimeError("probe exploded")

    keepalive = KeepAlive(runtime, interval=0.01, probe=broken_probe)
    keepalive.start()
    await _wait_ticks(keepalive, 2)
    assert await client.request("ping") == "pong"
    keepalive.stop()


@pytest.mark.asyncio
async def test_stop_is_idempotent_and_final():
    runtime = _FlakyRuntime()
    keepalive = KeepAlive(runtime, interval=0.01)
    keepalive.start()
    await _wait_ticks(keepalive, 1)
    keepalive.stop()
    keepalive.stop()
    await asyncio.sleep(0.03)
    ticks = keepalive.ticks
    await asyncio.sleep(0.03)
    assert keepalive.ticks == ticks
    assert keepalive.state is LivenessState.DORMANT
    assert keepalive.start() is False


@pytest.mark.asyncio
async def test_context_manager_stops_on_exit():
    runtime = _FlakyRuntime()
    async with KeepAlive(runtime, interval=0.01) as keepalive:
        await _wait_ticks(keepalive, 1)
        assert keepalive.state is LivenessState.ACTIVE
    assert keepalive.state is LivenessState.DORMANT


@pytest.mark.asyncio
async def test_forced_enable_overrides_manifest(legacy_runtime):
    legacy_runtime.on_message(lambda msg: None)
    keepalive = KeepAlive(legacy_runtime, interval=0.01, enabled=True)
    assert keepalive.start()
    await _wait_ticks(keepalive, 1)
    keepalive.stop()
