"""Keep-alive for hosts that unload the privileged context when idle.

Under manifest v3 the privileged context is ephemeral: the host suspends it
after a short idle period. Every non-privileged context that talks to it
runs a :class:`KeepAlive`, which sends a one-shot ``wakeup`` message on a
fixed interval to reset the host's idle clock. Under the legacy persistent
model the controller never leaves the dormant state.
"""

from __future__ import annotations

import asyncio
import inspect
from enum import Enum
from typing import Any, Awaitable, Callable

from loguru import logger

from xtwallet.intercom.transport.base import Runtime
from xtwallet.intercom.types import WAKEUP

Probe = Callable[[], Awaitable[Any]]

DEFAULT_INTERVAL_SECONDS = 10.0


class LivenessState(str, Enum):
    DORMANT = "dormant"
    ACTIVE = "active"


def requires_keepalive(manifest_version: int) -> bool:
    """Only ephemeral privileged contexts need artificial liveness."""
    return manifest_version >= 3


class KeepAlive:
    """
    Periodic wakeup ping owned by one context.

    Args:
        runtime: Host runtime used for the one-shot ping.
        interval: Seconds between pings. Pings fire at a fixed rate; a slow
            or failing ping never shifts the schedule.
        enabled: Force the controller on or off. None follows the host's
            manifest version.
        probe: Optional extra check awaited after every ping (the relay
            uses it to test its intercom connection). Its failures are
            swallowed exactly like ping failures.
    """

    def __init__(
        self,
        runtime: Runtime,
        *,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        enabled: bool | None = None,
        probe: Probe | None = None,
    ):
        if interval <= 0:
            raise ValueError("keep-alive interval must be positive")
        self._runtime = runtime
        self.interval = interval
        self.enabled = requires_keepalive(runtime.manifest_version) if enabled is None else enabled
        self._probe = probe
        self._task: asyncio.Task | None = None
        self._stopped = False
        self.ticks = 0

    @property
    def state(self) -> LivenessState:
        if self._task is not None and not self._task.done():
            return LivenessState.ACTIVE
        return LivenessState.DORMANT

    def start(self) -> bool:
        """Enter the active state. Returns False when the controller stays dormant."""
        if self._stopped or self._task is not None:
            return self.state is LivenessState.ACTIVE
        if not self.enabled:
            logger.debug(f"Keep-alive dormant (manifest v{self._runtime.manifest_version})")
            return False
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.debug(f"Keep-alive started, interval {self.interval}s")
        return True

    def stop(self) -> None:
        """Cancel the timer. Safe to call any number of times, from any exit path."""
        if self._stopped:
            return
        self._stopped = True
        if self._task is not None:
            self._task.cancel()
            logger.debug(f"Keep-alive stopped after {self.ticks} ping(s)")

    async def __aenter__(self) -> "KeepAlive":
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.stop()
        if self._task is not None:
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time() + self.interval
        while True:
            await asyncio.sleep(max(0.0, next_at - loop.time()))
            await self.tick()
            next_at += self.interval
            now = loop.time()
            if next_at < now:
                # Missed slots are skipped, not replayed in a burst.
                missed = int((now - next_at) // self.interval) + 1
                next_at += missed * self.interval

    async def tick(self) -> None:
        """One ping (and probe). Never raises."""
        self.ticks += 1
        try:
            await asyncio.wait_for(self._runtime.send_message(WAKEUP), self.interval)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Keep-alive ping failed: {e}")
        if self._probe is None:
            return
        try:
            result = self._probe()
            if inspect.isawaitable(result):
                await asyncio.wait_for(result, self.interval)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.debug(f"Keep-alive probe failed: {e}")
