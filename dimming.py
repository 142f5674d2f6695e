"""
Dimming strategies.

Some devices ramp brightness on their own once told ``dim=up|down`` and stop
on ``dim=stop``. For the others the ramp is driven from here: a repeating
timer nudges the brightness by a fixed step until the button is released or
a clamp boundary is reached.
"""

import asyncio
import logging
from typing import Callable, Optional, Set

from background import cancel_all, spawn
from constants import DIM_MODE_STEP
from models import DimDirection, DimmerTiming, LightStatus
from shelly_client import ShellyLightClient

logger = logging.getLogger(__name__)


class DimmingDriver:
    """Starts and stops a brightness ramp for one binding."""

    def __init__(self, client: ShellyLightClient, timing: DimmerTiming, owner: str = ""):
        self.client = client
        self.timing = timing
        self.owner = owner

    async def start(
        self,
        direction: DimDirection,
        status: LightStatus,
        on_exhausted: Callable[[], None],
    ) -> None:
        raise NotImplementedError

    async def stop(self) -> None:
        """Stop the ramp in response to a button release."""
        raise NotImplementedError

    def cancel(self) -> None:
        """Drop any local ramp state. Safe to call repeatedly."""

    def shutdown(self) -> None:
        self.cancel()


class DeviceRampDriver(DimmingDriver):
    """The device ramps by itself until told to stop."""

    async def start(self, direction, status, on_exhausted):
        await self.client.dim(direction, self.timing.ramp_step)

    async def stop(self):
        await self.client.dim(DimDirection.STOP)


class StepLoopDriver(DimmingDriver):
    """Client-driven ramp: one ``set_brightness`` per tick."""

    def __init__(self, client: ShellyLightClient, timing: DimmerTiming, owner: str = ""):
        super().__init__(client, timing, owner)
        self._timer: Optional[asyncio.TimerHandle] = None
        self._request: Optional[asyncio.Task] = None
        self._tasks: Set[asyncio.Task] = set()
        self._direction = DimDirection.STOP
        self._status: Optional[LightStatus] = None
        self._on_exhausted: Optional[Callable[[], None]] = None

    async def start(self, direction, status, on_exhausted):
        self.cancel()
        self._direction = DimDirection(direction)
        self._status = status
        self._on_exhausted = on_exhausted
        self._schedule()

    async def stop(self):
        self.cancel()

    def cancel(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._direction = DimDirection.STOP

    def shutdown(self) -> None:
        self.cancel()
        cancel_all(self._tasks)

    def _schedule(self) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.timing.update_interval_ms / 1000.0, self._tick)

    def next_brightness(self, current: int) -> int:
        if self._direction is DimDirection.UP:
            target = current + self.timing.dimmer_step
        elif self._direction is DimDirection.DOWN:
            target = current - self.timing.dimmer_step
        else:
            return current
        return max(self.timing.minimum_brightness, min(100, target))

    def _tick(self) -> None:
        self._timer = None
        if self._direction is DimDirection.STOP or self._status is None:
            return

        # previous step still in flight: skip this tick
        if self._request is not None and not self._request.done():
            self._schedule()
            return

        previous = self._status.brightness
        brightness = self.next_brightness(previous)
        if brightness == previous:
            logger.debug(f"[{self.owner}] Brightness limit {brightness} reached, stopping ramp")
            self._direction = DimDirection.STOP
            if self._on_exhausted is not None:
                self._on_exhausted()
            return

        self._status.brightness = brightness
        self._request = spawn(
            self.client.set_brightness(brightness),
            self._tasks,
            f"set brightness to {brightness}",
            self.owner,
        )
        self._schedule()


def make_driver(dim_mode: str, client: ShellyLightClient, timing: DimmerTiming, owner: str = "") -> DimmingDriver:
    if dim_mode == DIM_MODE_STEP:
        return StepLoopDriver(client, timing, owner)
    return DeviceRampDriver(client, timing, owner)
