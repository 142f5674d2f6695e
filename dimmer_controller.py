"""Per-binding state machine: short press toggles, long press dims."""

import asyncio
import enum
import logging
import time
from typing import Callable, Dict, FrozenSet, Optional, Set

from background import cancel_all, spawn
from dimming import DimmingDriver, make_driver
from errors import InvalidTransition
from models import Binding, DimDirection, LightAction, LightStatus
from shelly_client import ShellyLightClient

logger = logging.getLogger(__name__)


class State(str, enum.Enum):
    IDLE = "IDLE"
    FETCHING_STATUS = "FETCHING_STATUS"
    AWAITING_LONG_PRESS = "AWAITING_LONG_PRESS"
    ENSURING_ON = "ENSURING_ON"
    DIMMING = "DIMMING"


# Allowed transitions; anything else is ignored.
TRANSITIONS: Dict[State, FrozenSet[State]] = {
    State.IDLE: frozenset({State.FETCHING_STATUS, State.IDLE}),
    State.FETCHING_STATUS: frozenset({State.AWAITING_LONG_PRESS, State.IDLE}),
    State.AWAITING_LONG_PRESS: frozenset({State.ENSURING_ON, State.IDLE}),
    State.ENSURING_ON: frozenset({State.DIMMING, State.IDLE}),
    State.DIMMING: frozenset({State.DIMMING, State.IDLE}),
}


def check_transition(current: State, target: State) -> None:
    if target not in TRANSITIONS[current]:
        raise InvalidTransition(f"{current.value} -> {target.value}")


class DimmerController:
    """
    Drives one dimmer from the edges of its (up to two) buttons.

    Press:   reset to IDLE, remember when and in which direction, fetch the
             light status, then wait for the rest of the long-press time.
    Release: before the threshold -> toggle the light.
             while dimming        -> stop the ramp.
             otherwise            -> back to IDLE.

    Device calls complete asynchronously. Each completion re-requests its
    follow-up transition through TRANSITIONS and checks that it still
    belongs to the current press, so a late answer for an abandoned press
    never moves the machine.
    """

    def __init__(
        self,
        binding: Binding,
        client: ShellyLightClient,
        driver: Optional[DimmingDriver] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.binding = binding
        self.client = client
        self.driver = driver or make_driver(binding.device.dim_mode, client, binding.timing, binding.id)
        self._clock = clock

        self._state = State.IDLE
        self._trigger_time: Optional[float] = None
        self._direction = DimDirection.STOP
        self._status = LightStatus()
        self._press = 0
        self._long_press_timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self.long_press_delay_ms: Optional[int] = None

    @property
    def binding_id(self) -> str:
        return self.binding.id

    @property
    def state(self) -> State:
        return self._state

    @property
    def direction(self) -> DimDirection:
        return self._direction

    @property
    def light_status(self) -> LightStatus:
        return self._status

    def handles(self, channel: str) -> bool:
        return channel in self.binding.button_map

    # ---------------------------------------------------------
    # Transitions
    # ---------------------------------------------------------
    def transition_to(self, state: State) -> bool:
        try:
            check_transition(self._state, state)
        except InvalidTransition as e:
            logger.debug(f"[{self.binding_id}] Ignoring transition {e}")
            return False

        logger.debug(f"[{self.binding_id}] Transitioning from {self._state.value} to {state.value}")
        self._state = state
        if state is State.IDLE:
            self._enter_idle()
        elif state is State.FETCHING_STATUS:
            self._enter_fetching_status()
        elif state is State.AWAITING_LONG_PRESS:
            self._enter_awaiting_long_press()
        elif state is State.ENSURING_ON:
            self._enter_ensuring_on()
        elif state is State.DIMMING:
            self._enter_dimming()
        return True

    def _enter_idle(self) -> None:
        self._trigger_time = None
        self._direction = DimDirection.STOP
        self.long_press_delay_ms = None
        if self._long_press_timer is not None:
            self._long_press_timer.cancel()
            self._long_press_timer = None
        self.driver.cancel()

    def _enter_fetching_status(self) -> None:
        self._spawn(self._fetch_status(self._press), "get light status")

    async def _fetch_status(self, press: int) -> None:
        status = await self.client.get_status()
        if press != self._press or self._state is not State.FETCHING_STATUS:
            return
        self._update_status(status)
        self.transition_to(State.AWAITING_LONG_PRESS)

    def _enter_awaiting_long_press(self) -> None:
        elapsed_ms = 0.0
        if self._trigger_time is not None:
            elapsed_ms = (self._clock() - self._trigger_time) * 1000.0
        delay_ms = max(1, self.binding.timing.long_press_ms - round(elapsed_ms))
        self.long_press_delay_ms = delay_ms
        loop = asyncio.get_running_loop()
        self._long_press_timer = loop.call_later(delay_ms / 1000.0, self._on_long_press, self._press)

    def _on_long_press(self, press: int) -> None:
        self._long_press_timer = None
        if press != self._press:
            return
        self.transition_to(State.ENSURING_ON)

    def _enter_ensuring_on(self) -> None:
        if self._status.is_on:
            self.transition_to(State.DIMMING)
            return
        self._spawn(self._switch_on(self._press), "switch light on")

    async def _switch_on(self, press: int) -> None:
        status = await self.client.set_power(LightAction.ON)
        if press != self._press or self._state is not State.ENSURING_ON:
            return
        self._update_status(status)
        self.transition_to(State.DIMMING)

    def _enter_dimming(self) -> None:
        logger.info(f"[{self.binding_id}] Dimming {self._direction.value}")
        self._spawn(
            self.driver.start(self._direction, self._status, self._on_ramp_exhausted),
            f"start dimming {self._direction.value}",
        )

    def _on_ramp_exhausted(self) -> None:
        self.transition_to(State.IDLE)

    # ---------------------------------------------------------
    # Button edges
    # ---------------------------------------------------------
    def handle_input(self, channel: str, pressed: bool) -> bool:
        """Feed one button edge. Returns False if the channel is not ours."""
        direction = self.binding.button_map.get(channel)
        if direction is None:
            return False

        logger.debug(f"[{self.binding_id}] ---> input {channel} {'pressed' if pressed else 'released'}")
        if pressed:
            self._on_press(direction)
        else:
            self._on_release()
        return True

    def _on_press(self, direction: DimDirection) -> None:
        if self._state is not State.IDLE:
            self.transition_to(State.IDLE)
        self._press += 1
        self._trigger_time = self._clock()
        self._direction = direction
        self.transition_to(State.FETCHING_STATUS)

    def _on_release(self) -> None:
        if self._state in (State.FETCHING_STATUS, State.AWAITING_LONG_PRESS):
            self.transition_to(State.IDLE)
            self._spawn(self._toggle(), "toggle light")
        elif self._state is State.DIMMING:
            self._spawn(self.driver.stop(), "stop dimming")
            self.transition_to(State.IDLE)
        else:
            self.transition_to(State.IDLE)

    async def _toggle(self) -> None:
        status = await self.client.set_power(LightAction.TOGGLE)
        self._update_status(status)
        logger.info(f"[{self.binding_id}] Light toggled {'on' if status.is_on else 'off'}")

    # ---------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------
    def _update_status(self, status: LightStatus) -> None:
        # updated in place: the step loop driver holds a reference
        self._status.is_on = status.is_on
        self._status.brightness = status.brightness

    def _spawn(self, coro, description: str) -> asyncio.Task:
        return spawn(coro, self._tasks, description, self.binding_id)

    def stop(self) -> None:
        """Reset to IDLE and drop outstanding device calls."""
        self.transition_to(State.IDLE)
        cancel_all(self._tasks)
        self.driver.shutdown()

    def __repr__(self) -> str:
        return f"DimmerController(id={self.binding_id!r}, state={self._state.value})"
