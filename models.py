"""Data models and dataclasses."""

import enum
from dataclasses import dataclass, field
from typing import Dict, Optional

from constants import (
    DIM_MODE_RAMP,
    DIMMER_STEP,
    LONG_PRESS_TIME_MS,
    MINIMUM_BRIGHTNESS,
    RAMP_STEP,
    UPDATE_INTERVAL_MS,
)


class LightAction(str, enum.Enum):
    """Values of the device's ``turn`` parameter."""
    ON = "on"
    OFF = "off"
    TOGGLE = "toggle"


class DimDirection(str, enum.Enum):
    """Values of the device's ``dim`` parameter."""
    UP = "up"
    DOWN = "down"
    STOP = "stop"


@dataclass(frozen=True)
class Credential:
    """Basic-auth credential for a device."""
    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credential(username={self.username!r}, password='***')"


@dataclass(frozen=True)
class DeviceConfig:
    """Where a binding's light lives and how to dim it."""
    addr: str
    auth: Optional[Credential] = None
    dim_mode: str = DIM_MODE_RAMP

    @property
    def base_url(self) -> str:
        if self.addr.startswith(("http://", "https://")):
            return self.addr.rstrip("/")
        return f"http://{self.addr}".rstrip("/")


@dataclass(frozen=True)
class DimmerTiming:
    """Per-binding timing; every field can be overridden in the config."""
    long_press_ms: int = LONG_PRESS_TIME_MS
    ramp_step: int = RAMP_STEP
    update_interval_ms: int = UPDATE_INTERVAL_MS
    dimmer_step: int = DIMMER_STEP
    minimum_brightness: int = MINIMUM_BRIGHTNESS


@dataclass(frozen=True)
class Binding:
    """One button pair bound to one dimmable device."""
    id: str
    button_map: Dict[str, DimDirection]
    device: DeviceConfig
    timing: DimmerTiming = field(default_factory=DimmerTiming)


@dataclass
class LightStatus:
    """Light state as last reported by the device."""
    is_on: bool = False
    brightness: int = MINIMUM_BRIGHTNESS


@dataclass
class InputEvent:
    """A single button edge from the host."""
    channel: str
    pressed: bool
