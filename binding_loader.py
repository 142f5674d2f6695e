"""Load the binding list from the store and resolve device credentials."""

import asyncio
import logging
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from constants import (
    BUTTON_DIRECTION_DOWN,
    BUTTON_DIRECTION_UP,
    DIM_MODE_RAMP,
    DIM_MODE_STEP,
    REMOTE_DIMMER_CONFIG_KEY,
)
from credentials import CredentialResolver, is_indirect
from errors import BindingConfigError, ConfigUnavailable, StoreError
from kvs_store import KeyValueStore
from models import Binding, Credential, DeviceConfig, DimDirection, DimmerTiming

logger = logging.getLogger(__name__)

_DIRECTIONS = {
    BUTTON_DIRECTION_UP: DimDirection.UP,
    BUTTON_DIRECTION_DOWN: DimDirection.DOWN,
}

# Allowed (min, max) per timing setting; None means unbounded.
# A zero tick interval or step would make the step loop spin without progress.
_TIMING_BOUNDS: Dict[str, Tuple[int, Optional[int]]] = {
    "long_press_ms": (0, None),
    "ramp_step": (1, 100),
    "update_interval_ms": (1, None),
    "dimmer_step": (1, 100),
    "minimum_brightness": (0, 100),
}


def parse_timing(raw: Any, defaults: DimmerTiming) -> DimmerTiming:
    """Overlay a binding's ``timing`` object on the defaults."""
    if raw is None:
        return defaults
    if not isinstance(raw, dict):
        raise BindingConfigError("'timing' must be an object")
    overrides: Dict[str, int] = {}
    for key, value in raw.items():
        if key not in _TIMING_BOUNDS:
            raise BindingConfigError(f"Unknown timing setting '{key}'")
        if isinstance(value, bool) or not isinstance(value, int):
            raise BindingConfigError(f"Timing setting '{key}' must be an integer")
        low, high = _TIMING_BOUNDS[key]
        if value < low or (high is not None and value > high):
            limit = f"between {low} and {high}" if high is not None else f"at least {low}"
            raise BindingConfigError(f"Timing setting '{key}' must be {limit}, got {value}")
        overrides[key] = value
    return replace(defaults, **overrides)


def parse_binding(raw: Any, index: int, defaults: DimmerTiming) -> Binding:
    """
    Parse one entry of the binding list, e.g.:
      {"id": "front", "btn": {"0": "down", "1": "up"},
       "dev": {"addr": "192.168.3.127", "auth": "@credentials1", "dim": "ramp"}}

    The credential is left unresolved; ``dev.auth`` is handled by the loader.
    """
    if not isinstance(raw, dict):
        raise BindingConfigError(f"Binding #{index} is not an object")

    binding_id = str(raw.get("id") or f"dimmer-{index}")

    buttons = raw.get("btn")
    if not isinstance(buttons, dict) or not buttons:
        raise BindingConfigError(f"[{binding_id}] 'btn' must be a non-empty object")
    button_map: Dict[str, DimDirection] = {}
    for channel, direction in buttons.items():
        if direction not in _DIRECTIONS:
            raise BindingConfigError(f"[{binding_id}] Unknown direction '{direction}' for input {channel}")
        if _DIRECTIONS[direction] in button_map.values():
            raise BindingConfigError(f"[{binding_id}] More than one input mapped to '{direction}'")
        button_map[str(channel)] = _DIRECTIONS[direction]

    dev = raw.get("dev")
    if not isinstance(dev, dict) or not dev.get("addr"):
        raise BindingConfigError(f"[{binding_id}] 'dev.addr' is required")
    dim_mode = dev.get("dim", DIM_MODE_RAMP)
    if dim_mode not in (DIM_MODE_RAMP, DIM_MODE_STEP):
        raise BindingConfigError(f"[{binding_id}] Unknown dimming mode '{dim_mode}'")

    return Binding(
        id=binding_id,
        button_map=button_map,
        device=DeviceConfig(addr=str(dev["addr"]), dim_mode=dim_mode),
        timing=parse_timing(raw.get("timing"), defaults),
    )


class BindingLoader:
    """
    Reads the binding list and resolves each binding's credential.

    Indirect credentials are looked up concurrently. A pending counter is
    decremented as each lookup finishes; ``on_ready`` fires exactly once,
    when it reaches zero.
    """

    def __init__(
        self,
        store: KeyValueStore,
        resolver: Optional[CredentialResolver] = None,
        defaults: Optional[DimmerTiming] = None,
        config_key: str = REMOTE_DIMMER_CONFIG_KEY,
    ):
        self.store = store
        self.resolver = resolver or CredentialResolver(store)
        self.defaults = defaults or DimmerTiming()
        self.config_key = config_key
        self._tasks: Set[asyncio.Task] = set()

    async def load(self, on_ready: Callable[[List[Binding]], None]) -> None:
        """
        Read and parse the binding list, then start credential lookups.

        Returns once all lookups are started; ``on_ready`` is called when the
        last one completes. Raises ConfigUnavailable if the list cannot be read,
        in which case ``on_ready`` is never called.
        """
        parsed = self._parse_all(await self._read_config())
        bindings = [binding for binding, _ in parsed]

        pending = 0
        ready_fired = False

        def finish_if_done():
            nonlocal ready_fired
            if pending == 0 and not ready_fired:
                ready_fired = True
                logger.info(f"{len(bindings)} binding(s) ready")
                on_ready(list(bindings))

        def on_resolved(index: int, task: asyncio.Task):
            nonlocal pending
            self._tasks.discard(task)
            credential: Optional[Credential] = None
            if task.cancelled():
                logger.warning(f"[{bindings[index].id}] Credential lookup cancelled")
            elif task.exception() is not None:
                logger.error(
                    f"[{bindings[index].id}] Credential lookup failed: {task.exception()!r}"
                )
            else:
                credential = task.result()
            if credential is not None:
                b = bindings[index]
                bindings[index] = replace(b, device=replace(b.device, auth=credential))
            pending -= 1
            finish_if_done()

        for index, (binding, raw_auth) in enumerate(parsed):
            if is_indirect(raw_auth):
                pending += 1
                task = asyncio.create_task(
                    self.resolver.resolve(raw_auth, binding.id),
                    name=f"credentials-{binding.id}",
                )
                self._tasks.add(task)
                task.add_done_callback(lambda t, i=index: on_resolved(i, t))
            else:
                credential = self.resolver.resolve_inline(raw_auth, binding.id)
                if credential is not None:
                    bindings[index] = replace(binding, device=replace(binding.device, auth=credential))

        finish_if_done()

    def cancel(self) -> None:
        """Cancel outstanding credential lookups."""
        for task in list(self._tasks):
            task.cancel()

    async def _read_config(self) -> List[Any]:
        try:
            value = await self.store.get(self.config_key)
        except StoreError as e:
            logger.error(f"Failed to get configuration '{self.config_key}' from store: {e}")
            raise ConfigUnavailable(str(e)) from e
        if not isinstance(value, list):
            logger.error(f"Configuration '{self.config_key}' is not a list")
            raise ConfigUnavailable(f"'{self.config_key}' must be a JSON array of bindings")
        return value

    def _parse_all(self, raw_list: List[Any]) -> List[Tuple[Binding, Any]]:
        """
        Parse entries into (binding, raw dev.auth) pairs, dropping malformed
        entries and entries that reuse an input claimed by an earlier binding.
        """
        parsed: List[Tuple[Binding, Any]] = []
        claimed: Dict[str, str] = {}
        for index, raw in enumerate(raw_list):
            try:
                binding = parse_binding(raw, index, self.defaults)
                for channel in binding.button_map:
                    if channel in claimed:
                        raise BindingConfigError(
                            f"[{binding.id}] Input {channel} is already used by binding '{claimed[channel]}'"
                        )
                if any(b.id == binding.id for b, _ in parsed):
                    raise BindingConfigError(f"Duplicate binding id '{binding.id}'")
            except BindingConfigError as e:
                logger.error(f"Skipping binding #{index}: {e}")
                continue
            for channel in binding.button_map:
                claimed[channel] = binding.id
            parsed.append((binding, raw["dev"].get("auth")))
        return parsed
