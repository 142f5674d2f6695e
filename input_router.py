"""Fan host input notifications out to the dimmer controllers."""

import logging
from typing import Any, List, Mapping, Optional

from constants import INPUT_COMPONENT_PREFIX
from dimmer_controller import DimmerController
from models import InputEvent

logger = logging.getLogger(__name__)


def parse_input_event(raw: Mapping[str, Any]) -> Optional[InputEvent]:
    """
    Host notifications look like:
      {"component": "input:0", "delta": {"state": true}}
    Returns None for anything that is not a button edge.
    """
    component = raw.get("component")
    if not isinstance(component, str) or not component.startswith(INPUT_COMPONENT_PREFIX):
        return None
    delta = raw.get("delta")
    if not isinstance(delta, Mapping):
        return None
    state = delta.get("state")
    if not isinstance(state, bool):
        return None
    return InputEvent(channel=component[len(INPUT_COMPONENT_PREFIX):], pressed=state)


class InputRouter:
    """Delivers every input event to each controller mapped to its channel."""

    def __init__(self):
        self._controllers: List[DimmerController] = []

    @property
    def controllers(self) -> List[DimmerController]:
        return list(self._controllers)

    def register(self, controller: DimmerController) -> None:
        self._controllers.append(controller)
        logger.debug(f"Registered controller '{controller.binding_id}'")

    def clear(self) -> None:
        self._controllers.clear()

    def dispatch(self, raw: Mapping[str, Any]) -> int:
        """Route one host notification; returns how many controllers took it."""
        event = parse_input_event(raw)
        if event is None:
            return 0

        handled = 0
        for controller in list(self._controllers):
            if not controller.handles(event.channel):
                continue
            try:
                if controller.handle_input(event.channel, event.pressed):
                    handled += 1
            except Exception as e:
                logger.error(
                    f"Controller '{controller.binding_id}' failed on input {event.channel}: {e}",
                    exc_info=True,
                )
        if not handled:
            logger.debug(f"No binding for input {event.channel}")
        return handled
