"""Tests for input event parsing and routing."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from input_router import InputRouter, parse_input_event
from models import InputEvent


def _event(component: str, state=True) -> dict:
    return {"component": component, "delta": {"id": 0, "state": state}}


def _make_controller(binding_id: str, channels) -> MagicMock:
    ctrl = MagicMock()
    ctrl.binding_id = binding_id
    ctrl.handles.side_effect = lambda channel: channel in channels
    ctrl.handle_input.return_value = True
    return ctrl


class TestParseInputEvent:

    def test_press(self):
        assert parse_input_event(_event("input:1", True)) == InputEvent("1", True)

    def test_release(self):
        assert parse_input_event(_event("input:0", False)) == InputEvent("0", False)

    @pytest.mark.parametrize(
        "raw",
        [
            {"component": "switch:0", "delta": {"output": True}},
            {"component": "input:0"},
            {"component": "input:0", "delta": {"percent": 40}},
            {"component": "input:0", "delta": {"state": "on"}},
            {"delta": {"state": True}},
            {"component": 3, "delta": {"state": True}},
        ],
    )
    def test_non_button_events_ignored(self, raw):
        assert parse_input_event(raw) is None


class TestInputRouter:

    def test_dispatch_to_matching_controller_only(self):
        router = InputRouter()
        front = _make_controller("front", {"0", "1"})
        back = _make_controller("back", {"2", "3"})
        router.register(front)
        router.register(back)

        assert router.dispatch(_event("input:1", True)) == 1

        front.handle_input.assert_called_once_with("1", True)
        back.handle_input.assert_not_called()

    def test_unmapped_channel(self):
        router = InputRouter()
        front = _make_controller("front", {"0"})
        router.register(front)
        assert router.dispatch(_event("input:7")) == 0
        front.handle_input.assert_not_called()

    def test_non_input_component_not_dispatched(self):
        router = InputRouter()
        front = _make_controller("front", {"0"})
        router.register(front)
        assert router.dispatch({"component": "sys", "delta": {"uptime": 5}}) == 0
        front.handles.assert_not_called()

    def test_failing_controller_does_not_stop_others(self):
        router = InputRouter()
        broken = _make_controller("broken", {"0"})
        broken.handle_input.side_effect = RuntimeError("boom")
        other = _make_controller("other", {"0"})
        router.register(broken)
        router.register(other)

        assert router.dispatch(_event("input:0")) == 1
        other.handle_input.assert_called_once_with("0", True)

    def test_clear(self):
        router = InputRouter()
        router.register(_make_controller("front", {"0"}))
        router.register(_make_controller("back", {"1"}))
        assert len(router.controllers) == 2

        router.clear()
        assert router.dispatch(_event("input:0")) == 0
        assert router.controllers == []
