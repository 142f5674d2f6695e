"""Tests for configuration loading and the application orchestration."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Dict
from unittest.mock import MagicMock

import pytest
import yaml

from dimmer_controller import State
from kvs_store import FileKvsStore, ShellyKvsStore
from remote_dimmer_app import RemoteDimmer, _load_config, make_store


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config(**overrides: Any) -> Dict[str, Any]:
    config: Dict[str, Any] = {
        "mqtt": {"host": "localhost", "port": 1883, "topic_prefix": "shellyplusi4-test"},
        "store": {"type": "file"},
        "kvs": {
            "remote-dimmer-config": json.dumps(
                [
                    {"id": "front", "btn": {"0": "down", "1": "up"}, "dev": {"addr": "127.0.0.1:1", "auth": "@creds"}},
                    {"id": "back", "btn": {"2": "down", "3": "up"}, "dev": {"addr": "127.0.0.1:1", "dim": "step"}},
                ]
            ),
            "creds": '{"id": "u", "pw": "p"}',
        },
    }
    config.update(overrides)
    return config


def _write(tmp_path, config: Any) -> str:
    path = tmp_path / "remote_dimmer.yaml"
    path.write_text(yaml.safe_dump(config) if not isinstance(config, str) else config)
    return str(path)


def _make_app(config: Dict[str, Any]) -> RemoteDimmer:
    app = RemoteDimmer(config)
    app.mqtt.connect = MagicMock()
    app.mqtt.close = MagicMock()
    return app


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


# ---------------------------------------------------------------------------
# Config file
# ---------------------------------------------------------------------------


class TestLoadConfig:

    def test_valid(self, tmp_path):
        config = _load_config(_write(tmp_path, _config()))
        assert config["mqtt"]["host"] == "localhost"

    def test_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("REMOTE_DIMMER_CONFIG", _write(tmp_path, _config()))
        assert _load_config()["store"]["type"] == "file"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="remote_dimmer.yaml.example"):
            _load_config(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml(self, tmp_path):
        with pytest.raises(ValueError):
            _load_config(_write(tmp_path, "mqtt: [unclosed"))

    def test_empty(self, tmp_path):
        with pytest.raises(ValueError):
            _load_config(_write(tmp_path, ""))

    @pytest.mark.parametrize(
        "overrides",
        [
            {"mqtt": {"host": "localhost", "port": 1883}},
            {"store": {"type": "redis"}},
            {"store": {"type": "shelly"}},
            {"defaults": {"long_press_ms": "slow"}},
            {"defaults": {"update_interval_ms": 0}},
            {"defaults": {"minimum_brightness": 150}},
        ],
    )
    def test_invalid_sections(self, tmp_path, overrides):
        with pytest.raises(ValueError):
            _load_config(_write(tmp_path, _config(**overrides)))

    def test_missing_store_section(self, tmp_path):
        config = _config()
        del config["store"]
        with pytest.raises(ValueError):
            _load_config(_write(tmp_path, config))


class TestMakeStore:

    def test_file_store(self):
        assert isinstance(make_store(_config(), MagicMock()), FileKvsStore)

    def test_shelly_store(self):
        store = make_store(
            _config(store={"type": "shelly", "host": "10.0.0.9", "username": "admin", "password": "pw"}),
            MagicMock(),
        )
        assert isinstance(store, ShellyKvsStore)
        assert store.auth.login == "admin"


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


class TestRemoteDimmer:

    @pytest.mark.asyncio
    async def test_start_creates_controller_per_binding(self):
        app = _make_app(_config())
        task = asyncio.create_task(app.start())
        try:
            await _wait_for(lambda: len(app.controllers) == 2)
            assert set(app.controllers) == {"front", "back"}
            assert app.controllers["front"].binding.device.auth.username == "u"
            assert app.controllers["back"].binding.device.dim_mode == "step"
            assert len(app.router.controllers) == 2
            app.mqtt.connect.assert_called_once_with()
        finally:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            await app.stop()
        assert app.session.closed
        app.mqtt.close.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_config_unavailable_starts_without_bindings(self):
        app = _make_app(_config(kvs={}))
        task = asyncio.create_task(app.start())
        try:
            await _wait_for(lambda: app.mqtt.connect.called)
            assert app.controllers == {}
        finally:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            await app.stop()

    @pytest.mark.asyncio
    async def test_input_events_routed(self):
        app = _make_app(_config())
        task = asyncio.create_task(app.start())
        try:
            await _wait_for(lambda: len(app.controllers) == 2)
            front = app.controllers["front"]
            back = app.controllers["back"]

            app.event_queue.put_nowait({"component": "input:1", "delta": {"id": 1, "state": True}})
            await _wait_for(lambda: front.state is not State.IDLE)
            assert back.state is State.IDLE
        finally:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            await app.stop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        app = _make_app(_config())
        await app.stop()
        await app.stop()
        app.mqtt.close.assert_called_once_with()
