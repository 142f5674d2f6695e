"""Tests for the key-value stores."""

from __future__ import annotations

import aiohttp
import pytest
from aiohttp import web
from aiohttp import test_utils

from errors import KeyNotFound, StoreError
from kvs_store import FileKvsStore, ShellyKvsStore, decode_value


class TestDecodeValue:

    def test_json_text(self):
        assert decode_value('{"id": "u", "pw": "p"}') == {"id": "u", "pw": "p"}

    def test_structured_value_passed_through(self):
        assert decode_value([1, 2]) == [1, 2]

    def test_bytes(self):
        assert decode_value(b"[]") == []

    def test_invalid_json(self):
        with pytest.raises(StoreError):
            decode_value("{not json")

    def test_invalid_utf8(self):
        with pytest.raises(StoreError):
            decode_value(b"\xff\xfe[]")

    @pytest.mark.asyncio
    async def test_invalid_utf8_from_file_store(self):
        with pytest.raises(StoreError):
            await FileKvsStore({"remote-dimmer-config": bytearray(b"\x80abc")}).get("remote-dimmer-config")


class TestFileKvsStore:

    @pytest.mark.asyncio
    async def test_get(self):
        store = FileKvsStore({"credentials1": '{"id": "u", "pw": "p"}'})
        assert await store.get("credentials1") == {"id": "u", "pw": "p"}

    @pytest.mark.asyncio
    async def test_missing_key(self):
        with pytest.raises(KeyNotFound):
            await FileKvsStore().get("remote-dimmer-config")


async def _serve_kvs(values: dict) -> test_utils.TestServer:
    async def kvs_get(request: web.Request) -> web.Response:
        key = request.query.get("key")
        if key not in values:
            return web.json_response({"code": -105, "message": "Argument 'key', value not found!"}, status=404)
        return web.json_response({"etag": "abc", "value": values[key]})

    app = web.Application()
    app.router.add_get("/rpc/KVS.Get", kvs_get)
    server = test_utils.TestServer(app)
    await server.start_server()
    return server


class TestShellyKvsStore:

    @pytest.mark.asyncio
    async def test_get(self):
        server = await _serve_kvs({"remote-dimmer-config": '[{"id": "front"}]'})
        try:
            async with aiohttp.ClientSession() as session:
                store = ShellyKvsStore(session, f"{server.host}:{server.port}")
                assert await store.get("remote-dimmer-config") == [{"id": "front"}]
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_missing_key(self):
        server = await _serve_kvs({})
        try:
            async with aiohttp.ClientSession() as session:
                store = ShellyKvsStore(session, f"{server.host}:{server.port}")
                with pytest.raises(KeyNotFound):
                    await store.get("credentials1")
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_unreachable(self):
        async with aiohttp.ClientSession() as session:
            store = ShellyKvsStore(session, "127.0.0.1:1", timeout=2.0)
            with pytest.raises(StoreError):
                await store.get("remote-dimmer-config")

    def test_url(self):
        assert ShellyKvsStore(None, "10.0.0.9").url == "http://10.0.0.9/rpc/KVS.Get"
