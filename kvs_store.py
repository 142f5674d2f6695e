"""Key-value stores holding the binding list and device credentials."""

import asyncio
import json
import logging
from typing import Any, Dict, Mapping, Optional

import aiohttp

from constants import KVS_GET_ENDPOINT, KVS_REQUEST_TIMEOUT
from errors import KeyNotFound, StoreError

logger = logging.getLogger(__name__)


def decode_value(value: Any) -> Any:
    """
    Store values are JSON text on a Shelly KVS, but may already be
    structured when they come from the YAML file. Normalize to Python data.
    """
    if isinstance(value, (bytes, bytearray)):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StoreError(f"Value is not valid UTF-8: {e}") from e
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError as e:
            raise StoreError(f"Value is not valid JSON: {e}") from e
    return value


class KeyValueStore:
    """Read-only access to the host's key-value store."""

    async def get(self, key: str) -> Any:
        raise NotImplementedError


class FileKvsStore(KeyValueStore):
    """Store backed by the ``kvs`` section of the YAML config file."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Any] = dict(values or {})

    async def get(self, key: str) -> Any:
        if key not in self._values:
            raise KeyNotFound(f"Key '{key}' not found in configuration file store")
        return decode_value(self._values[key])


class ShellyKvsStore(KeyValueStore):
    """
    Store backed by the KVS of a Shelly Gen2 device:
      GET /rpc/KVS.Get?key=<key>  ->  {"etag": "...", "value": "<json>"}
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        host: str,
        auth: Optional[aiohttp.BasicAuth] = None,
        timeout: float = KVS_REQUEST_TIMEOUT,
    ):
        self.session = session
        self.host = host
        self.auth = auth
        self.timeout = timeout

    @property
    def url(self) -> str:
        base = self.host if self.host.startswith(("http://", "https://")) else f"http://{self.host}"
        return f"{base.rstrip('/')}/{KVS_GET_ENDPOINT}"

    async def get(self, key: str) -> Any:
        try:
            async with self.session.get(
                self.url,
                params={"key": key},
                auth=self.auth,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                if resp.status == 404:
                    raise KeyNotFound(f"Key '{key}' not found in KVS at {self.host}")
                if not 200 <= resp.status < 300:
                    raise StoreError(f"KVS at {self.host} answered HTTP {resp.status} for '{key}'")
                body = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise StoreError(f"Failed to read '{key}' from KVS at {self.host}: {e!r}") from e

        if not isinstance(body, dict) or "value" not in body:
            raise StoreError(f"Unexpected KVS.Get response for '{key}': {body!r}")
        logger.debug(f"Read '{key}' from KVS at {self.host}")
        return decode_value(body["value"])
