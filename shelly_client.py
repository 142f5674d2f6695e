"""HTTP client for the light API of a Shelly dimmer."""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from constants import DEVICE_REQUEST_TIMEOUT, LIGHT_ENDPOINT
from errors import DeviceError, DeviceUnreachable
from models import DeviceConfig, DimDirection, LightAction, LightStatus

logger = logging.getLogger(__name__)


def parse_light_status(body: Any) -> LightStatus:
    """
    Build a LightStatus from a ``/light/0`` response body, e.g.:
      {"ison": false, "source": "http", "mode": "white", "brightness": 25, ...}
    """
    if not isinstance(body, dict) or "ison" not in body:
        raise DeviceError(f"Unexpected light status body: {body!r}")
    try:
        brightness = int(body.get("brightness", 0))
    except (TypeError, ValueError):
        raise DeviceError(f"Invalid brightness in light status: {body.get('brightness')!r}")
    return LightStatus(is_on=bool(body["ison"]), brightness=brightness)


class ShellyLightClient:
    """
    Issues light commands against one device.

    Every call is a single GET request; failures surface as
    DeviceUnreachable (transport) or DeviceError (HTTP status / body).
    Nothing is retried here.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        device: DeviceConfig,
        timeout: float = DEVICE_REQUEST_TIMEOUT,
    ):
        self.session = session
        self.device = device
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{self.device.base_url}/{LIGHT_ENDPOINT}"

    def _auth(self) -> Optional[aiohttp.BasicAuth]:
        cred = self.device.auth
        if cred is None:
            return None
        return aiohttp.BasicAuth(cred.username, cred.password)

    async def _request(self, params: Optional[Dict[str, str]] = None) -> Any:
        """Send a GET to the light endpoint and return the decoded JSON body (or None)."""
        try:
            async with self.session.get(
                self.url,
                params=params,
                auth=self._auth(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise DeviceError(
                        f"{self.device.addr} answered HTTP {resp.status} for {params or 'status'}"
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DeviceUnreachable(f"{self.device.addr} unreachable: {e!r}") from e

        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError as e:
            raise DeviceError(f"{self.device.addr} returned invalid JSON: {e}") from e

    async def get_status(self) -> LightStatus:
        status = parse_light_status(await self._request())
        logger.debug(f"get_status {self.device.addr}: ison={status.is_on} brightness={status.brightness}")
        return status

    async def set_power(self, action: LightAction) -> LightStatus:
        action = LightAction(action)
        status = parse_light_status(await self._request({"turn": action.value}))
        logger.debug(f"set_power {self.device.addr} {action.value}: ison={status.is_on} brightness={status.brightness}")
        return status

    async def set_brightness(self, level: int) -> LightStatus:
        level = max(0, min(100, int(level)))
        status = parse_light_status(await self._request({"brightness": str(level)}))
        logger.debug(f"set_brightness {self.device.addr} {level}: brightness={status.brightness}")
        return status

    async def dim(self, direction: DimDirection, step: int = 100) -> None:
        direction = DimDirection(direction)
        params = {"dim": direction.value}
        if direction is not DimDirection.STOP:
            params["step"] = str(int(step))
        await self._request(params)
        logger.debug(f"dim {self.device.addr} {direction.value}")
