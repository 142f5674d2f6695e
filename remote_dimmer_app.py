"""Main remote dimmer application."""

import asyncio
import logging
import os
from typing import Any, Dict, List, Optional

import aiohttp
import yaml

from binding_loader import BindingLoader, parse_timing
from constants import (
    CONFIG_FILE_ENV,
    DEFAULT_CONFIG_EXAMPLE_FILE,
    DEFAULT_CONFIG_FILE,
    REMOTE_DIMMER_CONFIG_KEY,
)
from dimmer_controller import DimmerController
from errors import BindingConfigError, ConfigUnavailable
from input_router import InputRouter
from kvs_store import FileKvsStore, KeyValueStore, ShellyKvsStore
from models import Binding, DimmerTiming
from mqtt_bridge import MqttBridge
from shelly_client import ShellyLightClient

logger = logging.getLogger(__name__)

STORE_TYPES = ("file", "shelly")


def config_path() -> str:
    return os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE)


def _load_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load and validate configuration file."""
    path = path or config_path()
    if not os.path.exists(path):
        raise FileNotFoundError(
            f"Configuration file '{path}' not found. "
            f"Please copy '{DEFAULT_CONFIG_EXAMPLE_FILE}' to '{path}' "
            f"and update with your settings."
        )

    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in '{path}': {e}")

    if not config:
        raise ValueError(f"'{path}' is empty")

    # Validate required sections
    if 'mqtt' not in config:
        raise ValueError("Missing 'mqtt' section in configuration")
    if 'store' not in config:
        raise ValueError("Missing 'store' section in configuration")

    # Validate required keys
    mqtt_config = config.get('mqtt') or {}
    for key in ('host', 'port', 'topic_prefix'):
        if key not in mqtt_config:
            raise ValueError(f"Missing 'mqtt.{key}' in configuration")

    store_config = config.get('store') or {}
    store_type = store_config.get('type', 'file')
    if store_type not in STORE_TYPES:
        raise ValueError(f"Unknown 'store.type' '{store_type}', expected one of {', '.join(STORE_TYPES)}")
    if store_type == 'shelly' and 'host' not in store_config:
        raise ValueError("Missing 'store.host' in configuration")

    try:
        parse_timing(config.get('defaults'), DimmerTiming())
    except BindingConfigError as e:
        raise ValueError(f"Invalid 'defaults' section: {e}")

    return config


def make_store(config: Dict[str, Any], session: aiohttp.ClientSession) -> KeyValueStore:
    """Build the key-value store described by the 'store' section."""
    store_config = config.get('store') or {}
    if store_config.get('type', 'file') == 'shelly':
        auth = None
        if store_config.get('username'):
            auth = aiohttp.BasicAuth(store_config['username'], store_config.get('password', ''))
        return ShellyKvsStore(session, store_config['host'], auth=auth)
    return FileKvsStore(config.get('kvs') or {})


class RemoteDimmer:
    """Main application: one dimmer controller per configured binding."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.loop = asyncio.get_running_loop()
        self.event_queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()
        self.router = InputRouter()
        self.controllers: Dict[str, DimmerController] = {}
        self.session: Optional[aiohttp.ClientSession] = None
        self.loader: Optional[BindingLoader] = None

        mqtt_config = config['mqtt']
        self.mqtt = MqttBridge(
            self.loop,
            self.event_queue,
            host=mqtt_config['host'],
            port=int(mqtt_config['port']),
            topic_prefix=mqtt_config['topic_prefix'],
            username=mqtt_config.get('username'),
            password=mqtt_config.get('password'),
        )

        self._tasks: List[asyncio.Task] = []
        self.running = True

    async def start(self):
        """Start the service."""
        self.session = aiohttp.ClientSession()
        store = make_store(self.config, self.session)
        self.loader = BindingLoader(
            store,
            defaults=parse_timing(self.config.get('defaults'), DimmerTiming()),
            config_key=(self.config.get('store') or {}).get('config_key', REMOTE_DIMMER_CONFIG_KEY),
        )

        try:
            await self.loader.load(self.setup_bindings)
        except ConfigUnavailable as e:
            logger.error(f"Remote dimmer configuration unavailable, no dimmers set up: {e}")

        self.mqtt.connect()
        logger.info("MQTT bridge connected")

        self._tasks = [
            asyncio.create_task(self.input_consumer_task(), name="input_consumer"),
        ]

        # Wait until tasks finish (they won't until stopped)
        await asyncio.gather(*self._tasks)

    def setup_bindings(self, bindings: List[Binding]):
        """Create and register one controller per binding."""
        if not self.running:
            return
        for binding in bindings:
            client = ShellyLightClient(self.session, binding.device)
            controller = DimmerController(binding, client)
            self.controllers[binding.id] = controller
            self.router.register(controller)
            logger.info(
                f"Set up dimmer controller {binding.id}: inputs {', '.join(sorted(binding.button_map))} "
                f"-> {binding.device.addr} ({binding.device.dim_mode})"
            )
        logger.info("Remote dimmer controllers initialized")

    async def input_consumer_task(self):
        """Consume input events from the MQTT queue and route them to controllers."""
        while self.running:
            event = await self.event_queue.get()
            try:
                self.router.dispatch(event)
            except Exception as e:
                logger.error(f"Failed to route input event {event}: {e}", exc_info=True)

    async def stop(self):
        """Stop the service."""
        if not self.running:
            return
        self.running = False

        # Cancel tasks first
        for t in self._tasks:
            t.cancel()
        for t in self._tasks:
            try:
                await t
            except asyncio.CancelledError:
                pass

        if self.loader is not None:
            self.loader.cancel()
        for controller in self.controllers.values():
            controller.stop()
        self.router.clear()

        # Then close resources
        try:
            self.mqtt.close()
        except Exception as e:
            logger.debug(f"Error closing MQTT connection: {e}")
        if self.session is not None and not self.session.closed:
            await self.session.close()
