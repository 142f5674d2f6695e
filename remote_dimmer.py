#!/usr/bin/env python3
"""Remote dimmer: buttons on one device, dimmable lights on others."""

import asyncio
import logging
import signal

from remote_dimmer_app import RemoteDimmer, _load_config

logger = logging.getLogger(__name__)


async def main(config):
    """Main entry point."""
    app = RemoteDimmer(config)
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    async def runner():
        try:
            await app.start()
        except asyncio.CancelledError:
            pass
        finally:
            await app.stop()
            stop_event.set()

    task = loop.create_task(runner())

    def _shutdown():
        if not task.done():
            logger.info("Shutting down...")
            task.cancel()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _shutdown)
        except NotImplementedError:
            logger.debug(f"Signal handler for {sig.name} not supported on this platform")

    await stop_event.wait()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        config = _load_config()
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Configuration error: {e}")
        raise SystemExit(1)

    level = (config.get('logging') or {}).get('level')
    if level:
        logging.getLogger().setLevel(str(level).upper())

    asyncio.run(main(config))
