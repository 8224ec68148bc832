import asyncio
from typing import Callable

from logging_config import get_logger

logger = get_logger(__name__)


async def run_periodically(interval: float, fn: Callable, name: str, in_executor: bool = False):
    """Call `fn` every `interval` seconds until cancelled. A failing cycle is
    logged and the next one runs as usual."""
    logger.info(f"Starting periodic task {name} (every {interval}s)")
    loop = asyncio.get_running_loop()
    try:
        while True:
            await asyncio.sleep(interval)
            try:
                if in_executor:
                    result = await loop.run_in_executor(None, fn)
                else:
                    result = fn()
                logger.debug(f"Periodic task {name} finished: {result}")
            except Exception as e:
                logger.error(f"Periodic task {name} failed: {e}", exc_info=True)
    except asyncio.CancelledError:
        logger.info(f"Periodic task {name} cancelled")
        raise
