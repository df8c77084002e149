"""
Automation worker.

Runs the task scheduler, queue drainer, reminder sweep, event inbox and
orphan lead loops outside the API process:

    python -m app.worker
"""

import asyncio
import signal

from dotenv import load_dotenv

from app.infrastructure.logging.logger import logger
from app.infrastructure.scheduling.polling_loop import get_scheduler_registry
from app.infrastructure.wiring.dependencies import get_container, register_polling_loops


async def main() -> None:
    """Entry point for running the loops as a separate process."""
    load_dotenv()
    registry = get_scheduler_registry()
    register_polling_loops(get_container(), registry)

    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()

    def signal_handler() -> None:
        logger.info("Received shutdown signal")
        stop_requested.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    started = registry.start_all()
    logger.info(f"Automation worker started: {', '.join(started)}")
    try:
        await stop_requested.wait()
    finally:
        await registry.stop_all()
        logger.info("Automation worker shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
