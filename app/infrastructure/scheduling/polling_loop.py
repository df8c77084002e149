"""Fixed-interval asyncio polling loops and the process-wide loop registry."""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from app.infrastructure.logging.logger import log_event, logger


class PollingLoop:
    """Runs ``job`` every ``interval_seconds`` until stopped.

    A cycle that raises is logged and the loop keeps polling. Stopping sets an
    event that is only observed between cycles, so an in-flight batch always
    finishes.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        job: Callable[[], Awaitable[Any]],
    ) -> None:
        """
        Initialize a loop.

        Args:
            name: Loop name (also the log component)
            interval_seconds: Delay between the end of one cycle and the next
            job: Coroutine function executed once per cycle
        """
        self.name = name
        self.interval_seconds = interval_seconds
        self._job = job
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self.runs = 0
        self.consecutive_errors = 0
        self.last_run_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """
        Start the loop on the running event loop.

        Returns:
            True if started, False if it was already running
        """
        if self.running:
            return False
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=f"polling-loop:{self.name}")
        logger.info(f"Polling loop '{self.name}' started (interval={self.interval_seconds}s)")
        return True

    async def stop(self) -> None:
        """Signal the loop to stop and wait for the current cycle to finish."""
        if not self.running:
            return
        self._stop_event.set()
        await self._task
        logger.info(f"Polling loop '{self.name}' stopped after {self.runs} runs")

    async def run_once(self) -> Any:
        """Execute a single cycle inline (used by tests and manual triggers)."""
        result = await self._job()
        self.runs += 1
        self.last_run_at = datetime.now(timezone.utc)
        return result

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
                self.consecutive_errors = 0
                self.last_error = None
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.consecutive_errors += 1
                self.last_error = str(e)
                log_event(
                    "-",
                    self.name,
                    level=logging.ERROR,
                    event="cycle_failed",
                    consecutive_errors=self.consecutive_errors,
                    error=str(e),
                )

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    def status(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "runs": self.runs,
            "consecutive_errors": self.consecutive_errors,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
        }


class SchedulerRegistry:
    """Named polling loops owned by one process."""

    def __init__(self) -> None:
        self._loops: dict[str, PollingLoop] = {}

    def register(self, loop: PollingLoop) -> PollingLoop:
        """
        Register a loop; an existing loop with the same name is kept.

        Args:
            loop: Loop to register

        Returns:
            The registered loop for that name
        """
        return self._loops.setdefault(loop.name, loop)

    def get(self, name: str) -> Optional[PollingLoop]:
        return self._loops.get(name)

    def start_all(self) -> list[str]:
        """Start every registered loop that is not running; returns the started names."""
        return [name for name, loop in self._loops.items() if loop.start()]

    async def stop_all(self) -> None:
        """Stop every loop, letting in-flight batches finish."""
        await asyncio.gather(*(loop.stop() for loop in self._loops.values()))

    def status(self) -> list[dict[str, Any]]:
        return [loop.status() for loop in self._loops.values()]


_registry = SchedulerRegistry()


def get_scheduler_registry() -> SchedulerRegistry:
    """Process-wide registry instance."""
    return _registry
