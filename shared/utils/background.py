"""
shared/utils/background.py
Tracked fire-and-forget execution for notification dispatch.

Routes hand work to `dispatch_tracker.spawn()` and return immediately.
The tracker bounds how many tasks run at once, logs their failures on its
own logger, and lets the app lifespan `drain()` in-flight work on shutdown
instead of dropping it when the process exits.
"""

import asyncio
import logging
from typing import Any, Coroutine, Optional, Set

from config.settings import settings

logger = logging.getLogger(__name__)


class DispatchTracker:
    def __init__(self, max_in_flight: int):
        self._max_in_flight = max_in_flight
        self._tasks: Set[asyncio.Task] = set()
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def _get_semaphore(self) -> asyncio.Semaphore:
        # A semaphore belongs to the loop it was first used on
        loop = asyncio.get_running_loop()
        if self._semaphore is None or self._loop is not loop:
            self._semaphore = asyncio.Semaphore(self._max_in_flight)
            self._loop = loop
        return self._semaphore

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str = "dispatch") -> asyncio.Task:
        """Schedule `coro` without awaiting it. Must be called from a running loop."""
        semaphore = self._get_semaphore()
        task = asyncio.create_task(self._run(coro, semaphore, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, coro: Coroutine, semaphore: asyncio.Semaphore, name: str) -> Any:
        try:
            async with semaphore:
                return await coro
        except asyncio.CancelledError:
            coro.close()
            logger.warning(f"Background task {name} cancelled before completion")
            raise
        except Exception:
            logger.exception(f"Background task {name} failed")
            return None

    async def drain(self, timeout: Optional[float] = None) -> int:
        """
        Wait for in-flight tasks on the current loop to finish.
        Anything still running after `timeout` seconds is cancelled.
        Returns the number of tasks that had to be cancelled.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while True:
            pending = {t for t in self._tasks if t.get_loop() is loop and not t.done()}
            if not pending:
                return 0

            remaining = None if deadline is None else max(deadline - loop.time(), 0)
            logger.info(f"Draining {len(pending)} notification task(s)")
            _, still_pending = await asyncio.wait(pending, timeout=remaining)

            if still_pending:
                logger.warning(
                    f"Cancelling {len(still_pending)} notification task(s) after drain timeout"
                )
                for task in still_pending:
                    task.cancel()
                await asyncio.gather(*still_pending, return_exceptions=True)
                return len(still_pending)


dispatch_tracker = DispatchTracker(max_in_flight=settings.NOTIFICATION_MAX_IN_FLIGHT)
