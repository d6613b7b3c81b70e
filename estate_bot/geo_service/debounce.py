import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from estate_bot.geo_service.errors import SupersededError


logger = logging.getLogger(__name__)


class CancelableTask:
    """
    Handle for one scheduled request.

    A handle stays valid until a newer request invalidates it. While the task
    is still waiting out the debounce delay, invalidation cancels it; once the
    network call has started it is allowed to finish, but its result is
    discarded.
    """

    def __init__(self, generation: int):
        self.generation = generation
        self._valid = True
        self._started = False
        self._task: asyncio.Task | None = None

    @property
    def is_valid(self) -> bool:
        return self._valid

    @property
    def started(self) -> bool:
        return self._started

    def invalidate(self) -> None:
        self._valid = False
        if self._task is not None and not self._started and not self._task.done():
            self._task.cancel()

    async def result(self) -> Any:
        """
        Waits for the scheduled call.

        :raises SupersededError: when a newer request invalidated this one.
        """
        if self._task is None:
            raise RuntimeError("CancelableTask was never scheduled")
        try:
            value = await self._task
        except asyncio.CancelledError:
            if self._valid:
                raise
            raise SupersededError(f"Request #{self.generation} was superseded") from None
        except Exception:
            # A late failure of a stale request must not reach the caller either
            if self._valid:
                raise
            raise SupersededError(f"Request #{self.generation} was superseded") from None
        if not self._valid:
            raise SupersededError(f"Request #{self.generation} was superseded")
        return value


class Debouncer:
    """
    Delays a call until input activity pauses.

    Every `schedule` invalidates the previous handle, so only the most recent
    call inside the delay window runs, and only the most recent call's result
    is ever delivered.
    """

    def __init__(self, delay: float):
        self.delay = delay
        self._generation = 0
        self._current: CancelableTask | None = None

    @property
    def current(self) -> CancelableTask | None:
        return self._current

    def schedule(self, call: Callable[[], Awaitable[Any]]) -> CancelableTask:
        self.cancel_pending()
        self._generation += 1
        handle = CancelableTask(self._generation)
        handle._task = asyncio.ensure_future(self._run(handle, call))
        self._current = handle
        return handle

    def cancel_pending(self) -> None:
        """Invalidates the current handle, if any."""
        if self._current is not None:
            self._current.invalidate()
            self._current = None

    async def _run(self, handle: CancelableTask, call: Callable[[], Awaitable[Any]]) -> Any:
        if self.delay > 0:
            await asyncio.sleep(self.delay)
        handle._started = True
        logger.debug(f"Debounced request #{handle.generation} started")
        return await call()
