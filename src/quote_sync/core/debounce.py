"""Quiescence-window debouncing on the running event loop."""

import asyncio
import logging
from typing import Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DebounceGate(Generic[T]):
    """
    Forward only the last value of a burst of observations.

    Every observation cancels the pending timer and starts a new one; when a
    timer survives the full window its value is handed to ``on_emit``. The
    callback is synchronous so that work it starts is never cancelled by a
    later timer restart.
    """

    def __init__(self, delay: float, on_emit: Callable[[T], None]):
        self.delay = delay
        self._on_emit = on_emit
        self._timer: Optional[asyncio.Task] = None

    @property
    def pending_task(self) -> Optional[asyncio.Task]:
        """The timer currently counting down, if any."""
        if self._timer is not None and not self._timer.done():
            return self._timer
        return None

    def observe(self, value: T) -> None:
        self.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._wait_then_emit(value))

    def cancel(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    async def _wait_then_emit(self, value: T) -> None:
        await asyncio.sleep(self.delay)
        self._on_emit(value)
