"""Cancelable periodic timer on the asyncio event loop."""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable

_logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None] | None]


class PeriodicTimer:
    """Invoke a callback every ``interval`` seconds until stopped.

    The timer runs as a task on the running loop. ``start`` returns False
    when no loop is running, so callers in synchronous contexts degrade to
    "no background work" instead of failing. ``stop`` is idempotent.

    Exceptions raised by the callback are logged and the timer keeps
    ticking.
    """

    def __init__(self, interval: float, callback: TimerCallback, name: str = "timer") -> None:
        self.interval = interval
        self._callback = callback
        self._name = name
        self._task: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Schedule the timer on the running loop.

        Returns:
            True if the timer is running after the call.
        """
        if self.active:
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            _logger.debug("No running event loop; %s not started", self._name)
            return False
        self._task = loop.create_task(self._run(), name=self._name)
        return True

    def stop(self) -> None:
        """Cancel the timer. Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    def restart(self, interval: float | None = None) -> bool:
        if interval is not None:
            self.interval = interval
        self.stop()
        return self.start()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                _logger.exception("%s callback failed", self._name)
