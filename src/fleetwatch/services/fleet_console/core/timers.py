from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Union


logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Union[None, Awaitable[Any]]]


class TimerHandle(Protocol):
    interval_s: float

    @property
    def running(self) -> bool: ...

    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, TimerCallback], TimerHandle]


class RepeatingTimer:
    """Fires ``callback`` every ``interval_s`` seconds on the running event loop.

    The first call happens one interval after ``start()``. A failing callback is
    logged and the loop keeps going; only ``cancel()`` ends it. Cancelling from
    inside the callback is allowed and takes effect once the callback returns.
    """

    def __init__(self, interval_s: float, callback: TimerCallback, *, name: str = "timer") -> None:
        self.interval_s = float(interval_s)
        self.callback = callback
        self.name = name
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name=f"{self.name}-loop")

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is not current:
            task.cancel()

    async def _run(self) -> None:
        me = asyncio.current_task()
        while self._task is me:
            await asyncio.sleep(self.interval_s)
            if self._task is not me:
                break
            try:
                result = self.callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Timer %s callback failed", self.name)


def repeating_timer(interval_s: float, callback: TimerCallback) -> RepeatingTimer:
    name = getattr(callback, "__qualname__", None) or getattr(callback, "__name__", "timer")
    return RepeatingTimer(interval_s, callback, name=name)
