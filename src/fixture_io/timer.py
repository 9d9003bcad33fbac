from __future__ import annotations

__all__ = ["Sleep", "Timer"]

import asyncio
import time
from collections.abc import Callable

CallbackType = Callable[[], None]


class Sleep:
    """A delay of ``duration`` seconds on an event loop.

    Intended to be constructed by `Timer.sleep`.

    Parameters
    ----------
    loop : asyncio.AbstractEventLoop | None
        The event loop whose clock measures the delay.
        If None, the delay is measured with `time.monotonic`
        and can only be detected by `poll`.
    duration : float
        Delay in seconds. A duration <= 0 has elapsed on construction.
    callback : callable | None
        Function to call (with no arguments) when the delay elapses.
        Not called if the sleep has elapsed on construction,
        if `poll` noticed the delay elapsing first, if cancelled,
        or if there is no loop.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None,
        duration: float,
        callback: CallbackType | None = None,
    ) -> None:
        self.loop = loop
        self.duration = duration
        self.deadline = self.time() + duration
        self.callback = callback
        self.elapsed = duration <= 0
        self.handle: asyncio.TimerHandle | None = None
        if not self.elapsed and loop is not None:
            self.handle = loop.call_at(self.deadline, self._fire)

    def time(self) -> float:
        """Return the current time of the clock that measures the delay."""
        if self.loop is None:
            return time.monotonic()
        return self.loop.time()

    def poll(self) -> bool:
        """Return True if the delay has elapsed."""
        if not self.elapsed and self.time() >= self.deadline:
            self.elapsed = True
            self.cancel()
        return self.elapsed

    def remaining(self) -> float:
        """Return the time left, in seconds (0 once elapsed)."""
        if self.elapsed:
            return 0.0
        return max(0.0, self.deadline - self.time())

    def cancel(self) -> None:
        """Cancel the pending callback, if any."""
        if self.handle is not None:
            self.handle.cancel()
            self.handle = None

    def _fire(self) -> None:
        # The loop may run a handle slightly before the deadline
        # (within its clock resolution), so do not re-check the time.
        self.handle = None
        self.elapsed = True
        if self.callback is not None:
            self.callback()


class Timer:
    """Factory for `Sleep` instances.

    Parameters
    ----------
    loop : asyncio.AbstractEventLoop | None
        Event loop to use. If None, use the loop running at the time
        `sleep` is called; if no loop is running, sleeps are measured
        with `time.monotonic`.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop | None:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            return None

    def sleep(self, duration: float, callback: CallbackType | None = None) -> Sleep:
        """Start and return a sleep of ``duration`` seconds."""
        return Sleep(loop=self.loop, duration=duration, callback=callback)
