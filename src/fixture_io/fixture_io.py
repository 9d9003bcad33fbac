from __future__ import annotations

__all__ = ["DisposalReceiver", "FixtureIO", "ScriptMismatch"]

import asyncio
import collections
import datetime
import errno
import os
from collections.abc import Iterable
from types import TracebackType
from typing import Type, TypeAlias

from .actions import (
    Action,
    ActiveState,
    Read,
    Reading,
    Wait,
    Waiting,
    Write,
    Writing,
)
from .capture import Block, CaptureError, CaptureSourceType, Direction, read_capture
from .fixture_constants import DEFAULT_READ_SIZE
from .timer import Timer

DataType: TypeAlias = bytes | bytearray | memoryview | str
DurationType: TypeAlias = float | datetime.timedelta


class ScriptMismatch(AssertionError):
    """The consumer wrote data that the script does not expect."""

    pass


class DisposalReceiver:
    """Receiving half of the signal a `FixtureIO` sends when released.

    Obtain it with `FixtureIO.receiver`. Await it (or its `wait` method)
    to wait until the fixture has been released.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def fired(self) -> bool:
        """Return True if the fixture has been released."""
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def __await__(self):
        return self._event.wait().__await__()

    def _fire(self) -> None:
        self._event.set()


def as_bytes(data: DataType) -> bytes:
    """Convert data to bytes; str is encoded with the default encoding."""
    if isinstance(data, str):
        return data.encode()
    return bytes(data)


class FixtureIO:
    """A scripted, non-blocking byte stream for testing protocol clients.

    Build the script with `empty` and the ``then_...`` methods
    (or translate a capture with `load`), hand the fixture to the code
    under test, and it will insist that the code reads and writes exactly
    what the script says, in order.

    Parameters
    ----------
    verbose : bool
        If True, print diagnostics to stdout.
    timer : Timer | None
        Source of sleeps for wait actions.
        If None, use a `Timer` on the running event loop,
        or on `time.monotonic` if no loop is running.

    Notes
    -----
    The stream API mimics a non-blocking socket:

    * `readinto` returns the number of bytes read, 0 at the end of the
      script, and raises `BlockingIOError` if the script is not at a
      read step. In the latter case the calling task is registered
      as the reader to wake up; see `wait_readable`.
    * `write` returns the number of bytes accepted, raises
      `BlockingIOError` if the script is not at a write step,
      `BrokenPipeError` if the script is finished,
      and `ScriptMismatch` if the data differs from the script.

    Only one reader may be parked at a time; a new registration
    replaces the previous one.
    """

    def __init__(self, verbose: bool = False, timer: Timer | None = None) -> None:
        self.verbose = verbose
        self.timer = timer if timer is not None else Timer()
        self.actions: collections.deque[Action] = collections.deque()
        self.state: ActiveState | None = None
        self.read_waiter: asyncio.Future | None = None
        self.write_waiter: asyncio.Future | None = None
        self.mismatch: ScriptMismatch | None = None
        self.closed = False
        self._disposal = DisposalReceiver()
        self._receiver_taken = False
        self._disposal_sent = False

    @classmethod
    def empty(cls, verbose: bool = False, timer: Timer | None = None) -> FixtureIO:
        """Return a fixture that expects and returns nothing."""
        return cls(verbose=verbose, timer=timer)

    @classmethod
    def load(
        cls,
        source: CaptureSourceType | Iterable[Block],
        verbose: bool = False,
        timer: Timer | None = None,
    ) -> FixtureIO:
        """Return a fixture that replays a captured session.

        Parameters
        ----------
        source : str | os.PathLike | TextIO | Iterable[Block]
            Path to a capture file, an open capture file,
            or the blocks of a capture.
        verbose : bool
            If True, print diagnostics to stdout.
        timer : Timer | None
            Source of sleeps for wait actions.

        Raises
        ------
        CaptureError
            If the capture is malformed, including blocks whose
            elapsed times go backwards.
        OSError
            If the capture file cannot be read.
        """
        # Any object with a read method is an open capture file
        if isinstance(source, (str, os.PathLike)) or hasattr(source, "read"):
            blocks: Iterable[Block] = read_capture(source)  # type: ignore[arg-type]
        else:
            blocks = source

        fixture = cls.empty(verbose=verbose, timer=timer)
        last_elapsed = 0.0
        for i, block in enumerate(blocks):
            wait = block.elapsed - last_elapsed
            if wait < 0:
                raise CaptureError(
                    f"block {i}: elapsed={block.elapsed} < "
                    f"elapsed={last_elapsed} of the previous block"
                )
            match block.direction:
                case Direction.IN:
                    fixture.then_write(block.data)
                case Direction.OUT:
                    fixture.then_wait(wait)
                    fixture.then_read(block.data)
                case _:
                    raise CaptureError(f"block {i}: unknown direction {block.direction!r}")
            last_elapsed = block.elapsed
        return fixture

    def then_read(self, data: DataType) -> FixtureIO:
        """Append a step where the consumer reads ``data``.

        Empty data is ignored, because reading it would look like EOF.
        """
        data = as_bytes(data)
        if data:
            self.actions.append(Read(data))
        return self

    def then_write(self, data: DataType) -> FixtureIO:
        """Append a step where the consumer must write ``data``.

        Empty data is ignored.
        """
        data = as_bytes(data)
        if data:
            self.actions.append(Write(data))
        return self

    def then_wait(self, duration: DurationType) -> FixtureIO:
        """Append a step where nothing happens for ``duration``.

        Parameters
        ----------
        duration : float | datetime.timedelta
            How long to wait; a float is in seconds.

        Raises
        ------
        ValueError
            If duration < 0.
        """
        if isinstance(duration, datetime.timedelta):
            duration = duration.total_seconds()
        if duration < 0:
            raise ValueError(f"{duration=} must be >= 0")
        self.actions.append(Wait(float(duration)))
        return self

    def receiver(self) -> DisposalReceiver:
        """Return the receiver that fires when this fixture is released.

        Raises
        ------
        RuntimeError
            If called more than once.
        """
        if self._receiver_taken:
            raise RuntimeError("FixtureIO.receiver can only be called once")
        self._receiver_taken = True
        return self._disposal

    # Stream API

    def poll_read(self) -> bool:
        """Return True if a read will not block.

        If False, register the current task as the reader to wake
        when reading becomes possible.
        """
        self._assert_open()
        state = self._current_state()
        if state is None or isinstance(state, Reading):
            return True
        if self.verbose:
            print(f"FixtureIO: read not ready; {state=}")
        self.read_waiter = self._park()
        return False

    def poll_write(self) -> bool:
        """Return True if a write will not block.

        A finished script is ready, so that the write raises
        `BrokenPipeError` instead of blocking forever.
        If False, register the current task as the writer to wake.
        """
        self._assert_open()
        state = self._current_state()
        if state is None or isinstance(state, Writing):
            return True
        if self.verbose:
            print(f"FixtureIO: write not ready; {state=}")
        self.write_waiter = self._park()
        return False

    def readinto(self, buffer: bytearray | memoryview) -> int:
        """Read data into ``buffer``; return the number of bytes read.

        Return 0 if the script is finished.

        Raises
        ------
        BlockingIOError
            If the script is not at a read step.
        """
        if self.verbose:
            print(f"FixtureIO: read request={len(buffer)}")
        if not self.poll_read():
            if self.verbose:
                print("FixtureIO: read would block")
            raise BlockingIOError(errno.EAGAIN, "would block")

        state = self._current_state()
        match state:
            case Reading():
                nbytes = state.copy_to(buffer)
                if self.verbose:
                    print(f"FixtureIO: read actual={nbytes}")
            case None:
                nbytes = 0
                if self.verbose:
                    print("FixtureIO: read EOF")
            case _:
                raise AssertionError(f"Bug: read is ready, but {state=}")

        self._wakeup_waiters(self._current_state())
        return nbytes

    def read(self, size: int = DEFAULT_READ_SIZE) -> bytes:
        """Read up to ``size`` bytes; return b"" if the script is finished.

        Raises
        ------
        BlockingIOError
            If the script is not at a read step.
        """
        buffer = bytearray(size)
        nbytes = self.readinto(buffer)
        return bytes(buffer[:nbytes])

    def write(self, data: bytes | bytearray | memoryview) -> int:
        """Write data; return the number of bytes accepted.

        Fewer than len(data) bytes are accepted if the current
        write step expects fewer bytes.

        Raises
        ------
        BlockingIOError
            If the script is not at a write step.
        BrokenPipeError
            If the script is finished.
        ScriptMismatch
            If the data does not match the script.
        """
        self._assert_open()
        data = bytes(data)
        if self.verbose:
            print(f"FixtureIO: write offer={len(data)}")

        state = self._current_state()
        match state:
            case Writing():
                nbytes = min(len(data), state.remaining)
                expected = state.expected(nbytes)
                if data[:nbytes] != expected:
                    self.mismatch = ScriptMismatch(
                        f"Wrote {data!r} but the script expected {expected!r} "
                        f"at byte {state.position} of {state.data!r}"
                    )
                    raise self.mismatch
                state.position += nbytes
                if self.verbose:
                    print(f"FixtureIO: write actual={nbytes}")
            case None:
                if self.verbose:
                    print("FixtureIO: write broken pipe")
                raise BrokenPipeError(errno.EPIPE, "broken pipe")
            case _:
                if self.verbose:
                    print(f"FixtureIO: write would block; {state=}")
                self.write_waiter = self._park()
                raise BlockingIOError(errno.EAGAIN, "would block")

        self._wakeup_waiters(self._current_state())
        return nbytes

    def flush(self) -> None:
        self._assert_open()

    async def wait_readable(self) -> None:
        """Wait until a read will not block."""
        while not self.poll_read():
            assert self.read_waiter is not None
            await self.read_waiter

    async def wait_writable(self) -> None:
        """Wait until a write will not block."""
        while not self.poll_write():
            assert self.write_waiter is not None
            await self.write_waiter

    # Script introspection

    def is_finished(self) -> bool:
        """Return True if every step of the script has been performed."""
        return self._current_state() is None

    def remaining_actions(self) -> list[Action]:
        """Return the steps not yet performed, including what is left
        of the current step.
        """
        actions: list[Action] = []
        if self.state is not None and not self.state.is_complete():
            actions.append(self.state.as_action())
        actions.extend(self.actions)
        return actions

    def assert_finished(self) -> None:
        """Raise AssertionError unless the script completed without mismatch."""
        if self.mismatch is not None:
            raise self.mismatch
        remaining = self.remaining_actions()
        if remaining:
            raise AssertionError(f"Script not finished; remaining actions={remaining}")

    # Lifecycle

    def close(self) -> None:
        """Release the fixture and send the disposal signal.

        Wake any parked reader or writer; their next call raises ValueError.
        A no-op if already closed.
        """
        if self.closed:
            return
        if self.verbose:
            print("FixtureIO: close")
        self.closed = True
        if isinstance(self.state, Waiting):
            self.state.sleep.cancel()
        for waiter in (self.read_waiter, self.write_waiter):
            if waiter is not None and not waiter.done():
                waiter.set_result(None)
        self.read_waiter = None
        self.write_waiter = None
        self._send_disposal()

    def _assert_open(self) -> None:
        if self.closed:
            raise ValueError("I/O operation on closed FixtureIO")

    def _send_disposal(self) -> None:
        if self._disposal_sent:
            return
        self._disposal_sent = True
        self._disposal._fire()

    def _current_state(self) -> ActiveState | None:
        """Retire a completed step and start the next one, if any.

        Wake a parked reader or writer if that changes the step.
        Return the current state, or None if the script is finished.
        """
        changed = False
        if self.state is not None and self.state.is_complete():
            if self.verbose:
                print(f"FixtureIO: action complete; {self.state}")
            self.state = None
            changed = True

        if self.state is None and self.actions:
            match self.actions.popleft():
                case Read(data):
                    self.state = Reading(data)
                case Write(data):
                    self.state = Writing(data)
                case Wait(duration):
                    sleep = self.timer.sleep(duration, callback=self._handle_sleep_elapsed)
                    self.state = Waiting(sleep)
                    # A sleep that has already elapsed will never call back,
                    # so schedule the wakeup check ourselves.
                    if sleep.poll() and sleep.loop is not None:
                        sleep.loop.call_soon(self._handle_sleep_elapsed)
            if self.verbose:
                print(f"FixtureIO: next action; {self.state}")
            changed = True

        if changed:
            self._wakeup_waiters(self.state)
        return self.state

    def _handle_sleep_elapsed(self) -> None:
        if self.closed:
            return
        if self.verbose:
            print("FixtureIO: wait elapsed")
        self._wakeup_waiters(self._current_state())

    def _wakeup_waiters(self, state: ActiveState | None) -> None:
        self._maybe_wakeup_reader(state)
        self._maybe_wakeup_writer(state)

    def _maybe_wakeup_reader(self, state: ActiveState | None) -> None:
        if state is None or isinstance(state, Reading):
            waiter, self.read_waiter = self.read_waiter, None
            if waiter is not None and not waiter.done():
                if self.verbose:
                    print("FixtureIO: wake reader")
                waiter.set_result(None)

    def _maybe_wakeup_writer(self, state: ActiveState | None) -> None:
        if state is None or isinstance(state, Writing):
            waiter, self.write_waiter = self.write_waiter, None
            if waiter is not None and not waiter.done():
                if self.verbose:
                    print("FixtureIO: wake writer")
                waiter.set_result(None)

    def _park(self) -> asyncio.Future | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No task to wake outside an event loop
            return None
        return loop.create_future()

    def __enter__(self) -> FixtureIO:
        return self

    def __exit__(
        self,
        type: Type[BaseException] | None,
        value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    async def __aenter__(self) -> FixtureIO:
        return self

    async def __aexit__(
        self,
        type: Type[BaseException] | None,
        value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def __del__(self) -> None:
        # Fixtures that are dropped without being closed still signal.
        if not getattr(self, "_disposal_sent", True):
            self._send_disposal()

    def __repr__(self) -> str:
        return f"FixtureIO(state={self.state!r}, actions={list(self.actions)!r})"
