from __future__ import annotations

__all__ = [
    "Action",
    "ActiveState",
    "Read",
    "Reading",
    "Wait",
    "Waiting",
    "Write",
    "Writing",
]

import dataclasses
from typing import TypeAlias

from .timer import Sleep


@dataclasses.dataclass(frozen=True)
class Read:
    """The peer sends ``data``; the consumer must read it."""

    data: bytes


@dataclasses.dataclass(frozen=True)
class Write:
    """The consumer must write exactly ``data``."""

    data: bytes


@dataclasses.dataclass(frozen=True)
class Wait:
    """Nothing happens for ``duration`` seconds."""

    duration: float


Action: TypeAlias = Read | Write | Wait


class _CursorState:
    """A buffer plus the position of the next byte to transfer.

    Parameters
    ----------
    data : bytes
        The bytes to transfer.
    """

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.position = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.position

    def is_complete(self) -> bool:
        return self.position >= len(self.data)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(remaining={self.remaining})"


class Reading(_CursorState):
    """Bytes the consumer has yet to read."""

    def copy_to(self, buffer: bytearray | memoryview) -> int:
        """Copy as many bytes as fit into ``buffer`` and advance.

        Return the number of bytes copied.
        """
        nbytes = min(len(buffer), self.remaining)
        buffer[:nbytes] = self.data[self.position : self.position + nbytes]
        self.position += nbytes
        return nbytes

    def as_action(self) -> Read:
        """Return a Read action for the bytes not yet read."""
        return Read(self.data[self.position :])


class Writing(_CursorState):
    """Bytes the consumer has yet to write."""

    def expected(self, nbytes: int) -> bytes:
        """Return up to ``nbytes`` expected bytes at the current position."""
        return self.data[self.position : self.position + nbytes]

    def as_action(self) -> Write:
        """Return a Write action for the bytes not yet written."""
        return Write(self.data[self.position :])


class Waiting:
    """An outstanding delay.

    Parameters
    ----------
    sleep : Sleep
        The running timer sleep.
    """

    def __init__(self, sleep: Sleep) -> None:
        self.sleep = sleep

    def is_complete(self) -> bool:
        return self.sleep.poll()

    def as_action(self) -> Wait:
        """Return a Wait action for the time left to wait."""
        return Wait(self.sleep.remaining())

    def __repr__(self) -> str:
        return f"Waiting(remaining={self.sleep.remaining():0.3f})"


ActiveState: TypeAlias = Reading | Writing | Waiting
