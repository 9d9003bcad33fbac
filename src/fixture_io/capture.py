from __future__ import annotations

__all__ = [
    "Block",
    "CaptureError",
    "CaptureRecorder",
    "Direction",
    "read_capture",
    "write_capture",
]

import dataclasses
import enum
import json
import os
import time
from collections.abc import Callable, Iterable
from typing import Any, TextIO, TypeAlias

from .fixture_constants import CAPTURE_FORMAT, CAPTURE_VERSION

CaptureSourceType: TypeAlias = str | os.PathLike | TextIO


class CaptureError(ValueError):
    """A capture is malformed."""

    pass


class Direction(enum.Enum):
    """Direction of a captured block of data.

    The capture is taken from the point of view of the peer
    that a `FixtureIO` replays:

    * IN: data the peer received, i.e. data the consumer wrote.
    * OUT: data the peer sent, i.e. data the consumer read.
    """

    IN = "in"
    OUT = "out"


@dataclasses.dataclass(frozen=True)
class Block:
    """One block of captured data.

    Parameters
    ----------
    direction : Direction
        Which way the data went.
    elapsed : float
        Time since the start of the capture (sec).
    data : bytes
        The data.
    """

    direction: Direction
    elapsed: float
    data: bytes

    def to_dict(self) -> dict[str, Any]:
        return dict(
            direction=self.direction.value,
            elapsed=self.elapsed,
            data=self.data.hex(),
        )

    @classmethod
    def from_dict(cls, item: dict[str, Any], lineno: int = 0) -> Block:
        """Construct a Block from one decoded line of a capture file.

        Raises
        ------
        CaptureError
            If a field is missing or invalid.
        """
        try:
            direction = Direction(item["direction"])
            elapsed = item["elapsed"]
            data = bytes.fromhex(item["data"])
        except KeyError as e:
            raise CaptureError(f"line {lineno}: missing field {e}") from e
        except (TypeError, ValueError) as e:
            raise CaptureError(f"line {lineno}: invalid block {item!r}: {e}") from e
        if isinstance(elapsed, bool) or not isinstance(elapsed, (int, float)):
            raise CaptureError(f"line {lineno}: elapsed={elapsed!r} is not a number")
        if elapsed < 0:
            raise CaptureError(f"line {lineno}: elapsed={elapsed!r} < 0")
        return cls(direction=direction, elapsed=float(elapsed), data=data)


def read_capture(source: CaptureSourceType) -> list[Block]:
    """Read a capture file.

    Parameters
    ----------
    source : str | os.PathLike | TextIO
        Path to the capture file, or an open text file.

    Raises
    ------
    CaptureError
        If the capture is malformed.
    OSError
        If the file cannot be read.
    """
    if isinstance(source, (str, os.PathLike)):
        with open(source, "r") as f:
            return parse_capture_lines(f)
    return parse_capture_lines(source)


def parse_capture_lines(lines: Iterable[str]) -> list[Block]:
    """Parse the lines of a capture file. Blank lines are ignored."""
    blocks: list[Block] = []
    header_seen = False
    for lineno, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            item = json.loads(line)
        except json.JSONDecodeError as e:
            raise CaptureError(f"line {lineno}: not json-encoded: {e}") from e
        if not isinstance(item, dict):
            raise CaptureError(f"line {lineno}: expected an object, got {item!r}")
        if not header_seen:
            if item.get("format") != CAPTURE_FORMAT:
                raise CaptureError(
                    f"line {lineno}: not a capture file: "
                    f"format={item.get('format')!r} != {CAPTURE_FORMAT!r}"
                )
            if item.get("version") != CAPTURE_VERSION:
                raise CaptureError(
                    f"line {lineno}: unsupported capture version {item.get('version')!r}"
                )
            header_seen = True
            continue
        blocks.append(Block.from_dict(item, lineno=lineno))
    if not header_seen:
        raise CaptureError("capture is empty; it must at least have a header")
    return blocks


def write_capture(dest: CaptureSourceType, blocks: Iterable[Block]) -> None:
    """Write blocks to a capture file.

    Parameters
    ----------
    dest : str | os.PathLike | TextIO
        Path to the capture file, or an open text file.
    blocks : Iterable[Block]
        The blocks, in order.
    """
    if isinstance(dest, (str, os.PathLike)):
        with open(dest, "w") as f:
            write_capture(f, blocks)
        return
    header = dict(format=CAPTURE_FORMAT, version=CAPTURE_VERSION)
    dest.write(json.dumps(header) + "\n")
    for block in blocks:
        dest.write(json.dumps(block.to_dict()) + "\n")


class CaptureRecorder:
    """Accumulate timestamped blocks of data.

    Parameters
    ----------
    clock : callable
        Function returning the current time (sec).
        Elapsed times are measured from construction.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self.clock = clock
        self.start_time = clock()
        self.blocks: list[Block] = []

    def record(self, direction: Direction, data: bytes) -> None:
        """Record a block of data. Empty data is ignored."""
        if not data:
            return
        elapsed = self.clock() - self.start_time
        self.blocks.append(Block(direction=direction, elapsed=elapsed, data=bytes(data)))

    def save(self, dest: CaptureSourceType) -> None:
        """Write the recorded blocks to a capture file."""
        write_capture(dest, self.blocks)
