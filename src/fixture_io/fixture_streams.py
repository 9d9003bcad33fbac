from __future__ import annotations

__all__ = [
    "FixtureStreamReader",
    "FixtureStreamWriter",
    "StreamReaderType",
    "StreamWriterType",
    "open_fixture_connection",
]

import asyncio
from typing import TypeAlias

from .fixture_constants import DEFAULT_READ_SIZE
from .fixture_io import FixtureIO


class FixtureStreamReader:
    """Stream reader that reads from a `FixtureIO`.

    Supports the reading subset of `asyncio.StreamReader`.
    Intended to be constructed by `open_fixture_connection`.

    Parameters
    ----------
    fixture : FixtureIO
        The fixture to read from.
    """

    def __init__(self, fixture: FixtureIO) -> None:
        self.fixture = fixture
        self.buffer = bytearray()
        self.eof = False

    def at_eof(self) -> bool:
        """Return True if the script is finished and the buffer is empty."""
        return self.eof and not self.buffer

    async def _fill(self) -> None:
        """Wait for data and append it to the buffer.

        Set self.eof if the script is finished.
        """
        await self.fixture.wait_readable()
        data = self.fixture.read(DEFAULT_READ_SIZE)
        if not data:
            self.eof = True
        self.buffer.extend(data)

    def _take(self, nbytes: int) -> bytes:
        data = bytes(self.buffer[:nbytes])
        del self.buffer[:nbytes]
        return data

    async def read(self, n: int = -1) -> bytes:
        """Read up to n bytes; if n < 0 read until EOF.

        Return b"" at EOF.
        """
        if n == 0:
            return b""
        if n < 0:
            while not self.eof:
                await self._fill()
            return self._take(len(self.buffer))
        if not self.buffer and not self.eof:
            await self._fill()
        return self._take(n)

    async def readexactly(self, n: int) -> bytes:
        """Read exactly n bytes.

        Raises
        ------
        asyncio.IncompleteReadError
            If EOF is reached first.
        """
        while len(self.buffer) < n:
            if self.eof:
                raise asyncio.IncompleteReadError(
                    partial=self._take(len(self.buffer)), expected=n
                )
            await self._fill()
        return self._take(n)

    async def readuntil(self, separator: bytes = b"\n") -> bytes:
        """Read data up to and including ``separator``.

        Raises
        ------
        ValueError
            If ``separator`` is blank.
        asyncio.IncompleteReadError
            If EOF is reached first.
        """
        if not separator:
            raise ValueError("readuntil must have a non-blank separator")
        while True:
            index = self.buffer.find(separator)
            if index >= 0:
                return self._take(index + len(separator))
            if self.eof:
                raise asyncio.IncompleteReadError(
                    partial=self._take(len(self.buffer)), expected=None
                )
            await self._fill()

    async def readline(self) -> bytes:
        """Read one line ending in b"\\n".

        Return what is left (possibly b"") if EOF is reached first.
        """
        try:
            return await self.readuntil(b"\n")
        except asyncio.IncompleteReadError as e:
            return e.partial


class FixtureStreamWriter:
    """Stream writer that writes to a `FixtureIO`.

    Supports the writing subset of `asyncio.StreamWriter`.
    Data is buffered by `write` and delivered to the fixture by `drain`.
    Intended to be constructed by `open_fixture_connection`.

    Parameters
    ----------
    fixture : FixtureIO
        The fixture to write to.
    """

    def __init__(self, fixture: FixtureIO) -> None:
        self.fixture = fixture
        self.buffer = bytearray()
        self.isopen = True

    def _assert_open(self) -> None:
        if not self.isopen:
            raise RuntimeError("FixtureStreamWriter is closed")

    def write(self, data: bytes) -> None:
        if self.fixture.verbose:
            print(f"FixtureStreamWriter.write({data!r}); {self.isopen=}")
        self._assert_open()
        self.buffer.extend(data)

    async def drain(self) -> None:
        """Deliver the buffered data to the fixture.

        Raises
        ------
        BrokenPipeError
            If the script finished before all the data was written.
        ScriptMismatch
            If the data does not match the script.
        """
        self._assert_open()
        while self.buffer:
            await self.fixture.wait_writable()
            nbytes = self.fixture.write(self.buffer)
            del self.buffer[:nbytes]

    def close(self) -> None:
        """Close the writer, releasing the fixture."""
        if self.fixture.verbose:
            print("FixtureStreamWriter.close()")
        self.isopen = False
        self.fixture.close()

    def is_closing(self) -> bool:
        return not self.isopen

    async def wait_closed(self) -> None:
        return


StreamReaderType: TypeAlias = asyncio.StreamReader | FixtureStreamReader
StreamWriterType: TypeAlias = asyncio.StreamWriter | FixtureStreamWriter


def open_fixture_connection(
    fixture: FixtureIO,
) -> tuple[FixtureStreamReader, FixtureStreamWriter]:
    """Create a stream reader and writer pair backed by a fixture.

    Closing the writer closes the fixture, which sends its disposal signal.
    """
    reader = FixtureStreamReader(fixture)
    writer = FixtureStreamWriter(fixture)
    return (reader, writer)
