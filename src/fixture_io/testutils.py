__all__ = ["create_fixture_connection", "read_reply", "write_command"]

import asyncio
import collections.abc
import contextlib

from .fixture_io import FixtureIO
from .fixture_streams import (
    FixtureStreamReader,
    FixtureStreamWriter,
    StreamReaderType,
    StreamWriterType,
    open_fixture_connection,
)


@contextlib.asynccontextmanager
async def create_fixture_connection(
    fixture: FixtureIO,
    check_finished: bool = True,
) -> collections.abc.AsyncGenerator[
    tuple[FixtureIO, FixtureStreamReader, FixtureStreamWriter], None
]:
    """Open a stream reader and writer on a fixture.
    Return (fixture, reader, writer).

    The writer is closed on exit, which releases the fixture.

    Parameters
    ----------
    fixture : FixtureIO
        The scripted fixture.
    check_finished : bool
        If true, and the body did not raise, check on exit that
        the whole script was performed without a mismatch
        (even if the code under test swallowed a `ScriptMismatch`).
    """
    reader, writer = open_fixture_connection(fixture)
    try:
        yield (fixture, reader, writer)
        if check_finished:
            fixture.assert_finished()
    finally:
        writer.close()


async def read_reply(
    reader: StreamReaderType, terminator: bytes = b"\n", timeout: float = 1
) -> bytes:
    async with asyncio.timeout(timeout):
        return await reader.readuntil(terminator)


async def write_command(
    writer: StreamWriterType, command: bytes, timeout: float = 1
) -> None:
    writer.write(command)
    async with asyncio.timeout(timeout):
        await writer.drain()
