from __future__ import annotations

__all__ = ["RecordingProxy", "relay", "serial_opener"]

import asyncio
import os
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Type

from serial_asyncio import open_serial_connection  # type: ignore

from .capture import CaptureRecorder, Direction
from .fixture_constants import (
    BAUD_RATE,
    DEFAULT_PROXY_HOST,
    DEFAULT_PROXY_PORT,
    DEFAULT_READ_SIZE,
)
from .fixture_streams import StreamReaderType, StreamWriterType

OpenerType = Callable[[], Awaitable[tuple[StreamReaderType, StreamWriterType]]]


def serial_opener(serial_port: str, baudrate: int = BAUD_RATE) -> OpenerType:
    """Return a function that opens a connection to a serial port."""

    async def open_serial() -> tuple[StreamReaderType, StreamWriterType]:
        return await open_serial_connection(url=serial_port, baudrate=baudrate)

    return open_serial


async def relay(
    reader: StreamReaderType,
    writer: StreamWriterType,
    recorder: CaptureRecorder,
    direction: Direction,
    verbose: bool = False,
) -> None:
    """Copy data from reader to writer, recording it, until EOF."""
    while True:
        data = await reader.read(DEFAULT_READ_SIZE)
        if not data:
            return
        if verbose:
            print(f"RecordingProxy: {direction.value} {data!r}")
        recorder.record(direction, data)
        writer.write(data)
        await writer.drain()


class RecordingProxy:
    """Record a session between a client and a device.

    Listen for one client on a TCP socket, connect to the device,
    relay data both ways, and write a capture file when the session ends.
    Data from the client to the device is recorded as `Direction.IN`,
    data from the device to the client as `Direction.OUT`,
    so `FixtureIO.load` of the capture replays the device.

    Parameters
    ----------
    open_upstream : callable
        Async function that connects to the device and returns
        (reader, writer); see `serial_opener`.
    output_path : str | os.PathLike
        Path of the capture file to write.
    host : str
        Host to listen on.
    port : int
        Port to listen on; 0 to pick a free port
        (read `port` after `start` to find out which).
    verbose : bool
        If True, print diagnostics to stdout.
    """

    def __init__(
        self,
        open_upstream: OpenerType,
        output_path: str | os.PathLike,
        host: str = DEFAULT_PROXY_HOST,
        port: int = DEFAULT_PROXY_PORT,
        verbose: bool = False,
    ) -> None:
        self.open_upstream = open_upstream
        self.output_path = output_path
        self.host = host
        self.port = port
        self.verbose = verbose
        self.server: asyncio.Server | None = None
        self.recorder: CaptureRecorder | None = None
        self.done_task: asyncio.Future = asyncio.Future()

    async def start(self) -> None:
        self.server = await asyncio.start_server(
            self.handle_client, host=self.host, port=self.port
        )
        self.port = self.server.sockets[0].getsockname()[1]
        if self.verbose:
            print(f"RecordingProxy: listening on {self.host}:{self.port}")

    async def close(self) -> None:
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()
            self.server = None

    @classmethod
    async def amain(
        cls,
        open_upstream: OpenerType,
        output_path: str | os.PathLike,
        host: str = DEFAULT_PROXY_HOST,
        port: int = DEFAULT_PROXY_PORT,
        verbose: bool = False,
    ) -> None:
        """Record one session, then return."""
        async with cls(
            open_upstream=open_upstream,
            output_path=output_path,
            host=host,
            port=port,
            verbose=verbose,
        ) as proxy:
            await proxy.done_task

    async def handle_client(
        self, client_reader: asyncio.StreamReader, client_writer: asyncio.StreamWriter
    ) -> None:
        if self.recorder is not None:
            print("RecordingProxy: a session was already recorded; rejecting client")
            client_writer.close()
            return
        self.recorder = CaptureRecorder()
        upstream_writer: StreamWriterType | None = None
        try:
            upstream_reader, upstream_writer = await self.open_upstream()
            if self.verbose:
                print("RecordingProxy: client connected; recording")
            to_device = asyncio.create_task(
                relay(
                    client_reader,
                    upstream_writer,
                    self.recorder,
                    Direction.IN,
                    verbose=self.verbose,
                )
            )
            to_client = asyncio.create_task(
                relay(
                    upstream_reader,
                    client_writer,
                    self.recorder,
                    Direction.OUT,
                    verbose=self.verbose,
                )
            )
            done, pending = await asyncio.wait(
                [to_device, to_client], return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            for task in done:
                task.result()
        except Exception as e:
            print(f"RecordingProxy: session failed: {e!r}")
            if not self.done_task.done():
                self.done_task.set_exception(e)
            return
        finally:
            client_writer.close()
            if upstream_writer is not None:
                upstream_writer.close()

        self.recorder.save(self.output_path)
        if self.verbose:
            print(
                f"RecordingProxy: wrote {len(self.recorder.blocks)} blocks "
                f"to {self.output_path}"
            )
        if not self.done_task.done():
            self.done_task.set_result(None)

    async def __aenter__(self) -> RecordingProxy:
        await self.start()
        return self

    async def __aexit__(
        self,
        type: Type[BaseException] | None,
        value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.close()
