import asyncio
import pathlib

from fixture_io.actions import Read, Write
from fixture_io.capture import Direction, read_capture
from fixture_io.fixture_io import FixtureIO
from fixture_io.fixture_streams import open_fixture_connection
from fixture_io.recorder import RecordingProxy, serial_opener


async def test_record_session(tmp_path: pathlib.Path) -> None:
    output_path = tmp_path / "session.capture"
    # The device is itself a scripted fixture
    device = FixtureIO.empty().then_write(b"=Q\r").then_read(b"=s1\r")

    async def open_device():
        return open_fixture_connection(device)

    async with RecordingProxy(
        open_upstream=open_device, output_path=output_path, port=0, verbose=True
    ) as proxy:
        assert proxy.port != 0
        reader, writer = await asyncio.open_connection(proxy.host, proxy.port)
        writer.write(b"=Q\r")
        await writer.drain()
        async with asyncio.timeout(1):
            assert await reader.readuntil(b"\r") == b"=s1\r"
            assert await reader.read() == b""
            await proxy.done_task
        writer.close()
        await writer.wait_closed()

    device.assert_finished()
    blocks = read_capture(output_path)
    assert [(block.direction, block.data) for block in blocks] == [
        (Direction.IN, b"=Q\r"),
        (Direction.OUT, b"=s1\r"),
    ]
    assert 0 <= blocks[0].elapsed <= blocks[1].elapsed

    replay = FixtureIO.load(output_path)
    actions = replay.remaining_actions()
    assert actions[0] == Write(b"=Q\r")
    assert actions[-1] == Read(b"=s1\r")


async def test_record_upstream_failure(tmp_path: pathlib.Path) -> None:
    output_path = tmp_path / "session.capture"

    async def open_device():
        raise ConnectionRefusedError("no device")

    async with RecordingProxy(
        open_upstream=open_device, output_path=output_path, port=0
    ) as proxy:
        reader, writer = await asyncio.open_connection(proxy.host, proxy.port)
        async with asyncio.timeout(1):
            try:
                await proxy.done_task
            except ConnectionRefusedError:
                pass
            else:
                raise AssertionError("done_task should have failed")
        writer.close()
    assert not output_path.exists()


def test_serial_opener_is_lazy() -> None:
    # No serial port is opened until the opener is awaited
    opener = serial_opener("/dev/does-not-exist", baudrate=19200)
    assert callable(opener)
