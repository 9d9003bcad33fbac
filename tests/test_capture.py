import io
import json
import pathlib
import tempfile

import pytest

from fixture_io.actions import Read, Wait, Write
from fixture_io.capture import (
    Block,
    CaptureError,
    CaptureRecorder,
    Direction,
    read_capture,
    write_capture,
)
from fixture_io.fixture_io import FixtureIO

HEADER = '{"format": "fixture-io-capture", "version": 1}\n'


def make_capture_text(*lines: str) -> str:
    return HEADER + "".join(line + "\n" for line in lines)


def test_load_translates_capture() -> None:
    blocks = [
        Block(direction=Direction.IN, elapsed=0.0, data=b"abc"),
        Block(direction=Direction.OUT, elapsed=0.05, data=b"defg"),
    ]
    fixture = FixtureIO.load(blocks)
    expected = FixtureIO.empty().then_write(b"abc").then_wait(0.05).then_read(b"defg")
    assert fixture.remaining_actions() == expected.remaining_actions()
    assert fixture.remaining_actions() == [Write(b"abc"), Wait(0.05), Read(b"defg")]


def test_load_waits_are_deltas() -> None:
    blocks = [
        Block(direction=Direction.OUT, elapsed=0.25, data=b"hello"),
        Block(direction=Direction.IN, elapsed=1.0, data=b"cmd"),
        Block(direction=Direction.OUT, elapsed=1.5, data=b"reply"),
    ]
    fixture = FixtureIO.load(blocks)
    assert fixture.remaining_actions() == [
        Wait(0.25),
        Read(b"hello"),
        Write(b"cmd"),
        Wait(0.5),
        Read(b"reply"),
    ]


def test_load_rejects_out_of_order_blocks() -> None:
    blocks = [
        Block(direction=Direction.IN, elapsed=1.0, data=b"abc"),
        Block(direction=Direction.OUT, elapsed=0.5, data=b"defg"),
    ]
    with pytest.raises(CaptureError, match="block 1"):
        FixtureIO.load(blocks)


def test_load_from_file(tmp_path: pathlib.Path) -> None:
    path = tmp_path / "session.capture"
    write_capture(
        path,
        [
            Block(direction=Direction.IN, elapsed=0.0, data=b"=Q\r"),
            Block(direction=Direction.OUT, elapsed=0.125, data=b"=s1\r"),
        ],
    )
    for source in (path, str(path)):
        fixture = FixtureIO.load(source)
        assert fixture.remaining_actions() == [
            Write(b"=Q\r"),
            Wait(0.125),
            Read(b"=s1\r"),
        ]
    with open(path, "r") as f:
        fixture = FixtureIO.load(f)
    assert len(fixture.remaining_actions()) == 3


def test_load_from_text_stream() -> None:
    # Not an io.TextIOBase, but it reads and iterates like a text file
    with tempfile.SpooledTemporaryFile(mode="w+") as f:
        f.write(make_capture_text('{"direction": "out", "elapsed": 0.5, "data": "6f6b"}'))
        f.seek(0)
        fixture = FixtureIO.load(f)
    assert fixture.remaining_actions() == [Wait(0.5), Read(b"ok")]


def test_load_missing_file(tmp_path: pathlib.Path) -> None:
    with pytest.raises(FileNotFoundError):
        FixtureIO.load(tmp_path / "no_such_file")


def test_write_then_read_capture() -> None:
    blocks = [
        Block(direction=Direction.IN, elapsed=0.0, data=b"\x00\xff"),
        Block(direction=Direction.OUT, elapsed=2.5, data=b"text"),
    ]
    f = io.StringIO()
    write_capture(f, blocks)
    lines = f.getvalue().splitlines()
    assert json.loads(lines[0]) == dict(format="fixture-io-capture", version=1)
    assert json.loads(lines[1]) == dict(direction="in", elapsed=0.0, data="00ff")
    f.seek(0)
    assert read_capture(f) == blocks


def test_read_capture_ignores_blank_lines() -> None:
    text = "\n" + make_capture_text(
        "",
        '{"direction": "out", "elapsed": 1, "data": "6869"}',
        "   ",
    )
    assert read_capture(io.StringIO(text)) == [
        Block(direction=Direction.OUT, elapsed=1.0, data=b"hi")
    ]


@pytest.mark.parametrize(
    "text, message",
    [
        ("", "empty"),
        ('{"format": "something-else", "version": 1}\n', "not a capture file"),
        ('{"format": "fixture-io-capture", "version": 99}\n', "unsupported"),
        (make_capture_text("not json"), "line 2: not json-encoded"),
        (make_capture_text("[1, 2]"), "expected an object"),
        (make_capture_text('{"direction": "in", "elapsed": 0}'), "missing field"),
        (
            make_capture_text('{"direction": "up", "elapsed": 0, "data": ""}'),
            "invalid block",
        ),
        (
            make_capture_text('{"direction": "in", "elapsed": 0, "data": "zz"}'),
            "invalid block",
        ),
        (
            make_capture_text('{"direction": "in", "elapsed": "0", "data": ""}'),
            "not a number",
        ),
        (
            make_capture_text('{"direction": "in", "elapsed": -1, "data": ""}'),
            "< 0",
        ),
    ],
)
def test_read_capture_errors(text: str, message: str) -> None:
    with pytest.raises(CaptureError, match=message):
        read_capture(io.StringIO(text))
    # load reports the same error
    with pytest.raises(CaptureError, match=message):
        FixtureIO.load(io.StringIO(text))


def test_capture_recorder() -> None:
    times = iter([10.0, 10.5, 11.25])
    recorder = CaptureRecorder(clock=lambda: next(times))
    recorder.record(Direction.IN, b"cmd")
    recorder.record(Direction.OUT, b"")
    recorder.record(Direction.OUT, bytearray(b"reply"))
    assert recorder.blocks == [
        Block(direction=Direction.IN, elapsed=0.5, data=b"cmd"),
        Block(direction=Direction.OUT, elapsed=1.25, data=b"reply"),
    ]
    f = io.StringIO()
    recorder.save(f)
    f.seek(0)
    assert read_capture(f) == recorder.blocks
