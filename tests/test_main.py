import pathlib

import pytest

from fixture_io.capture import Block, Direction, write_capture
from fixture_io.main import main


def test_show(tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "session.capture"
    write_capture(
        path,
        [
            Block(direction=Direction.IN, elapsed=0.0, data=b"=Q\r"),
            Block(direction=Direction.OUT, elapsed=0.05, data=b"=s1\r"),
        ],
    )
    assert main(["show", str(path)]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == [
        "write     3 bytes b'=Q\\r'",
        "wait  0.050 s",
        "read      4 bytes b'=s1\\r'",
    ]


def test_show_bad_capture(
    tmp_path: pathlib.Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = tmp_path / "bad.capture"
    path.write_text("this is not a capture\n")
    assert main(["show", str(path)]) == 1
    assert "Cannot load" in capsys.readouterr().err

    assert main(["show", str(tmp_path / "missing.capture")]) == 1


def test_no_command() -> None:
    with pytest.raises(SystemExit):
        main([])
