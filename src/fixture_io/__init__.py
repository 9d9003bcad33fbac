from .actions import Action, Read, Wait, Write
from .capture import Block, CaptureError, Direction, read_capture, write_capture
from .fixture_io import DisposalReceiver, FixtureIO, ScriptMismatch
from .fixture_streams import (
    FixtureStreamReader,
    FixtureStreamWriter,
    open_fixture_connection,
)
from .timer import Sleep, Timer
