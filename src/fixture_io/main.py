import argparse
import asyncio
import sys
from collections.abc import Sequence

from .actions import Read, Wait, Write
from .capture import CaptureError
from .fixture_constants import BAUD_RATE, DEFAULT_PROXY_HOST, DEFAULT_PROXY_PORT
from .fixture_io import FixtureIO
from .recorder import RecordingProxy, serial_opener


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fixture-io",
        description="Record and inspect captures for scripted FixtureIO streams.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    show_parser = subparsers.add_parser(
        "show", help="Print the script that FixtureIO.load builds from a capture"
    )
    show_parser.add_argument("capture", help="Path to the capture file")

    record_parser = subparsers.add_parser(
        "record",
        help="Relay one client session to a serial device and record it",
    )
    record_parser.add_argument(
        "serial_port",
        help="Serial port connected to the device, "
        "typically of the form /dev/tty...",
    )
    record_parser.add_argument("output", help="Path of the capture file to write")
    record_parser.add_argument(
        "--baudrate",
        type=int,
        default=BAUD_RATE,
        help=f"Baud rate of the serial port (default {BAUD_RATE})",
    )
    record_parser.add_argument(
        "--host",
        default=DEFAULT_PROXY_HOST,
        help=f"Host for the client to connect to (default {DEFAULT_PROXY_HOST})",
    )
    record_parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PROXY_PORT,
        help=f"Port for the client to connect to (default {DEFAULT_PROXY_PORT})",
    )
    record_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="print diagnostic information to stdout",
    )
    return parser


def format_script(fixture: FixtureIO) -> list[str]:
    """Describe each remaining step of a fixture's script, one per line."""
    lines = []
    for action in fixture.remaining_actions():
        match action:
            case Read(data):
                lines.append(f"read  {len(data):5d} bytes {data!r}")
            case Write(data):
                lines.append(f"write {len(data):5d} bytes {data!r}")
            case Wait(duration):
                lines.append(f"wait  {duration:0.3f} s")
    return lines


def show(capture_path: str) -> int:
    try:
        fixture = FixtureIO.load(capture_path)
    except (CaptureError, OSError) as e:
        print(f"Cannot load {capture_path!r}: {e}", file=sys.stderr)
        return 1
    for line in format_script(fixture):
        print(line)
    fixture.close()
    return 0


def record(args: argparse.Namespace) -> int:
    try:
        asyncio.run(
            RecordingProxy.amain(
                open_upstream=serial_opener(args.serial_port, baudrate=args.baudrate),
                output_path=args.output,
                host=args.host,
                port=args.port,
                verbose=args.verbose,
            )
        )
    except OSError as e:
        print(f"Recording failed: {e!r}", file=sys.stderr)
        return 1
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = create_parser().parse_args(argv)
    match args.command:
        case "show":
            return show(args.capture)
        case "record":
            return record(args)
    raise AssertionError(f"Bug: unhandled command {args.command!r}")


def run_fixture_io() -> None:
    sys.exit(main())
