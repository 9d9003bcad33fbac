__all__ = [
    "BAUD_RATE",
    "CAPTURE_FORMAT",
    "CAPTURE_VERSION",
    "DEFAULT_PROXY_HOST",
    "DEFAULT_PROXY_PORT",
    "DEFAULT_READ_SIZE",
]

# default number of bytes returned by FixtureIO.read
DEFAULT_READ_SIZE = 64 * 1024

# default baud rate of the serial device being recorded
BAUD_RATE = 9600

# address the recording proxy listens on for the client under test
DEFAULT_PROXY_HOST = "127.0.0.1"
DEFAULT_PROXY_PORT = 8001

# header of a capture file
CAPTURE_FORMAT = "fixture-io-capture"
CAPTURE_VERSION = 1
