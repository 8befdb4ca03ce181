from __future__ import annotations

# Wire type bytes
DATA = 1
ACK = 2
REQUEST = 3
INDEX = 4
INDEX_DATA = 5
NONEXIST = 6

HEADER_FORMAT = "!BiI"  # type, sequence, length
ACK_FORMAT = "!Bi"  # type, sequence

MAX_PACKET_SIZE = 504
HEADER_SIZE = 9
CHUNK_SIZE = MAX_PACKET_SIZE - HEADER_SIZE

END_OF_STREAM = -1
ERROR_MARKER = 0xFF

DEFAULT_PORT = 12345
DEFAULT_POLL_MS = 1000
DEFAULT_TIMEOUT_MS = 5000
MAX_RETRIES = 5
