"""udpfetch: stop-and-wait text file transfer over UDP.

- packet: fixed binary framing for every message type
- sessions: server-side per-client transfer state
- server: request dispatch and the push side of the transfer engine
- client: the pull side, with its timeout-driven retry policy
"""

from .client import TransferClient, TransferResult, TransferStatus
from .packet import Packet, PacketKind, ProtocolError
from .server import TransferServer

__all__ = [
    "Packet",
    "PacketKind",
    "ProtocolError",
    "TransferClient",
    "TransferResult",
    "TransferServer",
    "TransferStatus",
]
