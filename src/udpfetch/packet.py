from __future__ import annotations

import enum
import struct
from dataclasses import dataclass

from .constants import (
    ACK,
    ACK_FORMAT,
    DATA,
    END_OF_STREAM,
    ERROR_MARKER,
    HEADER_FORMAT,
    INDEX,
    INDEX_DATA,
    MAX_PACKET_SIZE,
    NONEXIST,
    REQUEST,
)

HEADER_LEN = struct.calcsize(HEADER_FORMAT)
ACK_LEN = struct.calcsize(ACK_FORMAT)


class ProtocolError(ValueError):
    """A datagram that does not decode to a valid frame."""


class PacketKind(enum.IntEnum):
    DATA = DATA
    ACK = ACK
    REQUEST = REQUEST
    INDEX = INDEX
    INDEX_DATA = INDEX_DATA
    NONEXIST = NONEXIST

    @property
    def carries_data(self) -> bool:
        return self in (PacketKind.DATA, PacketKind.INDEX_DATA)


@dataclass(frozen=True, slots=True)
class Packet:
    kind: PacketKind
    sequence: int = 0
    payload: bytes = b""
    degenerate: bool = False

    @property
    def length(self) -> int:
        return len(self.payload)

    @property
    def is_end_of_stream(self) -> bool:
        return self.kind.carries_data and not self.degenerate and self.sequence == END_OF_STREAM

    @property
    def filename(self) -> str:
        return self.payload.decode("utf-8", errors="replace").strip()

    def to_bytes(self) -> bytes:
        kind = int(self.kind)
        if self.degenerate:
            return bytes((kind, ERROR_MARKER))
        if self.kind == PacketKind.REQUEST:
            if 1 + len(self.payload) > MAX_PACKET_SIZE:
                raise ProtocolError(f"filename too long: {len(self.payload)} bytes")
            return bytes((kind,)) + self.payload
        if self.kind == PacketKind.INDEX:
            return bytes((kind,))
        if self.kind == PacketKind.ACK:
            return struct.pack(ACK_FORMAT, kind, self.sequence)
        if self.kind.carries_data:
            if HEADER_LEN + len(self.payload) > MAX_PACKET_SIZE:
                raise ProtocolError(f"payload too large: {len(self.payload)}")
            return struct.pack(HEADER_FORMAT, kind, self.sequence, len(self.payload)) + self.payload
        return bytes((kind, ERROR_MARKER))

    @staticmethod
    def from_bytes(raw: bytes) -> "Packet":
        if not raw:
            raise ProtocolError("empty datagram")

        try:
            kind = PacketKind(raw[0])
        except ValueError:
            raise ProtocolError(f"unknown packet type: {raw[0]}") from None

        if kind == PacketKind.REQUEST:
            return Packet(kind, payload=bytes(raw[1:]))
        if kind == PacketKind.INDEX:
            return Packet(kind)
        if kind == PacketKind.NONEXIST:
            return Packet(kind, degenerate=True)

        if kind == PacketKind.ACK:
            if len(raw) < ACK_LEN:
                raise ProtocolError("ack too short")
            _, seq = struct.unpack_from(ACK_FORMAT, raw)
            return Packet(kind, sequence=seq)

        # DATA / INDEX_DATA; a 2-byte frame is the empty-index error
        if len(raw) == 2:
            return Packet(kind, degenerate=True)
        if len(raw) < HEADER_LEN:
            raise ProtocolError("data frame too short")
        _, seq, length = struct.unpack_from(HEADER_FORMAT, raw)
        end = HEADER_LEN + length
        if end > len(raw):
            raise ProtocolError(f"declared length {length} exceeds {len(raw) - HEADER_LEN} received bytes")
        return Packet(kind, sequence=seq, payload=bytes(raw[HEADER_LEN:end]))

    @staticmethod
    def request(filename: str) -> "Packet":
        return Packet(PacketKind.REQUEST, payload=filename.encode("utf-8"))

    @staticmethod
    def index() -> "Packet":
        return Packet(PacketKind.INDEX)

    @staticmethod
    def data(seq: int, payload: bytes) -> "Packet":
        return Packet(PacketKind.DATA, sequence=seq, payload=payload)

    @staticmethod
    def index_data(seq: int, payload: bytes) -> "Packet":
        return Packet(PacketKind.INDEX_DATA, sequence=seq, payload=payload)

    @staticmethod
    def end_of_stream(kind: PacketKind) -> "Packet":
        if not kind.carries_data:
            raise ValueError(f"{kind.name} cannot carry an end-of-stream marker")
        return Packet(kind, sequence=END_OF_STREAM)

    @staticmethod
    def ack(seq: int) -> "Packet":
        return Packet(PacketKind.ACK, sequence=seq)

    @staticmethod
    def nonexist() -> "Packet":
        return Packet(PacketKind.NONEXIST, degenerate=True)

    @staticmethod
    def empty_index() -> "Packet":
        return Packet(PacketKind.DATA, degenerate=True)
