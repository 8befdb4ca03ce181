from __future__ import annotations

import enum
import io
import logging
import os
from dataclasses import dataclass
from typing import BinaryIO, List, Optional, Tuple

from .constants import MAX_RETRIES
from .filesystem import parse_index
from .net import Address, UdpEndpoint
from .packet import Packet, PacketKind, ProtocolError

logger = logging.getLogger(__name__)


class TransferStatus(enum.Enum):
    COMPLETE = "complete"
    NOT_FOUND = "not found"
    EMPTY_INDEX = "empty index"
    INCOMPLETE = "incomplete"


@dataclass(slots=True)
class TransferResult:
    status: TransferStatus
    bytes_received: int = 0
    chunks: int = 0
    timeouts: int = 0
    discarded: int = 0

    @property
    def ok(self) -> bool:
        return self.status is TransferStatus.COMPLETE


@dataclass(slots=True)
class TransferClient:
    udp: UdpEndpoint
    server: Address
    # consecutive receive timeouts tolerated; reset by every accepted chunk
    max_retries: int = MAX_RETRIES

    def request_file(self, filename: str, out: BinaryIO) -> TransferResult:
        return self._pull(Packet.request(filename), PacketKind.DATA, out)

    def request_index(self, out: BinaryIO) -> TransferResult:
        return self._pull(Packet.index(), PacketKind.INDEX_DATA, out)

    def list_files(self) -> Tuple[TransferResult, List[str]]:
        buf = io.BytesIO()
        result = self.request_index(buf)
        names = parse_index(buf.getvalue()) if result.ok else []
        return result, names

    def download(self, filename: str, path: str) -> TransferResult:
        """Fetch *filename* into *path*.

        The file is created only once data (or a complete empty transfer)
        arrives, and removed again if the transfer does not complete.
        """
        sink = _LazyFile(path)
        try:
            result = self.request_file(filename, sink)
        finally:
            sink.close()

        if result.ok:
            sink.ensure_exists()
        elif sink.created:
            os.remove(path)
        return result

    def _send(self, packet: Packet) -> None:
        self.udp.sendto(packet.to_bytes(), self.server)

    def _pull(self, request: Packet, kind: PacketKind, out: BinaryIO) -> TransferResult:
        result = TransferResult(TransferStatus.INCOMPLETE)
        expected = 0
        retries = 0

        self._send(request)

        while retries < self.max_retries:
            try:
                raw, addr = self.udp.recvfrom()
            except TimeoutError:
                retries += 1
                result.timeouts += 1
                logger.warning("timeout waiting for %s; retry %d of %d", kind.name, retries, self.max_retries)
                if retries < self.max_retries and expected > 0:
                    self._send(Packet.ack(expected - 1))
                continue

            try:
                packet = Packet.from_bytes(raw)
            except ProtocolError as e:
                logger.warning("dropped malformed packet from %s:%d: %s", *addr, e)
                continue

            if packet.kind == PacketKind.NONEXIST and kind == PacketKind.DATA:
                result.status = TransferStatus.NOT_FOUND
                return result

            if packet.degenerate and packet.kind.carries_data and kind == PacketKind.INDEX_DATA:
                result.status = TransferStatus.EMPTY_INDEX
                return result

            if packet.kind != kind or packet.degenerate:
                logger.warning("ignored unexpected %s packet", packet.kind.name)
                continue

            if packet.is_end_of_stream:
                result.status = TransferStatus.COMPLETE
                return result

            if packet.sequence != expected:
                result.discarded += 1
                logger.info("discarded out-of-order chunk %d, expecting %d", packet.sequence, expected)
                continue

            out.write(packet.payload)
            self._send(Packet.ack(packet.sequence))
            logger.debug("accepted chunk %d (%d bytes)", packet.sequence, packet.length)
            result.bytes_received += packet.length
            result.chunks += 1
            expected += 1
            retries = 0

        logger.warning("giving up after %d retries at chunk %d", self.max_retries, expected)
        return result


class _LazyFile(io.RawIOBase):
    def __init__(self, path: str):
        super().__init__()
        self.path = path
        self._f: Optional[BinaryIO] = None

    @property
    def created(self) -> bool:
        return self._f is not None

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        if self._f is None:
            self._f = open(self.path, "wb")
        return self._f.write(data)

    def ensure_exists(self) -> None:
        if self._f is None:
            open(self.path, "wb").close()

    def close(self) -> None:
        if self._f is not None:
            self._f.close()
        super().close()
