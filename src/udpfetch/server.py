from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

from .constants import CHUNK_SIZE
from .filesystem import build_index, list_text_files, open_for_read
from .net import Address, UdpEndpoint
from .packet import Packet, PacketKind, ProtocolError
from .sessions import SessionStore, TransferSession

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TransferServer:
    udp: UdpEndpoint
    directory: str = "."
    store: SessionStore = field(default_factory=SessionStore)
    max_workers: Optional[int] = None
    chunk_size: int = CHUNK_SIZE
    _executor: ThreadPoolExecutor = field(init=False, repr=False)

    def __post_init__(self) -> None:
        # workers for one client serialize on the session lock, not here
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="udpfetch")

    def serve_forever(self, stop: Optional[threading.Event] = None) -> None:
        stop = stop or threading.Event()
        host, port = self.udp.address
        logger.info("serving %s on %s:%d", self.directory, host, port)

        while not stop.is_set():
            try:
                raw, addr = self.udp.recvfrom()
            except TimeoutError:
                continue
            except OSError:
                if stop.is_set():
                    break
                raise
            self._executor.submit(self._handle_safely, raw, addr)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
        self.store.clear()

    def _handle_safely(self, raw: bytes, client: Address) -> None:
        try:
            self.handle_datagram(raw, client)
        except Exception:
            logger.exception("error handling packet from %s:%d", *client)

    def handle_datagram(self, raw: bytes, client: Address) -> None:
        try:
            packet = Packet.from_bytes(raw)
        except ProtocolError as e:
            logger.warning("dropped malformed packet from %s:%d: %s", *client, e)
            return

        if packet.kind == PacketKind.REQUEST:
            self.handle_file_request(client, packet.filename)
        elif packet.kind == PacketKind.INDEX:
            self.handle_index_request(client)
        elif packet.kind == PacketKind.ACK:
            self.handle_ack(client, packet.sequence)
        else:
            logger.warning("dropped unexpected %s packet from %s:%d", packet.kind.name, *client)

    def handle_file_request(self, client: Address, filename: str) -> None:
        logger.info("file request for %r from %s:%d", filename, *client)
        try:
            stream = open_for_read(self.directory, filename)
        except OSError as e:
            logger.info("file not found: %r (%s)", filename, e)
            self._send(Packet.nonexist(), client)
            return
        self._start(TransferSession.for_file(client, stream))

    def handle_index_request(self, client: Address) -> None:
        logger.info("index request from %s:%d", *client)
        try:
            index = build_index(list_text_files(self.directory))
        except OSError as e:
            logger.error("cannot list %s: %s", self.directory, e)
            index = b""
        if not index:
            self._send(Packet.empty_index(), client)
            return
        self._start(TransferSession.for_index(client, index))

    def handle_ack(self, client: Address, sequence: int) -> None:
        session = self.store.lookup(client)
        if session is None:
            logger.debug("ack %d from %s:%d with no session", sequence, *client)
            return

        with session.lock:
            if session.closed:
                return
            session.touch()
            if sequence != session.current_sequence:
                logger.debug(
                    "ignored ack %d from %s:%d, expecting %d",
                    sequence,
                    *client,
                    session.current_sequence,
                )
                return
            session.advance(self.chunk_size)
            self._send_next_chunk(session)

    def _start(self, session: TransferSession) -> None:
        with session.lock:
            replaced = self.store.create(session.client, session)
            if replaced is not None:
                logger.info("replacing active session for %s:%d", *session.client)
                with replaced.lock:
                    replaced.close()
            self._send_next_chunk(session)

    def _send_next_chunk(self, session: TransferSession) -> None:
        # caller holds session.lock
        try:
            chunk = session.next_chunk(self.chunk_size)
            if not chunk:
                self._finish(session)
                self._send(Packet.end_of_stream(session.data_kind), session.client)
                logger.info(
                    "sent end of stream to %s:%d after %d chunks", *session.client, session.current_sequence
                )
                return
            make = Packet.index_data if session.is_index else Packet.data
            packet = make(session.current_sequence, chunk)
            self._send(packet, session.client)
            logger.debug(
                "sent %s chunk %d (%d bytes) to %s:%d",
                session.data_kind.name,
                session.current_sequence,
                len(chunk),
                *session.client,
            )
        except OSError as e:
            logger.error("aborting transfer to %s:%d: %s", *session.client, e)
            self._finish(session)

    def _finish(self, session: TransferSession) -> None:
        self.store.remove(session.client, expected=session)
        session.close()

    def _send(self, packet: Packet, client: Address) -> None:
        self.udp.sendto(packet.to_bytes(), client)
