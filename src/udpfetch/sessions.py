from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, Optional

from .net import Address
from .packet import PacketKind


@dataclass(slots=True, eq=False)
class TransferSession:
    """One in-flight delivery to one client.

    The byte source is either an open file (``stream``) or a pre-built index
    buffer (``index``) read through ``current_position``. Callers hold
    ``lock`` while comparing or advancing ``current_sequence``.
    """

    client: Address
    stream: Optional[BinaryIO] = None
    index: bytes = b""
    is_index: bool = False
    current_sequence: int = 0
    current_position: int = 0
    last_activity: float = field(default_factory=time.monotonic)
    closed: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @classmethod
    def for_file(cls, client: Address, stream: BinaryIO) -> "TransferSession":
        return cls(client=client, stream=stream)

    @classmethod
    def for_index(cls, client: Address, index: bytes) -> "TransferSession":
        return cls(client=client, index=index, is_index=True)

    @property
    def total_length(self) -> int:
        return len(self.index)

    @property
    def data_kind(self) -> PacketKind:
        return PacketKind.INDEX_DATA if self.is_index else PacketKind.DATA

    def touch(self) -> None:
        self.last_activity = time.monotonic()

    def next_chunk(self, chunk_size: int) -> bytes:
        """Bytes for chunk ``current_sequence``; empty once the source is exhausted."""
        if self.is_index:
            return self.index[self.current_position : self.current_position + chunk_size]
        return self.stream.read(chunk_size)

    def advance(self, chunk_size: int) -> None:
        if self.is_index:
            self.current_position += min(chunk_size, self.total_length - self.current_position)
        self.current_sequence += 1

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self.stream is not None:
            self.stream.close()


class SessionStore:
    """Sessions keyed by client address.

    The store lock only guards the mapping; it is never held while waiting on
    a session's own lock.
    """

    def __init__(self) -> None:
        self._sessions: Dict[Address, TransferSession] = {}
        self._lock = threading.Lock()

    def create(self, client: Address, session: TransferSession) -> Optional[TransferSession]:
        """Install *session* for *client*, returning the session it replaced."""
        with self._lock:
            replaced = self._sessions.get(client)
            self._sessions[client] = session
        return replaced

    def lookup(self, client: Address) -> Optional[TransferSession]:
        with self._lock:
            return self._sessions.get(client)

    def remove(
        self, client: Address, expected: Optional[TransferSession] = None
    ) -> Optional[TransferSession]:
        """Delete and return the session for *client*.

        With *expected*, nothing is removed unless the stored session is that
        exact object.
        """
        with self._lock:
            current = self._sessions.get(client)
            if current is None or (expected is not None and current is not expected):
                return None
            del self._sessions[client]
            return current

    def clear(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            with session.lock:
                session.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, client: object) -> bool:
        with self._lock:
            return client in self._sessions
