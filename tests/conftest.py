from __future__ import annotations

import threading
from collections import deque
from typing import Callable, List, Optional, Tuple

import pytest

from udpfetch.packet import Packet

SERVER = ("127.0.0.1", 12345)
CLIENT = ("127.0.0.1", 40000)


class FakeEndpoint:
    """Records sends; replays queued datagrams and times out when empty.

    Queue ``TimeoutError`` itself to force a timeout between datagrams.
    """

    def __init__(self, peer=SERVER, on_send: Optional[Callable[["FakeEndpoint", Packet], None]] = None):
        self.peer = peer
        self.on_send = on_send
        self.inbox: deque = deque()
        self.sent: List[Tuple[bytes, Tuple[str, int]]] = []
        self._lock = threading.Lock()

    @property
    def address(self):
        return ("127.0.0.1", 0)

    def push(self, *items) -> None:
        for item in items:
            if isinstance(item, Packet):
                item = item.to_bytes()
            self.inbox.append(item)

    def sendto(self, data: bytes, addr) -> None:
        with self._lock:
            self.sent.append((data, addr))
        if self.on_send is not None:
            self.on_send(self, Packet.from_bytes(data))

    def recvfrom(self, bufsize: int = 0):
        if not self.inbox:
            raise TimeoutError
        item = self.inbox.popleft()
        if item is TimeoutError:
            raise TimeoutError
        return item, self.peer

    def packets(self) -> List[Packet]:
        with self._lock:
            return [Packet.from_bytes(data) for data, _ in self.sent]

    def close(self) -> None:
        pass


@pytest.fixture
def live_server(tmp_path):
    """A TransferServer on an ephemeral loopback port, serving ``tmp_path``.

    Yields ``(server, address, directory)``.
    """
    from udpfetch.net import UdpEndpoint
    from udpfetch.server import TransferServer

    udp = UdpEndpoint.listening("127.0.0.1", 0, timeout_ms=50)
    server = TransferServer(udp, str(tmp_path))
    stop = threading.Event()
    t = threading.Thread(target=server.serve_forever, args=(stop,), daemon=True)
    t.start()
    try:
        yield server, udp.address, tmp_path
    finally:
        stop.set()
        t.join(timeout=2.0)
        server.shutdown()
        udp.close()
