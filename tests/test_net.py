from __future__ import annotations

from udpfetch.net import Impairment, UdpEndpoint


def test_endpoint_closes_on_exit():
    with UdpEndpoint.ephemeral(timeout_ms=100) as udp:
        assert udp.sock.gettimeout() == 0.1
    assert udp.sock.fileno() == -1


def test_drop_predicate_filters_outbound():
    with UdpEndpoint.listening("127.0.0.1", 0, timeout_ms=500) as receiver:
        impairment = Impairment(drop=lambda data: data.startswith(b"drop"))
        with UdpEndpoint.ephemeral(impairment=impairment) as sender:
            sender.sendto(b"drop me", receiver.address)
            sender.sendto(b"keep me", receiver.address)
            data, addr = receiver.recvfrom()

    assert data == b"keep me"
    assert addr[0] == "127.0.0.1"
