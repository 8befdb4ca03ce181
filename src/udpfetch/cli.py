from __future__ import annotations

import argparse
import logging
import os
import threading
from typing import Callable

from .client import TransferClient, TransferStatus
from .constants import DEFAULT_POLL_MS, DEFAULT_PORT, DEFAULT_TIMEOUT_MS, MAX_RETRIES
from .net import Impairment, UdpEndpoint
from .server import TransferServer

logger = logging.getLogger(__name__)

PROMPT = "Enter command (index, get <filename>, or exit): "


def output_name(client_number: str) -> str:
    return f"{client_number}_test.txt"


def show_index(client: TransferClient) -> bool:
    result, names = client.list_files()
    if result.ok:
        print("Available files:")
        for name in names:
            print(name)
    elif result.status is TransferStatus.EMPTY_INDEX:
        print("No files available.")
    else:
        print(f"Failed to receive complete index after {client.max_retries} retries")
    return result.ok


def fetch(client: TransferClient, filename: str, out: str) -> bool:
    result = client.download(filename, out)
    if result.ok:
        print(f"File transfer complete: {out} ({result.bytes_received} bytes)")
    elif result.status is TransferStatus.NOT_FOUND:
        print("File does not exist.")
    else:
        print(f"Failed to receive complete file after {client.max_retries} retries")
    return result.ok


def run_console(client: TransferClient, out: str, read_line: Callable[[str], str] = input) -> int:
    while True:
        try:
            command = read_line(PROMPT).strip()
        except EOFError:
            break

        if command.lower() == "exit":
            break
        if command.lower() == "index":
            show_index(client)
        elif command.lower().startswith("get "):
            filename = command[4:].strip()
            if filename:
                fetch(client, filename, out)
            else:
                print("Invalid command")
        else:
            print("Invalid command")
    return 0


def _impairment(args: argparse.Namespace) -> Impairment:
    return Impairment(loss_rate=args.loss_rate, delay_ms=args.delay_ms)


def _endpoint(args: argparse.Namespace) -> UdpEndpoint:
    return UdpEndpoint.ephemeral(timeout_ms=args.timeout_ms, impairment=_impairment(args))


def _client(args: argparse.Namespace, udp: UdpEndpoint) -> TransferClient:
    return TransferClient(udp, (args.host, args.port), max_retries=args.max_retries)


def cmd_serve(args: argparse.Namespace) -> int:
    try:
        udp = UdpEndpoint.listening(
            args.listen_host,
            args.port,
            timeout_ms=args.poll_ms,
            impairment=_impairment(args),
        )
    except OSError as e:
        logger.error("cannot bind %s:%d: %s", args.listen_host, args.port, e)
        return 1

    with udp:
        server = TransferServer(udp, args.directory, max_workers=args.workers)
        stop = threading.Event()
        try:
            server.serve_forever(stop)
        except KeyboardInterrupt:
            logger.info("shutting down")
        finally:
            stop.set()
            server.shutdown()
    return 0


def cmd_connect(args: argparse.Namespace) -> int:
    with _endpoint(args) as udp:
        client = _client(args, udp)
        return run_console(client, output_name(args.client_number))


def cmd_index(args: argparse.Namespace) -> int:
    with _endpoint(args) as udp:
        client = _client(args, udp)
        return 0 if show_index(client) else 1


def cmd_get(args: argparse.Namespace) -> int:
    with _endpoint(args) as udp:
        client = _client(args, udp)
        return 0 if fetch(client, args.filename, args.out or os.path.basename(args.filename)) else 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="udpfetch", description="Stop-and-wait text file transfer over UDP.")
    p.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    sub = p.add_subparsers(dest="cmd", required=True)

    def add_impairment(x: argparse.ArgumentParser) -> None:
        x.add_argument("--loss-rate", type=float, default=0.0, help="simulate packet loss")
        x.add_argument("--delay-ms", type=int, default=0, help="simulate per-packet delay")

    def add_client(x: argparse.ArgumentParser) -> None:
        x.add_argument("host")
        x.add_argument("port", type=int)
        x.add_argument("--timeout-ms", type=int, default=DEFAULT_TIMEOUT_MS)
        x.add_argument("--max-retries", type=int, default=MAX_RETRIES)
        add_impairment(x)

    serve = sub.add_parser("serve", help="serve the .txt files of a directory")
    serve.add_argument("--listen-host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=DEFAULT_PORT)
    serve.add_argument("--directory", default=".")
    serve.add_argument("--workers", type=int, default=None, help="worker threads (default: executor's choice)")
    serve.add_argument("--poll-ms", type=int, default=DEFAULT_POLL_MS)
    add_impairment(serve)
    serve.set_defaults(func=cmd_serve)

    connect = sub.add_parser("connect", help="interactive client")
    add_client(connect)
    connect.add_argument("client_number", help="names the output file <client_number>_test.txt")
    connect.set_defaults(func=cmd_connect)

    index = sub.add_parser("index", help="print the server's file index")
    add_client(index)
    index.set_defaults(func=cmd_index)

    get = sub.add_parser("get", help="download one file")
    add_client(get)
    get.add_argument("filename")
    get.add_argument("--out", default=None)
    get.set_defaults(func=cmd_get)

    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s [%(levelname)s] %(message)s")
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
