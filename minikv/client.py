"""Command-line client that sends one command and prints the reply."""

from __future__ import annotations

import socket
import struct
import sys

from .protocol import CLIENT_MAX_MSG, ProtocolError, encode_request, format_response

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 1234


def _recv_exact(sock: socket.socket, n: int) -> bytes:
    chunks = []
    while n > 0:
        chunk = sock.recv(n)
        if not chunk:
            raise ConnectionError("EOF")
        chunks.append(chunk)
        n -= len(chunk)
    return b"".join(chunks)


def send_request(sock: socket.socket, args: list[bytes | str]) -> None:
    """Send one command as a framed request."""
    sock.sendall(encode_request(args))


def read_response(sock: socket.socket) -> str:
    """Read one framed response and return it rendered as text."""
    (length,) = struct.unpack("<I", _recv_exact(sock, 4))
    if length > CLIENT_MAX_MSG:
        raise ProtocolError("too long")
    return format_response(_recv_exact(sock, length))


def main(argv: list[str] | None = None) -> int:
    """Send the arguments as a command to the local server and print the reply."""
    args = sys.argv[1:] if argv is None else list(argv)
    try:
        sock = socket.create_connection((DEFAULT_HOST, DEFAULT_PORT))
    except OSError as exc:
        print(f"connect: {exc}", file=sys.stderr)
        return 1
    with sock:
        try:
            send_request(sock, args)
            sys.stdout.write(read_response(sock))
        except (ProtocolError, OSError) as exc:
            print(exc, file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())