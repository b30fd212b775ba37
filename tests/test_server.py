import socket
import struct
import threading

import pytest

from minikv.commands import Database
from minikv.protocol import MAX_MSG, encode_request, format_response
from minikv.server import Connection, Server


def _split_responses(data: bytes) -> list[str]:
    out = []
    while data:
        (length,) = struct.unpack_from("<I", data, 0)
        out.append(format_response(data[4:4 + length]))
        data = data[4 + length:]
    return out


def _recv_responses(sock: socket.socket, count: int) -> list[str]:
    buf = b""
    results: list[str] = []
    while len(results) < count:
        chunk = sock.recv(65536)
        assert chunk, "server closed the connection early"
        buf += chunk
        while len(buf) >= 4:
            (length,) = struct.unpack_from("<I", buf, 0)
            if len(buf) < 4 + length:
                break
            results.append(format_response(buf[4:4 + length]))
            buf = buf[4 + length:]
    return results


@pytest.fixture
def running_server():
    server = Server("127.0.0.1", 0, idle_timeout_ms=200)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.close()
    thread.join(timeout=5)
    assert not thread.is_alive()


def test_incomplete_header_waits_for_more():
    conn = Connection(None, Database())
    conn.incoming += b"\x01\x00"
    assert conn.try_one_request() is False
    assert conn.incoming == b"\x01\x00"
    assert conn.want_close is False


def test_incomplete_body_waits_for_more():
    conn = Connection(None, Database())
    request = encode_request(["get", "k"])
    conn.incoming += request[:-1]
    assert conn.try_one_request() is False
    assert bytes(conn.incoming) == request[:-1]
    assert conn.outgoing == b""


def test_pipelined_requests_are_all_answered():
    conn = Connection(None, Database())
    conn.incoming += encode_request(["set", "k", "v"]) + encode_request(["get", "k"])
    handled = 0
    while conn.try_one_request():
        handled += 1
    assert handled == 2
    assert conn.incoming == b""
    assert _split_responses(bytes(conn.outgoing)) == ["(nil)\n", "(str) v\n"]


def test_oversized_length_closes_connection():
    conn = Connection(None, Database())
    conn.incoming += struct.pack("<I", MAX_MSG + 1)
    assert conn.try_one_request() is False
    assert conn.want_close is True


def test_malformed_request_closes_connection():
    conn = Connection(None, Database())
    body = struct.pack("<I", 3)
    conn.incoming += struct.pack("<I", len(body)) + body
    assert conn.try_one_request() is False
    assert conn.want_close is True
    assert conn.outgoing == b""


def test_server_answers_over_tcp(running_server):
    host, port = running_server.server_address
    with socket.create_connection((host, port), timeout=5) as sock:
        sock.sendall(encode_request(["set", "greeting", "hello"]))
        sock.sendall(encode_request(["get", "greeting"]))
        sock.sendall(encode_request(["del", "greeting"]))
        responses = _recv_responses(sock, 3)
    assert responses == ["(nil)\n", "(str) hello\n", "(int) 1\n"]


def test_server_shares_state_between_clients(running_server):
    address = running_server.server_address
    with socket.create_connection(address, timeout=5) as first:
        first.sendall(encode_request(["zadd", "board", "1.5", "alice"]))
        assert _recv_responses(first, 1) == ["(int) 1\n"]
    with socket.create_connection(address, timeout=5) as second:
        second.sendall(encode_request(["zscore", "board", "alice"]))
        assert _recv_responses(second, 1) == ["(dbl) 1.5\n"]


def test_server_drops_idle_connections(running_server):
    with socket.create_connection(running_server.server_address, timeout=5) as sock:
        assert sock.recv(1) == b""


def test_server_closes_bad_clients(running_server):
    with socket.create_connection(running_server.server_address, timeout=5) as sock:
        body = struct.pack("<I", 2)
        sock.sendall(struct.pack("<I", len(body)) + body)
        assert sock.recv(1) == b""


def test_close_without_serving_is_idempotent():
    server = Server("127.0.0.1", 0)
    server.close()
    server.close()
    with pytest.raises(OSError):
        server._listener.getsockname()