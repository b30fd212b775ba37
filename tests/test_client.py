import socket
import struct
from unittest import mock

import pytest

from minikv.client import main, read_response, send_request
from minikv.protocol import CLIENT_MAX_MSG, ProtocolError, Writer, encode_request, frame_response


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    a.settimeout(5)
    b.settimeout(5)
    yield a, b
    a.close()
    b.close()


def _recv_all(sock: socket.socket, n: int) -> bytes:
    data = b""
    while len(data) < n:
        chunk = sock.recv(n - len(data))
        assert chunk
        data += chunk
    return data


def test_send_request_writes_encoded_command(pair):
    a, b = pair
    send_request(a, ["get", "k"])
    expected = encode_request(["get", "k"])
    assert _recv_all(b, len(expected)) == expected


def test_send_request_wire_bytes(pair):
    a, b = pair
    wire = struct.pack("<IIIs", 12, 1, 4, b"k") + b"eys"
    send_request(a, ["keys"])
    encoded = encode_request(["keys"])
    assert encoded == wire
    assert _recv_all(b, len(encoded)) == wire


def test_read_response_formats_value(pair):
    a, b = pair
    writer = Writer()
    writer.str("value")
    b.sendall(frame_response(writer.getvalue()))
    assert read_response(a) == "(str) value\n"


def test_read_response_array(pair):
    a, b = pair
    writer = Writer()
    writer.arr(2)
    writer.str("m")
    writer.int(7)
    b.sendall(frame_response(writer.getvalue()))
    assert read_response(a) == "(arr) len=2\n(str) m\n(int) 7\n(arr) end\n"


def test_read_response_rejects_long_messages(pair):
    a, b = pair
    b.sendall(struct.pack("<I", CLIENT_MAX_MSG + 1))
    with pytest.raises(ProtocolError):
        read_response(a)


def test_read_response_eof(pair):
    a, b = pair
    b.sendall(b"\x05\x00")
    b.close()
    with pytest.raises(ConnectionError):
        read_response(a)


def test_read_response_bad_body(pair):
    a, b = pair
    b.sendall(frame_response(b"\x09"))
    with pytest.raises(ProtocolError):
        read_response(a)


def test_main_sends_args_and_prints_reply(pair, capsys):
    a, b = pair
    writer = Writer()
    writer.nil()
    b.sendall(frame_response(writer.getvalue()))
    with mock.patch("socket.create_connection", return_value=a):
        assert main(["set", "k", "v"]) == 0
    expected = encode_request(["set", "k", "v"])
    assert _recv_all(b, len(expected)) == expected
    assert capsys.readouterr().out == "(nil)\n"


def test_main_reports_connect_failure(capsys):
    with mock.patch("socket.create_connection", side_effect=ConnectionRefusedError("refused")):
        assert main(["keys"]) == 1
    assert "refused" in capsys.readouterr().err