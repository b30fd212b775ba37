import struct

import pytest

from minikv.protocol import (
    CLIENT_MAX_MSG,
    MAX_ARGS,
    MAX_MSG,
    ErrorCode,
    ProtocolError,
    Tag,
    Writer,
    encode_request,
    format_response,
    frame_response,
    parse_request,
)


def test_writer_nil_bytes():
    w = Writer()
    w.nil()
    assert w.getvalue() == b"\x00"


def test_writer_str_bytes():
    w = Writer()
    w.str(b"hi")
    assert w.getvalue() == bytes([Tag.STR]) + struct.pack("<I", 2) + b"hi"


def test_writer_int_and_dbl_bytes():
    w = Writer()
    w.int(-5)
    w.dbl(1.5)
    assert w.getvalue() == (
        bytes([Tag.INT]) + struct.pack("<q", -5) + bytes([Tag.DBL]) + struct.pack("<d", 1.5)
    )


def test_writer_err_format():
    w = Writer()
    w.err(ErrorCode.UNKNOWN, "unknown command.")
    assert format_response(w.getvalue()) == "(err) 1 unknown command.\n"


def test_begin_end_arr():
    w = Writer()
    ctx = w.begin_arr()
    w.str(b"a")
    w.dbl(2.0)
    w.end_arr(ctx, 2)
    assert format_response(w.getvalue()) == "(arr) len=2\n(str) a\n(dbl) 2\n(arr) end\n"


def test_end_arr_rejects_bad_ctx():
    w = Writer()
    w.int(1)
    with pytest.raises(ValueError):
        w.end_arr(3, 1)


def test_fixed_arr():
    w = Writer()
    w.arr(0)
    assert format_response(w.getvalue()) == "(arr) len=0\n(arr) end\n"


def test_format_scalars():
    w = Writer()
    w.nil()
    assert format_response(w.getvalue()) == "(nil)\n"
    w = Writer()
    w.int(42)
    assert format_response(w.getvalue()) == "(int) 42\n"


def test_format_rejects_trailing_bytes():
    w = Writer()
    w.nil()
    w.nil()
    with pytest.raises(ProtocolError):
        format_response(w.getvalue())


def test_format_rejects_truncated_and_unknown():
    w = Writer()
    w.str(b"hello")
    with pytest.raises(ProtocolError):
        format_response(w.getvalue()[:-1])
    with pytest.raises(ProtocolError):
        format_response(b"\x09")
    with pytest.raises(ProtocolError):
        format_response(b"")


def test_request_round_trip():
    msg = encode_request(["set", b"key", "value"])
    (length,) = struct.unpack("<I", msg[:4])
    assert length == len(msg) - 4
    assert parse_request(msg[4:]) == [b"set", b"key", b"value"]


def test_encode_request_too_long():
    with pytest.raises(ProtocolError):
        encode_request([b"x" * CLIENT_MAX_MSG])


def test_parse_request_errors():
    body = encode_request(["get", "k"])[4:]
    with pytest.raises(ProtocolError):
        parse_request(body + b"\x00")
    with pytest.raises(ProtocolError):
        parse_request(body[:-1])
    with pytest.raises(ProtocolError):
        parse_request(b"\x01\x00")
    with pytest.raises(ProtocolError):
        parse_request(struct.pack("<I", MAX_ARGS + 1))


def test_parse_empty_command():
    assert parse_request(struct.pack("<I", 0)) == []


def test_frame_response_header():
    w = Writer()
    w.int(7)
    body = w.getvalue()
    framed = frame_response(body)
    assert framed[4:] == body
    assert struct.unpack("<I", framed[:4])[0] == len(body)


def test_frame_response_too_big():
    framed = frame_response(b"x" * (MAX_MSG + 1))
    assert struct.unpack("<I", framed[:4])[0] == len(framed) - 4
    assert format_response(framed[4:]) == "(err) 2 response is too big.\n"