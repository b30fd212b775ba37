"""Wire format: length-prefixed requests and tagged, serialized responses."""

from __future__ import annotations

import struct
from enum import IntEnum

MAX_MSG = 32 << 20
CLIENT_MAX_MSG = 4096
MAX_ARGS = 200 * 1000

_U32 = struct.Struct("<I")


class Tag(IntEnum):
    """Type tags of serialized values."""

    NIL = 0
    ERR = 1
    STR = 2
    INT = 3
    DBL = 4
    ARR = 5


class ErrorCode(IntEnum):
    """Codes carried by an ERR value."""

    UNKNOWN = 1
    TOO_BIG = 2
    BAD_TYP = 3
    BAD_ARG = 4


class ProtocolError(Exception):
    """Raised for malformed or oversized messages."""


def _as_bytes(value: bytes | str) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


class Writer:
    """Accumulates serialized response values."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def nil(self) -> None:
        self._buf.append(Tag.NIL)

    def str(self, value: bytes | str) -> None:
        data = _as_bytes(value)
        self._buf += struct.pack("<BI", Tag.STR, len(data))
        self._buf += data

    def int(self, value: int) -> None:
        self._buf += struct.pack("<Bq", Tag.INT, value)

    def dbl(self, value: float) -> None:
        self._buf += struct.pack("<Bd", Tag.DBL, value)

    def err(self, code: int, message: bytes | str) -> None:
        data = _as_bytes(message)
        self._buf += struct.pack("<BII", Tag.ERR, code, len(data))
        self._buf += data

    def arr(self, n: int) -> None:
        self._buf += struct.pack("<BI", Tag.ARR, n)

    def begin_arr(self) -> int:
        """Start an array whose length is filled in by ``end_arr``."""
        self._buf += struct.pack("<BI", Tag.ARR, 0)
        return len(self._buf) - 4

    def end_arr(self, ctx: int, n: int) -> None:
        if ctx < 1 or self._buf[ctx - 1] != Tag.ARR:
            raise ValueError("not the position of an array header")
        _U32.pack_into(self._buf, ctx, n)

    def getvalue(self) -> bytes:
        return bytes(self._buf)


def parse_request(data: bytes) -> list[bytes]:
    """Split a request body into its argument strings."""
    view = memoryview(data)
    end = len(view)
    if end < 4:
        raise ProtocolError("bad request")
    (nstr,) = _U32.unpack_from(view, 0)
    if nstr > MAX_ARGS:
        raise ProtocolError("too many arguments")
    pos = 4
    out: list[bytes] = []
    while len(out) < nstr:
        if pos + 4 > end:
            raise ProtocolError("bad request")
        (length,) = _U32.unpack_from(view, pos)
        pos += 4
        if pos + length > end:
            raise ProtocolError("bad request")
        out.append(bytes(view[pos:pos + length]))
        pos += length
    if pos != end:
        raise ProtocolError("trailing garbage")
    return out


def encode_request(args: list[bytes | str]) -> bytes:
    """Serialize a command into a framed request message."""
    items = [_as_bytes(a) for a in args]
    length = 4 + sum(4 + len(item) for item in items)
    if length > CLIENT_MAX_MSG:
        raise ProtocolError("request is too long")
    parts = [_U32.pack(length), _U32.pack(len(items))]
    for item in items:
        parts.append(_U32.pack(len(item)))
        parts.append(item)
    return b"".join(parts)


def frame_response(body: bytes) -> bytes:
    """Prefix a response body with its length, replacing oversized bodies."""
    if len(body) > MAX_MSG:
        writer = Writer()
        writer.err(ErrorCode.TOO_BIG, "response is too big.")
        body = writer.getvalue()
    return _U32.pack(len(body)) + body


def _format_value(data: bytes, pos: int, lines: list[str]) -> int:
    size = len(data)

    def need(n: int) -> None:
        if pos + n > size:
            raise ProtocolError("bad response")

    need(1)
    tag = data[pos]
    pos += 1
    if tag == Tag.NIL:
        lines.append("(nil)")
        return pos
    if tag == Tag.ERR:
        need(8)
        code, length = struct.unpack_from("<iI", data, pos)
        pos += 8
        need(length)
        text = data[pos:pos + length].decode("utf-8", "replace")
        lines.append(f"(err) {code} {text}")
        return pos + length
    if tag == Tag.STR:
        need(4)
        (length,) = _U32.unpack_from(data, pos)
        pos += 4
        need(length)
        text = data[pos:pos + length].decode("utf-8", "replace")
        lines.append(f"(str) {text}")
        return pos + length
    if tag == Tag.INT:
        need(8)
        (value,) = struct.unpack_from("<q", data, pos)
        lines.append(f"(int) {value}")
        return pos + 8
    if tag == Tag.DBL:
        need(8)
        (value,) = struct.unpack_from("<d", data, pos)
        lines.append("(dbl) %g" % value)
        return pos + 8
    if tag == Tag.ARR:
        need(4)
        (length,) = _U32.unpack_from(data, pos)
        pos += 4
        lines.append(f"(arr) len={length}")
        for _ in range(length):
            pos = _format_value(data, pos, lines)
        lines.append("(arr) end")
        return pos
    raise ProtocolError("bad response")


def format_response(data: bytes) -> str:
    """Render a response body as human-readable lines."""
    lines: list[str] = []
    consumed = _format_value(bytes(data), 0, lines)
    if consumed != len(data):
        raise ProtocolError("bad response")
    return "".join(line + "\n" for line in lines)