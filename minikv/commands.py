"""The key-value store: command dispatch, values, and key expiry."""

from __future__ import annotations

import re
import time
from enum import IntEnum
from typing import Any, Callable

from .hashtable import HMap, HNode, str_hash
from .heap import HeapItem, HeapRef, heap_delete, heap_upsert
from .protocol import ErrorCode, Writer
from .zset import ZSet, znode_offset

_LARGE_CONTAINER_SIZE = 1000
_MAX_TIMER_WORKS = 2000

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

_WS = " \t\n\v\f\r"
_INT_RE = re.compile(rb"[ \t\n\v\f\r]*([+-]?[0-9]+)")
_DEC_FLOAT_RE = re.compile(
    rb"[ \t\n\v\f\r]*([+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?"
    rb"|[iI][nN][fF](?:[iI][nN][iI][tT][yY])?))"
)
_HEX_FLOAT_RE = re.compile(
    rb"[ \t\n\v\f\r]*([+-]?0[xX](?:[0-9a-fA-F]+\.?[0-9a-fA-F]*|\.[0-9a-fA-F]+)"
    rb"(?:[pP][+-]?[0-9]+)?)"
)


def monotonic_ms() -> int:
    """Milliseconds from a monotonic clock."""
    return time.monotonic_ns() // 1_000_000


class ValueType(IntEnum):
    """Kinds of value stored under a key."""

    INIT = 0
    STR = 1
    ZSET = 2


class Entry(HNode):
    """A key with its value and its place in the expiry heap."""

    def __init__(self, key: bytes, value_type: ValueType) -> None:
        super().__init__(str_hash(key))
        self.key = key
        self.type = value_type
        self.value = b""
        self.zset = ZSet()
        self.heap_ref = HeapRef(owner=self)

    def __repr__(self) -> str:
        return f"Entry(key={self.key!r}, type={self.type.name})"


class _KeyProbe(HNode):
    """A throwaway hash map key used for lookups by key name."""

    def __init__(self, key: bytes) -> None:
        super().__init__(str_hash(key))
        self.key = key


def _entry_eq(node: HNode, key: HNode) -> bool:
    return node.key == key.key  # type: ignore[attr-defined]


def _same_node(node: HNode, key: HNode) -> bool:
    return node is key


def _parse_int(text: bytes) -> int | None:
    """Parse a whole string as a base-10 int64, saturating on overflow."""
    if not text:
        return 0
    match = _INT_RE.fullmatch(text)
    if match is None:
        return None
    return max(_INT64_MIN, min(_INT64_MAX, int(match.group(1))))


def _parse_float(text: bytes) -> float | None:
    """Parse a whole string as a float; NaN is rejected."""
    if not text:
        return 0.0
    match = _HEX_FLOAT_RE.fullmatch(text)
    if match is not None:
        return float.fromhex(match.group(1).decode("ascii"))
    match = _DEC_FLOAT_RE.fullmatch(text)
    if match is None:
        return None
    return float(match.group(1))


def _dispose_entry(entry: Entry) -> None:
    if entry.type == ValueType.ZSET:
        entry.zset.clear()


_EMPTY_ZSET = ZSet()


class Database:
    """The keyspace and its TTL timers; executes parsed commands."""

    def __init__(
        self,
        clock: Callable[[], int] | None = None,
        thread_pool: Any = None,
    ) -> None:
        self._clock = clock if clock is not None else monotonic_ms
        self._pool = thread_pool
        self._db = HMap()
        self._heap: list[HeapItem] = []
        self._handlers = {
            (b"get", 2): self._get,
            (b"set", 3): self._set,
            (b"del", 2): self._del,
            (b"pexpire", 3): self._expire,
            (b"pttl", 2): self._ttl,
            (b"keys", 1): self._keys,
            (b"zadd", 4): self._zadd,
            (b"zrem", 3): self._zrem,
            (b"zscore", 3): self._zscore,
            (b"zquery", 6): self._zquery,
        }

    def execute(self, cmd: list[bytes | str]) -> bytes:
        """Run one command and return the serialized response body."""
        args = [a.encode("utf-8") if isinstance(a, str) else bytes(a) for a in cmd]
        out = Writer()
        handler = self._handlers.get((args[0], len(args))) if args else None
        if handler is None:
            out.err(ErrorCode.UNKNOWN, "unknown command.")
        else:
            handler(args, out)
        return out.getvalue()

    def next_expiry(self) -> int | None:
        """The earliest expiry time in clock milliseconds, or None."""
        return self._heap[0].val if self._heap else None

    def process_timers(self) -> int:
        """Delete keys whose TTL has passed; return how many were removed."""
        now = self._clock()
        removed = 0
        while self._heap and self._heap[0].val < now:
            entry: Entry = self._heap[0].ref.owner
            self._db.delete(entry, _same_node)
            self._entry_del(entry)
            removed += 1
            if removed > _MAX_TIMER_WORKS:
                break
        return removed

    # -- keyspace helpers --------------------------------------------------

    def _lookup(self, key: bytes) -> Entry | None:
        return self._db.lookup(_KeyProbe(key), _entry_eq)  # type: ignore[return-value]

    def _set_ttl(self, entry: Entry, ttl_ms: int) -> None:
        if ttl_ms < 0:
            if entry.heap_ref.index is not None:
                heap_delete(self._heap, entry.heap_ref.index)
        else:
            item = HeapItem(self._clock() + ttl_ms, entry.heap_ref)
            heap_upsert(self._heap, entry.heap_ref.index, item)

    def _entry_del(self, entry: Entry) -> None:
        self._set_ttl(entry, -1)
        size = len(entry.zset) if entry.type == ValueType.ZSET else 0
        if size > _LARGE_CONTAINER_SIZE and self._pool is not None:
            self._pool.queue(_dispose_entry, entry)
        else:
            _dispose_entry(entry)

    def _expect_zset(self, key: bytes) -> ZSet | None:
        entry = self._lookup(key)
        if entry is None:
            return _EMPTY_ZSET
        return entry.zset if entry.type == ValueType.ZSET else None

    # -- commands ----------------------------------------------------------

    def _get(self, cmd: list[bytes], out: Writer) -> None:
        entry = self._lookup(cmd[1])
        if entry is None:
            out.nil()
        elif entry.type != ValueType.STR:
            out.err(ErrorCode.BAD_TYP, "not a string value")
        else:
            out.str(entry.value)

    def _set(self, cmd: list[bytes], out: Writer) -> None:
        entry = self._lookup(cmd[1])
        if entry is not None:
            if entry.type != ValueType.STR:
                out.err(ErrorCode.BAD_TYP, "a non-string value exists")
                return
            entry.value = cmd[2]
        else:
            entry = Entry(cmd[1], ValueType.STR)
            entry.value = cmd[2]
            self._db.insert(entry)
        out.nil()

    def _del(self, cmd: list[bytes], out: Writer) -> None:
        node = self._db.delete(_KeyProbe(cmd[1]), _entry_eq)
        if node is not None:
            self._entry_del(node)  # type: ignore[arg-type]
        out.int(1 if node is not None else 0)

    def _expire(self, cmd: list[bytes], out: Writer) -> None:
        ttl_ms = _parse_int(cmd[2])
        if ttl_ms is None:
            out.err(ErrorCode.BAD_ARG, "expect int64")
            return
        entry = self._lookup(cmd[1])
        if entry is not None:
            self._set_ttl(entry, ttl_ms)
        out.int(1 if entry is not None else 0)

    def _ttl(self, cmd: list[bytes], out: Writer) -> None:
        entry = self._lookup(cmd[1])
        if entry is None:
            out.int(-2)
            return
        index = entry.heap_ref.index
        if index is None:
            out.int(-1)
            return
        expire_at = self._heap[index].val
        now = self._clock()
        out.int(expire_at - now if expire_at > now else 0)

    def _keys(self, cmd: list[bytes], out: Writer) -> None:
        out.arr(len(self._db))
        for node in self._db:
            out.str(node.key)  # type: ignore[attr-defined]

    def _zadd(self, cmd: list[bytes], out: Writer) -> None:
        score = _parse_float(cmd[2])
        if score is None:
            out.err(ErrorCode.BAD_ARG, "expect float")
            return
        entry = self._lookup(cmd[1])
        if entry is None:
            entry = Entry(cmd[1], ValueType.ZSET)
            self._db.insert(entry)
        elif entry.type != ValueType.ZSET:
            out.err(ErrorCode.BAD_TYP, "expect zset")
            return
        out.int(int(entry.zset.insert(cmd[3], score)))

    def _zrem(self, cmd: list[bytes], out: Writer) -> None:
        zset = self._expect_zset(cmd[1])
        if zset is None:
            out.err(ErrorCode.BAD_TYP, "expect zset")
            return
        node = zset.lookup(cmd[2])
        if node is not None:
            zset.delete(node)
        out.int(1 if node is not None else 0)

    def _zscore(self, cmd: list[bytes], out: Writer) -> None:
        zset = self._expect_zset(cmd[1])
        if zset is None:
            out.err(ErrorCode.BAD_TYP, "expect zset")
            return
        node = zset.lookup(cmd[2])
        if node is None:
            out.nil()
        else:
            out.dbl(node.score)

    def _zquery(self, cmd: list[bytes], out: Writer) -> None:
        score = _parse_float(cmd[2])
        if score is None:
            out.err(ErrorCode.BAD_ARG, "expect fp number")
            return
        name = cmd[3]
        offset = _parse_int(cmd[4])
        limit = _parse_int(cmd[5])
        if offset is None or limit is None:
            out.err(ErrorCode.BAD_ARG, "expect int")
            return
        zset = self._expect_zset(cmd[1])
        if zset is None:
            out.err(ErrorCode.BAD_TYP, "expect zset")
            return
        if limit <= 0:
            out.arr(0)
            return
        node = znode_offset(zset.seek_ge(score, name), offset)
        ctx = out.begin_arr()
        n = 0
        while node is not None and n < limit:
            out.str(node.name)
            out.dbl(node.score)
            node = znode_offset(node, 1)
            n += 2
        out.end_arr(ctx, n)