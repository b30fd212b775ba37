"""Non-blocking TCP server that runs commands against an in-memory store."""

from __future__ import annotations

import argparse
import contextlib
import logging
import selectors
import socket
import struct
import threading
from typing import Callable

from .commands import Database, monotonic_ms
from .dlist import DList
from .protocol import MAX_MSG, ProtocolError, frame_response, parse_request
from .thread_pool import ThreadPool

_log = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 1234
IDLE_TIMEOUT_MS = 5 * 1000
_READ_CHUNK = 64 * 1024
_U32 = struct.Struct("<I")


class Connection:
    """One client connection with its buffers and readiness intentions."""

    def __init__(self, sock: socket.socket | None, database: Database, now_ms: int = 0) -> None:
        self.sock = sock
        self.database = database
        self.want_read = True
        self.want_write = False
        self.want_close = False
        self.incoming = bytearray()
        self.outgoing = bytearray()
        self.last_active_ms = now_ms
        self.idle_node = DList(owner=self)
        self._events = 0

    def try_one_request(self) -> bool:
        """Process one complete request from ``incoming``; False if none is ready."""
        if len(self.incoming) < 4:
            return False
        (length,) = _U32.unpack_from(self.incoming, 0)
        if length > MAX_MSG:
            _log.warning("too long")
            self.want_close = True
            return False
        if 4 + length > len(self.incoming):
            return False
        try:
            cmd = parse_request(bytes(self.incoming[4:4 + length]))
        except ProtocolError:
            _log.warning("bad request")
            self.want_close = True
            return False
        self.outgoing += frame_response(self.database.execute(cmd))
        del self.incoming[:4 + length]
        return True

    def _handle_write(self) -> None:
        try:
            sent = self.sock.send(self.outgoing)
        except BlockingIOError:
            return
        except OSError as exc:
            _log.warning("write() error: %s", exc)
            self.want_close = True
            return
        del self.outgoing[:sent]
        if not self.outgoing:
            self.want_read = True
            self.want_write = False

    def _handle_read(self) -> None:
        try:
            data = self.sock.recv(_READ_CHUNK)
        except BlockingIOError:
            return
        except OSError as exc:
            _log.warning("read() error: %s", exc)
            self.want_close = True
            return
        if not data:
            _log.info("client closed" if not self.incoming else "unexpected EOF")
            self.want_close = True
            return
        self.incoming += data
        while self.try_one_request():
            pass
        if self.outgoing:
            self.want_read = False
            self.want_write = True
            # a request-response socket is most likely writable right away
            self._handle_write()

    def _wanted_events(self) -> int:
        events = 0
        if self.want_read:
            events |= selectors.EVENT_READ
        if self.want_write:
            events |= selectors.EVENT_WRITE
        return events


class Server:
    """Single-threaded event loop serving many connections."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        *,
        clock: Callable[[], int] | None = None,
        idle_timeout_ms: int = IDLE_TIMEOUT_MS,
        num_threads: int = 4,
    ) -> None:
        self._clock = clock if clock is not None else monotonic_ms
        self._idle_timeout_ms = idle_timeout_ms
        self._pool = ThreadPool(num_threads)
        self.database = Database(clock=self._clock, thread_pool=self._pool)
        self._connections: dict[int, Connection] = {}
        self._idle_list = DList()
        self._lock = threading.Lock()
        self._closing = False
        self._running = False
        self._cleaned = False

        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            self._listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._listener.bind((host, port))
            self._listener.setblocking(False)
            self._listener.listen(socket.SOMAXCONN)
        except OSError:
            self._listener.close()
            self._pool.shutdown()
            raise
        self.server_address = self._listener.getsockname()

        self._wake_r, self._wake_w = socket.socketpair()
        self._wake_r.setblocking(False)
        self._selector = selectors.DefaultSelector()
        self._selector.register(self._listener, selectors.EVENT_READ)
        self._selector.register(self._wake_r, selectors.EVENT_READ)

    def __enter__(self) -> Server:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def serve_forever(self) -> None:
        """Run the event loop until ``close`` is called."""
        with self._lock:
            if self._closing:
                return
            self._running = True
        try:
            while not self._closing:
                self._sync_registrations()
                timeout_ms = self._next_timer_ms()
                timeout = None if timeout_ms is None else timeout_ms / 1000
                for key, mask in self._selector.select(timeout):
                    if key.fileobj is self._listener:
                        self._accept()
                    elif key.fileobj is self._wake_r:
                        with contextlib.suppress(OSError):
                            self._wake_r.recv(_READ_CHUNK)
                    else:
                        self._handle_connection(key.data, mask)
                self._process_timers()
        finally:
            self._cleanup()

    def close(self) -> None:
        """Stop the event loop and release every socket and worker."""
        with self._lock:
            self._closing = True
            running = self._running
        if running:
            with contextlib.suppress(OSError):
                self._wake_w.send(b"\0")
        else:
            self._cleanup()

    def _cleanup(self) -> None:
        with self._lock:
            if self._cleaned:
                return
            self._cleaned = True
        for conn in list(self._connections.values()):
            self._destroy(conn)
        self._selector.close()
        self._listener.close()
        self._wake_r.close()
        self._wake_w.close()
        self._pool.shutdown()

    def _sync_registrations(self) -> None:
        for conn in self._connections.values():
            events = conn._wanted_events()
            if events != conn._events:
                self._selector.modify(conn.sock, events, conn)
                conn._events = events

    def _accept(self) -> None:
        try:
            sock, (ip, port) = self._listener.accept()
        except (BlockingIOError, InterruptedError):
            return
        except OSError as exc:
            _log.warning("accept() error: %s", exc)
            return
        _log.info("new client from %s:%d", ip, port)
        sock.setblocking(False)
        conn = Connection(sock, self.database, self._clock())
        self._idle_list.insert_before(conn.idle_node)
        self._connections[sock.fileno()] = conn
        conn._events = conn._wanted_events()
        self._selector.register(sock, conn._events, conn)

    def _destroy(self, conn: Connection) -> None:
        fd = conn.sock.fileno()
        with contextlib.suppress(KeyError, ValueError):
            self._selector.unregister(conn.sock)
        conn.sock.close()
        self._connections.pop(fd, None)
        conn.idle_node.detach()

    def _handle_connection(self, conn: Connection, mask: int) -> None:
        # moving the connection to the tail keeps the idle list sorted
        conn.last_active_ms = self._clock()
        conn.idle_node.detach()
        self._idle_list.insert_before(conn.idle_node)
        if mask & selectors.EVENT_READ and conn.want_read:
            conn._handle_read()
        if mask & selectors.EVENT_WRITE and conn.want_write:
            conn._handle_write()
        if conn.want_close:
            self._destroy(conn)

    def _next_timer_ms(self) -> int | None:
        now = self._clock()
        next_ms: int | None = None
        if not self._idle_list.empty():
            head: Connection = self._idle_list.next.owner
            next_ms = head.last_active_ms + self._idle_timeout_ms
        expiry = self.database.next_expiry()
        if expiry is not None and (next_ms is None or expiry < next_ms):
            next_ms = expiry
        if next_ms is None:
            return None
        return max(0, next_ms - now)

    def _process_timers(self) -> None:
        now = self._clock()
        while not self._idle_list.empty():
            conn: Connection = self._idle_list.next.owner
            if conn.last_active_ms + self._idle_timeout_ms >= now:
                break
            _log.info("removing idle connection: %d", conn.sock.fileno())
            self._destroy(conn)
        self.database.process_timers()


def main(argv: list[str] | None = None) -> int:
    """Start the server and run until interrupted."""
    parser = argparse.ArgumentParser(prog="minikv-server", description="In-memory key-value server.")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    server = Server(args.host, args.port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.close()
    return 0