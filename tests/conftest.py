"""Shared test fixtures."""

from __future__ import annotations

import io
import socket
import threading
from typing import Callable

import pytest

OPTIONS_OK = (
    b"ICAP/1.0 200 OK\r\n"
    b"Methods: RESPMOD\r\n"
    b"Service: FOO Tech Server 1.0\r\n"
    b"ISTag: \"W3E4R7U9-L2E4-2\"\r\n"
    b"Preview: 4\r\n"
    b"Transfer-Preview: *\r\n"
    b"\r\n"
)
CONTINUE = b"ICAP/1.0 100 Continue\r\n\r\n"
NO_CONTENT = b"ICAP/1.0 204 Unmodified\r\nServer: C-ICAP/0.1.6\r\n\r\n"


def block_page(title: str) -> bytes:
    """Final ``200`` response carrying an encapsulated HTTP block page."""
    html = f"<html><head><title>{title}</title></head><body>Denied</body></html>".encode()
    http_header = b"HTTP/1.1 403 Forbidden\r\nContent-Type: text/html\r\n\r\n"
    icap_header = (
        b"ICAP/1.0 200 OK\r\n"
        b"ISTag: \"W3E4R7U9-L2E4-2\"\r\n"
        b"Encapsulated: res-hdr=0, res-body=" + str(len(http_header)).encode() + b"\r\n"
        b"\r\n"
    )
    body = f"{len(html):X}\r\n".encode() + html + b"\r\n0\r\n\r\n"
    return icap_header + http_header + body


class FakeSocket:
    """Stand-in for a connected socket.

    ``recv`` serves the scripted server bytes; ``sendall`` records what the
    client wrote.
    """

    def __init__(self, incoming: bytes = b"") -> None:
        self._incoming = io.BytesIO(incoming)
        self.sent = bytearray()
        self.recv_sizes: list[int] = []
        self.shutdown_called = False
        self.closed = False

    def sendall(self, data: bytes) -> None:
        self.sent += data

    def recv(self, size: int) -> bytes:
        self.recv_sizes.append(size)
        return self._incoming.read(size)

    def unread(self) -> bytes:
        pos = self._incoming.tell()
        rest = self._incoming.read()
        self._incoming.seek(pos)
        return rest

    def shutdown(self, how: int) -> None:
        self.shutdown_called = True

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def fake_server(monkeypatch: pytest.MonkeyPatch) -> Callable[[bytes], FakeSocket]:
    """Route ``socket.create_connection`` to a :class:`FakeSocket` with scripted replies."""

    def install(incoming: bytes) -> FakeSocket:
        sock = FakeSocket(incoming)
        monkeypatch.setattr(socket, "create_connection", lambda address, timeout=None: sock)
        return sock

    return install


class LoopbackICAPServer:
    """Single-connection TCP server on 127.0.0.1 replaying a scripted dialogue.

    Each script step is ``(expected_suffix, reply)``: the server reads until the
    received data ends with *expected_suffix*, then sends *reply*. After the
    last step the server waits for the client to close, or with *hang_up*
    closes the connection itself.
    """

    def __init__(self, script: list[tuple[bytes, bytes]], hang_up: bool = False) -> None:
        self._script = script
        self._hang_up = hang_up
        self.received = bytearray()
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._listener.bind(("127.0.0.1", 0))
        self._listener.listen(1)
        self.port = self._listener.getsockname()[1]
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        conn, _ = self._listener.accept()
        with conn:
            for suffix, reply in self._script:
                data = bytearray()
                while not data.endswith(suffix):
                    piece = conn.recv(4096)
                    if not piece:
                        return
                    data += piece
                self.received += data
                if reply:
                    conn.sendall(reply)
            while not self._hang_up and conn.recv(4096):
                pass

    def stop(self) -> None:
        self._thread.join(timeout=5)
        self._listener.close()


@pytest.fixture()
def loopback_server():
    servers: list[LoopbackICAPServer] = []

    def start(script: list[tuple[bytes, bytes]], hang_up: bool = False) -> LoopbackICAPServer:
        server = LoopbackICAPServer(script, hang_up)
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.stop()


@pytest.fixture()
def sample_bytes() -> bytes:
    return b"Hello, ICAP!"


@pytest.fixture()
def eicar_bytes() -> bytes:
    """EICAR anti-malware test string (safe; every AV recognises it)."""
    return b"X5O!P%@AP[4\\PZX54(P^)7CC)7}$EICAR-STANDARD-ANTIVIRUS-TEST-FILE!$H+H*"
