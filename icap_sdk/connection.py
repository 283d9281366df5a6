"""Blocking TCP channel carrying one ICAP session."""

from __future__ import annotations

import logging
import socket

from icap_sdk.exceptions import ICAPConnectionError, ICAPProtocolError, ICAPTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 8192

# Shortest valid status line: "ICAP/1.0 200\r\n".
_MIN_STATUS_LINE = 13


class ICAPConnection:
    """One TCP byte stream to an ICAP server.

    Use :meth:`open` to connect. The connection is owned by a single
    :class:`~icap_sdk.client.ICAPClient` and must not be shared between
    threads.
    """

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    @classmethod
    def open(cls, host: str, port: int, timeout: float | None = None) -> ICAPConnection:
        """Resolve *host* and open a blocking TCP connection to it.

        Args:
            host: Server host name or IP address.
            port: Server TCP port.
            timeout: Optional deadline in seconds applied to the connect and
                to every later send and receive.

        Raises:
            ICAPConnectionError: If the address is invalid or the server
                refuses or cannot be reached.
            ICAPTimeoutError: If the connect exceeds *timeout*.
        """
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except socket.timeout as exc:
            raise ICAPTimeoutError(f"Timed out connecting to {host}:{port}") from exc
        except OSError as exc:
            raise ICAPConnectionError(f"Cannot connect to {host}:{port}: {exc}") from exc
        logger.debug("Connected to %s:%s", host, port)
        return cls(sock)

    def send(self, data: bytes) -> None:
        """Write all of *data* to the socket."""
        try:
            self._sock.sendall(data)
        except socket.timeout as exc:
            raise ICAPTimeoutError("Timed out sending to ICAP server") from exc
        except OSError as exc:
            raise ICAPConnectionError(f"Send failed: {exc}") from exc

    def receive_until(self, terminator: bytes, max_bytes: int = DEFAULT_MAX_BYTES) -> str:
        """Read from the socket until the data ends with *terminator*.

        Bytes are received one at a time so nothing past the terminator is
        consumed; an encapsulated HTTP header may follow the ICAP header on
        the same stream.

        Args:
            terminator: Byte sequence closing the message.
            max_bytes: Upper bound on the bytes read before giving up.

        Returns:
            Everything read, terminator included, decoded as latin-1.

        Raises:
            ICAPProtocolError: If *max_bytes* are read without seeing the
                terminator.
            ICAPConnectionError: If the server closes the stream first.
        """
        buf = bytearray()
        min_length = len(terminator) + _MIN_STATUS_LINE
        while len(buf) < max_bytes:
            try:
                byte = self._sock.recv(1)
            except socket.timeout as exc:
                raise ICAPTimeoutError("Timed out waiting for ICAP response") from exc
            except OSError as exc:
                raise ICAPConnectionError(f"Receive failed: {exc}") from exc
            if not byte:
                raise ICAPConnectionError("Connection closed by ICAP server")
            buf += byte
            if len(buf) > min_length and buf.endswith(terminator):
                return buf.decode("latin-1")
        raise ICAPProtocolError(f"Terminator {terminator!r} not found within {max_bytes} bytes")

    def close(self) -> None:
        """Shut down both directions and release the socket."""
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # Peer already gone; the socket still has to be closed.
            logger.debug("Shutdown on a disconnected socket", exc_info=True)
        finally:
            self._sock.close()
