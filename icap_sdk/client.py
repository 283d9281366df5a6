"""Synchronous ICAP client for preview-based ``RESPMOD`` scans."""

from __future__ import annotations

import io
import logging
import os
from pathlib import Path
from typing import Any, BinaryIO, Union
from urllib.parse import urlparse

from icap_sdk.classifiers import ProxyAVClassifier, VerdictClassifier
from icap_sdk.connection import DEFAULT_MAX_BYTES, ICAPConnection
from icap_sdk.exceptions import ICAPConnectionError, ICAPNegotiationError, ICAPProtocolError
from icap_sdk.headers import parse_header
from icap_sdk.models import NegotiatedConfig, ResponseHeader, Verdict

logger = logging.getLogger(__name__)

DEFAULT_PORT = 1344
ICAP_VERSION = "ICAP/1.0"
USER_AGENT = "IT-Kartellet ICAP Client/1.1"

ICAP_TERMINATOR = b"\r\n\r\n"
HTTP_TERMINATOR = b"0\r\n\r\n"
CHUNK_END = b"0\r\n\r\n"
PREVIEW_EOF = b"0; ieof\r\n\r\n"
SEND_CHUNK_SIZE = 8192


class ICAPClient:
    """Synchronous client for an ICAP content-scanning service.

    Connects on construction and, unless *preview_size* is given, asks the
    server for its preferred preview size with an ``OPTIONS`` request. The
    connection stays open for any number of sequential scans until
    :meth:`close` is called.

    Args:
        host: ICAP server host name or IP address.
        port: ICAP server TCP port.
        service: Service name, the path part of ``icap://host/service``.
        preview_size: Explicit preview size in bytes. Skips the ``OPTIONS``
            negotiation; the value is used as given.
        timeout: Optional deadline in seconds for the connect and for each
            send and receive. ``None`` blocks indefinitely.
        max_header_size: Maximum bytes read while waiting for a response
            header or block page.
        classifier: Callable deciding the verdict for a ``200`` final
            response. Defaults to :class:`ProxyAVClassifier`.

    Example::

        with ICAPClient("10.0.0.5", 1344, "avscan") as client:
            if not client.scan_file("/tmp/upload.bin"):
                print("blocked")

    The client is not thread-safe; use one instance per concurrent scan.
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        service: str = "avscan",
        preview_size: int | None = None,
        timeout: float | None = None,
        max_header_size: int = DEFAULT_MAX_BYTES,
        classifier: VerdictClassifier | None = None,
    ) -> None:
        if preview_size is not None and preview_size < 0:
            raise ValueError(f"preview_size must be non-negative, got {preview_size}")
        self._host = host
        self._port = port
        self._service = service
        self._max_header_size = max_header_size
        self._classifier = classifier or ProxyAVClassifier()
        self._closed = True
        self._conn = ICAPConnection.open(host, port, timeout)
        self._closed = False

        try:
            if preview_size is not None:
                self._config = NegotiatedConfig(preview_size=preview_size)
            else:
                self._config = self._negotiate()
        except BaseException:
            self.close()
            raise
        logger.debug("Using preview size %d for %s", self._config.preview_size, self.service_url)

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> ICAPClient:
        """Create a client from an ``icap://host[:port]/service`` URL.

        Remaining keyword arguments are passed to the constructor.
        """
        parsed = urlparse(url)
        if parsed.scheme != "icap":
            raise ValueError(f"Not an icap:// URL: {url!r}")
        service = parsed.path.lstrip("/")
        if not parsed.hostname or not service:
            raise ValueError(f"ICAP URL needs a host and a service: {url!r}")
        return cls(parsed.hostname, parsed.port or DEFAULT_PORT, service, **kwargs)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> int:
        return self._port

    @property
    def service(self) -> str:
        return self._service

    @property
    def service_url(self) -> str:
        return f"icap://{self._host}/{self._service}"

    @property
    def config(self) -> NegotiatedConfig:
        return self._config

    @property
    def preview_size(self) -> int:
        return self._config.preview_size

    def scan_file(self, file_path: Union[str, Path]) -> bool:
        """Scan a file on disk.

        Args:
            file_path: Path to the file to scan.

        Returns:
            ``True`` if the server allowed the content, ``False`` if it was
            blocked.

        Raises:
            FileNotFoundError: If *file_path* does not exist.
            ICAPProtocolError: If the server response cannot be interpreted.
            ICAPConnectionError: If the connection fails mid-scan.
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        with open(path, "rb") as fh:
            length = os.fstat(fh.fileno()).st_size
            return self.scan(fh, length) is Verdict.ALLOWED

    def scan_bytes(self, data: bytes) -> bool:
        """Scan in-memory bytes. Returns ``True`` when allowed."""
        return self.scan(io.BytesIO(data), len(data)) is Verdict.ALLOWED

    def scan(self, stream: BinaryIO, length: int | None = None) -> Verdict:
        """Submit *stream* with a ``RESPMOD`` request and return the verdict.

        The first ``min(preview_size, length)`` bytes go out as a preview. If
        that was the whole content the preview is marked ``ieof`` and the
        server's answer is final. Otherwise the server's interim answer
        decides whether the rest is streamed in chunked encoding.

        Args:
            stream: Readable binary stream positioned at the content start.
            length: Content length in bytes. Defaults to the bytes remaining
                in a seekable *stream*.

        Returns:
            :attr:`Verdict.ALLOWED` or :attr:`Verdict.BLOCKED`.

        Raises:
            ICAPProtocolError: For ``404``, unknown status codes, or
                unrecognised final responses.
            ValueError: If *stream* ends before *length* bytes.
        """
        if self._closed:
            raise ICAPConnectionError("Client is closed")
        if length is None:
            length = _remaining_length(stream)

        preview = min(self._config.preview_size, length)
        preview_data = _read_exactly(stream, preview)
        http_header = f"Content-Length: {length}\r\n\r\n"
        request = (
            f"RESPMOD {self.service_url} {ICAP_VERSION}\r\n"
            f"Host: {self._host}\r\n"
            f"User-Agent: {USER_AGENT}\r\n"
            "Allow: 204\r\n"
            f"Preview: {preview}\r\n"
            f"Encapsulated: res-hdr=0, res-body={len(http_header)}\r\n"
            "\r\n"
            f"{http_header}"
            f"{preview:X}\r\n"
        )
        self._conn.send(request.encode("ascii"))
        self._conn.send(preview_data + b"\r\n")

        if length <= preview:
            self._conn.send(PREVIEW_EOF)
            return self._final_verdict()
        if preview != 0:
            self._conn.send(CHUNK_END)

        interim = self._read_header()
        status = interim.status_code
        if status == 100:
            self._send_remainder(stream)
        elif status == 200:
            if _has_body(interim):
                # Consume the block page so the next request starts on a clean stream.
                self._conn.receive_until(HTTP_TERMINATOR, self._max_header_size)
            return Verdict.BLOCKED
        elif status == 204:
            return Verdict.ALLOWED
        elif status == 404:
            raise ICAPProtocolError(f"ICAP service not found: {self.service_url}", status)
        elif status is not None:
            raise ICAPProtocolError(f"Server returned unknown status code: {status}", status)
        return self._final_verdict()

    def close(self) -> None:
        """Close the connection to the ICAP server."""
        if self._closed:
            return
        self._closed = True
        self._conn.close()

    def __enter__(self) -> ICAPClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _negotiate(self) -> NegotiatedConfig:
        request = (
            f"OPTIONS {self.service_url} {ICAP_VERSION}\r\n"
            f"Host: {self._host}\r\n"
            f"User-Agent: {USER_AGENT}\r\n"
            "Encapsulated: null-body=0\r\n"
            "\r\n"
        )
        self._conn.send(request.encode("ascii"))
        try:
            header = self._read_header()
        except ICAPProtocolError as exc:
            raise ICAPNegotiationError(f"Could not get options from server: {exc}") from exc

        if header.status_code is None:
            raise ICAPNegotiationError("Could not get options from server: no status code")
        if header.status_code != 200:
            raise ICAPNegotiationError(
                f"Could not get preview size from server: unexpected status {header.status_code}"
            )
        offered = header.get("Preview")
        if offered is None:
            raise ICAPNegotiationError("Could not get preview size from server: no Preview header")
        offered = offered.strip()
        if not offered.isdecimal():
            raise ICAPNegotiationError(f"Server offered an invalid preview size: {offered!r}")
        return NegotiatedConfig(preview_size=int(offered), options=header)

    def _read_header(self) -> ResponseHeader:
        raw = self._conn.receive_until(ICAP_TERMINATOR, self._max_header_size)
        logger.debug("ICAP response: %s", raw.partition("\r\n")[0])
        return parse_header(raw)

    def _send_remainder(self, stream: BinaryIO) -> None:
        while True:
            chunk = stream.read(SEND_CHUNK_SIZE)
            if not chunk:
                break
            self._conn.send(f"{len(chunk):X}\r\n".encode("ascii") + chunk + b"\r\n")
        self._conn.send(CHUNK_END)

    def _final_verdict(self) -> Verdict:
        header = self._read_header()
        if header.status_code == 204:
            return Verdict.ALLOWED
        if header.status_code == 200:
            # The ICAP status is OK; the encapsulated HTTP response carries the block page.
            body = self._conn.receive_until(HTTP_TERMINATOR, self._max_header_size)
            verdict = self._classifier(body)
            if verdict is not None:
                logger.debug("Block page classified as %s", verdict.value)
                return verdict
        raise ICAPProtocolError(
            "Unrecognized or no status code in response header", header.status_code
        )


def _has_body(header: ResponseHeader) -> bool:
    """Whether *header* announces an encapsulated body (anything but ``null-body``)."""
    encapsulated = header.get("Encapsulated", "")
    return "-body=" in encapsulated and "null-body" not in encapsulated


def _remaining_length(stream: BinaryIO) -> int:
    pos = stream.tell()
    end = stream.seek(0, os.SEEK_END)
    stream.seek(pos)
    return end - pos


def _read_exactly(stream: BinaryIO, size: int) -> bytes:
    """Read *size* bytes from *stream*, tolerating short reads."""
    data = bytearray()
    while len(data) < size:
        piece = stream.read(size - len(data))
        if not piece:
            raise ValueError(f"Stream ended after {len(data)} of {size} preview bytes")
        data += piece
    return bytes(data)
