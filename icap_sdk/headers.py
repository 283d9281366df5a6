"""Parsing of raw ICAP response headers."""

from __future__ import annotations

from icap_sdk.exceptions import ICAPProtocolError
from icap_sdk.models import ResponseHeader

STATUS_CODE_KEY = "StatusCode"


def parse_header(response: str) -> ResponseHeader:
    """Parse a raw response header block into a :class:`ResponseHeader`.

    The status code is the second whitespace-delimited token of the first
    line::

        ICAP/1.0 204 Unmodified
        Server: C-ICAP/0.1.6
        ISTag: CI0001-000-0978-6918203

    Header lines are read in order until a line without a colon (normally the
    blank line closing the block). Keys are split at the first colon and the
    single space following it is dropped from the value.

    Args:
        response: Header text as returned by
            :meth:`ICAPConnection.receive_until`.

    Returns:
        The parsed header, with ``StatusCode`` as its first entry.

    Raises:
        ICAPProtocolError: If the status line has fewer than two tokens.
    """
    status_line, _, rest = response.partition("\r\n")
    tokens = status_line.split()
    if len(tokens) < 2:
        raise ICAPProtocolError(f"Malformed status line: {status_line!r}")

    status_token = tokens[1]
    headers: list[tuple[str, str]] = [(STATUS_CODE_KEY, status_token)]

    for line in rest.split("\r\n"):
        key, sep, value = line.partition(":")
        if not sep:
            break
        if value.startswith(" "):
            value = value[1:]
        headers.append((key, value))

    status_code = int(status_token) if status_token.isdecimal() else None
    return ResponseHeader(status_code=status_code, headers=tuple(headers))
