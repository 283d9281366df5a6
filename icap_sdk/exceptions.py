"""Exception hierarchy for the ICAP SDK."""

from __future__ import annotations


class ICAPError(Exception):
    """Base exception for all ICAP SDK errors."""


class ICAPConnectionError(ICAPError):
    """Raised when the TCP session to the ICAP server cannot be established or is lost."""


class ICAPTimeoutError(ICAPError):
    """Raised when a connect, send or receive exceeds the client's ``timeout``."""


class ICAPNegotiationError(ICAPError):
    """Raised when the ``OPTIONS`` handshake is malformed or declined by the server."""


class ICAPProtocolError(ICAPError):
    """Raised for malformed responses or status codes the client cannot act on.

    Attributes:
        status_code: ICAP status code of the offending response, or ``None``
            when no status code could be read.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
