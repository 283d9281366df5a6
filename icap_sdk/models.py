"""Data models for ICAP SDK responses."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterator


class Verdict(enum.Enum):
    """Outcome of a scan.

    ``ALLOWED`` means the content passed unmodified (or was explicitly
    allowed); ``BLOCKED`` means the server modified or replaced it.
    """

    ALLOWED = "allowed"
    BLOCKED = "blocked"


@dataclass(frozen=True, slots=True)
class ResponseHeader:
    """Parsed ICAP (or encapsulated HTTP) response header.

    Attributes:
        status_code: Numeric status from the status line, or ``None`` when the
            status token is not a number.
        headers: Ordered ``(key, value)`` pairs. The first entry is always the
            synthetic ``StatusCode`` pseudo-header; duplicate keys are kept.
    """

    status_code: int | None
    headers: tuple[tuple[str, str], ...]

    def get(self, key: str, default: str | None = None) -> str | None:
        """Return the first value stored under *key*, or *default*."""
        for name, value in self.headers:
            if name == key:
                return value
        return default

    def get_all(self, key: str) -> list[str]:
        return [value for name, value in self.headers if name == key]

    def __iter__(self) -> Iterator[tuple[str, str]]:
        return iter(self.headers)

    def __len__(self) -> int:
        return len(self.headers)


@dataclass(frozen=True, slots=True)
class NegotiatedConfig:
    """Settings agreed with the server when the client was created.

    Attributes:
        preview_size: Number of bytes sent as preview with each ``RESPMOD``.
        options: The parsed ``OPTIONS`` response, or ``None`` when the caller
            supplied the preview size explicitly.
    """

    preview_size: int
    options: ResponseHeader | None = None
