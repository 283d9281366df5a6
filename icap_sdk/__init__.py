"""ICAP SDK — Python client for ICAP content-scanning services (RFC 3507)."""

from icap_sdk.classifiers import ProxyAVClassifier, VerdictClassifier, extract_title
from icap_sdk.client import ICAPClient
from icap_sdk.connection import ICAPConnection
from icap_sdk.exceptions import (
    ICAPConnectionError,
    ICAPError,
    ICAPNegotiationError,
    ICAPProtocolError,
    ICAPTimeoutError,
)
from icap_sdk.headers import parse_header
from icap_sdk.models import NegotiatedConfig, ResponseHeader, Verdict

__all__ = [
    "ICAPClient",
    "ICAPConnection",
    "parse_header",
    "ProxyAVClassifier",
    "VerdictClassifier",
    "extract_title",
    "NegotiatedConfig",
    "ResponseHeader",
    "Verdict",
    "ICAPError",
    "ICAPConnectionError",
    "ICAPTimeoutError",
    "ICAPNegotiationError",
    "ICAPProtocolError",
]
