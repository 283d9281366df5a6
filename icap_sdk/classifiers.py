"""Final-verdict classifiers for ``200 OK`` responses.

When a server answers ``200`` to the complete content it returns an
encapsulated HTTP response, usually a block page. A classifier inspects that
page and returns a :class:`~icap_sdk.models.Verdict`, or ``None`` when it does
not recognise it (the client then raises
:class:`~icap_sdk.exceptions.ICAPProtocolError`).

Any callable ``(body: str) -> Verdict | None`` can be passed to
:class:`~icap_sdk.client.ICAPClient` as ``classifier``.
"""

from __future__ import annotations

from typing import Callable, Optional

from icap_sdk.models import Verdict

VerdictClassifier = Callable[[str], Optional[Verdict]]

PROXYAV_TITLE = "ProxyAV: Access Denied"


def extract_title(text: str) -> str | None:
    """Return the text between the first ``<title>`` and ``</title>``, if any."""
    start = text.find("<title>")
    if start == -1:
        return None
    start += len("<title>")
    end = text.find("</title>", start)
    if end == -1:
        return None
    return text[start:end]


class ProxyAVClassifier:
    """Recognises the ProxyAV gateway's ``Access Denied`` page.

    ProxyAV sends this page with status ``200`` for content it lets through,
    so a matching title maps to :attr:`Verdict.ALLOWED`.
    """

    def __init__(self, title: str = PROXYAV_TITLE, verdict: Verdict = Verdict.ALLOWED) -> None:
        self.title = title
        self.verdict = verdict

    def __call__(self, body: str) -> Verdict | None:
        if extract_title(body) == self.title:
            return self.verdict
        return None
