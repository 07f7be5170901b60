"""Verdict parsing for reasoning-oracle responses.

A response is APPROVED if it contains the token ``APPROVED`` and
REJECTED if it contains ``REJECTED`` (whole word, any case).  A
response with neither token, or with both, is inconclusive: the
decision stays PENDING and nothing is guessed.
"""

from __future__ import annotations

import re

from secmaster.domain import Verdict
from secmaster.errors import InconclusiveAdjudicationError

_TOKENS = {
    Verdict.APPROVED: re.compile(r"\bAPPROVED\b", re.IGNORECASE),
    Verdict.REJECTED: re.compile(r"\bREJECTED\b", re.IGNORECASE),
}
_SEPARATOR = re.compile(r"^[\s\-:–—]+")


def parse_verdict(response: str) -> tuple[Verdict, str]:
    """Classify an oracle response.

    Returns:
        ``(verdict, rationale)`` where the rationale is the text after the
        verdict token, or the whole response if nothing follows it.

    Raises:
        InconclusiveAdjudicationError: Neither or both tokens present.
    """
    found = {
        verdict: match
        for verdict, pattern in _TOKENS.items()
        if (match := pattern.search(response or ""))
    }

    if len(found) != 1:
        reason = "no verdict token" if not found else "both verdict tokens"
        raise InconclusiveAdjudicationError(
            f"Unparseable adjudication response ({reason})", response=response or ""
        )

    verdict, match = next(iter(found.items()))
    rationale = _SEPARATOR.sub("", response[match.end():]).strip()
    return verdict, rationale or response.strip()
