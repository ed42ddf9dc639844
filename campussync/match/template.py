"""
Template & QR Matching
=======================

Template match: each trusted issuer registers an ordered list of regex
patterns expected on its certificates. An issuer's score is the share
of its patterns found in the raw OCR text; the best issuer wins.

QR match: a decoded QR payload (decoding itself happens upstream) is
accepted only when a URL in it lies under an issuer's
qr_verification_url. Scheme and a leading "www." are ignored on both
sides; any other page on the issuer's host does not verify.
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Sequence

from campussync.schemas.issuer import TrustedIssuer
from campussync.schemas.matching import QRMatch, TemplateMatch

logger = logging.getLogger("campussync.match.template")


def match_templates(
    text: Optional[str],
    issuers: Sequence[TrustedIssuer],
    threshold: float = 0.6,
) -> TemplateMatch:
    """
    Score OCR text against every issuer's template patterns.

    Invalid regexes are logged and skipped; they still count toward
    the issuer's pattern total.

    Args:
        text: Raw OCR text.
        issuers: Active trusted issuers.
        threshold: Minimum share of patterns for `matched=True`.
    """
    if not text or not text.strip():
        return TemplateMatch()

    best = TemplateMatch()
    for issuer in issuers:
        patterns = issuer.template_patterns
        if not patterns:
            continue
        found: list[str] = []
        for pattern in patterns:
            try:
                if re.search(pattern, text, re.IGNORECASE):
                    found.append(pattern)
            except re.error as e:
                logger.warning(f"Skipping invalid template pattern {pattern!r} for {issuer.name}: {e}")
        score = len(found) / len(patterns)
        if score > best.score:
            best = TemplateMatch(
                matched=score >= threshold,
                score=score,
                issuer_name=issuer.name,
                patterns_matched=found,
            )
    return best


def match_qr(payload: Optional[str], issuers: Sequence[TrustedIssuer]) -> QRMatch:
    """
    Check a decoded QR payload against issuers' verification URLs.

    A payload verifies when one of its URLs starts with the issuer's
    URL, e.g. "https://www.coursera.org/verify/ABC" for
    "https://coursera.org/verify/".
    """
    if not payload or not payload.strip():
        return QRMatch()

    data = payload.strip()
    urls = [_canonical_url(u) for u in _URL_RE.findall(data)]
    for issuer in issuers:
        url = issuer.qr_verification_url
        if not url or not url.strip():
            continue
        prefix = _canonical_url(url.strip())
        if any(u.startswith(prefix) for u in urls):
            logger.debug(f"QR payload verified against {issuer.name}")
            return QRMatch(verified=True, data=data, issuer_name=issuer.name)
    return QRMatch(verified=False, data=data)


_URL_RE = re.compile(r"https?://\S+", re.IGNORECASE)
_URL_PREFIX_RE = re.compile(r"^https?://(www\.)?")


def _canonical_url(value: str) -> str:
    return _URL_PREFIX_RE.sub("", value.lower())
