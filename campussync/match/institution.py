"""
Institution Matcher
====================

Compares a claimed institution (and optionally a logo image) against
the registry of active trusted issuers.

Scoring (defaults from MatchingConfig):
    exact name match                  0.9  (confidence 0.9)
    substring either way / domain     0.7  (confidence 0.8)
    no issuer matches                 0.3  (confidence 0.4)
    no institution given              0.1  (confidence 0.2)

When a logo is supplied its perceptual-hash similarity to the best
registered logo replaces the name score if it is both above the logo
threshold and higher than the name score.

The matcher never raises; any failure degrades to the no-match score.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional, Sequence, Union

from campussync.config import MatchingConfig
from campussync.match.logo import best_logo_match, perceptual_hash
from campussync.schemas.issuer import TrustedIssuer
from campussync.schemas.matching import MatchedTemplate, MatchMethod, MatchResult

logger = logging.getLogger("campussync.match.institution")

IssuerSource = Union[Sequence[TrustedIssuer], Callable[[], Sequence[TrustedIssuer]]]

_PUNCT = re.compile(r"[^\w\s&]")


def canonical_key(value: Optional[str]) -> str:
    """Lower-case, punctuation stripped, whitespace collapsed."""
    if not value:
        return ""
    return " ".join(_PUNCT.sub(" ", value.lower()).split())


def _contains_words(haystack: str, needle: str) -> bool:
    return bool(needle) and re.search(rf"\b{re.escape(needle)}\b", haystack) is not None


class InstitutionMatcher:
    """
    Trusted-issuer matcher.

    Usage:
        matcher = InstitutionMatcher(store.list_issuers)
        result = matcher.match("Indian Institute of Technology Bombay")

    Args:
        issuers: The active issuers, or a callable returning them. A
            callable is invoked on every match so registry edits are
            picked up without a restart.
        config: Match scores and the logo threshold.
    """

    def __init__(self, issuers: IssuerSource, config: Optional[MatchingConfig] = None):
        self._source = issuers
        self.config = config or MatchingConfig()

    def match(
        self,
        institution: Optional[str],
        logo: Optional[bytes] = None,
    ) -> MatchResult:
        """
        Match a claimed institution.

        Args:
            institution: Institution name as normalized upstream.
            logo: Optional encoded logo image.
        """
        try:
            return self._match(institution, logo)
        except Exception as e:
            logger.warning(f"Institution matching failed for {institution!r}: {e}")
            return MatchResult(score=self.config.no_match_score, confidence=0.4)

    def _issuers(self) -> list[TrustedIssuer]:
        issuers = self._source() if callable(self._source) else self._source
        return [i for i in issuers if i.is_active]

    def _match(self, institution: Optional[str], logo: Optional[bytes]) -> MatchResult:
        cfg = self.config
        issuers = self._issuers()
        name = canonical_key(institution)

        if not name:
            result = MatchResult(
                score=cfg.missing_institution_score, confidence=0.2, method=MatchMethod.NONE
            )
        else:
            result = self._match_name(name, issuers)

        if logo:
            result = self._apply_logo(result, logo, issuers)

        logger.debug(
            f"Institution {institution!r} → score={result.score:.2f} "
            f"method={result.method.value} template="
            f"{result.matched_template.name if result.matched_template else None}"
        )
        return result

    def _match_name(self, name: str, issuers: list[TrustedIssuer]) -> MatchResult:
        cfg = self.config

        for issuer in issuers:
            if canonical_key(issuer.name) == name:
                return MatchResult(
                    score=cfg.exact_match_score,
                    confidence=0.9,
                    method=MatchMethod.EXACT_NAME,
                    matched_template=self._template(issuer),
                )

        for issuer in issuers:
            issuer_name = canonical_key(issuer.name)
            if _contains_words(name, issuer_name) or _contains_words(issuer_name, name):
                return MatchResult(
                    score=cfg.partial_match_score,
                    confidence=0.8,
                    method=MatchMethod.PARTIAL_NAME,
                    matched_template=self._template(issuer),
                )

        for issuer in issuers:
            domain = (issuer.domain or "").lower().strip()
            if not domain:
                continue
            label = domain.split(".")[0]
            if domain in name or (len(label) >= 3 and _contains_words(name, label)):
                return MatchResult(
                    score=cfg.partial_match_score,
                    confidence=0.8,
                    method=MatchMethod.DOMAIN,
                    matched_template=self._template(issuer),
                )

        return MatchResult(score=cfg.no_match_score, confidence=0.4, method=MatchMethod.NONE)

    def _apply_logo(
        self, result: MatchResult, logo: bytes, issuers: list[TrustedIssuer]
    ) -> MatchResult:
        try:
            logo_hash = perceptual_hash(logo)
        except ValueError as e:
            logger.warning(f"Ignoring logo: {e}")
            return result

        issuer, similarity = best_logo_match(logo_hash, issuers)
        result = result.model_copy(update={"logo_score": similarity})
        if issuer is not None and similarity >= self.config.logo_match_threshold and similarity > result.score:
            return MatchResult(
                score=similarity,
                confidence=similarity,
                method=MatchMethod.PHASH,
                matched_template=MatchedTemplate(id=issuer.id, name=issuer.name, kind="logo"),
                logo_score=similarity,
            )
        return result

    @staticmethod
    def _template(issuer: TrustedIssuer) -> MatchedTemplate:
        return MatchedTemplate(
            id=issuer.id,
            name=issuer.name,
            kind="logo" if issuer.logo_hash else "header",
        )
