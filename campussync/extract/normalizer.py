"""
Field Normalizer
=================

Cleans and standardizes extracted fields and assigns a normalization
confidence:

1. Dates → ISO-8601 (YYYY-MM-DD) from numeric, textual and ordinal forms
2. Recipient names → whitespace collapsed, "Last, First" → "First Last"
3. Institutions / titles → trimmed, connective-aware title case,
   optional alias mapping to canonical institution names

Each present field receives a confidence:
    coerced into a canonical form   0.9
    cleaned (plausible shape)       0.8 (names, institutions) / 0.7 (free text)
    left as-is (unrecognized)       0.3

The overall confidence is the mean over present fields, 0.0 when no
field is present.

An optional LLM delegate is tried first. Any failure there is logged
and the rule-based path runs instead, so `normalize` never raises.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import date
from typing import TYPE_CHECKING, Optional

from campussync.config import NormalizationConfig
from campussync.schemas.fields import ExtractedFields, NormalizedFields
from campussync.utils import clamp, normalize_whitespace, smart_case

if TYPE_CHECKING:
    from campussync.extract.llm_normalizer import LLMNormalizer

logger = logging.getLogger("campussync.extract.normalizer")


COERCED = 0.9
CLEANED_NAME = 0.8
CLEANED_TEXT = 0.7
AS_IS = 0.3

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}
MONTH_NAMES = (
    "january", "february", "march", "april", "may", "june", "july",
    "august", "september", "october", "november", "december",
)

_MONTH = r"([A-Za-z]{3,9})\.?"
_ORD = r"(?:st|nd|rd|th)?"

# (pattern, field order); the order says which group is year, month or day
DATE_FORMATS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:T.*)?$"), "ymd"),
    (re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$"), "ymd"),
    (re.compile(r"^(\d{1,2})[/.-](\d{1,2})[/.-](\d{4})$"), "numeric"),
    (re.compile(r"^" + _MONTH + r"\s+(\d{1,2})" + _ORD + r",?\s+(\d{4})$", re.IGNORECASE), "mdy"),
    (re.compile(r"^(\d{1,2})" + _ORD + r"(?:\s+day\s+of)?[\s-]+" + _MONTH + r"[\s,-]+(\d{4})$", re.IGNORECASE), "dmy"),
]

_DATE_PREFIX = re.compile(r"^(?:the|on|dated|date\s*:?|issued\s+on)\s+", re.IGNORECASE)
_NAME_TITLES = re.compile(r"^(?:mr|ms|mrs|dr|prof)\.?\s+", re.IGNORECASE)


def month_number(token: str) -> Optional[int]:
    """Month number for a full or abbreviated month name ('Sept' and 'Jun.' included)."""
    token = token.lower().rstrip(".")
    if len(token) < 3:
        return None
    number = MONTHS.get(token[:3])
    if number is None or not MONTH_NAMES[number - 1].startswith(token):
        return None
    return number


def parse_date(value: str) -> Optional[str]:
    """
    Coerce a date phrase into ISO-8601.

    Numeric D/M/Y vs M/D/Y: when the first number exceeds 12 it must
    be the day; otherwise month-first is assumed.

    Returns:
        'YYYY-MM-DD', or None when no pattern applies or the date is invalid.
    """
    text = normalize_whitespace(value)
    text = _DATE_PREFIX.sub("", text)
    for pattern, order in DATE_FORMATS:
        match = pattern.match(text)
        if not match:
            continue
        a, b, c = match.groups()
        if order == "ymd":
            year, month, day = int(a), int(b), int(c)
        elif order == "numeric":
            first, second, year = int(a), int(b), int(c)
            if first > 12:
                day, month = first, second
            else:
                month, day = first, second
        elif order == "mdy":
            month, day, year = month_number(a), int(b), int(c)
        else:
            day, month, year = int(a), month_number(b), int(c)
        if month is None:
            continue
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            return None
    return None


def normalize_name(value: str) -> tuple[str, float]:
    """Recipient name: 'Last, First' → 'First Last', title-cased."""
    name = normalize_whitespace(value).strip(" .,;")
    name = _NAME_TITLES.sub("", name)
    if name.count(",") == 1:
        last, first = (part.strip() for part in name.split(","))
        if last and first:
            name = f"{first} {last}"
    words = [w for w in name.split(" ") if w]
    cased = " ".join(
        "-".join(p[:1].upper() + p[1:].lower() for p in w.split("-")) for w in words
    )
    plausible = 1 <= len(words) <= 5 and all(
        re.fullmatch(r"[A-Za-z][A-Za-z.'-]*", w) for w in words
    )
    return cased, (CLEANED_NAME if plausible and len(words) >= 2 else AS_IS)


class FieldNormalizer:
    """
    Rule-based field normalizer with an optional LLM delegate.

    Usage:
        normalizer = FieldNormalizer()
        normalized = await normalizer.normalize(extraction.fields)

    Args:
        config: Normalization settings (aliases, LLM toggle, timeout).
        llm: Optional LLM delegate, tried first when config.use_llm is set.
    """

    def __init__(
        self,
        config: Optional[NormalizationConfig] = None,
        llm: Optional["LLMNormalizer"] = None,
    ):
        self.config = config or NormalizationConfig()
        self.llm = llm
        self._aliases = {
            normalize_whitespace(k).lower(): v
            for k, v in self.config.institution_aliases.items()
        }

    async def normalize(self, fields: ExtractedFields | dict | None) -> NormalizedFields:
        """
        Normalize an extracted field set.

        Never raises: LLM failures fall back to rules, and a failure in
        the rules themselves yields an empty result with confidence 0.
        """
        if not isinstance(fields, ExtractedFields):
            try:
                fields = ExtractedFields.model_validate(fields or {})
            except Exception as e:
                logger.warning(f"Unusable field set ({e}); normalizing nothing")
                fields = ExtractedFields()

        if self.config.use_llm and self.llm is not None:
            try:
                result = await asyncio.wait_for(
                    self.llm.normalize(fields), timeout=self.config.timeout_s
                )
                if result is not None:
                    return result
            except asyncio.TimeoutError:
                logger.warning(
                    f"LLM normalization timed out after {self.config.timeout_s}s; using rules"
                )
            except Exception as e:
                logger.warning(f"LLM normalization failed ({e}); using rules")

        try:
            return self.normalize_rules(fields)
        except Exception:
            logger.exception("Rule-based normalization failed")
            return NormalizedFields(
                original_values=fields.present(),
                confidence=0.0,
            )

    def normalize_rules(self, fields: ExtractedFields) -> NormalizedFields:
        """Deterministic rule-based normalization."""
        original = fields.present()
        normalized: dict[str, str] = {}
        confidence: dict[str, float] = {}

        for name, raw in original.items():
            value, conf = self._normalize_field(name, raw)
            normalized[name] = value
            confidence[name] = conf

        overall = sum(confidence.values()) / len(confidence) if confidence else 0.0

        return NormalizedFields(
            **normalized,
            confidence=clamp(overall),
            field_confidence=confidence,
            original_values=original,
            normalized_values={k: v for k, v in normalized.items() if v != original.get(k)},
            method="rules",
        )

    def _normalize_field(self, name: str, raw: str) -> tuple[str, float]:
        if name == "date_issued":
            iso = parse_date(raw)
            if iso:
                return iso, COERCED
            return normalize_whitespace(raw), AS_IS

        if name == "recipient":
            return normalize_name(raw)

        if name == "institution":
            cleaned = normalize_whitespace(raw).strip(" .,;:")
            canonical = self._aliases.get(cleaned.lower())
            if canonical:
                return canonical, COERCED
            if len(cleaned) < 3:
                return cleaned, AS_IS
            return smart_case(cleaned), CLEANED_NAME

        if name in ("title", "issuer"):
            cleaned = normalize_whitespace(raw).strip(" .,;:")
            if not 3 <= len(cleaned) <= 100:
                return cleaned, AS_IS
            return smart_case(cleaned), CLEANED_TEXT

        cleaned = normalize_whitespace(raw)
        return cleaned, (CLEANED_TEXT if cleaned else AS_IS)


