"""
Field Extractor
================

Turns raw OCR text plus a declared document type into a structured
field set: title, institution, recipient, date_issued, issuer and
description.

Extraction is pattern based. Per-type labelled patterns ("Name: ...",
"Program: ...") run first; generic certificate heuristics then fill
whatever is still missing. A field that no pattern recognizes stays
None. The extractor never guesses and never raises.

The recipient is extracted before the title so that a person's name
can never be returned as the title (certificates often put the name
on its own line right after "present this certificate to").

Data Flow:
    OCR text → FieldExtractor → ExtractionResult → FieldNormalizer
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Optional

from campussync.config import ExtractionConfig
from campussync.schemas.fields import (
    DocumentType,
    ExtractedFields,
    ExtractionResult,
)
from campussync.utils import clamp, normalize_whitespace, smart_case

logger = logging.getLogger("campussync.extract.extractor")


# ── Shared Fragments ───────────────────────────────────────────────

MONTH = (
    r"(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|"
    r"Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)\.?"
)

# Two to four capitalized words on one line
PERSON_NAME = r"([A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+){1,3})"

# Weight of each field in the extraction confidence
FIELD_WEIGHTS = {
    "title": 0.25,
    "institution": 0.25,
    "recipient": 0.2,
    "date_issued": 0.2,
    "description": 0.1,
}


# ── Recipient ──────────────────────────────────────────────────────

RECIPIENT_PATTERNS = [
    re.compile(r"(?i:present\s+this\s+certificate\s+to)\s*[:\-]?\s*" + PERSON_NAME),
    re.compile(
        r"(?i:this\s+is\s+to\s+certify\s+that)\s*(?i:(?:mr|ms|mrs|dr)\.?\s+)?" + PERSON_NAME
    ),
    re.compile(r"(?i:(?:awarded|presented|conferred\s+upon|issued)\s+to)\s*[:\-]?\s*" + PERSON_NAME),
    re.compile(r"(?i:certificate\s+to)\s*" + PERSON_NAME),
]

# A capitalized name standing alone on its own line
STANDALONE_NAME = re.compile(r"^[ \t]*" + PERSON_NAME + r"[ \t]*$", re.MULTILINE)

NOT_A_PERSON = re.compile(
    r"INSTITUTE|UNIVERSITY|COLLEGE|TECHNOLOGY|BOMBAY|PROJECT|CERTIFICATE|COMPLETION|ACADEMY|SCHOOL",
    re.IGNORECASE,
)


# ── Title ──────────────────────────────────────────────────────────

_TITLE_END = r"(?=\s*(?:\n|[.,;]|$|\b(?:course|program|programme|in|from|issued|with)\b))"

TITLE_PATTERNS = [
    re.compile(r"(?i:\bcertificate\s+of)\s+([^\n]+?)" + _TITLE_END),
    re.compile(r"(?i:\bcertificate\s+in)\s+([^\n]+?)" + _TITLE_END),
    re.compile(
        r"(?i:this\s+(?:is\s+to\s+)?certif(?:y|ies)\s+that)\s+.+?\s+"
        r"(?i:has\s+(?:successfully\s+)?completed\s+(?:the\s+)?)([^\n]+?)" + _TITLE_END
    ),
    re.compile(r"(?i:\b(?:award|diploma|degree)\s+(?:of|in))\s+([^\n]+?)" + _TITLE_END),
    # Named programme, e.g. "under the IIT Bombay Research Internship 2023-24"
    re.compile(
        r"(?i:\b(?:under|in|for)\s+the)\s+((?:[A-Z][\w&-]*[ \t]+){1,6}"
        r"(?:Internship|Program(?:me)?|Fellowship|Course|Workshop|Training|Bootcamp|Hackathon)"
        r"(?:[ \t]+\d{4}(?:-\d{2,4})?)?)"
    ),
    re.compile(r"(?i:(?:successful\s+)?completion\s+of\s+(?:the\s+)?)([^\n]+?)" + _TITLE_END),
    re.compile(
        r"(?i:(?:has\s+)?(?:successfully\s+)?(?:completed|finished|passed)\s+(?:the\s+)?)([^\n]+?)"
        + _TITLE_END
    ),
    re.compile(r"(?i:participated\s+in\s+(?:the\s+)?)([^\n]+?)" + _TITLE_END),
    re.compile(r"(?i:attended\s+(?:the\s+)?)([^\n]+?)" + _TITLE_END),
    re.compile(r"(?i:\b(?:achieved|earned))\s+([^\n]+?)" + _TITLE_END),
]

# Fallbacks tried only when no contextual pattern produced a valid title
TITLE_FALLBACK_PATTERNS = [
    re.compile(r'"([^"\n]+)"'),
    re.compile(r"(?i:\b(?:course|program|certification|training|workshop)):\s*([A-Z][^.\n]+)"),
    re.compile(r"(?i:\b(?:subject|topic|field)):\s*([A-Z][^.\n]+)"),
    re.compile(r"((?i:bachelor|master)\s+of\s+[^.\n]+)"),
    re.compile(r"((?i:diploma)\s+in\s+[^.\n]+)"),
]

TITLE_SKIP_PHRASES = (
    "the following", "sponsored project", "given this day", "under the seal",
    "republic of india", "principal investigator", "hereby present",
    "upon recommendation", "this certificate", "to certify that",
)


# ── Institution ────────────────────────────────────────────────────

_INST_SUFFIX = (
    r"(?i:University|College|Institute|School|Academy|Foundation|Organi[sz]ation|"
    r"Corporation|Company|Inc\.|Ltd\.|LLC)"
)

INSTITUTION_PATTERNS = [
    re.compile(
        r"(?i:\b(?:issued[ \t]+by|from|by|at))[ \t]+([A-Z][^,\n.]{3,80}?" + _INST_SUFFIX
        + r"(?:[ \t]+of[ \t]+[A-Z][\w]+(?:[ \t]+[A-Z][\w]+)?)?)"
    ),
    # Upper-case letterhead line
    re.compile(
        r"^[ \t]*([A-Z][A-Z &-]{2,60}(?:UNIVERSITY|COLLEGE|INSTITUTE|SCHOOL|ACADEMY|FOUNDATION|"
        r"ORGANIZATION|CORPORATION)(?:[A-Z &-]{0,30}))[ \t]*$",
        re.MULTILINE,
    ),
    re.compile(r"\b((?:Indian[ \t]+)?Institute[ \t]+of[ \t]+Technology(?:[ \t]+[A-Za-z]+)?)", re.IGNORECASE),
    re.compile(r"\b(IIT[ \t]+[A-Z][a-z]+)"),
    re.compile(r"\b(National[ \t]+Institute[ \t]+of[ \t]+Technology(?:[ \t]+[A-Za-z]+)?)", re.IGNORECASE),
    re.compile(r"\b(Indian[ \t]+Institute[ \t]+of[ \t]+(?:Science|Management(?:[ \t]+[A-Za-z]+)?))", re.IGNORECASE),
    re.compile(r"\b(Massachusetts[ \t]+Institute[ \t]+of[ \t]+Technology)", re.IGNORECASE),
    re.compile(r"\b((?:Stanford|Harvard)[ \t]+University)", re.IGNORECASE),
    re.compile(r"\b(University[ \t]+of[ \t]+[A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+)?)"),
    re.compile(r"\b(Coursera|edX|Udemy|NPTEL|Khan[ \t]+Academy|Udacity)\b", re.IGNORECASE),
    re.compile(r"\b(Google|Microsoft|Amazon[ \t]+Web[ \t]+Services|Amazon|IBM|Oracle|Cisco|Adobe)\b"),
    re.compile(
        r"([A-Z][^,\n.]{3,50}" + _INST_SUFFIX + r"(?:[ \t]+of[ \t]+[A-Z][^,\n.]{3,30})?)"
    ),
]

INSTITUTION_KEYWORDS = (
    "university", "college", "institute", "school", "academy", "foundation",
    "organization", "organisation", "corporation", "company", "coursera", "edx",
    "udemy", "google", "microsoft", "amazon", "ibm", "nptel", "iit", "udacity",
    "oracle", "cisco", "adobe",
)

INSTITUTION_SKIP_PHRASES = (
    "the following", "this certificate", "hereby present", "given this day",
    "under the seal", "republic of", "state of", "city of",
)


# ── Date & Issuer ──────────────────────────────────────────────────

DATE_PATTERNS = [
    re.compile(r"\b(\d{1,2}(?:st|nd|rd|th)\s+(?:day\s+of\s+)?" + MONTH + r",?\s+\d{4})\b", re.IGNORECASE),
    re.compile(r"\b(\d{4}-\d{1,2}-\d{1,2})\b"),
    re.compile(r"\b(\d{1,2}[/.-]\d{1,2}[/.-]\d{4})\b"),
    re.compile(r"\b(\d{4}/\d{1,2}/\d{1,2})\b"),
    re.compile(r"\b(" + MONTH + r"\s+\d{1,2}(?:st|nd|rd|th)?,?\s+\d{4})\b", re.IGNORECASE),
    re.compile(r"\b(\d{1,2}[\s-]+" + MONTH + r"[\s,-]+\d{4})\b", re.IGNORECASE),
]

ISSUER_PATTERNS = [
    re.compile(r"(?i:\b(?:issued|signed|authori[sz]ed|certified)\s+by)\s*[:\-]?\s*([^\n]{3,80})"),
    re.compile(r"(?im:^\s*issuer\s*[:\-])\s*([^\n]{3,80})"),
]


# ── Per-Type Labelled Patterns ─────────────────────────────────────

_LABEL = r"\s*[:\-]\s*"

TYPE_PATTERNS: dict[DocumentType, list[tuple[str, re.Pattern]]] = {
    DocumentType.CERTIFICATE: [
        ("recipient", re.compile(r"(?im:^\s*(?:recipient|awarded\s+to|presented\s+to))" + _LABEL + r"([^\n]{3,60})")),
        ("date_issued", re.compile(r"(?im:^\s*date(?:\s+of)?(?:\s+issue)?)" + _LABEL + r"([0-9A-Za-z,/\- ]{6,})")),
    ],
    DocumentType.TRANSCRIPT: [
        ("recipient", re.compile(r"(?im:^\s*(?:student\s+name|name))" + _LABEL + r"([A-Za-z ,.']{3,60})")),
        ("title", re.compile(r"(?im:^\s*(?:major|program(?:me)?|field|concentration))" + _LABEL + r"([A-Za-z &,.]{3,80})")),
        ("institution", re.compile(r"(?im:^\s*(?:university|institute|college|school))" + _LABEL + r"([A-Za-z &,.]{3,80})")),
        ("date_issued", re.compile(r"(?im:^\s*(?:date\s+of\s+issue|issue\s+date|date))" + _LABEL + r"([0-9A-Za-z,/\- ]{6,})")),
    ],
    DocumentType.DEGREE: [
        ("title", re.compile(
            r"((?i:bachelor|master|doctor|associate)\s+(?i:of|in)\s+[A-Za-z &]{3,60}?)"
            r"(?=\s+(?i:is|has|was|to|on|upon|conferred|awarded)\b|\s*[.,\n]|\s*$)"
        )),
        ("recipient", re.compile(r"(?i:conferred\s+(?:up)?on|awarded\s+to)\s*[:\-]?\s*" + PERSON_NAME)),
    ],
    DocumentType.LETTER: [
        ("recipient", re.compile(r"(?im:^\s*(?:dear|to|addressed\s+to))[\s:,\-]+(?i:(?:mr|ms|mrs|dr)\.?\s+)?" + PERSON_NAME)),
        ("issuer", re.compile(r"(?im:^\s*(?:from|department))" + _LABEL + r"([A-Za-z &,.]{3,80})")),
        ("date_issued", re.compile(r"(?im:^\s*(?:date|dated|written))" + _LABEL + r"([0-9A-Za-z,/\- ]{6,})")),
    ],
    DocumentType.ID: [
        ("recipient", re.compile(r"(?im:^\s*(?:full\s+name|student\s+name|name))" + _LABEL + r"([A-Za-z ,.']{3,60})")),
        ("institution", re.compile(r"(?im:^\s*(?:issued\s+by|institution|university|college))" + _LABEL + r"([A-Za-z &,.]{3,80})")),
        ("date_issued", re.compile(r"(?im:^\s*(?:issued|issue\s+date|valid\s+from))" + _LABEL + r"([0-9A-Za-z,/\- ]{6,})")),
    ],
}


class FieldExtractor:
    """
    Pattern-based field extractor.

    Usage:
        extractor = FieldExtractor()
        result = extractor.extract(ocr_text, DocumentType.CERTIFICATE, ocr_confidence=0.92)
        print(result.fields.institution, result.confidence)

    Args:
        config: Extraction length limits.
    """

    def __init__(self, config: Optional[ExtractionConfig] = None):
        self.config = config or ExtractionConfig()

    def extract(
        self,
        text: str,
        document_type: DocumentType = DocumentType.CERTIFICATE,
        ocr_confidence: Optional[float] = None,
    ) -> ExtractionResult:
        """
        Extract structured fields from OCR text.

        Args:
            text: Raw OCR text.
            document_type: Declared type of the uploaded document.
            ocr_confidence: Confidence reported by the OCR engine, if any.

        Returns:
            ExtractionResult with unmatched fields left as None.
        """
        text = (text or "").replace("\r\n", "\n").replace("\r", "\n")
        if not text.strip():
            return ExtractionResult(
                document_type=document_type,
                issues=[f"missing_{name}" for name in FIELD_WEIGHTS],
            )

        values: dict[str, Optional[str]] = {}

        # Labelled per-type patterns first
        for field_name, pattern in TYPE_PATTERNS.get(document_type, []):
            if values.get(field_name):
                continue
            values[field_name] = self._safe(
                field_name, lambda p=pattern: self._first_group(p, text)
            )
        if values.get("recipient"):
            values["recipient"] = self._clean_recipient(values["recipient"])
        if values.get("title"):
            values["title"] = self._clean_title(values["title"])
        if values.get("institution"):
            values["institution"] = self._clean_institution(values["institution"])

        # Generic heuristics fill the rest; recipient before title
        generic: list[tuple[str, Callable[[], Optional[str]]]] = [
            ("recipient", lambda: self.extract_recipient(text)),
            ("institution", lambda: self.extract_institution(text)),
            ("title", lambda: self.extract_title(text, recipient=values.get("recipient"))),
            ("date_issued", lambda: self.extract_date(text)),
            ("issuer", lambda: self.extract_issuer(text)),
            ("description", lambda: self.extract_description(text)),
        ]
        for field_name, fn in generic:
            if not values.get(field_name):
                values[field_name] = self._safe(field_name, fn)

        fields = ExtractedFields(**{k: v for k, v in values.items() if v})
        present = fields.present()

        coverage = sum(w for name, w in FIELD_WEIGHTS.items() if name in present)
        if ocr_confidence is not None:
            coverage *= clamp(ocr_confidence)
        issues = [f"missing_{name}" for name in FIELD_WEIGHTS if name not in present]

        logger.debug(
            f"Extracted {len(present)} fields from {document_type.value} "
            f"(confidence={coverage:.2f}, missing={issues})"
        )
        return ExtractionResult(
            fields=fields,
            confidence=clamp(coverage),
            document_type=document_type,
            issues=issues,
        )

    # ── Field Heuristics ───────────────────────────────────────────

    def extract_recipient(self, text: str) -> Optional[str]:
        for pattern in RECIPIENT_PATTERNS:
            for match in pattern.finditer(text):
                name = self._clean_recipient(match.group(1))
                if name:
                    return name
        for match in STANDALONE_NAME.finditer(text):
            name = self._clean_recipient(match.group(1))
            if name:
                return name
        return None

    def extract_title(self, text: str, recipient: Optional[str] = None) -> Optional[str]:
        for patterns in (TITLE_PATTERNS, TITLE_FALLBACK_PATTERNS):
            for pattern in patterns:
                for match in pattern.finditer(text):
                    title = self._clean_title(match.group(1))
                    if self._is_valid_title(title, recipient):
                        return title
        return None

    def extract_institution(self, text: str) -> Optional[str]:
        for pattern in INSTITUTION_PATTERNS:
            for match in pattern.finditer(text):
                institution = self._clean_institution(match.group(1))
                if self._is_valid_institution(institution):
                    return institution
        return None

    def extract_date(self, text: str) -> Optional[str]:
        """Return the first date phrase as written; the normalizer coerces it."""
        for pattern in DATE_PATTERNS:
            match = pattern.search(text)
            if match:
                return normalize_whitespace(match.group(1))
        return None

    def extract_issuer(self, text: str) -> Optional[str]:
        for pattern in ISSUER_PATTERNS:
            match = pattern.search(text)
            if match:
                issuer = normalize_whitespace(match.group(1)).strip(" .,;:-")
                if len(issuer) >= 3:
                    return issuer
        return None

    def extract_description(self, text: str) -> Optional[str]:
        """Longest line above the minimum description length."""
        longest = ""
        for line in text.split("\n"):
            line = normalize_whitespace(line)
            if len(line) > self.config.min_description_length and len(line) > len(longest):
                longest = line
        return longest or None

    # ── Cleaning & Validation ──────────────────────────────────────

    def _clean_recipient(self, name: str) -> Optional[str]:
        name = normalize_whitespace(name).strip(" .,;:-")
        if len(name) < 3 or NOT_A_PERSON.search(name):
            return None
        return name

    def _clean_title(self, title: str) -> str:
        title = normalize_whitespace(title)
        title = re.sub(r"^[-•·]\s*", "", title)
        title = re.sub(r"\s*[-•·]$", "", title)
        title = title.rstrip(".,;: ")
        # Common OCR confusions
        title = re.sub(r"\b0(?=[A-Za-z])", "O", title)
        title = re.sub(r"\bl(?=[A-Z])", "I", title)
        title = re.sub(r"\b[Il]?nership\b", "Internship", title)
        return smart_case(title)

    def _is_valid_title(self, title: str, recipient: Optional[str]) -> bool:
        cfg = self.config
        if not title or not cfg.min_title_length <= len(title) <= cfg.max_title_length:
            return False
        alpha = sum(c.isalpha() for c in title)
        if alpha / len(title) < 0.5:
            return False
        lower = title.lower()
        if any(phrase in lower for phrase in TITLE_SKIP_PHRASES):
            return False
        # Never report the recipient's name as the title
        if recipient and recipient.lower() in lower:
            return False
        return True

    def _clean_institution(self, institution: str) -> str:
        institution = normalize_whitespace(institution)
        institution = re.sub(r"^[-•·]\s*", "", institution)
        institution = re.sub(r"\s*[-•·]$", "", institution)
        institution = re.sub(r"\b0(?=[A-Za-z])", "O", institution)
        institution = re.sub(r"\bl(?=[A-Z])", "I", institution)
        return smart_case(institution.strip(" ,;:"))

    def _is_valid_institution(self, institution: str) -> bool:
        if not institution or not 3 <= len(institution) <= 100:
            return False
        lower = institution.lower()
        if not any(keyword in lower for keyword in INSTITUTION_KEYWORDS):
            return False
        return not any(phrase in lower for phrase in INSTITUTION_SKIP_PHRASES)

    # ── Helpers ────────────────────────────────────────────────────

    @staticmethod
    def _first_group(pattern: re.Pattern, text: str) -> Optional[str]:
        match = pattern.search(text)
        if match is None:
            return None
        value = normalize_whitespace(match.group(match.lastindex or 1))
        return value or None

    @staticmethod
    def _safe(field_name: str, fn: Callable[[], Optional[str]]) -> Optional[str]:
        """Run one field heuristic; any failure leaves the field unset."""
        try:
            return fn()
        except Exception as e:
            logger.warning(f"Extraction of '{field_name}' failed: {e}")
            return None
