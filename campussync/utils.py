"""
CampusSync Utilities
=====================

Shared helper functions for logging, identifiers, hashing,
time stamps and text cleanup used across all modules.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import sys
import uuid
from datetime import datetime, timezone


# ── Identifiers & Time ─────────────────────────────────────────────

def generate_id() -> str:
    """Generate a random UUID4 string for database rows."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def isoformat(value: datetime) -> str:
    """Render a datetime as ISO 8601 with a 'Z' suffix for UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# ── Hashing ────────────────────────────────────────────────────────

def file_sha256(data: bytes) -> str:
    """Full hex SHA-256 of an uploaded file's bytes."""
    return hashlib.sha256(data).hexdigest()


# ── Logging ────────────────────────────────────────────────────────

def setup_logging(level: str = "INFO", format_style: str = "text") -> logging.Logger:
    """
    Configure structured logging for CampusSync.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        format_style: "json" for structured logs, "text" for human-readable.

    Returns:
        Configured Logger instance.
    """
    logger = logging.getLogger("campussync")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)

    if format_style == "json":
        class JsonFormatter(logging.Formatter):
            def format(self, record):
                log_entry = {
                    "timestamp": self.formatTime(record),
                    "level": record.levelname,
                    "module": record.module,
                    "message": record.getMessage(),
                }
                if record.exc_info:
                    log_entry["exception"] = self.formatException(record.exc_info)
                return json.dumps(log_entry)

        handler.setFormatter(JsonFormatter())
    else:
        fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        handler.setFormatter(logging.Formatter(fmt, datefmt="%H:%M:%S"))

    logger.addHandler(handler)
    return logger


# ── Text Processing Helpers ────────────────────────────────────────

_WS_RE = re.compile(r"\s+")


def normalize_whitespace(text: str) -> str:
    """Collapse multiple whitespace characters into single spaces and strip."""
    return _WS_RE.sub(" ", text).strip()


# Words kept lower case inside institution names and titles
CONNECTIVES = frozenset({"of", "and", "for", "the", "in", "at", "by", "on", "to", "a", "an"})

# Tokens always rendered upper case
ACRONYMS = frozenset({
    "iit", "iim", "nit", "iisc", "iiit", "mit", "ibm", "aws", "nptel",
    "ai", "ml", "ui", "ux", "ieee", "acm", "llc", "usa", "uk",
})

# Tokens with fixed mixed casing
BRAND_CASING = {"edx": "edX", "phd": "PhD", "iot": "IoT", "devops": "DevOps"}


def smart_case(text: str) -> str:
    """
    Title-case an institution name or title.

    Connectives stay lower case (except as the first word), known
    acronyms are upper-cased, tokens containing digits are left alone.

    Example:
        >>> smart_case("INDIAN INSTITUTE OF TECHNOLOGY BOMBAY")
        'Indian Institute of Technology Bombay'
    """
    words = normalize_whitespace(text).split(" ")
    out = []
    for i, word in enumerate(words):
        key = word.lower().strip(".,;:()")
        if not word:
            continue
        if any(c.isdigit() for c in word):
            out.append(word)
        elif key in BRAND_CASING:
            out.append(word.lower().replace(key, BRAND_CASING[key]))
        elif key in ACRONYMS:
            out.append(word.upper())
        elif i > 0 and key in CONNECTIVES:
            out.append(word.lower())
        else:
            out.append("-".join(part[:1].upper() + part[1:].lower() for part in word.split("-")))
    return " ".join(out)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a number into [low, high]. NaN clamps to low."""
    if value != value:  # NaN
        return low
    return max(low, min(high, value))
