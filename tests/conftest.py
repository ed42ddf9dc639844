"""
CampusSync Test Configuration
==============================

Shared fixtures, factories, and helpers for the entire test suite.
Every store is an in-memory SQLite database created per test.
"""

from __future__ import annotations

import io
import os
import uuid
from typing import Any, Optional

import pytest

# ── Ensure test mode ────────────────────────────────────────────
os.environ.setdefault("CAMPUSSYNC_LOG_LEVEL", "DEBUG")

from campussync.config import (
    CampusSyncConfig,
    CredentialConfig,
    DatabaseConfig,
    NormalizationConfig,
)
from campussync.policy.decision import DecisionEngine
from campussync.schemas.certificate import Certificate
from campussync.schemas.decision import ScoringSignals
from campussync.schemas.issuer import RuleType, TrustedIssuer, VerificationRule
from campussync.store.database import Database
from campussync.store.repository import CampusStore


# ── Markers ─────────────────────────────────────────────────────

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast unit tests")
    config.addinivalue_line("markers", "integration: multi-component tests")


# ── Sample Documents ────────────────────────────────────────────

IIT_BOMBAY_TEXT = """INDIAN INSTITUTE OF TECHNOLOGY BOMBAY
Powai, Mumbai 400076

We hereby present this certificate to
Sankesh Vithal Shetty
upon recommendation of the Principal Investigator for successful completion of the
sponsored project under the IIT Bombay Research Internship 2023-24.
Given this day, the 19th day of June, 2023 under the seal of the Institute.
"""

COURSERA_TEXT = """Coursera
Certificate of Completion
This is to certify that Priya Raman has successfully completed Machine Learning
an online non-credit course authorized by Stanford University and offered through Coursera
Completed on March 15, 2024
Verify at coursera.org/verify/ABC123XYZ
"""

IIT_BOMBAY_ISSUER: dict[str, Any] = {
    "name": "Indian Institute of Technology Bombay",
    "domain": "iitb.ac.in",
    "template_patterns": [
        r"INDIAN INSTITUTE OF TECHNOLOGY BOMBAY",
        r"hereby present this certificate",
        r"under the seal of the Institute",
    ],
    "confidence_threshold": 0.9,
    "qr_verification_url": "https://www.iitb.ac.in/verify/",
}


# ── Fixtures ────────────────────────────────────────────────────

@pytest.fixture
def config() -> CampusSyncConfig:
    """Default test config on in-memory SQLite with a fixed signing key."""
    return CampusSyncConfig(
        database=DatabaseConfig(url="sqlite://"),
        normalization=NormalizationConfig(use_llm=False),
        credentials=CredentialConfig(
            issuer_did="did:web:test.campussync.example",
            signing_key="test-signing-key",
        ),
    )


@pytest.fixture
def db(config):
    """Fresh in-memory database with all tables."""
    database = Database.from_config(config)
    database.init_db()
    yield database
    database.close()


@pytest.fixture
def store(db) -> CampusStore:
    return CampusStore(db)


@pytest.fixture
def seeded_store(store) -> CampusStore:
    """Store with the default issuers and rules installed."""
    store.seed_defaults()
    return store


@pytest.fixture
def engine(store, config) -> DecisionEngine:
    return DecisionEngine(store=store, config=config.decision, config_hash=config.config_hash())


@pytest.fixture
def pipeline(config, db):
    from campussync.pipeline import VerificationPipeline

    return VerificationPipeline(config, db=db)


# ── Factories ───────────────────────────────────────────────────

def make_issuer(
    name: str = "Indian Institute of Technology Bombay",
    domain: Optional[str] = "iitb.ac.in",
    template_patterns: Optional[list[str]] = None,
    logo_hash: Optional[str] = None,
    qr_verification_url: Optional[str] = None,
    is_active: bool = True,
) -> TrustedIssuer:
    """Factory for in-memory trusted issuers."""
    return TrustedIssuer(
        id=str(uuid.uuid4()),
        name=name,
        domain=domain,
        template_patterns=template_patterns or [],
        logo_hash=logo_hash,
        qr_verification_url=qr_verification_url,
        is_active=is_active,
    )


def make_rule(
    rule_type: RuleType,
    weight: float = 1.0,
    threshold: float = 0.5,
    name: Optional[str] = None,
    is_active: bool = True,
) -> VerificationRule:
    """Factory for in-memory verification rules."""
    return VerificationRule(
        id=str(uuid.uuid4()),
        name=name or rule_type.value,
        rule_type=rule_type,
        weight=weight,
        threshold=threshold,
        is_active=is_active,
    )


def make_signals(**overrides) -> ScoringSignals:
    """Factory for scoring signals; every signal defaults to 0."""
    return ScoringSignals(**overrides)


def make_certificate(store: CampusStore, **overrides) -> Certificate:
    """Factory for a pending certificate in the store."""
    fields = {
        "student_id": "student-001",
        "organization_id": "org-001",
        "title": "Machine Learning",
        "institution": "Coursera",
        "date_issued": "2024-03-15",
        "description": "Online non-credit course",
    }
    fields.update(overrides)
    return store.create_certificate(**fields)


def make_verified_certificate(store: CampusStore, engine: DecisionEngine, **overrides) -> Certificate:
    """Factory for a certificate approved through the review path."""
    cert = make_certificate(store, **overrides)
    return engine.override(cert.id, "reviewer-1", approve=True, reason="Checked with registrar")


def make_logo_png(pattern: str = "stripes", size: int = 64) -> bytes:
    """Small synthetic logo image encoded as PNG."""
    from PIL import Image

    img = Image.new("L", (size, size), color=0)
    pixels = img.load()
    for x in range(size):
        for y in range(size):
            if pattern == "stripes":
                on = (x // (size // 8)) % 2 == 0
            elif pattern == "checker":
                on = ((x // (size // 8)) + (y // (size // 8))) % 2 == 0
            else:
                on = x > y
            pixels[x, y] = 255 if on else 0
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()
