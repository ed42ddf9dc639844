"""
Default trusted issuers and verification rules installed by `campussync seed`.
"""

from __future__ import annotations

from typing import Any

DEFAULT_ISSUERS: list[dict[str, Any]] = [
    {
        "name": "Coursera",
        "domain": "coursera.org",
        "template_patterns": [
            r"This is to certify that",
            r"has successfully completed",
            r"Coursera",
            r"certificate of completion",
            r"Coursera Inc\.",
        ],
        "confidence_threshold": 0.9,
        "qr_verification_url": "https://coursera.org/verify/",
    },
    {
        "name": "edX",
        "domain": "edx.org",
        "template_patterns": [
            r"This is to certify that",
            r"has successfully completed",
            r"edX",
            r"certificate of achievement",
            r"Massachusetts Institute of Technology",
        ],
        "confidence_threshold": 0.9,
        "qr_verification_url": "https://credentials.edx.org/credentials/",
    },
    {
        "name": "Udemy",
        "domain": "udemy.com",
        "template_patterns": [
            r"Certificate of Completion",
            r"has successfully completed",
            r"Udemy",
            r"course completion",
            r"Udemy Inc\.",
        ],
        "confidence_threshold": 0.85,
        "qr_verification_url": "https://udemy.com/certificate/",
    },
    {
        "name": "NPTEL",
        "domain": "nptel.ac.in",
        "template_patterns": [
            r"National Programme on Technology Enhanced Learning",
            r"Indian Institute of Technology",
            r"NPTEL",
            r"certificate of completion",
            r"\bIIT\b",
        ],
        "confidence_threshold": 0.95,
        "qr_verification_url": "https://nptel.ac.in/verify/",
    },
    {
        "name": "Google",
        "domain": "google.com",
        "template_patterns": [
            r"Google",
            r"certificate of completion",
            r"has successfully completed",
            r"Google Career Certificates",
            r"Google LLC",
        ],
        "confidence_threshold": 0.9,
        "qr_verification_url": "https://www.credly.com/badges/",
    },
    {
        "name": "Microsoft",
        "domain": "microsoft.com",
        "template_patterns": [
            r"Microsoft",
            r"certificate of completion",
            r"Microsoft Learn",
            r"has successfully completed",
            r"Microsoft Corporation",
        ],
        "confidence_threshold": 0.9,
        "qr_verification_url": "https://learn.microsoft.com/api/credentials/",
    },
    {
        "name": "AWS",
        "domain": "amazon.com",
        "template_patterns": [
            r"Amazon Web Services",
            r"\bAWS\b",
            r"certificate of completion",
            r"has successfully completed",
            r"Amazon Web Services Inc\.",
        ],
        "confidence_threshold": 0.9,
        "qr_verification_url": "https://aws.amazon.com/verification/",
    },
    {
        "name": "IBM",
        "domain": "ibm.com",
        "template_patterns": [
            r"\bIBM\b",
            r"certificate of completion",
            r"has successfully completed",
            r"IBM SkillsBuild",
            r"International Business Machines",
        ],
        "confidence_threshold": 0.9,
        "qr_verification_url": "https://skillsbuild.org/verify/",
    },
    {
        "name": "University Event",
        "domain": None,
        "template_patterns": [
            r"certificate of participation",
            r"has participated in",
            r"organized by",
            r"(?:University|College|Institute)",
        ],
        "confidence_threshold": 0.8,
        "qr_verification_url": None,
    },
    {
        "name": "College Event",
        "domain": None,
        "template_patterns": [
            r"certificate of (?:merit|appreciation|participation)",
            r"in recognition of",
            r"College",
            r"(?:hackathon|workshop|symposium|seminar)",
        ],
        "confidence_threshold": 0.8,
        "qr_verification_url": None,
    },
]


DEFAULT_RULES: list[dict[str, Any]] = [
    {
        "name": "QR Code Verification",
        "rule_type": "qr_verification",
        "weight": 1.0,
        "threshold": 0.99,
        "config": {"auto_approve": True},
    },
    {
        "name": "Logo Match",
        "rule_type": "logo_match",
        "weight": 0.25,
        "threshold": 0.8,
        "config": {"hash_algorithm": "average_hash", "hash_size": 8},
    },
    {
        "name": "Template Match",
        "rule_type": "template_match",
        "weight": 0.30,
        "threshold": 0.6,
        "config": {"case_insensitive": True},
    },
    {
        "name": "AI Confidence",
        "rule_type": "ai_confidence",
        "weight": 0.45,
        "threshold": 0.7,
        "config": {"signals": ["normalization", "extraction", "issuer_presence"]},
    },
]
