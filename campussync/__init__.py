"""
CampusSync: Credential Verification & Approval Pipeline
========================================================

CampusSync verifies certificates uploaded by students and issues
W3C Verifiable Credentials for the ones it can vouch for. A certificate
is only auto-approved when the weighted verification rules put its
policy score at or above the configured high threshold; everything in
between goes to a human reviewer.

Architecture Overview:
    OCR text → Extract → Normalize → Match → Score → Decide → Issue VC

Modules:
    - extract:      Field extraction and normalization (rules + optional LLM)
    - match:        Trusted-issuer, logo hash, template and QR matching
    - policy:       Rule-weighted scorer and threshold decision engine
    - jobs:         Persistent job queue, typed processors, async worker
    - credentials:  VC issuance, revocation, status registry, verification
    - store:        SQLAlchemy storage and repository
    - pipeline:     End-to-end orchestrator
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
