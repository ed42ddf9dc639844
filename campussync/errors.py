"""
CampusSync Errors
==================

Exceptions raised to callers of the decision, issuance and job APIs.
Soft failures (extraction, normalization, matching) never surface here;
those stages degrade locally and log a warning instead.
"""

from __future__ import annotations

from typing import Optional


class CampusSyncError(Exception):
    """Base class for all errors reported by CampusSync."""


class NotFoundError(CampusSyncError):
    """A certificate, credential, job or rule does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ConflictError(CampusSyncError):
    """The requested change collides with existing state (e.g. duplicate issuance)."""

    def __init__(self, message: str, existing_id: Optional[str] = None):
        self.existing_id = existing_id
        super().__init__(message)


class ValidationError(CampusSyncError):
    """Input is missing required fields or is otherwise malformed."""

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        self.missing = missing or []
        super().__init__(message)


class IntegrityViolation(CampusSyncError):
    """Data needed to produce a correct record is absent or inconsistent."""


class TerminalStateError(CampusSyncError):
    """A certificate in a terminal state was modified without an explicit revert."""


class InvalidTransitionError(CampusSyncError):
    """A job or certificate status change is not allowed from its current state."""
