"""
Audit Log Schema
=================

Append-only record of every human or pipeline action that changes a
certificate's decision or a credential's state.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class AuditAction(str, Enum):
    ISSUE_VC = "issue_vc"
    REVOKE_VC = "revoke_vc"
    AUTO_DECISION = "auto_decision"
    REVIEW_APPROVE = "review_approve"
    REVIEW_REJECT = "review_reject"
    REVERT = "revert"


class AuditEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    actor_id: Optional[str] = Field(default=None, description="None for pipeline actions")
    action: AuditAction
    entity_type: str
    entity_id: str
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
