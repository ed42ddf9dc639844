"""
Decision Engine
================

Maps a policy score onto a certificate outcome and is the only
component that writes a certificate's verification status.

Decision Logic (deterministic):
    score >= high           → auto_approved  (status verified)
    low <= score < high     → manual_review  (status pending, flagged)
    score < low             → rejected       (status rejected)

State rules:
    - verified / rejected are terminal; `apply` refuses them
    - `override` is the human decision: from any state, actor + reason required
    - `revert` is the only way back to pending for pipeline re-evaluation

Every status write is audited in the same transaction.
"""

from __future__ import annotations

import logging
from typing import Optional

from campussync.config import DecisionConfig
from campussync.errors import (
    InvalidTransitionError,
    TerminalStateError,
    ValidationError,
)
from campussync.schemas.audit import AuditAction
from campussync.schemas.certificate import Certificate, ReviewFlag, VerificationStatus
from campussync.schemas.decision import (
    Decision,
    DecisionOutcome,
    PolicyScore,
    PolicySnapshot,
)
from campussync.store.repository import CampusStore, record_audit
from campussync.utils import clamp

logger = logging.getLogger("campussync.policy.decision")


def check_thresholds(low: float, high: float) -> None:
    """Raise ValueError unless 0 <= low <= high <= 1."""
    if not 0.0 <= low <= high <= 1.0:
        raise ValueError(
            f"Decision thresholds must satisfy 0 <= low <= high <= 1, "
            f"got low={low}, high={high}"
        )


class DecisionEngine:
    """
    Threshold decision engine.

    Usage:
        engine = DecisionEngine(store=store, config=cfg.decision,
                                config_hash=cfg.config_hash())
        decision = engine.decide(policy_score)
        engine.apply(certificate_id, decision)

    Args:
        store: Repository used by apply / override / revert. `decide`
            works without one.
        config: Thresholds and per-organization overrides.
        config_hash: Stamped on every decision snapshot.
    """

    def __init__(
        self,
        store: Optional[CampusStore] = None,
        config: Optional[DecisionConfig] = None,
        config_hash: str = "",
    ):
        self.store = store
        self.config = config or DecisionConfig()
        self.config_hash = config_hash
        check_thresholds(self.config.low_threshold, self.config.high_threshold)
        for org, (low, high) in self.config.org_thresholds.items():
            try:
                check_thresholds(low, high)
            except ValueError as e:
                raise ValueError(f"Organization {org}: {e}") from e

    def thresholds(self, organization_id: Optional[str] = None) -> tuple[float, float]:
        """(low, high) in force for an organization."""
        if organization_id and organization_id in self.config.org_thresholds:
            low, high = self.config.org_thresholds[organization_id]
            return low, high
        return self.config.low_threshold, self.config.high_threshold

    def snapshot(self, organization_id: Optional[str] = None) -> PolicySnapshot:
        low, high = self.thresholds(organization_id)
        return PolicySnapshot(
            high_threshold=high,
            low_threshold=low,
            policy_version=self.config.policy_version,
            config_hash=self.config_hash,
        )

    # ── Decide ─────────────────────────────────────────────────────

    def decide(
        self,
        score: PolicyScore | float,
        organization_id: Optional[str] = None,
    ) -> Decision:
        """
        Decide the outcome for a policy score.

        Args:
            score: PolicyScore or a bare [0, 1] float.
            organization_id: Selects per-organization thresholds.
        """
        value = clamp(score.score if isinstance(score, PolicyScore) else float(score))
        policy = self.snapshot(organization_id)
        high, low = policy.high_threshold, policy.low_threshold

        if value >= high:
            return Decision(
                outcome=DecisionOutcome.AUTO_APPROVED,
                status=VerificationStatus.VERIFIED,
                auto_approved=True,
                policy_score=value,
                policy=policy,
                reason=f"Auto-approved: policy_score={value:.3f} >= high_threshold={high}",
            )

        if value >= low:
            return Decision(
                outcome=DecisionOutcome.MANUAL_REVIEW,
                status=VerificationStatus.PENDING,
                review_flag=ReviewFlag.MANUAL_REVIEW,
                policy_score=value,
                policy=policy,
                reason=(
                    f"Manual review: low_threshold={low} <= policy_score={value:.3f} "
                    f"< high_threshold={high}"
                ),
            )

        return Decision(
            outcome=DecisionOutcome.REJECTED,
            status=VerificationStatus.REJECTED,
            policy_score=value,
            policy=policy,
            reason=f"Rejected: policy_score={value:.3f} < low_threshold={low}",
        )

    # ── Status Writes ──────────────────────────────────────────────

    def apply(self, certificate_id: str, decision: Decision) -> Certificate:
        """
        Write an automatic decision to a certificate.

        Raises:
            NotFoundError: Unknown certificate.
            TerminalStateError: The certificate is already verified or rejected.
        """
        store = self._require_store()
        with store.db.session_scope() as session:
            row = store.certificate_row(session, certificate_id)
            current = VerificationStatus(row.verification_status)
            if current.is_terminal:
                raise TerminalStateError(
                    f"Certificate {certificate_id} is already {current.value}; "
                    f"revert it before re-evaluating"
                )
            row = store.set_certificate_status(
                session,
                certificate_id,
                status=decision.status,
                auto_approved=decision.auto_approved,
                review_flag=decision.review_flag,
                confidence_score=decision.policy_score,
            )
            record_audit(
                session,
                AuditAction.AUTO_DECISION,
                "certificate",
                certificate_id,
                details={
                    "outcome": decision.outcome.value,
                    "policy_score": decision.policy_score,
                    "reason": decision.reason,
                    "policy": decision.policy.model_dump(),
                },
            )
            session.flush()
            logger.info(
                f"Certificate {certificate_id}: {decision.outcome.value} "
                f"(score={decision.policy_score:.3f})"
            )
            return Certificate.model_validate(row)

    def override(
        self,
        certificate_id: str,
        actor_id: str,
        approve: bool,
        reason: str,
    ) -> Certificate:
        """
        Record a human approve / reject decision.

        A human decision wins over any automatic one, so it applies to
        pending, verified and rejected certificates alike. The previous
        status is kept in the audit entry.

        Raises:
            ValidationError: Missing actor or reason.
        """
        self._require_actor_and_reason(actor_id, reason)
        store = self._require_store()
        with store.db.session_scope() as session:
            row = store.certificate_row(session, certificate_id)
            current = VerificationStatus(row.verification_status)
            was_auto_approved = bool(row.auto_approved)
            status = VerificationStatus.VERIFIED if approve else VerificationStatus.REJECTED
            row = store.set_certificate_status(
                session,
                certificate_id,
                status=status,
                auto_approved=False,
                review_flag=None,
            )
            record_audit(
                session,
                AuditAction.REVIEW_APPROVE if approve else AuditAction.REVIEW_REJECT,
                "certificate",
                certificate_id,
                actor_id=actor_id,
                details={
                    "reason": reason,
                    "previous_status": current.value,
                    "was_auto_approved": was_auto_approved,
                    "confidence_score": row.confidence_score,
                },
            )
            session.flush()
            logger.info(
                f"Certificate {certificate_id} {current.value} -> {status.value} "
                f"by reviewer {actor_id}"
            )
            return Certificate.model_validate(row)

    def revert(self, certificate_id: str, actor_id: str, reason: str) -> Certificate:
        """
        Return a verified or rejected certificate to pending.

        Clears auto_approved and the review flag so the pipeline can
        re-evaluate it.

        Raises:
            ValidationError: Missing actor or reason.
            InvalidTransitionError: The certificate is already pending.
        """
        self._require_actor_and_reason(actor_id, reason)
        store = self._require_store()
        with store.db.session_scope() as session:
            row = store.certificate_row(session, certificate_id)
            current = VerificationStatus(row.verification_status)
            if not current.is_terminal:
                raise InvalidTransitionError(
                    f"Certificate {certificate_id} is already pending"
                )
            row = store.set_certificate_status(
                session,
                certificate_id,
                status=VerificationStatus.PENDING,
                auto_approved=False,
                review_flag=None,
            )
            record_audit(
                session,
                AuditAction.REVERT,
                "certificate",
                certificate_id,
                actor_id=actor_id,
                details={"reason": reason, "previous_status": current.value},
            )
            session.flush()
            logger.info(
                f"Certificate {certificate_id} reverted from {current.value} by {actor_id}"
            )
            return Certificate.model_validate(row)

    # ── Helpers ────────────────────────────────────────────────────

    def _require_store(self) -> CampusStore:
        if self.store is None:
            raise RuntimeError("DecisionEngine needs a store to write certificate status")
        return self.store

    @staticmethod
    def _require_actor_and_reason(actor_id: Optional[str], reason: Optional[str]) -> None:
        missing = [
            name
            for name, value in (("actor_id", actor_id), ("reason", reason))
            if not value or not str(value).strip()
        ]
        if missing:
            raise ValidationError(
                f"Review actions require {' and '.join(missing)}", missing=missing
            )
