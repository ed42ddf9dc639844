"""
CampusSync Storage Repository
==============================

Data access for certificates, trusted issuers, verification rules and
the audit log. Every public method opens its own transactional session
and returns pydantic schemas, never live ORM rows.

Credential and job tables are written by their own services
(campussync.credentials, campussync.jobs), which reuse `record_audit`
so audit entries commit in the same transaction as the change they
describe.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campussync.errors import ConflictError, NotFoundError
from campussync.schemas.audit import AuditAction, AuditEntry
from campussync.schemas.certificate import (
    Certificate,
    CertificateMetadata,
    ReviewFlag,
    VerificationStatus,
)
from campussync.schemas.issuer import RuleType, TrustedIssuer, VerificationRule
from campussync.store.database import Database
from campussync.store.models import (
    AuditRow,
    CertificateMetadataRow,
    CertificateRow,
    TrustedIssuerRow,
    VerificationRuleRow,
)
from campussync.store.seed import DEFAULT_ISSUERS, DEFAULT_RULES

logger = logging.getLogger("campussync.store.repository")


def record_audit(
    session: Session,
    action: AuditAction,
    entity_type: str,
    entity_id: str,
    actor_id: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> AuditRow:
    """Append an audit entry inside an open session."""
    row = AuditRow(
        actor_id=actor_id,
        action=action.value,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    session.add(row)
    return row


class CampusStore:
    """Repository over one Database."""

    def __init__(self, db: Database):
        self.db = db

    # ── Certificates ───────────────────────────────────────────────

    def create_certificate(
        self,
        student_id: str,
        organization_id: Optional[str] = None,
        file_ref: Optional[str] = None,
        title: Optional[str] = None,
        institution: Optional[str] = None,
        date_issued: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Certificate:
        """Create a pending certificate together with its empty metadata record."""
        with self.db.session_scope() as session:
            row = CertificateRow(
                student_id=student_id,
                organization_id=organization_id,
                file_ref=file_ref,
                title=title,
                institution=institution,
                date_issued=date_issued,
                description=description,
                verification_status=VerificationStatus.PENDING.value,
            )
            row.verification = CertificateMetadataRow(verification_details={})
            session.add(row)
            session.flush()
            logger.info(f"Created certificate {row.id} for student {student_id}")
            return Certificate.model_validate(row)

    def get_certificate(self, certificate_id: str) -> Certificate:
        with self.db.session_scope() as session:
            return Certificate.model_validate(self.certificate_row(session, certificate_id))

    def list_certificates(
        self,
        status: Optional[VerificationStatus] = None,
        review_flag: Optional[ReviewFlag] = None,
        organization_id: Optional[str] = None,
    ) -> list[Certificate]:
        with self.db.session_scope() as session:
            query = select(CertificateRow).order_by(CertificateRow.created_at)
            if status is not None:
                query = query.where(CertificateRow.verification_status == status.value)
            if review_flag is not None:
                query = query.where(CertificateRow.review_flag == review_flag.value)
            if organization_id is not None:
                query = query.where(CertificateRow.organization_id == organization_id)
            rows = session.execute(query).unique().scalars().all()
            return [Certificate.model_validate(r) for r in rows]

    def delete_certificate(self, certificate_id: str) -> None:
        """Delete a certificate; its metadata goes with it."""
        with self.db.session_scope() as session:
            session.delete(self.certificate_row(session, certificate_id))
        logger.info(f"Deleted certificate {certificate_id}")

    def save_verification(
        self,
        certificate_id: str,
        metadata: CertificateMetadata,
        fields: Optional[dict[str, Optional[str]]] = None,
    ) -> Certificate:
        """
        Write the pipeline's verification detail for a certificate.

        `fields` fill title / institution / date_issued / description
        only where the uploaded certificate left them empty.
        """
        with self.db.session_scope() as session:
            row = self.certificate_row(session, certificate_id)
            meta = row.verification
            if meta is None:
                meta = CertificateMetadataRow(certificate_id=row.id)
                row.verification = meta
            for key, value in metadata.model_dump().items():
                setattr(meta, key, value)
            for key, value in (fields or {}).items():
                if key in ("title", "institution", "date_issued", "description") and value:
                    if not getattr(row, key):
                        setattr(row, key, value)
            session.flush()
            return Certificate.model_validate(row)

    def find_by_file_hash(
        self, file_hash: str, exclude_id: Optional[str] = None
    ) -> Optional[str]:
        """Id of another certificate verified from the same file, if any."""
        with self.db.session_scope() as session:
            query = select(CertificateMetadataRow.certificate_id).where(
                CertificateMetadataRow.file_hash == file_hash
            )
            if exclude_id is not None:
                query = query.where(CertificateMetadataRow.certificate_id != exclude_id)
            return session.execute(query.limit(1)).scalar_one_or_none()

    def recent_ocr_texts(
        self, limit: int = 50, exclude_id: Optional[str] = None
    ) -> list[tuple[str, str]]:
        """(certificate_id, ocr_text) of the most recently verified certificates."""
        with self.db.session_scope() as session:
            query = select(
                CertificateMetadataRow.certificate_id, CertificateMetadataRow.ocr_text
            ).where(CertificateMetadataRow.ocr_text.is_not(None))
            if exclude_id is not None:
                query = query.where(CertificateMetadataRow.certificate_id != exclude_id)
            query = query.order_by(CertificateMetadataRow.updated_at.desc()).limit(limit)
            return [(cid, text) for cid, text in session.execute(query)]

    def set_certificate_status(
        self,
        session: Session,
        certificate_id: str,
        status: VerificationStatus,
        auto_approved: bool,
        review_flag: Optional[ReviewFlag],
        confidence_score: Optional[float] = None,
    ) -> CertificateRow:
        """Status write inside a caller-owned session (decision engine only)."""
        row = self.certificate_row(session, certificate_id)
        row.verification_status = status.value
        row.auto_approved = auto_approved
        row.review_flag = review_flag.value if review_flag else None
        if confidence_score is not None:
            row.confidence_score = confidence_score
        return row

    def certificate_row(self, session: Session, certificate_id: str) -> CertificateRow:
        row = session.get(CertificateRow, certificate_id)
        if row is None:
            raise NotFoundError("Certificate", certificate_id)
        return row

    # ── Trusted Issuers ────────────────────────────────────────────

    def add_issuer(
        self,
        name: str,
        domain: Optional[str] = None,
        template_patterns: Optional[list[str]] = None,
        logo_hash: Optional[str] = None,
        confidence_threshold: float = 0.9,
        qr_verification_url: Optional[str] = None,
        is_active: bool = True,
    ) -> TrustedIssuer:
        # Validate through the schema first (logo hash format, threshold range)
        candidate = TrustedIssuer(
            id="",
            name=name,
            domain=domain,
            template_patterns=template_patterns or [],
            logo_hash=logo_hash,
            confidence_threshold=confidence_threshold,
            qr_verification_url=qr_verification_url,
            is_active=is_active,
        )
        try:
            with self.db.session_scope() as session:
                row = TrustedIssuerRow(**candidate.model_dump(exclude={"id"}))
                session.add(row)
                session.flush()
                return TrustedIssuer.model_validate(row)
        except IntegrityError as e:
            raise ConflictError(f"Trusted issuer already exists: {name}") from e

    def list_issuers(self, active_only: bool = True) -> list[TrustedIssuer]:
        with self.db.session_scope() as session:
            query = select(TrustedIssuerRow).order_by(TrustedIssuerRow.name)
            if active_only:
                query = query.where(TrustedIssuerRow.is_active.is_(True))
            return [TrustedIssuer.model_validate(r) for r in session.execute(query).scalars()]

    # ── Verification Rules ─────────────────────────────────────────

    def add_rule(
        self,
        name: str,
        rule_type: RuleType,
        weight: float,
        threshold: float,
        config: Optional[dict[str, Any]] = None,
        is_active: bool = True,
    ) -> VerificationRule:
        try:
            with self.db.session_scope() as session:
                row = VerificationRuleRow(
                    name=name,
                    rule_type=RuleType(rule_type).value,
                    weight=weight,
                    threshold=threshold,
                    config=config or {},
                    is_active=is_active,
                )
                session.add(row)
                session.flush()
                return VerificationRule.model_validate(row)
        except IntegrityError as e:
            raise ConflictError(f"Verification rule already exists: {name}") from e

    def list_rules(self, active_only: bool = False) -> list[VerificationRule]:
        """Current rule state; read fresh on every call."""
        with self.db.session_scope() as session:
            query = select(VerificationRuleRow).order_by(VerificationRuleRow.name)
            if active_only:
                query = query.where(VerificationRuleRow.is_active.is_(True))
            return [VerificationRule.model_validate(r) for r in session.execute(query).scalars()]

    def get_rule(self, rule_ref: str) -> VerificationRule:
        """Look a rule up by id or by name."""
        with self.db.session_scope() as session:
            return VerificationRule.model_validate(self._rule_row(session, rule_ref))

    def set_rule_active(self, rule_ref: str, active: bool) -> VerificationRule:
        with self.db.session_scope() as session:
            row = self._rule_row(session, rule_ref)
            row.is_active = active
            session.flush()
            logger.info(f"Rule '{row.name}' {'enabled' if active else 'disabled'}")
            return VerificationRule.model_validate(row)

    def update_rule(
        self,
        rule_ref: str,
        weight: Optional[float] = None,
        threshold: Optional[float] = None,
        config: Optional[dict[str, Any]] = None,
    ) -> VerificationRule:
        if threshold is not None and not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be in [0, 1], got {threshold}")
        with self.db.session_scope() as session:
            row = self._rule_row(session, rule_ref)
            if weight is not None:
                row.weight = weight
            if threshold is not None:
                row.threshold = threshold
            if config is not None:
                row.config = config
            session.flush()
            logger.info(f"Rule '{row.name}' updated: weight={row.weight}, threshold={row.threshold}")
            return VerificationRule.model_validate(row)

    def _rule_row(self, session: Session, rule_ref: str) -> VerificationRuleRow:
        row = session.get(VerificationRuleRow, rule_ref)
        if row is None:
            row = session.execute(
                select(VerificationRuleRow).where(VerificationRuleRow.name == rule_ref)
            ).scalar_one_or_none()
        if row is None:
            raise NotFoundError("Verification rule", rule_ref)
        return row

    # ── Audit ──────────────────────────────────────────────────────

    def list_audit(
        self,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
    ) -> list[AuditEntry]:
        with self.db.session_scope() as session:
            query = select(AuditRow).order_by(AuditRow.created_at)
            if entity_type is not None:
                query = query.where(AuditRow.entity_type == entity_type)
            if entity_id is not None:
                query = query.where(AuditRow.entity_id == entity_id)
            return [AuditEntry.model_validate(r) for r in session.execute(query).scalars()]

    # ── Seeding ────────────────────────────────────────────────────

    def seed_defaults(self) -> tuple[int, int]:
        """
        Install the default trusted issuers and verification rules.

        Existing names are left untouched, so seeding twice is harmless.

        Returns:
            (issuers_added, rules_added)
        """
        existing_issuers = {i.name for i in self.list_issuers(active_only=False)}
        existing_rules = {r.name for r in self.list_rules()}

        issuers_added = 0
        for issuer in DEFAULT_ISSUERS:
            if issuer["name"] not in existing_issuers:
                self.add_issuer(**issuer)
                issuers_added += 1

        rules_added = 0
        for rule in DEFAULT_RULES:
            if rule["name"] not in existing_rules:
                self.add_rule(**rule)
                rules_added += 1

        logger.info(f"Seeded {issuers_added} issuers and {rules_added} rules")
        return issuers_added, rules_added
