"""
SQLAlchemy Database Models for the CampusSync verification pipeline.
Status columns carry CHECK constraints matching the schema enums.
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    text,
)
from sqlalchemy.orm import relationship

from campussync.store.database import Base
from campussync.utils import generate_id, utcnow


# ============================================
# CERTIFICATES
# ============================================
class CertificateRow(Base):
    __tablename__ = "certificates"

    id = Column(String(36), primary_key=True, default=generate_id)
    student_id = Column(String(64), nullable=False, index=True)
    organization_id = Column(String(64), index=True)
    title = Column(Text)
    institution = Column(Text)
    date_issued = Column(String(32))
    description = Column(Text)
    file_ref = Column(Text)
    verification_status = Column(String(16), nullable=False, default="pending")
    review_flag = Column(String(32))
    auto_approved = Column(Boolean, nullable=False, default=False)
    confidence_score = Column(Float)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    # Owned: created with the certificate, deleted with it
    verification = relationship(
        "CertificateMetadataRow",
        uselist=False,
        back_populates="certificate",
        cascade="all, delete-orphan",
        lazy="joined",
    )

    __table_args__ = (
        CheckConstraint(
            "verification_status IN ('pending', 'verified', 'rejected')",
            name="ck_certificates_status",
        ),
        CheckConstraint(
            "review_flag IS NULL OR review_flag = 'manual_review'",
            name="ck_certificates_review_flag",
        ),
        CheckConstraint(
            "confidence_score IS NULL OR (confidence_score >= 0 AND confidence_score <= 1)",
            name="ck_certificates_confidence",
        ),
    )


class CertificateMetadataRow(Base):
    __tablename__ = "certificate_metadata"

    certificate_id = Column(
        String(36), ForeignKey("certificates.id", ondelete="CASCADE"), primary_key=True
    )
    qr_code_data = Column(Text)
    qr_verified = Column(Boolean, nullable=False, default=False)
    logo_hash = Column(String(16))
    logo_match_score = Column(Float)
    template_match_score = Column(Float)
    ai_confidence_score = Column(Float)
    verification_method = Column(String(32))
    file_hash = Column(String(64), index=True)
    ocr_text = Column(Text)
    verification_details = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    certificate = relationship("CertificateRow", back_populates="verification")


# ============================================
# TRUSTED ISSUERS & RULES (admin-maintained)
# ============================================
class TrustedIssuerRow(Base):
    __tablename__ = "trusted_issuers"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(Text, nullable=False, unique=True)
    domain = Column(Text)
    template_patterns = Column(JSON, nullable=False, default=list)
    logo_hash = Column(String(16))
    confidence_threshold = Column(Float, nullable=False, default=0.9)
    qr_verification_url = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class VerificationRuleRow(Base):
    __tablename__ = "verification_rules"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(Text, nullable=False, unique=True)
    rule_type = Column(String(32), nullable=False)
    weight = Column(Float, nullable=False, default=0.0)
    threshold = Column(Float, nullable=False, default=0.0)
    config = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint(
            "rule_type IN ('qr_verification', 'logo_match', 'template_match', 'ai_confidence')",
            name="ck_verification_rules_type",
        ),
        CheckConstraint("threshold >= 0 AND threshold <= 1", name="ck_verification_rules_threshold"),
    )


# ============================================
# VERIFIABLE CREDENTIALS
# ============================================
class CredentialRow(Base):
    __tablename__ = "verifiable_credentials"

    id = Column(String(64), primary_key=True)
    # Weak reference: no FK back-pointer into certificates
    certificate_id = Column(String(36), nullable=False, index=True)
    subject_id = Column(String(64), nullable=False, index=True)
    issuer = Column(Text, nullable=False)
    issued_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    document = Column(JSON, nullable=False)
    status = Column(String(16), nullable=False, default="active")
    revoked_at = Column(DateTime(timezone=True))
    revocation_reason = Column(Text)

    __table_args__ = (
        CheckConstraint("status IN ('active', 'revoked')", name="ck_credentials_status"),
        # At most one active credential per certificate
        Index(
            "uq_credentials_active_certificate",
            "certificate_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )


class CredentialStatusRow(Base):
    __tablename__ = "vc_status_registry"

    id = Column(String(36), primary_key=True, default=generate_id)
    credential_id = Column(String(64), nullable=False, index=True)
    status = Column(String(16), nullable=False)
    reason_code = Column(String(32))
    reason = Column(Text)
    issuer = Column(Text)
    subject_id = Column(String(64))
    recorded_by = Column(String(64))
    recorded_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    details = Column("metadata", JSON, nullable=False, default=dict)

    __table_args__ = (
        CheckConstraint("status IN ('active', 'revoked')", name="ck_vc_status_registry_status"),
    )


# ============================================
# AUDIT LOG
# ============================================
class AuditRow(Base):
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=generate_id)
    actor_id = Column(String(64))
    action = Column(String(32), nullable=False)
    entity_type = Column(String(32), nullable=False)
    entity_id = Column(String(64), nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_audit_logs_entity", "entity_type", "entity_id"),
    )


# ============================================
# JOB QUEUE
# ============================================
class JobRow(Base):
    __tablename__ = "job_queue"

    id = Column(String(36), primary_key=True, default=generate_id)
    type = Column(String(16), nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    priority = Column(Integer, nullable=False, default=0)
    # Insertion order; breaks created_at ties
    seq = Column(Integer, nullable=False, default=0)
    result = Column(JSON)
    error = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("type IN ('ocr', 'verification', 'normalization')", name="ck_job_queue_type"),
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_job_queue_status",
        ),
        Index("idx_job_queue_claim", "status", "priority", "seq"),
    )


class JobHistoryRow(Base):
    __tablename__ = "job_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(36), ForeignKey("job_queue.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(16), nullable=False)
    message = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
