"""
Credential Issuer
==================

Issues a W3C Verifiable Credential for a verified certificate.

Issuance preconditions, checked in order:
    1. certificate exists                         → NotFoundError
    2. certificate is verified                    → ValidationError
    3. certificate has a student (the subject)    → IntegrityViolation
    4. title, institution and date are present    → ValidationError
    5. no active credential for the certificate   → ConflictError

The document is signed as a compact JWS (python-jose) over
`{"vc": <unsigned document>, "iss": <issuer DID>, "iat": <now>}` and
embedded as a JsonWebSignature2020 proof.

The credential row, its first status-registry entry and the `issue_vc`
audit entry commit in one transaction. The partial unique index on
active credentials backs up check 5 when two issuers race.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Optional

from jose import jwt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from campussync.config import CredentialConfig
from campussync.errors import (
    ConflictError,
    IntegrityViolation,
    NotFoundError,
    ValidationError,
)
from campussync.schemas.audit import AuditAction
from campussync.schemas.certificate import VerificationStatus
from campussync.schemas.credential import CredentialStatus, VerifiableCredential
from campussync.store.database import Database
from campussync.store.models import CertificateRow, CredentialRow, CredentialStatusRow
from campussync.store.repository import record_audit
from campussync.utils import isoformat, utcnow

logger = logging.getLogger("campussync.credentials.issuer")


VC_CONTEXT: list[Any] = [
    "https://www.w3.org/2018/credentials/v1",
    {"AchievementCredential": "https://purl.imsglobal.org/pec/v1"},
]
VC_TYPE = ["VerifiableCredential", "AchievementCredential"]
PROOF_TYPE = "JsonWebSignature2020"

REQUIRED_FIELDS = ("title", "institution", "date_issued")


def sign_document(document: dict[str, Any], config: CredentialConfig, issued_at: datetime) -> str:
    """Compact JWS over the unsigned document."""
    claims = {
        "vc": document,
        "iss": config.issuer_did,
        "iat": int(issued_at.timestamp()),
    }
    return jwt.encode(
        claims,
        config.signing_key,
        algorithm=config.algorithm,
        headers={"kid": config.key_reference},
    )


class CredentialIssuer:
    """
    Verifiable Credential issuer.

    Usage:
        issuer = CredentialIssuer(db, cfg.credentials)
        credential = issuer.issue(certificate_id, actor_id="admin-1")

    Args:
        db: Storage backend.
        config: Issuer DID, signing key and algorithm, validity.
    """

    def __init__(self, db: Database, config: Optional[CredentialConfig] = None):
        self.db = db
        self.config = config or CredentialConfig()

    def issue(self, certificate_id: str, actor_id: Optional[str] = None) -> VerifiableCredential:
        """
        Issue a credential for a verified certificate.

        Raises:
            NotFoundError: Unknown certificate.
            ValidationError: Certificate not verified, or missing fields.
            IntegrityViolation: Certificate has no owning student.
            ConflictError: An active credential already exists.
        """
        try:
            with self.db.session_scope() as session:
                cert = session.get(CertificateRow, certificate_id)
                if cert is None:
                    raise NotFoundError("Certificate", certificate_id)
                self._check_issuable(cert)

                existing = self._active_credential_id(session, certificate_id)
                if existing is not None:
                    raise ConflictError(
                        f"Certificate {certificate_id} already has an active credential: {existing}",
                        existing_id=existing,
                    )

                issued_at = utcnow()
                document = self.build_document(cert, issued_at)
                row = CredentialRow(
                    id=document["id"],
                    certificate_id=cert.id,
                    subject_id=cert.student_id,
                    issuer=self.config.issuer_did,
                    issued_at=issued_at,
                    document=document,
                    status=CredentialStatus.ACTIVE.value,
                )
                session.add(row)
                session.add(
                    CredentialStatusRow(
                        credential_id=row.id,
                        status=CredentialStatus.ACTIVE.value,
                        issuer=self.config.issuer_did,
                        subject_id=cert.student_id,
                        recorded_by=actor_id,
                        recorded_at=issued_at,
                        details={"certificate_id": cert.id},
                    )
                )
                record_audit(
                    session,
                    AuditAction.ISSUE_VC,
                    "credential",
                    row.id,
                    actor_id=actor_id,
                    details={"certificate_id": cert.id, "subject_id": cert.student_id},
                )
                session.flush()
                credential = VerifiableCredential.model_validate(row)
        except IntegrityError as e:
            existing = self._lookup_active(certificate_id)
            raise ConflictError(
                f"Certificate {certificate_id} already has an active credential",
                existing_id=existing,
            ) from e

        logger.info(f"Issued credential {credential.id} for certificate {certificate_id}")
        return credential

    def build_document(self, cert: CertificateRow, issued_at: datetime) -> dict[str, Any]:
        """Signed W3C VC document for a certificate row."""
        unsigned: dict[str, Any] = {
            "@context": VC_CONTEXT,
            "type": VC_TYPE,
            "issuer": self.config.issuer_did,
            "issuanceDate": isoformat(issued_at),
            "id": f"urn:uuid:{uuid.uuid4()}",
            "credentialSubject": {
                "id": cert.student_id,
                "certificateId": cert.id,
                "title": cert.title,
                "institution": cert.institution,
                "dateIssued": cert.date_issued,
                "description": cert.description,
            },
        }
        if self.config.validity_days:
            unsigned["expirationDate"] = isoformat(
                issued_at + timedelta(days=self.config.validity_days)
            )

        jws = sign_document(unsigned, self.config, issued_at)
        return {
            **unsigned,
            "proof": {
                "type": PROOF_TYPE,
                "created": unsigned["issuanceDate"],
                "proofPurpose": "assertionMethod",
                "verificationMethod": self.config.key_reference,
                "jws": jws,
            },
        }

    def get(self, credential_id: str) -> VerifiableCredential:
        with self.db.session_scope() as session:
            row = session.get(CredentialRow, credential_id)
            if row is None:
                raise NotFoundError("Credential", credential_id)
            return VerifiableCredential.model_validate(row)

    def list_for_certificate(self, certificate_id: str) -> list[VerifiableCredential]:
        with self.db.session_scope() as session:
            rows = session.execute(
                select(CredentialRow)
                .where(CredentialRow.certificate_id == certificate_id)
                .order_by(CredentialRow.issued_at)
            ).scalars()
            return [VerifiableCredential.model_validate(r) for r in rows]

    # ── Helpers ────────────────────────────────────────────────────

    @staticmethod
    def _check_issuable(cert: CertificateRow) -> None:
        if cert.verification_status != VerificationStatus.VERIFIED.value:
            raise ValidationError(
                f"Certificate {cert.id} is {cert.verification_status}; "
                f"only verified certificates can be issued a credential"
            )
        if not cert.student_id or not cert.student_id.strip():
            raise IntegrityViolation(f"Certificate {cert.id} has no owning student")
        missing = [name for name in REQUIRED_FIELDS if not (getattr(cert, name) or "").strip()]
        if missing:
            raise ValidationError(
                f"Certificate {cert.id} is missing required fields: {', '.join(missing)}",
                missing=missing,
            )

    @staticmethod
    def _active_credential_id(session, certificate_id: str) -> Optional[str]:
        return session.execute(
            select(CredentialRow.id).where(
                CredentialRow.certificate_id == certificate_id,
                CredentialRow.status == CredentialStatus.ACTIVE.value,
            )
        ).scalar_one_or_none()

    def _lookup_active(self, certificate_id: str) -> Optional[str]:
        with self.db.session_scope() as session:
            return self._active_credential_id(session, certificate_id)
