"""
Credential Revocation & Verification
=====================================

Revocation is one-way: active → revoked. There is no un-revoke; a
replacement credential must be issued instead. Every revocation is
appended to the status registry and the audit log in the same
transaction as the status change.

Verification checks a presented VC document:
    1. the JWS proof verifies against the configured key
    2. the signed payload matches the presented document
    3. the credential is known and its stored status is active
    4. the credential has not expired

A revoked credential is never reported as valid.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from jose import JWTError, jwt
from sqlalchemy import select

from campussync.config import CredentialConfig
from campussync.errors import ConflictError, NotFoundError, ValidationError
from campussync.schemas.audit import AuditAction
from campussync.schemas.credential import (
    REVOCATION_REASONS,
    CredentialStatus,
    CredentialStatusEntry,
    CredentialStatusView,
    CredentialVerification,
    RevocationRecord,
)
from campussync.store.database import Database
from campussync.store.models import CredentialRow, CredentialStatusRow
from campussync.store.repository import record_audit
from campussync.utils import utcnow

logger = logging.getLogger("campussync.credentials.revocation")


class CredentialRevoker:
    """
    Revocation, status lookup and verification of issued credentials.

    Usage:
        revoker = CredentialRevoker(db, cfg.credentials)
        record = revoker.revoke(vc_id, "FRAUD", actor_id="admin-1")
        view = revoker.status(vc_id)
        check = revoker.verify_credential(document)
    """

    def __init__(self, db: Database, config: Optional[CredentialConfig] = None):
        self.db = db
        self.config = config or CredentialConfig()

    def revoke(
        self,
        credential_id: str,
        reason_code: str,
        actor_id: str,
        note: Optional[str] = None,
    ) -> RevocationRecord:
        """
        Revoke an active credential.

        Raises:
            ValidationError: Unknown reason code or missing actor.
            NotFoundError: Unknown credential.
            ConflictError: Already revoked; nothing is changed.
        """
        reason = REVOCATION_REASONS.get((reason_code or "").strip().upper())
        if reason is None:
            raise ValidationError(
                f"Unknown revocation reason code: {reason_code!r} "
                f"(expected one of {', '.join(REVOCATION_REASONS)})"
            )
        if not actor_id or not actor_id.strip():
            raise ValidationError("Revocation requires an actor", missing=["actor_id"])

        with self.db.session_scope() as session:
            row = session.get(CredentialRow, credential_id)
            if row is None:
                raise NotFoundError("Credential", credential_id)
            if row.status == CredentialStatus.REVOKED.value:
                raise ConflictError(
                    f"Credential {credential_id} is already revoked", existing_id=credential_id
                )

            revoked_at = utcnow()
            description = f"{reason.description}: {note}" if note else reason.description
            row.status = CredentialStatus.REVOKED.value
            row.revoked_at = revoked_at
            row.revocation_reason = description

            entry = CredentialStatusRow(
                credential_id=credential_id,
                status=CredentialStatus.REVOKED.value,
                reason_code=reason.code,
                reason=description,
                issuer=row.issuer,
                subject_id=row.subject_id,
                recorded_by=actor_id,
                recorded_at=revoked_at,
                details={"category": reason.category, "certificate_id": row.certificate_id},
            )
            session.add(entry)
            record_audit(
                session,
                AuditAction.REVOKE_VC,
                "credential",
                credential_id,
                actor_id=actor_id,
                details={"reason_code": reason.code, "reason": description},
            )
            session.flush()
            entry_id = entry.id

        logger.info(f"Revoked credential {credential_id} ({reason.code}) by {actor_id}")
        return RevocationRecord(
            credential_id=credential_id,
            revoked_at=revoked_at,
            revoked_by=actor_id,
            reason=reason,
            registry_entry_id=entry_id,
        )

    def status(self, credential_id: str) -> CredentialStatusView:
        """
        Current status and full registry history of a credential.

        Raises:
            NotFoundError: Unknown credential.
        """
        with self.db.session_scope() as session:
            row = session.get(CredentialRow, credential_id)
            if row is None:
                raise NotFoundError("Credential", credential_id)
            history = session.execute(
                select(CredentialStatusRow)
                .where(CredentialStatusRow.credential_id == credential_id)
                .order_by(CredentialStatusRow.recorded_at)
            ).scalars()
            return CredentialStatusView(
                credential_id=row.id,
                status=CredentialStatus(row.status),
                revoked_at=row.revoked_at,
                reason=row.revocation_reason,
                history=[CredentialStatusEntry.model_validate(h) for h in history],
            )

    def verify_credential(
        self,
        document: dict[str, Any],
        key: Optional[str] = None,
    ) -> CredentialVerification:
        """
        Check a presented VC document.

        Args:
            document: The full VC document, proof included.
            key: Verification key; defaults to the configured one.

        Returns:
            CredentialVerification; `valid` is False with a reason on any
            failed check.
        """
        credential_id = document.get("id") if isinstance(document, dict) else None
        proof = document.get("proof") if isinstance(document, dict) else None
        token = proof.get("jws") if isinstance(proof, dict) else None
        if not token:
            return CredentialVerification(
                valid=False, credential_id=credential_id, reason="Missing proof or JWS"
            )

        verify_key = key or self.config.verification_key or self.config.signing_key
        try:
            claims = jwt.decode(
                token,
                verify_key,
                algorithms=[self.config.algorithm],
                issuer=document.get("issuer"),
            )
        except JWTError as e:
            logger.info(f"Signature check failed for {credential_id}: {e}")
            return CredentialVerification(
                valid=False, credential_id=credential_id, reason=f"Invalid signature: {e}"
            )

        unsigned = {k: v for k, v in document.items() if k != "proof"}
        if claims.get("vc") != unsigned:
            return CredentialVerification(
                valid=False,
                credential_id=credential_id,
                reason="Document does not match its signed payload",
                payload=claims,
            )

        with self.db.session_scope() as session:
            row = session.get(CredentialRow, credential_id) if credential_id else None
            if row is None:
                return CredentialVerification(
                    valid=False,
                    credential_id=credential_id,
                    reason="Credential not found in registry",
                    payload=claims,
                )
            status = CredentialStatus(row.status)
            revocation_reason = row.revocation_reason

        if status == CredentialStatus.REVOKED:
            return CredentialVerification(
                valid=False,
                credential_id=credential_id,
                status=status,
                reason=f"Credential has been revoked: {revocation_reason}",
                payload=claims,
            )

        expiration = unsigned.get("expirationDate")
        if expiration and _parse_timestamp(expiration) <= utcnow():
            return CredentialVerification(
                valid=False,
                credential_id=credential_id,
                status=status,
                reason="Credential has expired",
                payload=claims,
            )

        return CredentialVerification(
            valid=True, credential_id=credential_id, status=status, payload=claims
        )


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
