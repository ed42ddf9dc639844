"""
CampusSync Verification Pipeline
=================================

Orchestrates one certificate's verification:
    OCR text → Extract → Normalize → Match (institution / logo / template / QR)
             → Check (metadata presence / duplicates)
             → Score → Decide → Persist → (auto-issue credential)

This is the single entry point used by the verification job processor
and by the review boundary. It wires the components from one config,
reads trusted issuers and verification rules fresh on every pass, and
records per-stage timings.

Usage:
    from campussync.pipeline import VerificationPipeline

    pipeline = VerificationPipeline.from_config()
    outcome = await pipeline.verify(certificate_id, ocr_text, ocr_confidence=0.92)
    print(outcome.decision.outcome, outcome.policy_score.score)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from campussync.config import CampusSyncConfig, get_config
from campussync.credentials.issuer import CredentialIssuer
from campussync.credentials.revocation import CredentialRevoker
from campussync.errors import (
    ConflictError,
    IntegrityViolation,
    TerminalStateError,
    ValidationError,
)
from campussync.extract.extractor import FieldExtractor
from campussync.extract.llm_normalizer import LLMNormalizer
from campussync.extract.normalizer import FieldNormalizer
from campussync.match.institution import InstitutionMatcher
from campussync.match.logo import perceptual_hash
from campussync.match.template import match_qr, match_templates
from campussync.policy.checks import DuplicateDetector, check_metadata
from campussync.policy.decision import DecisionEngine
from campussync.policy.scorer import PolicyScorer
from campussync.schemas.certificate import (
    Certificate,
    CertificateMetadata,
    ReviewFlag,
    VerificationStatus,
)
from campussync.schemas.credential import VerifiableCredential
from campussync.schemas.decision import Decision, PolicyScore, ScoringSignals
from campussync.schemas.fields import DocumentType, ExtractionResult, NormalizedFields
from campussync.schemas.matching import (
    DuplicateCheck,
    MatchMethod,
    MatchResult,
    MetadataCheck,
    QRMatch,
    TemplateMatch,
)
from campussync.store.database import Database
from campussync.store.repository import CampusStore

logger = logging.getLogger("campussync.pipeline")


@dataclass
class VerificationOutcome:
    """
    Complete output of one verification pass.

    Contains everything the reviewer UI and the audit trail need.
    """
    certificate: Certificate
    extraction: ExtractionResult
    normalized: NormalizedFields
    match: MatchResult
    template: TemplateMatch
    qr: QRMatch
    metadata_check: MetadataCheck
    duplicate: DuplicateCheck
    signals: ScoringSignals
    policy_score: PolicyScore
    decision: Decision
    credential: Optional[VerifiableCredential] = None
    issuance_error: Optional[str] = None
    timings: dict[str, float] = field(default_factory=dict)


@dataclass
class ReviewItem:
    """A certificate waiting for a human decision."""
    certificate: Certificate
    policy_score: Optional[float]
    breakdown: list[dict[str, Any]] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)


class VerificationPipeline:
    """
    End-to-end verification orchestrator.

    Args:
        config: CampusSync configuration.
        db: Storage backend; built from config.database when omitted.
        llm: Optional LLM normalizer delegate; built from
            config.normalization when omitted.
    """

    def __init__(
        self,
        config: Optional[CampusSyncConfig] = None,
        db: Optional[Database] = None,
        llm: Optional[LLMNormalizer] = None,
    ):
        self.config = config or get_config()
        self.db = db or Database.from_config(self.config)
        self.store = CampusStore(self.db)

        cfg = self.config
        self.extractor = FieldExtractor(cfg.extraction)
        self.normalizer = FieldNormalizer(
            cfg.normalization, llm=llm or LLMNormalizer.from_config(cfg)
        )
        self.matcher = InstitutionMatcher(self.store.list_issuers, cfg.matching)
        self.duplicates = DuplicateDetector(self.store, cfg.matching)
        self.scorer = PolicyScorer(cfg.scoring)
        self.decisions = DecisionEngine(
            store=self.store, config=cfg.decision, config_hash=cfg.config_hash()
        )
        self.issuer = CredentialIssuer(self.db, cfg.credentials)
        self.revoker = CredentialRevoker(self.db, cfg.credentials)

    @classmethod
    def from_config(cls, config_path: Optional[str] = None) -> "VerificationPipeline":
        """Create pipeline from config file or environment."""
        return cls(get_config(config_path))

    # ── Verification ───────────────────────────────────────────────

    async def verify(
        self,
        certificate_id: str,
        text: str,
        ocr_confidence: Optional[float] = None,
        document_type: DocumentType = DocumentType.CERTIFICATE,
        qr_payload: Optional[str] = None,
        logo: Optional[bytes] = None,
        document: Optional[bytes] = None,
    ) -> VerificationOutcome:
        """
        Verify one pending certificate from its OCR text.

        `document` is the uploaded file; when given, its SHA-256 is
        stored and checked against earlier uploads.

        Raises:
            NotFoundError: Unknown certificate.
            TerminalStateError: Certificate already verified or rejected.
        """
        timings: dict[str, float] = {}
        t_total = time.perf_counter()

        cert = self.store.get_certificate(certificate_id)
        if cert.verification_status.is_terminal:
            raise TerminalStateError(
                f"Certificate {certificate_id} is already {cert.verification_status.value}; "
                f"revert it before re-evaluating"
            )

        # Step 1: Extract
        t0 = time.perf_counter()
        extraction = self.extractor.extract(text, document_type, ocr_confidence)
        timings["extract_ms"] = (time.perf_counter() - t0) * 1000

        # Step 2: Normalize
        t0 = time.perf_counter()
        normalized = await self.normalizer.normalize(extraction.fields)
        timings["normalize_ms"] = (time.perf_counter() - t0) * 1000

        # Step 3: Match
        t0 = time.perf_counter()
        issuers = self.store.list_issuers()
        institution = normalized.institution or cert.institution
        match = self.matcher.match(institution, logo)
        template = match_templates(text, issuers, self.config.matching.template_match_threshold)
        qr = match_qr(qr_payload, issuers)
        timings["match_ms"] = (time.perf_counter() - t0) * 1000

        # Step 4: Metadata presence and duplicates
        t0 = time.perf_counter()
        metadata_check = check_metadata(normalized)
        duplicate = self.duplicates.check(certificate_id, text, document)
        timings["check_ms"] = (time.perf_counter() - t0) * 1000

        # Step 5: Score against the rules as they are right now
        t0 = time.perf_counter()
        signals = ScoringSignals(
            normalization_confidence=normalized.confidence,
            institution_score=match.score,
            issuer_presence=normalized.issuer_presence,
            extraction_confidence=extraction.confidence,
            logo_score=match.logo_score,
            template_score=template.score,
            qr_verified=qr.verified,
            qr_checked=bool(qr_payload and qr_payload.strip()),
            duplicate=duplicate.is_duplicate,
        )
        policy_score = self.scorer.score(signals, self.store.list_rules(active_only=True))
        timings["score_ms"] = (time.perf_counter() - t0) * 1000

        # Step 6: Decide and persist
        t0 = time.perf_counter()
        decision = self.decisions.decide(policy_score, cert.organization_id)
        metadata = self._metadata(
            text, extraction, normalized, match, template, qr, logo,
            metadata_check, duplicate, policy_score, decision,
        )
        self.store.save_verification(
            certificate_id,
            metadata,
            fields={
                "title": normalized.title,
                "institution": normalized.institution,
                "date_issued": normalized.date_issued,
                "description": normalized.description,
            },
        )
        certificate = self.decisions.apply(certificate_id, decision)
        timings["decide_ms"] = (time.perf_counter() - t0) * 1000

        # Step 7: Auto-issue
        credential, issuance_error = None, None
        if decision.status == VerificationStatus.VERIFIED and self.config.credentials.auto_issue:
            try:
                credential = self.issuer.issue(certificate_id)
            except (ValidationError, IntegrityViolation, ConflictError) as e:
                issuance_error = str(e)
                logger.warning(f"Auto-issuance skipped for {certificate_id}: {e}")

        timings["total_ms"] = (time.perf_counter() - t_total) * 1000
        logger.info(
            f"Verified certificate {certificate_id}: {decision.outcome.value} "
            f"(score={policy_score.score:.3f}, {timings['total_ms']:.0f}ms)"
        )

        return VerificationOutcome(
            certificate=certificate,
            extraction=extraction,
            normalized=normalized,
            match=match,
            template=template,
            qr=qr,
            metadata_check=metadata_check,
            duplicate=duplicate,
            signals=signals,
            policy_score=policy_score,
            decision=decision,
            credential=credential,
            issuance_error=issuance_error,
            timings=timings,
        )

    # ── Review Boundary ────────────────────────────────────────────

    def review_queue(self, organization_id: Optional[str] = None) -> list[ReviewItem]:
        """Pending certificates flagged for manual review, with their scoring detail."""
        items = []
        for cert in self.store.list_certificates(
            status=VerificationStatus.PENDING,
            review_flag=ReviewFlag.MANUAL_REVIEW,
            organization_id=organization_id,
        ):
            details = cert.verification.verification_details if cert.verification else {}
            items.append(
                ReviewItem(
                    certificate=cert,
                    policy_score=cert.confidence_score,
                    breakdown=details.get("breakdown", []),
                    issues=details.get("issues", []),
                )
            )
        return items

    def review(
        self,
        certificate_id: str,
        actor_id: str,
        approve: bool,
        reason: str,
    ) -> Certificate:
        """Human approve / reject; see DecisionEngine.override."""
        return self.decisions.override(certificate_id, actor_id, approve, reason)

    def revert(self, certificate_id: str, actor_id: str, reason: str) -> Certificate:
        """Return a decided certificate to pending; see DecisionEngine.revert."""
        return self.decisions.revert(certificate_id, actor_id, reason)

    # ── Helpers ────────────────────────────────────────────────────

    @staticmethod
    def _metadata(
        text: str,
        extraction: ExtractionResult,
        normalized: NormalizedFields,
        match: MatchResult,
        template: TemplateMatch,
        qr: QRMatch,
        logo: Optional[bytes],
        metadata_check: MetadataCheck,
        duplicate: DuplicateCheck,
        policy_score: PolicyScore,
        decision: Decision,
    ) -> CertificateMetadata:
        logo_hash = None
        if logo:
            try:
                logo_hash = perceptual_hash(logo)
            except ValueError:
                # Already reported by the matcher
                logo_hash = None

        if qr.verified:
            method = "qr"
        elif match.method != MatchMethod.NONE:
            method = match.method.value
        elif template.matched:
            method = "template"
        else:
            method = "ai"

        return CertificateMetadata(
            qr_code_data=qr.data,
            qr_verified=qr.verified,
            logo_hash=logo_hash,
            logo_match_score=match.logo_score if logo else None,
            template_match_score=template.score,
            ai_confidence_score=policy_score.score,
            verification_method=method,
            file_hash=duplicate.file_hash,
            ocr_text=text,
            verification_details={
                "outcome": decision.outcome.value,
                "reason": decision.reason,
                "policy": decision.policy.model_dump(),
                "weights_source": policy_score.weights_source.value,
                "breakdown": [c.model_dump(mode="json") for c in policy_score.breakdown],
                "duplicate_penalty": policy_score.duplicate_penalty,
                "matched_issuer": (
                    match.matched_template.model_dump() if match.matched_template else None
                ),
                "institution_match": match.model_dump(mode="json"),
                "template_match": template.model_dump(),
                "extracted_fields": extraction.fields.model_dump(),
                "normalized_fields": normalized.model_dump(mode="json"),
                "extraction_confidence": extraction.confidence,
                "metadata_checks": metadata_check.model_dump(),
                "dedupe": duplicate.model_dump(),
                "file_hash": duplicate.file_hash,
                "issues": _merge_issues(extraction.issues, metadata_check.issues, duplicate),
            },
        )


def _merge_issues(
    extraction_issues: list[str],
    metadata_issues: list[str],
    duplicate: DuplicateCheck,
) -> list[str]:
    issues = list(dict.fromkeys([*extraction_issues, *metadata_issues]))
    if duplicate.is_duplicate:
        issues.append(f"duplicate_of:{duplicate.similar_certificate_id}")
    return issues
