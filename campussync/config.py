"""
CampusSync Configuration System
================================

Central configuration using Pydantic Settings. Supports:
- Environment variables (CAMPUSSYNC_ prefix, ``__`` for nested keys)
- .env file loading
- YAML config file overrides

The config produces a deterministic hash for reproducibility tracking.
Every decision snapshot is stamped with this hash, so a reviewer can
tell which thresholds and weights produced an outcome.

Usage:
    from campussync.config import get_config
    cfg = get_config()                          # loads from env / .env
    cfg = get_config("configs/strict.yaml")     # loads with YAML overrides
"""

from __future__ import annotations

import hashlib
import json
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMProvider(str, Enum):
    """Backend used by the optional LLM field normalizer."""
    NONE = "none"
    OPENAI = "openai"
    GEMINI = "gemini"


# ── Sub-configs ────────────────────────────────────────────────────
class DatabaseConfig(BaseModel):
    """Storage connection settings."""
    url: str = Field(
        default="sqlite:///./campussync.db",
        description="SQLAlchemy database URL"
    )
    echo: bool = Field(default=False, description="Echo SQL statements to the log")


class ExtractionConfig(BaseModel):
    """Configuration for the field extractor."""
    min_title_length: int = Field(default=3, description="Shortest accepted title")
    max_title_length: int = Field(default=100, description="Longest accepted title")
    min_description_length: int = Field(
        default=20,
        description="Shortest line considered as a description"
    )


class NormalizationConfig(BaseModel):
    """Configuration for the field normalizer and its LLM delegate."""
    use_llm: bool = Field(default=False, description="Try the LLM normalizer before rules")
    llm_provider: LLMProvider = Field(
        default=LLMProvider.NONE,
        description="LLM backend: 'none', 'openai' or 'gemini'"
    )
    llm_model: str = Field(default="gpt-4o-mini", description="Model used for normalization")
    temperature: float = Field(default=0.0, description="LLM temperature")
    timeout_s: float = Field(default=15.0, gt=0, description="Max seconds for an LLM call")
    institution_aliases: dict[str, str] = Field(
        default_factory=dict,
        description="Lower-case alias → canonical institution name"
    )


class MatchingConfig(BaseModel):
    """Configuration for institution, logo and template matching."""
    exact_match_score: float = Field(default=0.9, ge=0.0, le=1.0)
    partial_match_score: float = Field(default=0.7, ge=0.0, le=1.0)
    no_match_score: float = Field(default=0.3, ge=0.0, le=1.0)
    missing_institution_score: float = Field(default=0.1, gt=0.0, le=1.0)
    logo_match_threshold: float = Field(
        default=0.8, ge=0.0, le=1.0,
        description="Logo similarity needed to count as a logo match"
    )
    template_match_threshold: float = Field(
        default=0.6, ge=0.0, le=1.0,
        description="Fraction of template patterns needed to count as a template match"
    )
    duplicate_similarity: float = Field(
        default=0.95, ge=0.0, le=1.0,
        description="OCR-text Jaccard similarity above which a certificate is a duplicate"
    )
    duplicate_window: int = Field(
        default=50, ge=0, description="Recent certificates compared for text similarity"
    )


class ScoringConfig(BaseModel):
    """Fixed weights used when no verification rule is active, plus the duplicate penalty."""
    normalization_weight: float = Field(default=0.4, ge=0.0)
    institution_weight: float = Field(default=0.3, ge=0.0)
    issuer_weight: float = Field(default=0.3, ge=0.0)
    duplicate_penalty: float = Field(
        default=0.4, ge=0.0, le=1.0, description="Subtracted from the score of a duplicate"
    )


class DecisionConfig(BaseModel):
    """Thresholds for the decision engine."""
    high_threshold: float = Field(
        default=0.8,
        ge=0.0, le=1.0,
        description="Auto-approve if policy score >= high_threshold"
    )
    low_threshold: float = Field(
        default=0.5,
        ge=0.0, le=1.0,
        description="Reject if policy score < low_threshold"
    )
    org_thresholds: dict[str, tuple[float, float]] = Field(
        default_factory=dict,
        description="organization_id → (low, high) override"
    )
    policy_version: str = Field(default="v1.0", description="Policy version identifier")

    @model_validator(mode="after")
    def check_order(self) -> "DecisionConfig":
        if self.low_threshold > self.high_threshold:
            raise ValueError(
                f"low_threshold ({self.low_threshold}) must not exceed "
                f"high_threshold ({self.high_threshold})"
            )
        return self


class WorkerConfig(BaseModel):
    """Configuration for the background job worker."""
    poll_interval_s: float = Field(default=5.0, gt=0, description="Seconds between polls")
    cleanup_days: int = Field(default=7, ge=0, description="Age of completed jobs to purge")


class CredentialConfig(BaseModel):
    """Configuration for Verifiable Credential issuance."""
    issuer_did: str = Field(default="did:web:campussync.example.org")
    verification_method: Optional[str] = Field(
        default=None,
        description="Key reference; defaults to '<issuer_did>#keys-1'"
    )
    signing_key: str = Field(
        default="campussync-development-key",
        description="Secret (HS*) or PEM private key (RS*/ES*) used to sign credentials"
    )
    verification_key: Optional[str] = Field(
        default=None,
        description="Public key for asymmetric algorithms; defaults to signing_key"
    )
    algorithm: str = Field(default="HS256", description="JWS algorithm")
    validity_days: Optional[int] = Field(
        default=None,
        description="Credential lifetime in days (None = no expiration)"
    )
    auto_issue: bool = Field(
        default=True,
        description="Issue a credential when a certificate is auto-approved"
    )

    @property
    def key_reference(self) -> str:
        return self.verification_method or f"{self.issuer_did}#keys-1"


# ── Main Config ────────────────────────────────────────────────────
class CampusSyncConfig(BaseSettings):
    """
    Root configuration for the CampusSync verification pipeline.

    Loads from environment variables (CAMPUSSYNC_ prefix) and .env file.
    Can be extended with YAML overrides via `get_config(yaml_path)`.

    Example:
        export CAMPUSSYNC_DATABASE__URL=postgresql+psycopg2://...
        export CAMPUSSYNC_DECISION__HIGH_THRESHOLD=0.85
    """
    model_config = SettingsConfigDict(
        env_prefix="CAMPUSSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format: 'json' or 'text'")

    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    gemini_api_key: Optional[str] = Field(default=None, description="Google Gemini API key")

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    normalization: NormalizationConfig = Field(default_factory=NormalizationConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    decision: DecisionConfig = Field(default_factory=DecisionConfig)
    worker: WorkerConfig = Field(default_factory=WorkerConfig)
    credentials: CredentialConfig = Field(default_factory=CredentialConfig)

    def config_hash(self) -> str:
        """
        Produce a deterministic SHA-256 hash of the configuration.

        Secrets are excluded so the hash can be written to audit records.
        """
        config_dict = self.model_dump(
            mode="json",
            exclude={
                "openai_api_key": True,
                "gemini_api_key": True,
                "credentials": {"signing_key", "verification_key"},
            },
        )
        canonical = json.dumps(config_dict, sort_keys=True, default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


# ── Config Loading ─────────────────────────────────────────────────
def get_config(yaml_path: Optional[str] = None) -> CampusSyncConfig:
    """
    Load CampusSync configuration.

    Priority (highest to lowest):
        1. Values in the YAML file (if provided)
        2. Environment variables (CAMPUSSYNC_ prefix)
        3. .env file
        4. Default values

    Args:
        yaml_path: Optional path to a YAML config file for overrides.

    Returns:
        Fully resolved CampusSyncConfig instance.
    """
    if yaml_path:
        import yaml
        with open(yaml_path) as f:
            overrides = yaml.safe_load(f) or {}
        return CampusSyncConfig(**overrides)
    return CampusSyncConfig()
