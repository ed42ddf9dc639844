"""
LLM Field Normalizer
=====================

Optional delegate of the FieldNormalizer that asks a language model
(OpenAI or Google Gemini) to canonicalize an extracted field set.

The delegate is allowed to fail. Every failure (missing package,
missing API key, network error, malformed JSON, a response that drops
a field) raises, and the FieldNormalizer falls back to its rules.

The blocking SDK call runs in a worker thread so the event loop can
enforce the normalization timeout.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Optional

from campussync.config import CampusSyncConfig, LLMProvider
from campussync.schemas.fields import ExtractedFields, NormalizedFields
from campussync.utils import clamp

logger = logging.getLogger("campussync.extract.llm_normalizer")


SYSTEM_PROMPT = """You normalize fields extracted from academic certificates.

Rules:
1. date_issued: ISO-8601 (YYYY-MM-DD). For numeric dates, if the first number is greater than 12 it is the day.
2. recipient: "First Middle Last" order, title case. Convert "Last, First" to "First Last".
3. institution: official full name, title case, connectives (of, and, for, the) lower case, acronyms (IIT, MIT, IBM) upper case.
4. title, issuer, description: trimmed, single spaces; title case for title and issuer.
5. Never invent a value. Only return fields that were given to you.

Return ONLY a JSON object:
{"fields": {"<name>": "<normalized value>", ...}, "confidence": {"<name>": <0.0-1.0>, ...}}"""

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class LLMNormalizer:
    """
    Language-model field normalizer.

    Usage:
        llm = LLMNormalizer(provider=LLMProvider.OPENAI, api_key="sk-...")
        normalized = await llm.normalize(fields)

    Args:
        provider: 'openai' or 'gemini'.
        model: Model name, e.g. 'gpt-4o-mini' or 'gemini-2.0-flash'.
        api_key: Provider API key.
        temperature: Sampling temperature (0.0 for deterministic output).
    """

    def __init__(
        self,
        provider: LLMProvider = LLMProvider.OPENAI,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        temperature: float = 0.0,
    ):
        self.provider = LLMProvider(provider)
        self.model = model
        self.api_key = api_key
        self.temperature = temperature
        self._client = None

    @classmethod
    def from_config(cls, config: CampusSyncConfig) -> Optional["LLMNormalizer"]:
        """Build the delegate configured in `normalization`, or None when disabled."""
        norm = config.normalization
        if not norm.use_llm or norm.llm_provider == LLMProvider.NONE:
            return None
        api_key = (
            config.openai_api_key
            if norm.llm_provider == LLMProvider.OPENAI
            else config.gemini_api_key
        )
        return cls(
            provider=norm.llm_provider,
            model=norm.llm_model,
            api_key=api_key,
            temperature=norm.temperature,
        )

    async def normalize(self, fields: ExtractedFields) -> NormalizedFields:
        original = fields.present()
        if not original:
            return NormalizedFields(method="llm")

        user_message = (
            "Normalize these certificate fields:\n"
            + json.dumps(original, ensure_ascii=False, indent=2)
        )
        raw = await asyncio.to_thread(self._call, user_message)
        return self._parse_output(raw, original)

    # ── Provider Calls ─────────────────────────────────────────────

    def _call(self, user_message: str) -> str:
        if not self.api_key:
            raise RuntimeError(f"No API key configured for {self.provider.value} normalizer")
        if self.provider == LLMProvider.GEMINI:
            return self._call_gemini(user_message)
        return self._call_openai(user_message)

    def _call_openai(self, user_message: str) -> str:
        """Call OpenAI API with JSON mode."""
        try:
            from openai import OpenAI
        except ImportError:
            raise RuntimeError("openai package required. Install with: pip install openai")

        if self._client is None:
            self._client = OpenAI(api_key=self.api_key)

        response = self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_message},
            ],
            temperature=self.temperature,
            response_format={"type": "json_object"},
            max_tokens=500,
        )
        return response.choices[0].message.content or ""

    def _call_gemini(self, user_message: str) -> str:
        """Call Gemini API with JSON output."""
        try:
            from google import genai
        except ImportError:
            raise RuntimeError(
                "google-genai package required for the Gemini normalizer. "
                "Install with: pip install google-genai"
            )

        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)

        response = self._client.models.generate_content(
            model=self.model,
            contents=f"{SYSTEM_PROMPT}\n\n{user_message}",
            config={
                "temperature": self.temperature,
                "max_output_tokens": 500,
                "response_mime_type": "application/json",
            },
        )
        return response.text or ""

    # ── Parsing ────────────────────────────────────────────────────

    def _parse_output(self, raw: str, original: dict[str, str]) -> NormalizedFields:
        """
        Validate the model's JSON against the fields that were sent.

        Raises:
            ValueError: If the output is not JSON, drops a field, or
                returns a non-ISO date.
        """
        data = self._load_json(raw)
        values: dict[str, Any] = data.get("fields") or {}
        scores: dict[str, Any] = data.get("confidence") or {}

        normalized: dict[str, str] = {}
        confidence: dict[str, float] = {}
        for name in original:
            value = values.get(name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"LLM output dropped field '{name}'")
            value = value.strip()
            if name == "date_issued" and not _ISO_DATE.match(value):
                raise ValueError(f"LLM returned non-ISO date: {value!r}")
            normalized[name] = value
            try:
                confidence[name] = clamp(float(scores.get(name, 0.7)))
            except (TypeError, ValueError):
                confidence[name] = 0.7

        overall = sum(confidence.values()) / len(confidence)
        logger.debug(f"LLM normalized {len(normalized)} fields (confidence={overall:.2f})")

        return NormalizedFields(
            **normalized,
            confidence=clamp(overall),
            field_confidence=confidence,
            original_values=original,
            normalized_values={k: v for k, v in normalized.items() if v != original[k]},
            method="llm",
        )

    @staticmethod
    def _load_json(text: str) -> dict[str, Any]:
        """Parse JSON, tolerating markdown fences around the object."""
        text = (text or "").strip()
        if text.startswith("```"):
            lines = text.split("\n")
            text = "\n".join(lines[1:-1] if lines[-1].strip() == "```" else lines[1:]).strip()
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            start, end = text.find("{"), text.rfind("}") + 1
            if start < 0 or end <= start:
                raise ValueError(f"LLM output is not JSON: {text[:200]!r}")
            data = json.loads(text[start:end])
        if not isinstance(data, dict):
            raise ValueError("LLM output is not a JSON object")
        return data
