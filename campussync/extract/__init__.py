"""
CampusSync Field Extraction
============================

Turns OCR text into normalized certificate fields.

Components:
    - extractor.py:      Pattern-based field extractor per document type
    - normalizer.py:     Rule-based normalizer (dates, names, casing)
    - llm_normalizer.py: Optional OpenAI / Gemini normalization delegate
"""
