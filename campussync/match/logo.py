"""
Logo Perceptual Hashing
========================

8×8 average hash ("aHash") of a logo image:

    1. Decode with Pillow, convert to grayscale
    2. Downscale to 8×8
    3. Each pixel brighter than the mean → bit 1
    4. Pack the 64 bits into a 16-hex-character string

Two logos are compared by Hamming distance over the 64 bits:
similarity = 1 − distance / 64. Re-encoded, resized or slightly
recompressed copies of the same logo stay close to 1.0.
"""

from __future__ import annotations

import io
import logging
from typing import Optional, Sequence

import numpy as np
from PIL import Image, UnidentifiedImageError

from campussync.schemas.issuer import TrustedIssuer

logger = logging.getLogger("campussync.match.logo")

HASH_SIZE = 8
HASH_BITS = HASH_SIZE * HASH_SIZE


def perceptual_hash(image_bytes: bytes) -> str:
    """
    Compute the 64-bit average hash of an image.

    Args:
        image_bytes: Encoded image (PNG, JPEG, ...).

    Returns:
        16 lower-case hex characters.

    Raises:
        ValueError: If the bytes cannot be decoded as an image.
    """
    if not image_bytes:
        raise ValueError("Empty image buffer")
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            small = img.convert("L").resize((HASH_SIZE, HASH_SIZE), Image.Resampling.LANCZOS)
            pixels = np.asarray(small, dtype=np.float64)
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Cannot decode logo image: {e}") from e

    bits = (pixels > pixels.mean()).flatten()
    value = 0
    for bit in bits:
        value = (value << 1) | int(bit)
    return f"{value:0{HASH_BITS // 4}x}"


def hamming_distance(hash_a: str, hash_b: str) -> int:
    """Number of differing bits between two 64-bit hex hashes."""
    return bin(int(hash_a, 16) ^ int(hash_b, 16)).count("1")


def hash_similarity(hash_a: str, hash_b: str) -> float:
    """1 − hamming / 64, in [0, 1]."""
    return 1.0 - hamming_distance(hash_a, hash_b) / HASH_BITS


def best_logo_match(
    logo_hash: str, issuers: Sequence[TrustedIssuer]
) -> tuple[Optional[TrustedIssuer], float]:
    """
    Find the issuer whose registered logo hash is closest.

    Returns:
        (issuer, similarity); (None, 0.0) when no issuer has a logo hash.
    """
    best: Optional[TrustedIssuer] = None
    best_score = 0.0
    for issuer in issuers:
        if not issuer.logo_hash:
            continue
        score = hash_similarity(logo_hash, issuer.logo_hash)
        if score > best_score:
            best, best_score = issuer, score
    return best, best_score
