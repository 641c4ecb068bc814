"""
Deterministic digest helpers for recipient identification.

Range matches activity to people by the SHA-1 hex digest of their email
address, so the digest is taken over the exact configured string.
"""

from __future__ import annotations

import hashlib

__all__ = [
    "compute_digest",
    "hash_email",
]


def compute_digest(value: str) -> str:
    """
    Compute the SHA-1 hex digest of a UTF-8 string.

    Args:
        value: Raw string value to hash (not normalized).
    """
    return hashlib.sha1((value or "").encode("utf-8")).hexdigest()


def hash_email(email: str | None) -> str:
    """Deterministically hash a single email address."""
    return compute_digest(email or "")
