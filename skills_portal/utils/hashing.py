"""
Hashing and token utilities for evidence keys and verification links.
"""

from __future__ import annotations

import hashlib
import secrets

TOKEN_BYTES = 32


def sha256_hash(content: str | bytes) -> str:
    """Return the SHA-256 hex digest of the given content."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def stable_key(*parts: str) -> str:
    """Digest of the given parts, stable across processes."""
    return sha256_hash("\x1f".join(parts))[:32]


def generate_token() -> str:
    """Return a URL-safe random token (43 chars for 32 bytes)."""
    return secrets.token_urlsafe(TOKEN_BYTES)
