"""Bearer token helpers."""

from __future__ import annotations

import hashlib
import secrets


def generate_access_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    # Only the digest is stored; the raw token is shown once at issue time.
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
