"""
Auth — API Key Validation

API keys come from SPAMSHIELD_API_KEYS (comma-separated) and are kept
only as SHA-256 hashes. With no keys configured, auth is disabled and
every caller is treated as a trusted local moderator (dev mode).

A caller that passed authentication may enact automatic moderation
actions; see is_authorized_moderator().
"""

from __future__ import annotations

import os
import hashlib
import secrets
from typing import Optional

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)

_RAW_KEYS = os.getenv("SPAMSHIELD_API_KEYS", "")
_VALID_KEY_HASHES: set[str] = set()

for key in _RAW_KEYS.split(","):
    key = key.strip()
    if key:
        _VALID_KEY_HASHES.add(hashlib.sha256(key.encode()).hexdigest())

AUTH_ENABLED = len(_VALID_KEY_HASHES) > 0

DEV_MODERATOR = "local-moderator"


def _verify_key(api_key: str) -> bool:
    """Verify an API key against stored hashes."""
    if not api_key:
        return False
    key_hash = hashlib.sha256(api_key.encode()).hexdigest()
    return key_hash in _VALID_KEY_HASHES


async def require_api_key(
    api_key: Optional[str] = Security(API_KEY_HEADER),
) -> Optional[str]:
    """
    FastAPI dependency — validates the API key.

    Returns a short key id (hash prefix) for audit logging, or None in
    dev mode.
    """
    if not AUTH_ENABLED:
        return None

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing API key. Include X-API-Key header.",
        )

    if not _verify_key(api_key):
        raise HTTPException(
            status_code=403,
            detail="Invalid API key.",
        )

    return hashlib.sha256(api_key.encode()).hexdigest()[:12]


def is_authorized_moderator(key_id: Optional[str]) -> bool:
    """May this caller enact automatic moderation actions?"""
    return not AUTH_ENABLED or key_id is not None


def moderator_id(key_id: Optional[str]) -> str:
    """Identity recorded as reviewer when the request names none."""
    return f"key:{key_id}" if key_id else DEV_MODERATOR


def generate_api_key() -> str:
    """Generate a new API key. Utility for key provisioning."""
    return f"ss_{secrets.token_urlsafe(32)}"
