"""
Request authentication.

The identity provider sits in front of this service: it authenticates
the end user and forwards the identity in `X-User-Id`. Optionally the
upstream must also present a shared `X-API-Key`. Administrative
operations additionally require an `X-Admin-Key`.
"""

import logging
import os
import secrets
from typing import Optional

from fastapi import Header, HTTPException, Security
from fastapi.security import APIKeyHeader

logger = logging.getLogger(__name__)

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)
ADMIN_KEY_HEADER = APIKeyHeader(name="X-Admin-Key", auto_error=False)


def _keys_from_env(single: str, multiple: str) -> set:
    keys = set()

    single_key = os.environ.get(single)
    if single_key and single_key.strip():
        keys.add(single_key.strip())

    for key in os.environ.get(multiple, "").split(","):
        key = key.strip()
        if key:
            keys.add(key)

    return keys


def get_api_keys() -> set:
    """
    Get valid service API keys from environment.

    API keys can be set via:
    - NEWS_TRACKER_API_KEY: Single API key
    - NEWS_TRACKER_API_KEYS: Comma-separated list of API keys
    """
    return _keys_from_env("NEWS_TRACKER_API_KEY", "NEWS_TRACKER_API_KEYS")


def get_admin_keys() -> set:
    """
    Get valid admin keys from environment.

    Admin keys can be set via:
    - NEWS_TRACKER_ADMIN_KEY: Single admin key
    - NEWS_TRACKER_ADMIN_KEYS: Comma-separated list of admin keys
    """
    return _keys_from_env("NEWS_TRACKER_ADMIN_KEY", "NEWS_TRACKER_ADMIN_KEYS")


def is_auth_enabled() -> bool:
    """Check if service API key authentication is enabled."""
    return bool(get_api_keys())


def _matches(candidate: Optional[str], valid_keys: set) -> bool:
    """Constant-time membership check."""
    if not candidate:
        return False
    return any(secrets.compare_digest(candidate, key) for key in valid_keys)


def verify_api_key(api_key: Optional[str]) -> bool:
    """
    Verify if the provided API key is valid.

    Always valid when no keys are configured.
    """
    valid_keys = get_api_keys()
    if not valid_keys:
        return True
    return _matches(api_key, valid_keys)


async def require_api_key(
    api_key: Optional[str] = Security(API_KEY_HEADER),
) -> Optional[str]:
    """
    FastAPI dependency to require the service API key.

    Raises HTTPException 401 if authentication fails.
    Returns the API key if valid, or None if auth is disabled.
    """
    if not is_auth_enabled():
        return None

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing API key. Provide X-API-Key header.",
        )

    if not verify_api_key(api_key):
        raise HTTPException(status_code=401, detail="Invalid API key.")

    return api_key


async def require_user(
    x_user_id: Optional[str] = Header(default=None),
    api_key: Optional[str] = Security(require_api_key),
) -> str:
    """
    FastAPI dependency returning the authenticated user id.

    Raises HTTPException 401 when no identity was forwarded.
    """
    user = (x_user_id or "").strip()
    if not user:
        raise HTTPException(
            status_code=401,
            detail="You must be signed in to use the news tracker",
        )
    return user


async def require_admin(
    user: str = Security(require_user),
    admin_key: Optional[str] = Security(ADMIN_KEY_HEADER),
) -> str:
    """
    FastAPI dependency for administrator-only operations.

    Raises HTTPException 403 unless a configured admin key is presented.
    """
    if not _matches(admin_key, get_admin_keys()):
        logger.warning(f"Rejected admin operation for user {user}")
        raise HTTPException(
            status_code=403,
            detail="Only administrators can perform this operation",
        )
    return user
