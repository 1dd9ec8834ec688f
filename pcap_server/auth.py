"""
Authentication utilities for the pcap server.

This module provides API key generation, hashing, and validation, as well
as the FastAPI dependency that resolves the calling user. The user's name
is the owner key of the jobs it submits.
"""

import hashlib
import secrets
from collections.abc import Callable
from datetime import UTC, datetime

from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from pcap_common.models import User
from pcap_common.repository import UserRepository

API_KEY_PREFIX = "pcap_"

# HTTP Bearer token authentication scheme
security = HTTPBearer()


def generate_api_key() -> str:
    """
    Generate a new API key with format: pcap_<40 random chars>.

    The key uses URL-safe base64 encoding with 240 bits of entropy.

    Example:
        >>> key = generate_api_key()
        >>> key.startswith("pcap_")
        True
        >>> len(key)
        45
    """
    random_part = secrets.token_urlsafe(30)[:40]
    return f"{API_KEY_PREFIX}{random_part}"


def hash_api_key(api_key: str) -> str:
    """
    Hash an API key using SHA-256 for storage.

    Only hashed keys are stored in the database.
    """
    return hashlib.sha256(api_key.encode()).hexdigest()


def create_get_current_user_dependency(
    get_repository_func: Callable[[], UserRepository],
):
    """
    Create the get_current_user dependency with repository injection.

    The repository getter lives in app.py; taking it as an argument avoids a
    circular import.

    Example:
        get_current_user = create_get_current_user_dependency(get_repository)

        @app.get("/api/v1/pcap")
        async def list_jobs(user: User = Depends(get_current_user)):
            ...
    """

    async def get_current_user_with_repo(
        credentials: HTTPAuthorizationCredentials = Security(security),
        repository: UserRepository = Depends(get_repository_func),
    ) -> User:
        """
        Validate the bearer API key and return its user.

        Raises:
            HTTPException: 401 if the key is unknown or revoked, or the user
                           is missing or inactive
        """
        key_hash = hash_api_key(credentials.credentials)
        api_key_obj = await repository.get_api_key_by_hash(key_hash)

        if not api_key_obj or not api_key_obj.is_active:
            raise HTTPException(
                status_code=401,
                detail="Invalid or revoked API key",
                headers={"WWW-Authenticate": "Bearer"},
            )

        user = await repository.get_user(api_key_obj.user_id)
        if not user or not user.is_active:
            raise HTTPException(
                status_code=401,
                detail="User not found or inactive",
                headers={"WWW-Authenticate": "Bearer"},
            )

        await repository.update_api_key_last_used(api_key_obj.id, datetime.now(UTC))

        return user

    return get_current_user_with_repo
