"""
Unit tests for pcap_server.auth.

Tests API key generation, hashing, and the current-user dependency.
"""

import hashlib
import re
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from pcap_common.models import APIKey, User
from pcap_server.auth import (
    create_get_current_user_dependency,
    generate_api_key,
    hash_api_key,
)


class TestAPIKeyGeneration:
    """Test suite for API key generation."""

    def test_generate_api_key_format(self):
        """Generated keys are pcap_ followed by 40 URL-safe characters."""
        api_key = generate_api_key()

        assert api_key.startswith("pcap_")
        assert len(api_key) == 45
        assert re.match(r"^pcap_[A-Za-z0-9_-]{40}$", api_key)

    def test_generate_api_key_uniqueness(self):
        keys = [generate_api_key() for _ in range(100)]

        assert len(keys) == len(set(keys))


class TestAPIKeyHashing:
    """Test suite for API key hashing."""

    def test_hash_api_key_matches_sha256(self):
        api_key = "pcap_testkey1234567890123456789012345678"

        assert hash_api_key(api_key) == hashlib.sha256(api_key.encode()).hexdigest()

    def test_hash_api_key_format(self):
        key_hash = hash_api_key(generate_api_key())

        assert re.match(r"^[0-9a-f]{64}$", key_hash)


class TestGetCurrentUser:
    """Test suite for the get_current_user dependency."""

    @pytest.fixture
    def user(self):
        return User(id="user-1", name="alice", created_at=datetime.now(UTC))

    @pytest.fixture
    def repository(self, user):
        repo = AsyncMock()
        repo.get_api_key_by_hash.return_value = APIKey(
            id="key-1", user_id="user-1", key_hash=hash_api_key("pcap_valid")
        )
        repo.get_user.return_value = user
        return repo

    @staticmethod
    def credentials(key: str) -> HTTPAuthorizationCredentials:
        return HTTPAuthorizationCredentials(scheme="Bearer", credentials=key)

    @pytest.mark.asyncio
    async def test_valid_key(self, repository, user):
        get_current_user = create_get_current_user_dependency(lambda: repository)

        result = await get_current_user(self.credentials("pcap_valid"), repository)

        assert result == user
        repository.get_api_key_by_hash.assert_awaited_once_with(
            hash_api_key("pcap_valid")
        )
        repository.update_api_key_last_used.assert_awaited_once()
        assert repository.update_api_key_last_used.await_args.args[0] == "key-1"

    @pytest.mark.asyncio
    async def test_unknown_key(self, repository):
        repository.get_api_key_by_hash.return_value = None
        get_current_user = create_get_current_user_dependency(lambda: repository)

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(self.credentials("pcap_unknown"), repository)

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Invalid or revoked API key"

    @pytest.mark.asyncio
    async def test_revoked_key(self, repository):
        repository.get_api_key_by_hash.return_value.is_active = False
        get_current_user = create_get_current_user_dependency(lambda: repository)

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(self.credentials("pcap_valid"), repository)

        assert exc_info.value.status_code == 401
        repository.update_api_key_last_used.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_inactive_user(self, repository, user):
        user.is_active = False
        get_current_user = create_get_current_user_dependency(lambda: repository)

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(self.credentials("pcap_valid"), repository)

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "User not found or inactive"
