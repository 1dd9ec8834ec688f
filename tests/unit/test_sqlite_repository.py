"""
Unit tests for the SQLite user and API key repository.
"""

from datetime import UTC, datetime, timedelta

import aiosqlite
import pytest
import pytest_asyncio

from pcap_common.models import APIKey, User
from pcap_persistence.sqlite_repository import SQLiteUserRepository


@pytest_asyncio.fixture
async def repo(tmp_path):
    """Initialized repository on a temporary database file."""
    repository = SQLiteUserRepository(str(tmp_path / "users.db"))
    await repository.initialize()
    yield repository
    await repository.close()


def make_user(user_id: str, name: str, offset: int = 0) -> User:
    return User(
        id=user_id,
        name=name,
        created_at=datetime(2024, 1, 1, tzinfo=UTC) + timedelta(minutes=offset),
    )


class TestUsers:
    """Test suite for user storage."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, repo):
        user = make_user("user-1", "alice")
        await repo.create_user(user)

        by_id = await repo.get_user("user-1")
        by_name = await repo.get_user_by_name("alice")

        assert by_id == user
        assert by_name == user

    @pytest.mark.asyncio
    async def test_get_missing(self, repo):
        assert await repo.get_user("missing") is None
        assert await repo.get_user_by_name("missing") is None

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, repo):
        await repo.create_user(make_user("user-1", "alice"))

        with pytest.raises(aiosqlite.IntegrityError):
            await repo.create_user(make_user("user-2", "alice"))

    @pytest.mark.asyncio
    async def test_list_in_creation_order(self, repo):
        await repo.create_user(make_user("user-2", "bob", offset=5))
        await repo.create_user(make_user("user-1", "alice", offset=0))

        users = await repo.list_users()

        assert [u.name for u in users] == ["alice", "bob"]

    @pytest.mark.asyncio
    async def test_update_active_status(self, repo):
        await repo.create_user(make_user("user-1", "alice"))

        await repo.update_user_active_status("user-1", False)

        assert (await repo.get_user("user-1")).is_active is False

    @pytest.mark.asyncio
    async def test_update_missing_user(self, repo):
        with pytest.raises(ValueError, match="User not found"):
            await repo.update_user_active_status("missing", False)


class TestAPIKeys:
    """Test suite for API key storage."""

    @pytest_asyncio.fixture
    async def user(self, repo):
        user = make_user("user-1", "alice")
        await repo.create_user(user)
        return user

    def make_key(self, key_id: str, key_hash: str, offset: int = 0) -> APIKey:
        return APIKey(
            id=key_id,
            user_id="user-1",
            key_hash=key_hash,
            name=f"{key_id} name",
            created_at=datetime(2024, 1, 1, tzinfo=UTC) + timedelta(minutes=offset),
        )

    @pytest.mark.asyncio
    async def test_create_and_get_by_hash(self, repo, user):
        key = self.make_key("key-1", "hash-1")
        await repo.create_api_key(key)

        stored = await repo.get_api_key_by_hash("hash-1")

        assert stored == key
        assert await repo.get_api_key_by_hash("other") is None

    @pytest.mark.asyncio
    async def test_list_newest_first(self, repo, user):
        await repo.create_api_key(self.make_key("key-1", "hash-1", offset=0))
        await repo.create_api_key(self.make_key("key-2", "hash-2", offset=1))

        keys = await repo.list_user_api_keys("user-1")

        assert [k.id for k in keys] == ["key-2", "key-1"]

    @pytest.mark.asyncio
    async def test_revoke(self, repo, user):
        await repo.create_api_key(self.make_key("key-1", "hash-1"))

        await repo.revoke_api_key("key-1")

        assert (await repo.get_api_key_by_hash("hash-1")).is_active is False

    @pytest.mark.asyncio
    async def test_revoke_missing(self, repo):
        with pytest.raises(ValueError, match="API key not found"):
            await repo.revoke_api_key("missing")

    @pytest.mark.asyncio
    async def test_update_last_used(self, repo, user):
        await repo.create_api_key(self.make_key("key-1", "hash-1"))
        used_at = datetime(2024, 2, 1, 12, 0, tzinfo=UTC)

        await repo.update_api_key_last_used("key-1", used_at)

        assert (await repo.get_api_key_by_hash("hash-1")).last_used_at == used_at

    @pytest.mark.asyncio
    async def test_duplicate_hash_rejected(self, repo, user):
        await repo.create_api_key(self.make_key("key-1", "hash-1"))

        with pytest.raises(aiosqlite.IntegrityError):
            await repo.create_api_key(self.make_key("key-2", "hash-1"))
