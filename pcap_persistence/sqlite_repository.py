"""
SQLite implementation of the user repository.

Uses aiosqlite for async operations. Only users and API keys are stored;
job state stays with the execution backend.
"""

from datetime import datetime

import aiosqlite

from pcap_common.models import APIKey, User
from pcap_common.repository import UserRepository

_USER_COLUMNS = "id, name, created_at, is_active"
_API_KEY_COLUMNS = "id, user_id, key_hash, name, created_at, last_used_at, is_active"


def _row_to_user(row: tuple) -> User:
    user_id, name, created_at_str, is_active = row
    return User(
        id=user_id,
        name=name,
        created_at=datetime.fromisoformat(created_at_str),
        is_active=bool(is_active),
    )


def _row_to_api_key(row: tuple) -> APIKey:
    key_id, user_id, key_hash, name, created_at_str, last_used_at_str, is_active = row
    return APIKey(
        id=key_id,
        user_id=user_id,
        key_hash=key_hash,
        name=name,
        created_at=datetime.fromisoformat(created_at_str),
        last_used_at=datetime.fromisoformat(last_used_at_str)
        if last_used_at_str
        else None,
        is_active=bool(is_active),
    )


class SQLiteUserRepository(UserRepository):
    """
    SQLite-based user storage implementation.

    Uses a single database file with two tables:
    - users: Stores user accounts, the name is the job owner key
    - api_keys: Stores API keys (hashed) with foreign key to users
    """

    def __init__(self, db_path: str = "pcap_users.db"):
        """
        Initialize the SQLite repository.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get or create database connection."""
        if self._connection is None:
            self._connection = await aiosqlite.connect(self.db_path)
            await self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    async def initialize(self) -> None:
        """Create database tables if they don't exist."""
        conn = await self._get_connection()

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                name TEXT UNIQUE NOT NULL,
                created_at TEXT NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1
            )
        """)

        await conn.execute("""
            CREATE TABLE IF NOT EXISTS api_keys (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                key_hash TEXT UNIQUE NOT NULL,
                name TEXT,
                created_at TEXT NOT NULL,
                last_used_at TEXT,
                is_active INTEGER NOT NULL DEFAULT 1,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_api_keys_key_hash
            ON api_keys(key_hash)
        """)

        await conn.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def _fetch_one(self, query: str, params: tuple) -> tuple | None:
        conn = await self._get_connection()
        cursor = await conn.execute(query, params)
        return await cursor.fetchone()

    async def _update(self, query: str, params: tuple, missing: str) -> None:
        conn = await self._get_connection()
        cursor = await conn.execute(query, params)
        await conn.commit()
        if cursor.rowcount == 0:
            raise ValueError(missing)

    # User management methods

    async def create_user(self, user: User) -> None:
        """
        Create a new user in the database.

        Raises:
            aiosqlite.IntegrityError: If a user with the same name already exists
        """
        conn = await self._get_connection()

        await conn.execute(
            f"INSERT INTO users ({_USER_COLUMNS}) VALUES (?, ?, ?, ?)",
            (
                user.id,
                user.name,
                user.created_at.isoformat(),
                1 if user.is_active else 0,
            ),
        )
        await conn.commit()

    async def get_user(self, user_id: str) -> User | None:
        row = await self._fetch_one(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (user_id,)
        )
        return _row_to_user(row) if row else None

    async def get_user_by_name(self, name: str) -> User | None:
        row = await self._fetch_one(
            f"SELECT {_USER_COLUMNS} FROM users WHERE name = ?", (name,)
        )
        return _row_to_user(row) if row else None

    async def list_users(self) -> list[User]:
        conn = await self._get_connection()
        cursor = await conn.execute(
            f"SELECT {_USER_COLUMNS} FROM users ORDER BY created_at"
        )
        return [_row_to_user(row) for row in await cursor.fetchall()]

    async def update_user_active_status(self, user_id: str, is_active: bool) -> None:
        await self._update(
            "UPDATE users SET is_active = ? WHERE id = ?",
            (1 if is_active else 0, user_id),
            f"User not found: {user_id}",
        )

    # API Key management methods

    async def create_api_key(self, api_key: APIKey) -> None:
        """
        Create a new API key in the database.

        Raises:
            aiosqlite.IntegrityError: If the hash already exists or the user is unknown
        """
        conn = await self._get_connection()

        await conn.execute(
            f"INSERT INTO api_keys ({_API_KEY_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                api_key.id,
                api_key.user_id,
                api_key.key_hash,
                api_key.name,
                api_key.created_at.isoformat(),
                api_key.last_used_at.isoformat() if api_key.last_used_at else None,
                1 if api_key.is_active else 0,
            ),
        )
        await conn.commit()

    async def get_api_key_by_hash(self, key_hash: str) -> APIKey | None:
        row = await self._fetch_one(
            f"SELECT {_API_KEY_COLUMNS} FROM api_keys WHERE key_hash = ?", (key_hash,)
        )
        return _row_to_api_key(row) if row else None

    async def list_user_api_keys(self, user_id: str) -> list[APIKey]:
        conn = await self._get_connection()
        cursor = await conn.execute(
            f"""
            SELECT {_API_KEY_COLUMNS}
            FROM api_keys
            WHERE user_id = ?
            ORDER BY created_at DESC
            """,
            (user_id,),
        )
        return [_row_to_api_key(row) for row in await cursor.fetchall()]

    async def revoke_api_key(self, key_id: str) -> None:
        await self._update(
            "UPDATE api_keys SET is_active = 0 WHERE id = ?",
            (key_id,),
            f"API key not found: {key_id}",
        )

    async def update_api_key_last_used(self, key_id: str, timestamp: datetime) -> None:
        await self._update(
            "UPDATE api_keys SET last_used_at = ? WHERE id = ?",
            (timestamp.isoformat(), key_id),
            f"API key not found: {key_id}",
        )
