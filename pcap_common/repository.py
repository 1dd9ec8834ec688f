"""
Abstract repository interface for users and API keys.

Job metadata is never stored here; jobs live only in the execution backend.
This contract covers what the server needs to authenticate callers, allowing
easy swapping between SQLite, PostgreSQL, MySQL, etc.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from .models import APIKey, User


class UserRepository(ABC):
    """
    Abstract base class for user and API key storage operations.

    Implementations must provide async-safe access and handle their own
    connection management.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """
        Initialize the database (create tables, etc.).

        Called once at application startup.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close database connections and cleanup resources."""
        pass

    @abstractmethod
    async def create_user(self, user: User) -> None:
        """
        Create a new user.

        Raises:
            Exception: If a user with the same ID or name already exists
        """
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> User | None:
        """Retrieve a user by ID, None if not found."""
        pass

    @abstractmethod
    async def get_user_by_name(self, name: str) -> User | None:
        """Retrieve a user by name, None if not found."""
        pass

    @abstractmethod
    async def list_users(self) -> list[User]:
        """List all users ordered by creation time."""
        pass

    @abstractmethod
    async def update_user_active_status(self, user_id: str, is_active: bool) -> None:
        """
        Activate or deactivate a user.

        Raises:
            Exception: If user not found
        """
        pass

    @abstractmethod
    async def create_api_key(self, api_key: APIKey) -> None:
        """Persist a new (hashed) API key."""
        pass

    @abstractmethod
    async def get_api_key_by_hash(self, key_hash: str) -> APIKey | None:
        """Look up an API key by its SHA-256 hash, None if not found."""
        pass

    @abstractmethod
    async def list_user_api_keys(self, user_id: str) -> list[APIKey]:
        """List all API keys of a user, newest first."""
        pass

    @abstractmethod
    async def revoke_api_key(self, key_id: str) -> None:
        """
        Mark an API key inactive.

        Raises:
            Exception: If API key not found
        """
        pass

    @abstractmethod
    async def update_api_key_last_used(self, key_id: str, timestamp: datetime) -> None:
        """Record the time an API key was last used."""
        pass
