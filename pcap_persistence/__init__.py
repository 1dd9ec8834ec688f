"""
Pcap Persistence module.

This module contains the database implementation for users and API keys.
Currently supports SQLite, but can be extended to PostgreSQL, MySQL, etc.

The persistence layer depends on pcap_common for domain models and
interfaces. It never stores job metadata.
"""

from .sqlite_repository import SQLiteUserRepository

__all__ = ["SQLiteUserRepository"]
