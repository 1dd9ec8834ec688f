"""
Admin CLI for managing pcap service users and API keys.

A user's name is the owner of every job submitted with one of its keys.
"""

import asyncio
import json
import sys
import uuid
from datetime import UTC, datetime

import click

from pcap_common.config import get_env_str
from pcap_common.models import APIKey, User
from pcap_common.repository import UserRepository
from pcap_persistence.sqlite_repository import SQLiteUserRepository
from pcap_server.auth import generate_api_key, hash_api_key


def get_db_path() -> str:
    """Get the database path from environment variable or default."""
    return get_env_str("PCAP_DB_PATH", "pcap_users.db")


def get_repository() -> SQLiteUserRepository:
    """Get the repository instance."""
    return SQLiteUserRepository(get_db_path())


def run_async(coro):
    """Helper to run async functions in CLI commands."""
    return asyncio.run(coro)


async def resolve_user(
    repo: UserRepository, user_id: str | None, user_name: str | None
) -> User:
    """Look a user up by ID or name, exiting with an error if not found."""
    if user_name:
        user_obj = await repo.get_user_by_name(user_name)
    else:
        assert user_id is not None
        user_obj = await repo.get_user(user_id)

    if not user_obj:
        click.echo(f"Error: User not found: {user_name or user_id}", err=True)
        sys.exit(1)
    return user_obj


def require_one(user_id: str | None, user_name: str | None) -> None:
    if not user_id and not user_name:
        click.echo("Error: Must provide either USER_ID or --name", err=True)
        sys.exit(1)
    if user_id and user_name:
        click.echo("Error: Provide either USER_ID or --name, not both", err=True)
        sys.exit(1)


@click.group()
def cli():
    """Pcap Admin - Manage users and API keys for the pcap query service."""
    pass


@cli.group()
def user():
    """Manage users."""
    pass


@cli.group()
def key():
    """Manage API keys."""
    pass


# ============================================================================
# User Commands
# ============================================================================


@user.command("create")
@click.option("--name", required=True, help="Unique user name (owns the user's jobs)")
def user_create(name: str):
    """Create a new user."""

    async def create():
        repo = get_repository()
        await repo.initialize()

        try:
            if await repo.get_user_by_name(name):
                click.echo(f"Error: User {name} already exists", err=True)
                sys.exit(1)

            user_obj = User(
                id=str(uuid.uuid4()),
                name=name,
                created_at=datetime.now(UTC),
                is_active=True,
            )
            await repo.create_user(user_obj)

            click.echo("✓ User created successfully")
            click.echo(f"  ID:   {user_obj.id}")
            click.echo(f"  Name: {user_obj.name}")

        finally:
            await repo.close()

    run_async(create())


@user.command("list")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def user_list(json_output: bool):
    """List all users."""

    async def list_users():
        repo = get_repository()
        await repo.initialize()

        try:
            users = await repo.list_users()

            if json_output:
                click.echo(json.dumps([u.to_dict() for u in users], indent=2))
                return

            if not users:
                click.echo("No users found.")
                return

            click.echo(f"\n{'ID':<38} {'Name':<30} {'Status':<10}")
            click.echo("-" * 80)
            for u in users:
                status = "Active" if u.is_active else "Inactive"
                click.echo(f"{u.id:<38} {u.name:<30} {status:<10}")
            click.echo()

        finally:
            await repo.close()

    run_async(list_users())


@user.command("get")
@click.argument("user_id", required=False)
@click.option("--name", "user_name", help="Get user by name instead of ID")
def user_get(user_id: str | None, user_name: str | None):
    """Get user details by ID or name."""
    require_one(user_id, user_name)

    async def get_user():
        repo = get_repository()
        await repo.initialize()

        try:
            user_obj = await resolve_user(repo, user_id, user_name)
            click.echo("\nUser Details:")
            click.echo(f"  ID:      {user_obj.id}")
            click.echo(f"  Name:    {user_obj.name}")
            click.echo(f"  Created: {user_obj.created_at.isoformat()}")
            click.echo(f"  Status:  {'Active' if user_obj.is_active else 'Inactive'}")
            click.echo()

        finally:
            await repo.close()

    run_async(get_user())


def _set_user_active(user_id: str, is_active: bool) -> None:
    async def update():
        repo = get_repository()
        await repo.initialize()

        try:
            user_obj = await resolve_user(repo, user_id, None)
            await repo.update_user_active_status(user_obj.id, is_active)
            action = "activated" if is_active else "deactivated"
            click.echo(f"✓ User {action}: {user_obj.name}")

        finally:
            await repo.close()

    run_async(update())


@user.command("deactivate")
@click.argument("user_id")
def user_deactivate(user_id: str):
    """Deactivate a user. Its API keys stop authenticating."""
    _set_user_active(user_id, False)


@user.command("activate")
@click.argument("user_id")
def user_activate(user_id: str):
    """Activate a user."""
    _set_user_active(user_id, True)


# ============================================================================
# API Key Commands
# ============================================================================


@key.command("create")
@click.option("--user-id", help="User ID (UUID)")
@click.option("--user-name", help="User name (alternative to --user-id)")
@click.option("--name", required=True, help="Descriptive name for this API key")
def key_create(user_id: str | None, user_name: str | None, name: str):
    """Create a new API key for a user."""
    if not user_id and not user_name:
        click.echo("Error: Must provide either --user-id or --user-name", err=True)
        sys.exit(1)
    if user_id and user_name:
        click.echo(
            "Error: Provide either --user-id or --user-name, not both", err=True
        )
        sys.exit(1)

    async def create():
        repo = get_repository()
        await repo.initialize()

        try:
            user_obj = await resolve_user(repo, user_id, user_name)

            api_key_plaintext = generate_api_key()
            api_key_obj = APIKey(
                id=str(uuid.uuid4()),
                user_id=user_obj.id,
                key_hash=hash_api_key(api_key_plaintext),
                name=name,
                created_at=datetime.now(UTC),
                is_active=True,
            )
            await repo.create_api_key(api_key_obj)

            click.echo("\n✓ API key created successfully")
            click.echo(f"\n  API Key: {api_key_plaintext}")
            click.echo(f"  Name:    {name}")
            click.echo(f"  User:    {user_obj.name}")
            click.echo("\n  ⚠️  IMPORTANT: This is the only time you'll see this key!")
            click.echo("     Save it securely now.\n")

        finally:
            await repo.close()

    run_async(create())


@key.command("list")
@click.option("--user-id", help="Filter by user ID")
@click.option("--user-name", help="Filter by user name")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def key_list(user_id: str | None, user_name: str | None, json_output: bool):
    """List API keys (optionally filtered by user)."""

    async def list_keys():
        repo = get_repository()
        await repo.initialize()

        try:
            if user_id or user_name:
                users = [await resolve_user(repo, user_id, user_name)]
            else:
                users = await repo.list_users()

            user_names = {u.id: u.name for u in users}
            keys = []
            for u in users:
                keys.extend(await repo.list_user_api_keys(u.id))

            if json_output:
                click.echo(json.dumps([k.to_dict() for k in keys], indent=2))
                return

            if not keys:
                click.echo("No API keys found.")
                return

            click.echo(f"\n{'ID':<38} {'Name':<25} {'User':<25} {'Status':<10}")
            click.echo("-" * 100)
            for k in keys:
                status = "Active" if k.is_active else "Revoked"
                key_name = k.name or "(unnamed)"
                click.echo(
                    f"{k.id:<38} {key_name:<25} {user_names[k.user_id]:<25} {status:<10}"
                )
            click.echo()

        finally:
            await repo.close()

    run_async(list_keys())


@key.command("revoke")
@click.argument("key_id")
def key_revoke(key_id: str):
    """Revoke an API key."""

    async def revoke():
        repo = get_repository()
        await repo.initialize()

        try:
            try:
                await repo.revoke_api_key(key_id)
            except ValueError as e:
                click.echo(f"Error: {e}", err=True)
                sys.exit(1)
            click.echo(f"✓ API key revoked: {key_id}")

        finally:
            await repo.close()

    run_async(revoke())


if __name__ == "__main__":
    cli()
