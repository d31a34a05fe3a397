# Hash plaintext passwords left in the users collection
from __future__ import annotations
import argparse
import asyncio
import sys

from pos_core.auth import migrate_plaintext_passwords
from pos_core.config import BackendMode, load_config
from pos_core.errors import ConfigurationError
from pos_core.logging import setup_logging


async def run(dry_run: bool) -> int:
    config = load_config()
    if config.backend_mode is not BackendMode.SUPABASE:
        raise ConfigurationError("Set SUPABASE_URL and SUPABASE_KEY to migrate the remote users")

    from pos_core.remote.supabase_store import SupabaseDocumentStore
    store = SupabaseDocumentStore.from_settings(config.supabase)
    try:
        migrated = await migrate_plaintext_passwords(store, config.pin_lock.hash_scheme, dry_run=dry_run)
    finally:
        await store.close()

    verb = "Would migrate" if dry_run else "Migrated"
    print(f"{verb} {len(migrated)} user(s)")
    for user_id in migrated:
        print(f"  - {user_id}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Hash plaintext user passwords")
    parser.add_argument("--dry-run", action="store_true", help="Only list the users that would change")
    args = parser.parse_args()

    setup_logging("INFO")
    try:
        sys.exit(asyncio.run(run(args.dry_run)))
    except ConfigurationError as e:
        print(f"Error: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
