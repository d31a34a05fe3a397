# Check the remote collections and their columns
from __future__ import annotations
import asyncio

from pos_core.config import BackendMode, load_config
from pos_core.remote import Query
from pos_core.remote.sample_data import COLLECTIONS


async def check():
    config = load_config()
    if config.backend_mode is not BackendMode.SUPABASE:
        print("Supabase is not configured (running with the mock store)")
        return

    from pos_core.remote.supabase_store import SupabaseDocumentStore
    store = SupabaseDocumentStore.from_settings(config.supabase)

    try:
        for collection in COLLECTIONS:
            print(f"\n{'='*60}")
            print(f"Collection: {collection} (table {store.table_mapping.get(collection, collection)})")
            print(f"{'='*60}")
            try:
                records = await store.query(Query(collection))
            except Exception as e:
                print(f"  Error: {e}")
                continue
            if not records:
                print("  (no data found)")
                continue
            print(f"Rows: {len(records)}")
            print("Columns:")
            for key, value in records[0].items():
                print(f"  - {key}: {type(value).__name__} = {repr(value)[:50]}")
    finally:
        await store.close()


def main():
    asyncio.run(check())


if __name__ == "__main__":
    main()
