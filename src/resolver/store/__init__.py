"""Processed-id persistence for idempotent reruns.

Usage:
    from resolver.store import DedupStore, JsonFileIdStore

    store = DedupStore(JsonFileIdStore("data/processed_items.json"), max_ids=1000)
    processed = await store.load_processed_ids()
    new_items = store.filter_new(items, processed)
"""

from resolver.store.processed import (
    DedupStore,
    JsonFileIdStore,
    ProcessedIdSet,
    SqliteIdStore,
    create_backend,
)

__all__ = ["DedupStore", "JsonFileIdStore", "ProcessedIdSet", "SqliteIdStore", "create_backend"]
