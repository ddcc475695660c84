"""Dedup store: remembers which items were already processed.

The id set is read once at the start of a run and written once at the end.
Reads degrade to an empty set when the store is missing or corrupt, and
write failures are logged rather than raised: the worst case is that some
items are analyzed again on the next run. Two runs against the same store at
the same time are unsupported (the last writer wins).

Two backends are provided: a JSON file (default) and a SQLite table.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite

from resolver.core.errors import StoreError
from resolver.core.fileio import atomic_write_text
from resolver.core.logging import get_logger

if TYPE_CHECKING:
    from resolver.config_schema import DedupConfig
    from resolver.interfaces import IdStoreBackend
    from resolver.models import NormalizedItem

logger = get_logger(__name__)

DEFAULT_MAX_IDS = 1000


class ProcessedIdSet:
    """Ordered set of processed ids, oldest first.

    Membership checks are O(1); order is kept so trimming drops the oldest ids.
    """

    def __init__(self, ids: Iterable[str] = ()) -> None:
        self._ids: dict[str, None] = dict.fromkeys(ids)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self):
        return iter(self._ids)

    def __repr__(self) -> str:
        return f"ProcessedIdSet({len(self._ids)} ids)"

    def add_all(self, ids: Iterable[str]) -> int:
        """Append ids not yet present. Returns how many were new."""
        added = 0
        for item_id in ids:
            if item_id not in self._ids:
                self._ids[item_id] = None
                added += 1
        return added

    def trim(self, max_ids: int) -> int:
        """Keep only the most recent max_ids ids. Returns how many were dropped."""
        excess = len(self._ids) - max_ids
        if excess <= 0:
            return 0
        self._ids = dict.fromkeys(list(self._ids)[excess:])
        return excess

    def to_list(self) -> list[str]:
        return list(self._ids)


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class JsonFileIdStore:
    """Stores ids as a JSON array in a single file, written atomically."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def load(self) -> list[str]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StoreError(f"Cannot read processed ids from {self.path}: {e}") from e
        if not isinstance(data, list):
            raise StoreError(
                f"Processed id file {self.path} must hold a JSON array, got {type(data).__name__}"
            )
        return [str(item_id) for item_id in data]

    async def save(self, ids: list[str]) -> None:
        try:
            atomic_write_text(self.path, json.dumps(ids, indent=2))
        except OSError as e:
            raise StoreError(f"Cannot write processed ids to {self.path}: {e}") from e

    async def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot remove {self.path}: {e}") from e


class SqliteIdStore:
    """Stores ids in a SQLite table, ordered by insertion position."""

    SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS processed_items (
        id TEXT PRIMARY KEY,
        position INTEGER NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_processed_items_position ON processed_items(position);
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)

    @asynccontextmanager
    async def _db(self) -> AsyncIterator[aiosqlite.Connection]:
        """Get a connection with the schema in place."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot create the directory for {self.db_path}: {e}") from e
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA busy_timeout = 10000")
            await db.executescript(self.SCHEMA_SQL)
            yield db

    async def load(self) -> list[str]:
        if not self.db_path.exists():
            return []
        try:
            async with self._db() as db:
                async with db.execute(
                    "SELECT id FROM processed_items ORDER BY position"
                ) as cursor:
                    rows = await cursor.fetchall()
        except (aiosqlite.Error, OSError) as e:
            raise StoreError(f"Cannot read processed ids from {self.db_path}: {e}") from e
        return [row[0] for row in rows]

    async def save(self, ids: list[str]) -> None:
        try:
            async with self._db() as db:
                await db.execute("DELETE FROM processed_items")
                await db.executemany(
                    "INSERT INTO processed_items (id, position) VALUES (?, ?)",
                    [(item_id, position) for position, item_id in enumerate(ids)],
                )
                await db.commit()
        except (aiosqlite.Error, OSError) as e:
            raise StoreError(f"Cannot write processed ids to {self.db_path}: {e}") from e

    async def clear(self) -> None:
        await self.save([])


def create_backend(config: DedupConfig) -> JsonFileIdStore | SqliteIdStore:
    """Build the backend named in the dedup config."""
    if config.backend == "sqlite":
        return SqliteIdStore(config.path)
    return JsonFileIdStore(config.path)


# ---------------------------------------------------------------------------
# Dedup store
# ---------------------------------------------------------------------------


class DedupStore:
    """Loads, filters against, and records processed item ids.

    Attributes:
        backend: Persistence backend
        max_ids: Most recent ids kept when saving
    """

    def __init__(self, backend: IdStoreBackend, max_ids: int = DEFAULT_MAX_IDS) -> None:
        self.backend = backend
        self.max_ids = max_ids

    async def load_processed_ids(self) -> ProcessedIdSet:
        """Load the id set; an unreadable store counts as empty."""
        try:
            ids = await self.backend.load()
        except StoreError as e:
            logger.warning("processed_ids_unreadable", error=str(e))
            return ProcessedIdSet()
        logger.debug("processed_ids_loaded", count=len(ids))
        return ProcessedIdSet(ids)

    def filter_new(
        self,
        items: list[NormalizedItem],
        processed: ProcessedIdSet,
    ) -> list[NormalizedItem]:
        """Items whose id is not in processed, order preserved."""
        new_items = [item for item in items if item.id not in processed]
        skipped = len(items) - len(new_items)
        if skipped:
            logger.info("already_processed_items_skipped", skipped=skipped, remaining=len(new_items))
        return new_items

    async def record_processed(
        self,
        ids: Iterable[str],
        processed: ProcessedIdSet,
    ) -> ProcessedIdSet:
        """Add ids, trim to max_ids, and persist.

        A save failure is logged and the updated in-memory set is still returned.
        """
        added = processed.add_all(ids)
        dropped = processed.trim(self.max_ids)
        try:
            await self.backend.save(processed.to_list())
        except StoreError as e:
            logger.error("processed_ids_save_failed", error=str(e), added=added)
            return processed
        logger.info("processed_ids_recorded", added=added, trimmed=dropped, total=len(processed))
        return processed
