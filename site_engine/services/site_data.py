"""
Process-wide synced collections shared by the HTTP handlers.
"""
from config import settings
from logging_config import logger
from sync.collection import SyncedCollection
from sync.errors import LoadError
from sync.records import Tool, ToolRequest, WaitlistEntry, default_tools
from sync.store import MemoryTableStore, TableStore


def build_store() -> TableStore:
    """Supabase when configured, otherwise an in-process store for local development"""
    if settings.SUPABASE_URL and settings.SUPABASE_ANON_KEY:
        from sync.supabase import SupabaseTableStore
        return SupabaseTableStore.from_settings()

    if settings.ENVIRONMENT == "production":
        raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY are required in production")
    logger.warning("Supabase not configured, using in-memory store (data is not persisted)")
    return MemoryTableStore()


class SiteData:
    """One SyncedCollection per table, kept fresh by the change feed"""

    def __init__(self, store: TableStore, seed_tools: bool = True):
        self.store = store
        self.tools: SyncedCollection[Tool] = SyncedCollection(
            store, Tool, seed=default_tools() if seed_tools else None
        )
        self.requests: SyncedCollection[ToolRequest] = SyncedCollection(store, ToolRequest)
        self.waitlist: SyncedCollection[WaitlistEntry] = SyncedCollection(store, WaitlistEntry)

    @property
    def collections(self):
        return (self.tools, self.requests, self.waitlist)

    async def start(self) -> None:
        for collection in self.collections:
            try:
                await collection.initialize()
            except LoadError as e:
                # Handlers retry through ensure_loaded() and answer 503 meanwhile
                logger.error("Initial load failed", table=collection.table, error=e.detail)
            await collection.subscribe()

    async def close(self) -> None:
        for collection in self.collections:
            await collection.teardown()
        await self.store.aclose()

    def status(self) -> dict:
        return {
            collection.table: {
                "loaded": collection.loaded,
                "subscribed": collection.subscribed,
                "count": len(collection),
            }
            for collection in self.collections
        }


def stream_collection(store: TableStore, kind) -> SyncedCollection:
    """Per-connection mirror for live views; never seeds"""
    return SyncedCollection(store, kind)
