"""
SyncedCollection - client-side mirror of one remote table.

Load, seed-if-empty, subscribe, and treat every change notification as an
invalidation: the whole ordered table is re-fetched and replaces the
snapshot, so the snapshot is never partially patched.

Mutations are two-phase: the remote write must succeed before the snapshot
changes. A failed write leaves the snapshot exactly as it was.
"""
import asyncio
import inspect
import time
from typing import Any, Awaitable, Callable, Generic, List, Mapping, Optional, Sequence, Set, Type, TypeVar, Union

from sync.errors import LoadError, NotFoundError, StoreError, SyncError, ValidationError, WriteError
from sync.records import utc_now_iso
from sync.store import ALL_EVENTS, ChangeEvent, Subscription, TableStore
from logging_config import logger

RecordT = TypeVar("RecordT")
OnChange = Callable[[List[RecordT]], Union[None, Awaitable[None]]]


class SyncedCollection(Generic[RecordT]):
    """Ordered in-memory snapshot of a remote table"""

    def __init__(
        self,
        store: TableStore,
        kind: Type[RecordT],
        seed: Optional[Sequence[RecordT]] = None,
        clock: Callable[[], str] = utc_now_iso,
    ):
        self.store = store
        self.kind = kind
        self.seed = list(seed or [])
        self.clock = clock
        self._records: List[RecordT] = []
        self._loaded = False
        self._subscription: Optional[Subscription] = None
        self._on_change: Optional[OnChange] = None
        self._refresh_lock = asyncio.Lock()
        # Local ids handed out to creates whose insert has not finished yet
        self._reserved_ids: Set[str] = set()

    @property
    def table(self) -> str:
        return self.kind.TABLE

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None

    def snapshot(self) -> List[RecordT]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def get(self, record_id: Any) -> Optional[RecordT]:
        for record in self._records:
            if str(record.id) == str(record_id):
                return record
        return None

    async def _fetch(self) -> List[RecordT]:
        rows = await self.store.select(
            self.table,
            order_by=self.kind.ORDER_COLUMN,
            descending=self.kind.DESCENDING,
        )
        records = []
        for row in rows:
            try:
                records.append(self.kind.from_row(row))
            except (SyncError, TypeError, ValueError, AttributeError) as e:
                raise LoadError(self.table, f"malformed row {row!r}: {e}") from e
        return records

    async def initialize(self) -> List[RecordT]:
        """Fetch the table; seed it once if it is empty and a seed set is configured."""
        try:
            records = await self._fetch()
        except StoreError as e:
            logger.error("Collection load failed", table=self.table, error=e.detail)
            raise LoadError(self.table, e.detail) from e
        except LoadError as e:
            logger.error("Collection load failed", table=self.table, error=e.detail)
            raise

        if not records and self.seed:
            rows = [record.to_row() for record in self.seed]
            try:
                await self.store.insert(self.table, rows)
            except StoreError as e:
                logger.error("Seeding failed", table=self.table, error=e.detail)
                raise LoadError(self.table, f"seed write failed: {e.detail}") from e
            # Use the seed set directly; a re-fetch could race the write
            records = list(self.seed)
            logger.info("Seeded empty table", table=self.table, count=len(records))

        self._records = records
        self._loaded = True
        logger.info("Collection loaded", table=self.table, count=len(records))
        return self.snapshot()

    async def ensure_loaded(self) -> List[RecordT]:
        if not self._loaded:
            return await self.initialize()
        return self.snapshot()

    async def subscribe(self, on_change: Optional[OnChange] = None) -> None:
        """Open the change feed; every notification re-fetches the table."""
        self._on_change = on_change
        if self._subscription is not None:
            return
        self._subscription = await self.store.subscribe(self.table, ALL_EVENTS, self._handle_change)
        logger.info("Collection subscribed", table=self.table)

    async def _handle_change(self, event: ChangeEvent) -> None:
        async with self._refresh_lock:
            if self._subscription is None:
                return
            try:
                records = await self._fetch()
            except (StoreError, LoadError) as e:
                logger.warning(
                    "Refresh after change failed, keeping previous snapshot",
                    table=self.table,
                    event=event.kind,
                    error=e.detail,
                )
                return
            self._records = records
            self._loaded = True
            snapshot = self.snapshot()

        logger.debug("Collection refreshed", table=self.table, event=event.kind, count=len(snapshot))
        if self._on_change is None:
            return
        try:
            result = self._on_change(snapshot)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.error("Change listener failed", table=self.table, exc_info=True)

    def _check_required(self, fields: Mapping[str, Any]) -> None:
        for name in self.kind.REQUIRED_FIELDS:
            value = fields.get(name)
            if value is None or not str(value).strip():
                raise ValidationError(f"'{name}' is required", field=name)

    def find_unique(self, value: Any) -> Optional[RecordT]:
        unique = self.kind.UNIQUE_FIELD
        if unique is None:
            return None
        needle = str(value).strip().casefold()
        for record in self._records:
            if str(getattr(record, unique)).strip().casefold() == needle:
                return record
        return None

    def _next_local_id(self) -> int:
        taken = {str(record.id) for record in self._records} | self._reserved_ids
        candidate = int(time.time() * 1000)
        while str(candidate) in taken:
            candidate += 1
        self._reserved_ids.add(str(candidate))
        return candidate

    def _place(self, record: RecordT) -> None:
        # A refresh may already have delivered this row
        records = [r for r in self._records if str(r.id) != str(record.id)]
        if self.kind.DESCENDING:
            records.insert(0, record)
        else:
            records.append(record)
        self._records = records

    async def create(self, fields: Mapping[str, Any]) -> RecordT:
        self._check_required(fields)

        if self.kind.UNIQUE_FIELD:
            existing = self.find_unique(fields[self.kind.UNIQUE_FIELD])
            if existing is not None:
                logger.info("Duplicate create ignored", table=self.table, id=existing.id)
                return existing

        record_id = self._next_local_id() if self.kind.LOCAL_IDS else None
        try:
            record = self.kind.from_fields(fields, record_id=record_id, now=self.clock())
            row = record.to_row()
            if not self.kind.LOCAL_IDS:
                row.pop("id", None)

            try:
                stored = await self.store.insert(self.table, [row])
            except StoreError as e:
                logger.error("Create failed", table=self.table, error=e.detail)
                raise WriteError(self.table, "create", e.detail) from e

            if not self.kind.LOCAL_IDS and stored:
                record = self.kind.from_row(stored[0])
            self._place(record)
        finally:
            self._reserved_ids.discard(str(record_id))
        logger.info("Record created", table=self.table, id=record.id)
        return record

    async def update(self, record_id: Any, fields: Mapping[str, Any]) -> RecordT:
        current = self.get(record_id)
        if current is None:
            raise NotFoundError(self.table, record_id)
        if not self.kind.MUTABLE:
            raise ValidationError(f"Records in '{self.table}' cannot be edited")

        merged = current.merge(fields)
        patch = {
            column: value
            for column, value in merged.to_row().items()
            if column not in ("id", self.kind.ORDER_COLUMN)
        }
        try:
            await self.store.update(self.table, current.id, patch)
        except StoreError as e:
            logger.error("Update failed", table=self.table, id=current.id, error=e.detail)
            raise WriteError(self.table, "update", e.detail) from e

        self._records = [merged if str(r.id) == str(current.id) else r for r in self._records]
        logger.info("Record updated", table=self.table, id=current.id)
        return merged

    async def delete(self, record_id: Any) -> None:
        current = self.get(record_id)
        if current is None:
            raise NotFoundError(self.table, record_id)
        try:
            await self.store.delete(self.table, current.id)
        except StoreError as e:
            logger.error("Delete failed", table=self.table, id=current.id, error=e.detail)
            raise WriteError(self.table, "delete", e.detail) from e

        self._records = [r for r in self._records if str(r.id) != str(current.id)]
        logger.info("Record deleted", table=self.table, id=current.id)

    async def teardown(self) -> None:
        """Release the change feed. Safe to call more than once."""
        subscription, self._subscription = self._subscription, None
        self._on_change = None
        if subscription is not None:
            await subscription.close()
            logger.info("Collection unsubscribed", table=self.table)
