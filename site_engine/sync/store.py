"""
Table store contract consumed by SyncedCollection, plus an in-process
implementation used for local development and tests.
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from sync.errors import StoreError
from logging_config import logger

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
# Synthetic event emitted after a change feed reconnects
RESYNC = "RESYNC"

ALL_EVENTS = (INSERT, UPDATE, DELETE)


@dataclass(frozen=True)
class ChangeEvent:
    """Row-level change notification for one table"""
    table: str
    kind: str
    record: Optional[Dict[str, Any]] = None
    old_record: Optional[Dict[str, Any]] = None


ChangeCallback = Callable[[ChangeEvent], Awaitable[None]]


class Subscription(Protocol):
    """Handle for an open change feed"""

    async def close(self) -> None:
        ...


class TableStore(Protocol):
    """Ordered select, insert, update-by-id, delete-by-id and change feed"""

    async def select(
        self, table: str, order_by: Optional[str] = None, descending: bool = False
    ) -> List[Dict[str, Any]]:
        ...

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        ...

    async def update(self, table: str, record_id: Any, fields: Mapping[str, Any]) -> List[Dict[str, Any]]:
        ...

    async def delete(self, table: str, record_id: Any) -> None:
        ...

    async def subscribe(
        self, table: str, events: Sequence[str], callback: ChangeCallback
    ) -> Subscription:
        ...

    async def aclose(self) -> None:
        ...


class _MemorySubscription:
    def __init__(self, store: "MemoryTableStore", table: str, events: Sequence[str], callback: ChangeCallback):
        self.store = store
        self.table = table
        self.events = frozenset(events)
        self.callback = callback
        self.closed = False

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.store._detach(self)


class MemoryTableStore:
    """
    In-process table store.

    Rows keep insertion order, so ordered selects are stable for ties.
    Change notifications are delivered to subscribers before the write
    call returns.
    """

    def __init__(self, tables: Optional[Mapping[str, Sequence[Mapping[str, Any]]]] = None):
        self._tables: Dict[str, List[Dict[str, Any]]] = {}
        self._subscribers: Dict[str, List[_MemorySubscription]] = {}
        for name, rows in (tables or {}).items():
            self._tables[name] = [dict(row) for row in rows]

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return [dict(row) for row in self._tables.get(table, [])]

    def subscriber_count(self, table: str) -> int:
        return len(self._subscribers.get(table, []))

    def _next_id(self, table: str) -> int:
        numeric = [row["id"] for row in self._tables.get(table, []) if isinstance(row.get("id"), int)]
        return max(numeric, default=0) + 1

    def _index_of(self, table: str, record_id: Any) -> Optional[int]:
        for index, row in enumerate(self._tables.get(table, [])):
            if str(row.get("id")) == str(record_id):
                return index
        return None

    async def select(
        self, table: str, order_by: Optional[str] = None, descending: bool = False
    ) -> List[Dict[str, Any]]:
        rows = self.rows(table)
        if order_by:
            rows.sort(key=lambda row: str(row.get(order_by) or ""), reverse=descending)
        return rows

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        stored = []
        existing = self._tables.setdefault(table, [])
        for row in rows:
            record = dict(row)
            if record.get("id") is None:
                record["id"] = self._next_id(table)
            elif self._index_of(table, record["id"]) is not None:
                raise StoreError(table, "insert", f"duplicate key value (id)=({record['id']})", status_code=409)
            existing.append(record)
            stored.append(dict(record))
        for record in stored:
            await self._notify(ChangeEvent(table, INSERT, record=dict(record)))
        return stored

    async def update(self, table: str, record_id: Any, fields: Mapping[str, Any]) -> List[Dict[str, Any]]:
        index = self._index_of(table, record_id)
        if index is None:
            return []
        old = self._tables[table][index]
        new = {**old, **dict(fields), "id": old["id"]}
        self._tables[table][index] = new
        await self._notify(ChangeEvent(table, UPDATE, record=dict(new), old_record=dict(old)))
        return [dict(new)]

    async def delete(self, table: str, record_id: Any) -> None:
        index = self._index_of(table, record_id)
        if index is None:
            return
        old = self._tables[table].pop(index)
        await self._notify(ChangeEvent(table, DELETE, old_record=dict(old)))

    async def subscribe(
        self, table: str, events: Sequence[str], callback: ChangeCallback
    ) -> _MemorySubscription:
        subscription = _MemorySubscription(self, table, events, callback)
        self._subscribers.setdefault(table, []).append(subscription)
        logger.info("Memory change feed opened", table=table, events=list(events))
        return subscription

    def _detach(self, subscription: _MemorySubscription) -> None:
        subscribers = self._subscribers.get(subscription.table, [])
        if subscription in subscribers:
            subscribers.remove(subscription)

    async def _notify(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscribers.get(event.table, [])):
            if subscription.closed or event.kind not in subscription.events:
                continue
            await subscription.callback(event)

    async def aclose(self) -> None:
        for subscribers in list(self._subscribers.values()):
            for subscription in list(subscribers):
                await subscription.close()
