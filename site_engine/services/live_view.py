"""
Server-Sent Events for live views.

Each open stream is a mounted view: it owns its own SyncedCollection,
pushes a fresh snapshot after every change, and tears the collection down
when the client goes away.
"""
import asyncio
import json
from typing import Any, AsyncIterator, Dict

from fastapi import Request
from fastapi.responses import StreamingResponse

from logging_config import logger
from services.site_data import stream_collection
from sync.errors import LoadError
from sync.store import TableStore

KEEPALIVE_SECONDS = 15.0


def sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def snapshot_event(table: str, records) -> Dict[str, Any]:
    return {"type": "snapshot", "table": table, "items": [r.to_dict() for r in records]}


async def live_snapshots(
    request: Request,
    store: TableStore,
    kind,
    keepalive_seconds: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    collection = stream_collection(store, kind)
    updates: asyncio.Queue = asyncio.Queue()

    try:
        initial = await collection.initialize()
    except LoadError as e:
        yield sse({"type": "error", "table": collection.table, "message": e.detail})
        return

    await collection.subscribe(updates.put_nowait)
    logger.info("Live view opened", table=collection.table)
    try:
        yield sse(snapshot_event(collection.table, initial))
        while True:
            try:
                snapshot = await asyncio.wait_for(updates.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                snapshot = None
            # Drop results for views that are gone
            if await request.is_disconnected():
                break
            if snapshot is None:
                yield ": keep-alive\n\n"
            else:
                yield sse(snapshot_event(collection.table, snapshot))
    finally:
        await collection.teardown()
        logger.info("Live view closed", table=collection.table)


def sse_response(stream: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(
        stream,
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no"
        }
    )
