"""
Supabase Realtime change feed (Phoenix channel protocol over websockets).

One channel per subscription. The channel joins `postgres_changes` for a
single table, keeps the socket alive with heartbeats and forwards each
change as a ChangeEvent. When the socket drops it reconnects and emits a
RESYNC event, since changes made while disconnected were never delivered.
"""
import asyncio
import contextlib
import json
import uuid
from typing import Any, Callable, Dict, Optional, Sequence

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from sync.store import ALL_EVENTS, RESYNC, ChangeCallback, ChangeEvent
from logging_config import logger

PROTOCOL_VERSION = "1.0.0"


class RealtimeChannel:
    """A single postgres_changes subscription"""

    def __init__(
        self,
        endpoint: str,
        api_key: str,
        table: str,
        events: Sequence[str],
        callback: ChangeCallback,
        heartbeat_seconds: float = 25.0,
        reconnect_seconds: float = 5.0,
        schema: str = "public",
        connect: Callable[..., Any] = websockets.connect,
        on_close: Optional[Callable[["RealtimeChannel"], None]] = None,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.table = table
        self.events = tuple(events)
        self.callback = callback
        self.heartbeat_seconds = heartbeat_seconds
        self.reconnect_seconds = reconnect_seconds
        self.schema = schema
        self.topic = f"realtime:{schema}-{table}-{uuid.uuid4().hex[:8]}"
        self._connect = connect
        self._on_close = on_close
        self._ref = 0
        self._join_ref: Optional[str] = None
        self._ws = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def socket_url(self) -> str:
        return f"{self.endpoint}?apikey={self.api_key}&vsn={PROTOCOL_VERSION}"

    @property
    def closed(self) -> bool:
        return self._closed

    def _next_ref(self) -> str:
        self._ref += 1
        return str(self._ref)

    def join_message(self) -> Dict[str, Any]:
        if set(self.events) >= set(ALL_EVENTS):
            wanted = ["*"]
        else:
            wanted = list(self.events)
        self._join_ref = self._next_ref()
        return {
            "topic": self.topic,
            "event": "phx_join",
            "payload": {
                "config": {
                    "broadcast": {"self": False},
                    "presence": {"key": ""},
                    "postgres_changes": [
                        {"event": event, "schema": self.schema, "table": self.table}
                        for event in wanted
                    ],
                },
                "access_token": self.api_key,
            },
            "ref": self._join_ref,
            "join_ref": self._join_ref,
        }

    def heartbeat_message(self) -> Dict[str, Any]:
        return {"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": self._next_ref()}

    def leave_message(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "event": "phx_leave",
            "payload": {},
            "ref": self._next_ref(),
            "join_ref": self._join_ref,
        }

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"realtime-{self.table}")

    async def _run(self) -> None:
        connected_before = False
        while not self._closed:
            try:
                async with self._connect(self.socket_url) as ws:
                    self._ws = ws
                    await ws.send(json.dumps(self.join_message()))
                    logger.info("Realtime channel joined", table=self.table, topic=self.topic)
                    if connected_before:
                        await self._emit(ChangeEvent(self.table, RESYNC))
                    connected_before = True
                    await self._read_loop(ws)
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                if self._closed:
                    break
                logger.warning(
                    "Realtime channel dropped",
                    table=self.table,
                    error=str(e),
                    retry_in=self.reconnect_seconds,
                )
            except Exception:
                if self._closed:
                    break
                logger.error(
                    "Realtime reader failed, reconnecting",
                    table=self.table,
                    retry_in=self.reconnect_seconds,
                    exc_info=True,
                )
            finally:
                self._ws = None
            if not self._closed:
                await asyncio.sleep(self.reconnect_seconds)

    async def _read_loop(self, ws) -> None:
        loop = asyncio.get_running_loop()
        next_heartbeat = loop.time() + self.heartbeat_seconds
        while not self._closed:
            timeout = max(0.0, next_heartbeat - loop.time())
            try:
                raw = await asyncio.wait_for(ws.recv(), timeout=timeout)
            except asyncio.TimeoutError:
                await ws.send(json.dumps(self.heartbeat_message()))
                next_heartbeat = loop.time() + self.heartbeat_seconds
                continue
            try:
                message = json.loads(raw)
            except ValueError:
                logger.warning("Realtime frame is not JSON", table=self.table)
                continue
            if not isinstance(message, dict):
                logger.warning("Realtime frame is not an object", table=self.table, frame=type(message).__name__)
                continue
            await self._dispatch(message)

    async def _dispatch(self, message: Dict[str, Any]) -> None:
        event = message.get("event")
        payload = message.get("payload")
        if not isinstance(payload, dict):
            payload = {}

        if event == "postgres_changes":
            data = payload.get("data")
            if not isinstance(data, dict):
                data = {}
            await self._emit(
                ChangeEvent(
                    table=data.get("table", self.table),
                    kind=data.get("type", RESYNC),
                    record=data.get("record"),
                    old_record=data.get("old_record"),
                )
            )
        elif event == "phx_reply" and payload.get("status") == "error":
            logger.error("Realtime join rejected", table=self.table, response=payload.get("response"))
        elif event in ("phx_error", "phx_close") and message.get("topic") == self.topic:
            raise ConnectionError(f"channel {event} from server")

    async def _emit(self, event: ChangeEvent) -> None:
        try:
            await self.callback(event)
        except Exception:
            logger.error("Realtime callback failed", table=self.table, kind=event.kind, exc_info=True)

    async def close(self) -> None:
        """Leave the channel and stop the reader task. Idempotent."""
        if self._closed:
            return
        self._closed = True

        ws = self._ws
        if ws is not None:
            try:
                await ws.send(json.dumps(self.leave_message()))
                await ws.close()
            except ConnectionClosed:
                logger.debug("Realtime socket already closed", table=self.table)

        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        if self._on_close is not None:
            self._on_close(self)
        logger.info("Realtime channel closed", table=self.table, topic=self.topic)
