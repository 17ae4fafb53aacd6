"""
Supabase-backed table store.

Rows go through the PostgREST endpoint with httpx; change notifications
come from the Realtime websocket (see sync.realtime).
"""
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from config import settings
from sync.errors import StoreError
from sync.realtime import RealtimeChannel
from sync.store import ChangeCallback
from logging_config import logger


def _error_detail(response: httpx.Response) -> str:
    """PostgREST returns {"message": ..., "code": ...} on failure"""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        message = body.get("message") or body.get("error") or body.get("msg")
        if message:
            return f"{message} (HTTP {response.status_code})"
    return f"HTTP {response.status_code}"


class SupabaseTableStore:
    """TableStore over Supabase REST + Realtime"""

    def __init__(
        self,
        url: str,
        api_key: str,
        timeout: float = 15.0,
        heartbeat_seconds: float = 25.0,
        reconnect_seconds: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not url or not api_key:
            raise ValueError("Supabase URL and API key are required")

        self.url = url.rstrip("/")
        self.api_key = api_key
        self.heartbeat_seconds = heartbeat_seconds
        self.reconnect_seconds = reconnect_seconds
        self._channels: List[RealtimeChannel] = []
        self._client = httpx.AsyncClient(
            base_url=f"{self.url}/rest/v1",
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )
        logger.info("Initialized SupabaseTableStore", url=self.url)

    @classmethod
    def from_settings(cls) -> "SupabaseTableStore":
        return cls(
            settings.SUPABASE_URL,
            settings.SUPABASE_ANON_KEY,
            timeout=settings.SUPABASE_TIMEOUT_SECONDS,
            heartbeat_seconds=settings.SUPABASE_HEARTBEAT_SECONDS,
            reconnect_seconds=settings.SUPABASE_RECONNECT_SECONDS,
        )

    @property
    def realtime_url(self) -> str:
        if self.url.startswith("https://"):
            base = "wss://" + self.url[len("https://"):]
        elif self.url.startswith("http://"):
            base = "ws://" + self.url[len("http://"):]
        else:
            base = self.url
        return f"{base}/realtime/v1/websocket"

    async def _request(
        self,
        table: str,
        operation: str,
        method: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = await self._client.request(
                method, f"/{table}", params=params, json=json, headers=headers
            )
        except httpx.HTTPError as e:
            logger.error("Supabase transport error", table=table, operation=operation, error=str(e))
            raise StoreError(table, operation, str(e) or e.__class__.__name__) from e

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.error(
                "Supabase request rejected",
                table=table,
                operation=operation,
                status_code=response.status_code,
                detail=detail,
            )
            raise StoreError(table, operation, detail, status_code=response.status_code)

        if not response.content:
            return []
        data = response.json()
        return data if isinstance(data, list) else [data]

    async def select(
        self, table: str, order_by: Optional[str] = None, descending: bool = False
    ) -> List[Dict[str, Any]]:
        params = {"select": "*"}
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        return await self._request(table, "select", "GET", params=params)

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        return await self._request(
            table, "insert", "POST", json=[dict(row) for row in rows], prefer="return=representation"
        )

    async def update(self, table: str, record_id: Any, fields: Mapping[str, Any]) -> List[Dict[str, Any]]:
        return await self._request(
            table,
            "update",
            "PATCH",
            params={"id": f"eq.{record_id}"},
            json=dict(fields),
            prefer="return=representation",
        )

    async def delete(self, table: str, record_id: Any) -> None:
        await self._request(
            table, "delete", "DELETE", params={"id": f"eq.{record_id}"}, prefer="return=minimal"
        )

    async def subscribe(
        self, table: str, events: Sequence[str], callback: ChangeCallback
    ) -> RealtimeChannel:
        channel = RealtimeChannel(
            self.realtime_url,
            self.api_key,
            table,
            events,
            callback,
            heartbeat_seconds=self.heartbeat_seconds,
            reconnect_seconds=self.reconnect_seconds,
            on_close=self._forget,
        )
        self._channels.append(channel)
        await channel.start()
        return channel

    def _forget(self, channel: RealtimeChannel) -> None:
        if channel in self._channels:
            self._channels.remove(channel)

    async def aclose(self) -> None:
        for channel in list(self._channels):
            await channel.close()
        await self._client.aclose()
        logger.info("SupabaseTableStore closed")
