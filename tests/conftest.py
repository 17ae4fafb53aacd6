"""
Shared fixtures for the site engine test suite.

Environment overrides are applied before any application module is
imported, because `config.settings` is read at import time.
"""
import os

os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_ANON_KEY"] = ""
os.environ["GEMINI_API_KEY"] = ""

import pytest  # noqa: E402

from sync.records import ToolStatus  # noqa: E402
from sync.store import MemoryTableStore  # noqa: E402


def tool_row(id, name, created_at, status="LIVE", **extra):
    row = {
        "id": id,
        "name": name,
        "description": f"{name} description",
        "status": status,
        "icon": "🤖",
        "buttons": [{"name": "Open", "link": "https://example.com"}],
        "launch_days": None if status == ToolStatus.LIVE.value else "15 Days",
        "created_at": created_at,
    }
    row.update(extra)
    return row


def waitlist_row(id, email, joined_at):
    return {"id": id, "email": email, "joined_at": joined_at}


def request_row(id, tool_name, submitted_at, email="someone@example.com"):
    return {
        "id": id,
        "tool_name": tool_name,
        "description": "",
        "category": "Productivity",
        "email": email,
        "submitted_at": submitted_at,
    }


class FailingStore(MemoryTableStore):
    """MemoryTableStore whose listed operations raise StoreError"""

    def __init__(self, tables=None, fail=()):
        super().__init__(tables)
        self.fail = set(fail)
        self.calls = []

    def _maybe_fail(self, operation, table):
        from sync.errors import StoreError

        self.calls.append((operation, table))
        if operation in self.fail:
            raise StoreError(table, operation, "connection refused")

    async def select(self, table, order_by=None, descending=False):
        self._maybe_fail("select", table)
        return await super().select(table, order_by, descending)

    async def insert(self, table, rows):
        self._maybe_fail("insert", table)
        return await super().insert(table, rows)

    async def update(self, table, record_id, fields):
        self._maybe_fail("update", table)
        return await super().update(table, record_id, fields)

    async def delete(self, table, record_id):
        self._maybe_fail("delete", table)
        return await super().delete(table, record_id)


@pytest.fixture
def memory_store():
    return MemoryTableStore()


@pytest.fixture
def tools_store():
    return FailingStore(
        {
            "tools": [
                tool_row(10, "Second", "2025-01-02T00:00:00Z"),
                tool_row(11, "First", "2025-01-01T00:00:00Z"),
                tool_row(12, "Third", "2025-01-03T00:00:00Z", status="COMING SOON"),
            ]
        }
    )


class RecordingSleep:
    """Controllable clock for retry waits: records instead of sleeping"""

    def __init__(self):
        self.waits = []

    async def __call__(self, seconds):
        self.waits.append(seconds)


@pytest.fixture
def fake_sleep():
    return RecordingSleep()
