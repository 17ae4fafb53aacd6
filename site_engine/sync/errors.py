"""
Error taxonomy for the synced collections.

Every error here is surfaced to the HTTP action that triggered it; none of
them are retried automatically.
"""
from typing import Optional


class SyncError(Exception):
    """Base class for collection errors"""


class LoadError(SyncError):
    """Initial (or retried) fetch of a table failed"""

    def __init__(self, table: str, detail: str):
        self.table = table
        self.detail = detail
        super().__init__(f"Failed to load '{table}': {detail}")


class WriteError(SyncError):
    """Remote create/update/delete failed; the local snapshot is unchanged"""

    def __init__(self, table: str, operation: str, detail: str):
        self.table = table
        self.operation = operation
        self.detail = detail
        super().__init__(f"Failed to {operation} in '{table}': {detail}")


class NotFoundError(SyncError):
    """Mutation target is not present in the local snapshot"""

    def __init__(self, table: str, record_id):
        self.table = table
        self.record_id = record_id
        super().__init__(f"No record with id {record_id!r} in '{table}'")


class ValidationError(SyncError):
    """Caller-supplied fields were rejected before any network call"""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class StoreError(Exception):
    """Raised by TableStore implementations when the transport fails"""

    def __init__(self, table: str, operation: str, detail: str, status_code: Optional[int] = None):
        self.table = table
        self.operation = operation
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"{operation} on '{table}' failed: {detail}")
