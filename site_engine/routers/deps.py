"""
Shared dependencies and error mapping for the API routers
"""
from typing import List

from fastapi import HTTPException, Request

from logging_config import logger
from services.site_data import SiteData
from services.site_flags import SiteFlagStore
from sync.collection import SyncedCollection
from sync.errors import LoadError, NotFoundError, SyncError, ValidationError, WriteError

ADMIN_SESSION_KEY = "snapai_admin_auth"


def get_site_data(request: Request) -> SiteData:
    return request.app.state.site_data


def get_flag_store(request: Request) -> SiteFlagStore:
    return request.app.state.site_flags


def require_admin(request: Request) -> None:
    """Placeholder gate for the admin console"""
    if not request.session.get(ADMIN_SESSION_KEY):
        raise HTTPException(status_code=401, detail="Admin login required")


def http_error(error: SyncError) -> HTTPException:
    """Translate collection errors into user-visible HTTP errors"""
    if isinstance(error, ValidationError):
        return HTTPException(status_code=422, detail=str(error))
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, LoadError):
        return HTTPException(status_code=503, detail=f"Data is unavailable right now: {error.detail}")
    if isinstance(error, WriteError):
        return HTTPException(status_code=502, detail=f"Could not save your change: {error.detail}")
    logger.error("Unmapped collection error", error=str(error))
    return HTTPException(status_code=500, detail=str(error))


async def loaded(collection: SyncedCollection) -> List:
    """Snapshot of a collection, retrying the initial load if it failed earlier"""
    try:
        return await collection.ensure_loaded()
    except LoadError as e:
        raise http_error(e)
