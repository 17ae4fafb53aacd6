"""
Waitlist API router (join, live stats, admin list/export)
"""
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from pydantic import BaseModel

from config import settings
from logging_config import logger
from rate_limit import limiter
from routers.deps import get_site_data, http_error, loaded, require_admin
from services.live_view import live_snapshots, sse_response
from services.presentation import waitlist_stats
from services.site_data import SiteData
from services.waitlist_export import EXPORT_FILENAME, export_waitlist_csv, resolve_timezone
from sync.errors import SyncError
from sync.records import WaitlistEntry

router = APIRouter()


class JoinWaitlistRequest(BaseModel):
    """Request model for joining the waitlist"""
    email: str


@router.post("/waitlist")
@limiter.limit(settings.WAITLIST_RATE_LIMIT)
async def join_waitlist(request: Request, data: JoinWaitlistRequest, site: SiteData = Depends(get_site_data)):
    """
    Add an email to the waitlist.

    Joining twice with the same email (any case) is a no-op that still
    succeeds.
    """
    await loaded(site.waitlist)
    already_joined = site.waitlist.find_unique(data.email) is not None
    try:
        entry = await site.waitlist.create({"email": data.email})
    except SyncError as e:
        raise http_error(e)

    logger.info("Waitlist join", entry_id=entry.id, already_joined=already_joined)
    return {
        "success": True,
        "alreadyJoined": already_joined,
        "entry": entry.to_dict(),
        "stats": waitlist_stats(site.waitlist.snapshot(), site.tools.snapshot()),
    }


@router.get("/waitlist/stats")
async def get_waitlist_stats(site: SiteData = Depends(get_site_data)):
    """Member count, tool count, rating and recent members for the waitlist page"""
    entries = await loaded(site.waitlist)
    tools = await loaded(site.tools)
    return waitlist_stats(entries, tools)


@router.get("/admin/waitlist", dependencies=[Depends(require_admin)])
async def list_waitlist(site: SiteData = Depends(get_site_data)):
    entries = await loaded(site.waitlist)
    return {"success": True, "count": len(entries), "entries": [e.to_dict() for e in entries]}


@router.get("/admin/waitlist/stream", dependencies=[Depends(require_admin)])
async def stream_waitlist(request: Request, site: SiteData = Depends(get_site_data)):
    """Live waitlist for the admin console (Server-Sent Events)"""
    return sse_response(live_snapshots(request, site.store, WaitlistEntry))


@router.get("/admin/waitlist/export", dependencies=[Depends(require_admin)])
async def export_waitlist(tz: Optional[str] = None, site: SiteData = Depends(get_site_data)):
    """
    Download the waitlist as CSV.

    Args:
        tz: Viewer's IANA time zone for the Joined Date column
    """
    entries = await loaded(site.waitlist)
    try:
        csv_text = export_waitlist_csv(entries, resolve_timezone(tz))
    except SyncError as e:
        raise http_error(e)

    logger.info("Waitlist exported", rows=len(entries))
    return Response(
        content=csv_text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )


@router.delete("/admin/waitlist/{entry_id}", dependencies=[Depends(require_admin)])
async def delete_waitlist_entry(entry_id: str, site: SiteData = Depends(get_site_data)):
    await loaded(site.waitlist)
    try:
        await site.waitlist.delete(entry_id)
    except SyncError as e:
        raise http_error(e)

    logger.info("Waitlist entry deleted", entry_id=entry_id)
    return {"success": True}
