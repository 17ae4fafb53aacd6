"""
Tool-request form API router
"""
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field

from config import settings
from logging_config import logger
from rate_limit import limiter
from routers.deps import get_site_data, http_error, loaded, require_admin
from services.site_data import SiteData
from sync.errors import SyncError

router = APIRouter()


class ToolRequestForm(BaseModel):
    """Request model for the 'request a tool' form"""
    model_config = ConfigDict(populate_by_name=True)

    tool_name: str = Field(alias="toolName")
    category: str = "Productivity"
    description: str = ""
    email: str


@router.post("/requests", status_code=201)
@limiter.limit(settings.REQUEST_RATE_LIMIT)
async def submit_request(request: Request, data: ToolRequestForm, site: SiteData = Depends(get_site_data)):
    """
    Store a visitor's tool request.

    Tool name and email are required; category defaults to Productivity.
    """
    await loaded(site.requests)
    try:
        tool_request = await site.requests.create(data.model_dump())
    except SyncError as e:
        raise http_error(e)

    logger.info("Tool request received", request_id=tool_request.id, category=tool_request.category.value)
    return {"success": True, "request": tool_request.to_dict()}


@router.get("/admin/requests", dependencies=[Depends(require_admin)])
async def list_requests(site: SiteData = Depends(get_site_data)):
    """All tool requests, most recent first"""
    requests = await loaded(site.requests)
    return {"success": True, "count": len(requests), "requests": [r.to_dict() for r in requests]}


@router.delete("/admin/requests/{request_id}", dependencies=[Depends(require_admin)])
async def delete_request(request_id: str, site: SiteData = Depends(get_site_data)):
    await loaded(site.requests)
    try:
        await site.requests.delete(request_id)
    except SyncError as e:
        raise http_error(e)

    logger.info("Tool request deleted", request_id=request_id)
    return {"success": True}
