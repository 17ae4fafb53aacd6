"""
Tool showcase API router (public listing + admin management)
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from logging_config import logger
from routers.deps import get_site_data, http_error, loaded, require_admin
from services.live_view import live_snapshots, sse_response
from services.presentation import TOOL_TABS, filter_tools
from services.site_data import SiteData
from sync.errors import SyncError
from sync.records import Tool

router = APIRouter()


class ToolButtonModel(BaseModel):
    """One call-to-action button"""
    name: str = ""
    link: str = ""


class ToolCreateRequest(BaseModel):
    """Request model for adding a tool"""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    status: str = "LIVE"
    icon: str = "🤖"
    buttons: List[ToolButtonModel] = []
    launch_days: Optional[str] = Field(default="15 Days", alias="launchDays")


class ToolUpdateRequest(BaseModel):
    """Request model for editing a tool; omitted fields keep their value"""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    icon: Optional[str] = None
    buttons: Optional[List[ToolButtonModel]] = None
    launch_days: Optional[str] = Field(default=None, alias="launchDays")


@router.get("/tools")
async def list_tools(tab: str = "All", site: SiteData = Depends(get_site_data)):
    """
    Tools for the landing page showcase.

    Args:
        tab: All, Live or Soon
    """
    if tab not in TOOL_TABS:
        raise HTTPException(status_code=422, detail=f"Invalid tab: {tab}. Valid tabs: {list(TOOL_TABS)}")

    tools = filter_tools(await loaded(site.tools), tab)
    return {"success": True, "tab": tab, "count": len(tools), "tools": [t.to_dict() for t in tools]}


@router.get("/tools/stream")
async def stream_tools(request: Request, site: SiteData = Depends(get_site_data)):
    """Live tool list as Server-Sent Events (one snapshot per change)"""
    return sse_response(live_snapshots(request, site.store, Tool))


@router.post("/admin/tools", dependencies=[Depends(require_admin)], status_code=201)
async def create_tool(data: ToolCreateRequest, site: SiteData = Depends(get_site_data)):
    await loaded(site.tools)
    try:
        tool = await site.tools.create(data.model_dump())
    except SyncError as e:
        raise http_error(e)

    logger.info("Tool added", tool_id=tool.id, name=tool.name)
    return {"success": True, "tool": tool.to_dict()}


@router.put("/admin/tools/{tool_id}", dependencies=[Depends(require_admin)])
async def update_tool(tool_id: str, data: ToolUpdateRequest, site: SiteData = Depends(get_site_data)):
    await loaded(site.tools)
    try:
        tool = await site.tools.update(tool_id, data.model_dump(exclude_unset=True))
    except SyncError as e:
        raise http_error(e)

    logger.info("Tool updated", tool_id=tool.id)
    return {"success": True, "tool": tool.to_dict()}


@router.delete("/admin/tools/{tool_id}", dependencies=[Depends(require_admin)])
async def delete_tool(tool_id: str, site: SiteData = Depends(get_site_data)):
    await loaded(site.tools)
    try:
        await site.tools.delete(tool_id)
    except SyncError as e:
        raise http_error(e)

    logger.info("Tool deleted", tool_id=tool_id)
    return {"success": True}
