"""
Admin console API router: login gate, overview and the waitlist gate flag
"""
import secrets

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from config import settings
from logging_config import logger
from routers.deps import ADMIN_SESSION_KEY, get_flag_store, get_site_data, require_admin
from services.site_data import SiteData
from services.site_flags import SiteFlagStore

router = APIRouter()


class LoginRequest(BaseModel):
    """Request model for the admin login form"""
    username: str
    password: str


class WaitlistGateRequest(BaseModel):
    """Request model for toggling the waitlist gate"""
    active: bool


def _matches(given: str, expected: str) -> bool:
    return secrets.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


@router.post("/admin/login")
async def login(request: Request, data: LoginRequest):
    """
    Open an admin session.

    This gate only keeps casual visitors out of the console; it is not a
    security boundary.
    """
    if not (_matches(data.username, settings.ADMIN_USERNAME) and _matches(data.password, settings.ADMIN_PASSWORD)):
        logger.warning("Admin login rejected", username=data.username)
        raise HTTPException(status_code=401, detail="Invalid username or password")

    request.session[ADMIN_SESSION_KEY] = True
    logger.info("Admin logged in", username=data.username)
    return {"success": True}


@router.post("/admin/logout")
async def logout(request: Request):
    request.session.pop(ADMIN_SESSION_KEY, None)
    return {"success": True}


@router.get("/admin/session")
async def session_state(request: Request):
    return {"authenticated": bool(request.session.get(ADMIN_SESSION_KEY))}


@router.get("/admin/overview", dependencies=[Depends(require_admin)])
async def overview(
    site: SiteData = Depends(get_site_data),
    flags: SiteFlagStore = Depends(get_flag_store),
):
    """Header badges of the console: counts per table and the gate flag"""
    return {
        "tools": len(site.tools),
        "requests": len(site.requests),
        "waitlist": len(site.waitlist),
        "waitlistActive": flags.flags.waitlist_active,
        "collections": site.status(),
    }


@router.put("/admin/waitlist-gate", dependencies=[Depends(require_admin)])
async def set_waitlist_gate(data: WaitlistGateRequest, flags: SiteFlagStore = Depends(get_flag_store)):
    """Show or hide the waitlist page in front of the landing page"""
    updated = flags.set_waitlist_active(data.active)
    return {"success": True, "waitlistActive": updated.waitlist_active}


@router.get("/site/config")
async def site_config(flags: SiteFlagStore = Depends(get_flag_store)):
    """Public flags the front end reads at startup"""
    return {"waitlistActive": flags.flags.waitlist_active}
