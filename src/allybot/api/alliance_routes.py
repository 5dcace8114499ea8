"""
FastAPI routes for alliance administration.

Mounted at /api/alliance/ on the main FastAPI app.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from roster_common.alliance_sync.access import AccessManager
from roster_common.alliance_sync.operations import AllianceService
from roster_common.alliance_sync.store import OrgAlreadyRegistered, OrgNotRegistered

logger = logging.getLogger(__name__)

alliance_router = APIRouter(prefix="/api/alliance", tags=["Alliance"])


# ---------------------------------------------------------------------------
# Request Models
# ---------------------------------------------------------------------------

class AddOrgRequest(BaseModel):
    org_id: int
    added_by: str


class AddMemberRequest(BaseModel):
    name: str
    org_id: int
    rank: Optional[int] = None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

async def get_alliance_service(request: Request) -> AllianceService:
    """Retrieve the AllianceService stored on app state."""
    service = getattr(request.app.state, "alliance_service", None)
    if service is None:
        raise HTTPException(503, "Alliance service not initialised")
    return service


async def get_access_manager(request: Request) -> AccessManager:
    manager = getattr(request.app.state, "access_manager", None)
    if manager is None:
        raise HTTPException(503, "Access manager not initialised")
    return manager


# ---------------------------------------------------------------------------
# Orgs
# ---------------------------------------------------------------------------

@alliance_router.get("/orgs")
async def list_orgs(service: AllianceService = Depends(get_alliance_service)):
    orgs = await service.list_orgs()
    return {
        "ok": True,
        "data": [
            {
                "org_id": org.org_id,
                "org_name": org.org_name,
                "added_by": org.added_by,
                "added_dt": org.added_dt.isoformat() if org.added_dt else None,
                "members": org.members,
            }
            for org in orgs
        ],
    }


@alliance_router.post("/orgs")
async def add_org(
    body: AddOrgRequest,
    service: AllianceService = Depends(get_alliance_service),
):
    """Add an org to the alliance and download its roster."""
    try:
        result = await service.add_org(body.org_id, body.added_by)
    except OrgAlreadyRegistered:
        raise HTTPException(409, f"Org {body.org_id} is already a member of this alliance")

    data = {"org_id": body.org_id, "roster_synced": result is not None and not result.skipped}
    if result is not None:
        data["org_name"] = result.org_name
        data["members_added"] = result.new
    return {"ok": True, "data": data}


@alliance_router.delete("/orgs/{org_id}")
async def remove_org(
    org_id: int,
    service: AllianceService = Depends(get_alliance_service),
):
    """Remove an org and all of its members from the alliance."""
    try:
        removed = await service.remove_org(org_id)
    except OrgNotRegistered:
        raise HTTPException(404, f"Org {org_id} is not a member of this alliance")
    return {"ok": True, "data": {"org_id": org_id, "members_removed": removed}}


@alliance_router.post("/update")
async def trigger_roster_update(request: Request):
    """Manually trigger a roster update of every alliance org."""
    scheduler = getattr(request.app.state, "alliance_scheduler", None)
    if scheduler is None:
        raise HTTPException(503, "Alliance sync scheduler not initialised")
    asyncio.create_task(scheduler.run_roster_update())
    return {"ok": True, "status": "sync_triggered"}


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@alliance_router.post("/members")
async def add_member(
    body: AddMemberRequest,
    service: AllianceService = Depends(get_alliance_service),
):
    await service.add_member(body.name, body.org_id, body.rank)
    return {"ok": True, "data": {"name": body.name, "mode": "add"}}


@alliance_router.post("/members/{name}/suppress")
async def suppress_member(
    name: str,
    service: AllianceService = Depends(get_alliance_service),
):
    if not await service.suppress_member(name):
        raise HTTPException(404, f"{name} is not tracked by the alliance")
    return {"ok": True, "data": {"name": name, "mode": "del"}}


@alliance_router.delete("/members/{name}")
async def remove_member(
    name: str,
    service: AllianceService = Depends(get_alliance_service),
):
    if not await service.remove_member(name):
        raise HTTPException(404, f"{name} is not tracked by the alliance")
    return {"ok": True, "data": {"name": name}}


@alliance_router.get("/access/{name}")
async def get_access(
    name: str,
    service: AllianceService = Depends(get_alliance_service),
    access: AccessManager = Depends(get_access_manager),
):
    return {
        "ok": True,
        "data": {
            "name": name,
            "access_level": access.get_access_level(name),
            "rank": service.cache.get(name),
        },
    }
