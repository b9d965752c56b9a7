from __future__ import annotations
from fastapi import APIRouter, Body, Depends
from typing import Optional
import uuid

from deps import get_current_admin_user
from schemas import ResyncResult
from services.background import run_resync

router = APIRouter(prefix="/admin/tasks", tags=["admin-tasks"], dependencies=[Depends(get_current_admin_user)])


@router.post("/resync-balances", response_model=ResyncResult)
async def resync_balances(shopkeeper_id: Optional[uuid.UUID] = Body(None, embed=True, alias="shopkeeperId")):
    """Recompute cached customer / wholesaler totals, optionally for one shopkeeper."""
    return await run_resync(shopkeeper_id)
