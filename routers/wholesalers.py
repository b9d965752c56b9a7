from fastapi import APIRouter, Depends, HTTPException, Query
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional
from tortoise.expressions import Q
import logging

from models import Wholesaler, User
from schemas import (
    WholesalerCreate, WholesalerUpdate, WholesalerRead, WholesalerStats, WholesalerDashboard, EntityLedger,
)
from api_utils import PageParams, parse_order, to_bool, apply_filter_map, dues_filter, paginate_and_respond, respond_item
from deps import require_feature
from services.balances import get_entity, entity_ledger, to_wholesaler_read

router = APIRouter(prefix="/wholesalers", tags=["wholesalers"])
logger = logging.getLogger("uvicorn")

wholesaler_access = require_feature("wholesalers")

SORT_FIELDS = {
    "name": "name",
    "purchases": "total_billed",
    "outstanding": "balance",
    "createdAt": "created_at",
}


@router.post("", response_model=WholesalerRead, status_code=201)
async def create_wholesaler(payload: WholesalerCreate, user: User = Depends(wholesaler_access)):
    obj = await Wholesaler.create(
        shopkeeper_id=user.id,
        name=payload.name,
        phone=payload.phone,
        whatsapp_number=payload.whatsapp_number,
        email=payload.email,
        address=payload.address,
        place=payload.place,
        gst_number=payload.gst_number,
        opening_balance=payload.opening_balance,
        balance=payload.opening_balance,
    )
    logger.info(f"[wholesalers] created #{obj.id} opening={obj.opening_balance}")
    return respond_item(obj, to_wholesaler_read, status_code=201)


@router.get("")
async def list_wholesalers(
    params: PageParams = Depends(),
    search: Optional[str] = None,
    status: Optional[str] = Query(None, pattern="^(active|inactive)$"),
    dues: Optional[str] = Query(None, alias="duesFilter", pattern="^(all|with_dues|no_dues|advance)$"),
    include_deleted: Optional[str] = Query(None, alias="includeDeleted"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    user: User = Depends(wholesaler_access),
):
    qs = Wholesaler.filter(shopkeeper_id=user.id)
    if not to_bool(include_deleted):
        qs = qs.filter(is_deleted=False)
    fmap = {
        "search": lambda q, v: q.filter(
            Q(name__icontains=v) | Q(phone__icontains=v) | Q(place__icontains=v) | Q(gst_number__icontains=v)
        ),
        "status": lambda q, v: q.filter(is_active=(v == "active")),
        "dues": dues_filter,
    }
    qs = apply_filter_map(qs, {"search": search, "status": status, "dues": dues}, fmap)
    order = parse_order(SORT_FIELDS.get(sort_by or ""), sort_order, SORT_FIELDS.values())
    return await paginate_and_respond(qs, params.page, params.limit, [order, "-id"], to_wholesaler_read)


@router.get("/stats", response_model=WholesalerStats)
async def wholesaler_stats(user: User = Depends(wholesaler_access)):
    rows = await Wholesaler.filter(shopkeeper_id=user.id)
    live = [w for w in rows if not w.is_deleted]
    return WholesalerStats(
        total=len(live),
        active=sum(1 for w in live if w.is_active),
        inactive=sum(1 for w in live if not w.is_active),
        deleted=len(rows) - len(live),
        with_dues=sum(1 for w in live if w.balance > 0),
        total_outstanding=sum((w.balance for w in live if w.balance > 0), Decimal("0")),
    )


@router.get("/dashboard", response_model=WholesalerDashboard)
async def wholesaler_dashboard(user: User = Depends(wholesaler_access)):
    live = await Wholesaler.filter(shopkeeper_id=user.id, is_deleted=False)
    return WholesalerDashboard(
        total_wholesalers=len(live),
        total_purchased=sum((w.total_billed for w in live), Decimal("0")),
        total_paid=sum((w.total_paid for w in live), Decimal("0")),
        total_outstanding=sum((w.balance for w in live if w.balance > 0), Decimal("0")),
    )


@router.get("/{wholesaler_id}", response_model=WholesalerRead)
async def get_wholesaler(wholesaler_id: int, user: User = Depends(wholesaler_access)):
    obj = await get_entity(user.id, "wholesaler", wholesaler_id, include_deleted=True)
    return respond_item(obj, to_wholesaler_read)


@router.put("/{wholesaler_id}", response_model=WholesalerRead)
async def update_wholesaler(wholesaler_id: int, payload: WholesalerUpdate, user: User = Depends(wholesaler_access)):
    obj = await get_entity(user.id, "wholesaler", wholesaler_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is None and field in ("name", "is_active"):
            continue
        setattr(obj, field, value)
    await obj.save()
    return respond_item(obj, to_wholesaler_read)


@router.delete("/{wholesaler_id}")
async def delete_wholesaler(wholesaler_id: int, user: User = Depends(wholesaler_access)):
    obj = await get_entity(user.id, "wholesaler", wholesaler_id)
    obj.is_deleted = True
    obj.is_active = False
    obj.deleted_at = datetime.now(tz=timezone.utc)
    await obj.save(update_fields=["is_deleted", "is_active", "deleted_at", "updated_at"])
    logger.info(f"[wholesalers] deleted #{obj.id}")
    return {"message": "Wholesaler deleted successfully"}


@router.patch("/{wholesaler_id}/restore", response_model=WholesalerRead)
async def restore_wholesaler(wholesaler_id: int, user: User = Depends(wholesaler_access)):
    obj = await get_entity(user.id, "wholesaler", wholesaler_id, include_deleted=True)
    if not obj.is_deleted:
        raise HTTPException(400, "Wholesaler is not deleted")
    obj.is_deleted = False
    obj.is_active = True
    obj.deleted_at = None
    await obj.save(update_fields=["is_deleted", "is_active", "deleted_at", "updated_at"])
    return respond_item(obj, to_wholesaler_read)


@router.get("/{wholesaler_id}/ledger", response_model=EntityLedger)
async def wholesaler_ledger(
    wholesaler_id: int,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    user: User = Depends(wholesaler_access),
):
    obj = await get_entity(user.id, "wholesaler", wholesaler_id, include_deleted=True)
    return await entity_ledger(user.id, "wholesaler", obj, start_date, end_date)
