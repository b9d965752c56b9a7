from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional
from tortoise.expressions import Q
import logging
import uuid

from models import User, ROLE_SHOPKEEPER, default_features
from schemas import (
    ShopkeeperCreate, ShopkeeperUpdate, ShopkeeperRead, ShopkeeperStats, ShopkeeperUsage, Features,
)
from api_utils import PageParams, parse_order, apply_filter_map, paginate_and_respond, respond_item
from deps import get_current_admin_user, pwd_ctx

router = APIRouter(prefix="/admin/shopkeepers", tags=["admin"], dependencies=[Depends(get_current_admin_user)])
logger = logging.getLogger("uvicorn")

# --- helpers ---------------------------------------------------------------

def to_shopkeeper_read(m: User) -> ShopkeeperRead:
    return ShopkeeperRead.model_validate(m)

async def usage_of(m: User) -> ShopkeeperUsage:
    return ShopkeeperUsage(
        customers=await m.customers.filter(is_deleted=False).count(),
        wholesalers=await m.wholesalers.filter(is_deleted=False).count(),
        bills=await m.bills.all().count(),
        payments=await m.payments.all().count(),
        invoices=await m.invoices.filter(is_deleted=False).count(),
    )

async def get_shopkeeper_or_404(shopkeeper_id: uuid.UUID) -> User:
    obj = await User.get_or_none(id=shopkeeper_id, role=ROLE_SHOPKEEPER)
    if not obj:
        raise HTTPException(404, "Shopkeeper not found")
    return obj

# --- routes ----------------------------------------------------------------

@router.post("", response_model=ShopkeeperRead, status_code=201)
async def create_shopkeeper(payload: ShopkeeperCreate):
    email = str(payload.email).lower()
    if await User.exists(email=email):
        raise HTTPException(409, "Email already registered")
    features = payload.features.model_dump() if payload.features else default_features()
    obj = await User.create(
        email=email,
        hashed_password=pwd_ctx.hash(payload.password),
        name=payload.name,
        role=ROLE_SHOPKEEPER,
        phone=payload.phone,
        business_name=payload.business_name,
        address=payload.address,
        place=payload.place,
        features=features,
    )
    logger.info(f"[admin] created shopkeeper {email}")
    return respond_item(obj, to_shopkeeper_read, status_code=201)


@router.get("")
async def list_shopkeepers(
    params: PageParams = Depends(),
    search: Optional[str] = None,
    status: Optional[str] = Query(None, pattern="^(active|inactive)$"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
):
    qs = User.filter(role=ROLE_SHOPKEEPER)
    fmap = {
        "search": lambda q, v: q.filter(Q(name__icontains=v) | Q(email__icontains=v) | Q(business_name__icontains=v)),
        "status": lambda q, v: q.filter(is_active=(v == "active")),
    }
    qs = apply_filter_map(qs, {"search": search, "status": status}, fmap)
    order = parse_order(sort_by, sort_order, ["created_at", "name", "email", "business_name"])
    return await paginate_and_respond(qs, params.page, params.limit, order, to_shopkeeper_read)


# /stats before /{id}
@router.get("/stats", response_model=ShopkeeperStats)
async def shopkeeper_stats():
    total = await User.filter(role=ROLE_SHOPKEEPER).count()
    active = await User.filter(role=ROLE_SHOPKEEPER, is_active=True).count()
    return ShopkeeperStats(total=total, active=active, inactive=total - active)


@router.get("/{shopkeeper_id:uuid}", response_model=ShopkeeperRead)
async def get_shopkeeper(shopkeeper_id: uuid.UUID):
    obj = await get_shopkeeper_or_404(shopkeeper_id)
    out = to_shopkeeper_read(obj)
    out.usage = await usage_of(obj)
    return out


@router.put("/{shopkeeper_id:uuid}", response_model=ShopkeeperRead)
async def update_shopkeeper(shopkeeper_id: uuid.UUID, payload: ShopkeeperUpdate):
    obj = await get_shopkeeper_or_404(shopkeeper_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is None and field in ("name", "is_active"):
            continue
        setattr(obj, field, value)
    if obj.is_active is False:
        obj.refresh_token = None
    await obj.save()
    return respond_item(obj, to_shopkeeper_read)


@router.put("/{shopkeeper_id:uuid}/features", response_model=ShopkeeperRead)
async def update_features(shopkeeper_id: uuid.UUID, payload: Features):
    obj = await get_shopkeeper_or_404(shopkeeper_id)
    obj.features = payload.model_dump()
    await obj.save(update_fields=["features", "updated_at"])
    return respond_item(obj, to_shopkeeper_read)


@router.patch("/{shopkeeper_id:uuid}/toggle-status", response_model=ShopkeeperRead)
async def toggle_status(shopkeeper_id: uuid.UUID):
    obj = await get_shopkeeper_or_404(shopkeeper_id)
    obj.is_active = not obj.is_active
    if not obj.is_active:
        # drop the session so the refresh token cannot mint new access tokens
        obj.refresh_token = None
    await obj.save(update_fields=["is_active", "refresh_token", "updated_at"])
    logger.info(f"[admin] shopkeeper {obj.email} active={obj.is_active}")
    return respond_item(obj, to_shopkeeper_read)


@router.delete("/{shopkeeper_id:uuid}")
async def delete_shopkeeper(shopkeeper_id: uuid.UUID):
    obj = await get_shopkeeper_or_404(shopkeeper_id)
    await obj.delete()
    logger.info(f"[admin] deleted shopkeeper {obj.email}")
    return {"message": "Shopkeeper deleted successfully"}
