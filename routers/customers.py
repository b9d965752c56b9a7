from fastapi import APIRouter, Depends, HTTPException, Query
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional
from tortoise.expressions import Q
import logging

from models import Customer, User
from schemas import (
    CustomerCreate, CustomerUpdate, CustomerRead, CustomerStats, CustomerDashboard, CustomerType, EntityLedger,
)
from api_utils import PageParams, parse_order, to_bool, apply_filter_map, dues_filter, paginate_and_respond, respond_item
from deps import require_feature
from services.balances import get_entity, entity_ledger, to_customer_read

router = APIRouter(prefix="/customers", tags=["customers"])
logger = logging.getLogger("uvicorn")

customer_access = require_feature("due_customers", "normal_customers")

SORT_FIELDS = {
    "name": "name",
    "sales": "total_billed",
    "outstanding": "balance",
    "createdAt": "created_at",
    "lastTransaction": "last_transaction_date",
}

FEATURE_FOR_TYPE = {"due": "due_customers", "normal": "normal_customers"}

# --- helpers ---------------------------------------------------------------

def check_type_enabled(user: User, customer_type: str):
    if not user.has_feature(FEATURE_FOR_TYPE[customer_type]):
        raise HTTPException(403, f"Feature not enabled: {FEATURE_FOR_TYPE[customer_type]}")

# --- routes ----------------------------------------------------------------

@router.post("", response_model=CustomerRead, status_code=201)
async def create_customer(payload: CustomerCreate, user: User = Depends(customer_access)):
    check_type_enabled(user, payload.type)
    obj = await Customer.create(
        shopkeeper_id=user.id,
        name=payload.name,
        type=payload.type,
        phone=payload.phone,
        whatsapp_number=payload.whatsapp_number,
        email=payload.email,
        address=payload.address,
        opening_balance=payload.opening_balance,
        balance=payload.opening_balance,
    )
    logger.info(f"[customers] created #{obj.id} ({obj.type}) opening={obj.opening_balance}")
    return respond_item(obj, to_customer_read, status_code=201)


@router.get("")
async def list_customers(
    params: PageParams = Depends(),
    type: Optional[CustomerType] = None,
    search: Optional[str] = None,
    status: Optional[str] = Query(None, pattern="^(active|inactive)$"),
    dues: Optional[str] = Query(None, alias="duesFilter", pattern="^(all|with_dues|no_dues|advance)$"),
    include_deleted: Optional[str] = Query(None, alias="includeDeleted"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    user: User = Depends(customer_access),
):
    qs = Customer.filter(shopkeeper_id=user.id)
    if not to_bool(include_deleted):
        qs = qs.filter(is_deleted=False)
    fmap = {
        "type": lambda q, v: q.filter(type=v),
        "search": lambda q, v: q.filter(Q(name__icontains=v) | Q(phone__icontains=v) | Q(email__icontains=v)),
        "status": lambda q, v: q.filter(is_active=(v == "active")),
        "dues": dues_filter,
    }
    qs = apply_filter_map(qs, {"type": type, "search": search, "status": status, "dues": dues}, fmap)
    order = parse_order(SORT_FIELDS.get(sort_by or ""), sort_order, SORT_FIELDS.values())
    return await paginate_and_respond(qs, params.page, params.limit, [order, "-id"], to_customer_read)


# fixed paths before /{customer_id}
@router.get("/stats", response_model=CustomerStats)
async def customer_stats(type: Optional[CustomerType] = None, user: User = Depends(customer_access)):
    qs = Customer.filter(shopkeeper_id=user.id)
    if type:
        qs = qs.filter(type=type)
    rows = await qs
    live = [c for c in rows if not c.is_deleted]
    return CustomerStats(
        total=len(live),
        active=sum(1 for c in live if c.is_active),
        inactive=sum(1 for c in live if not c.is_active),
        deleted=len(rows) - len(live),
        with_dues=sum(1 for c in live if c.balance > 0),
        total_outstanding=sum((c.balance for c in live if c.balance > 0), Decimal("0")),
        total_sales=sum((c.total_billed for c in live), Decimal("0")),
        total_paid=sum((c.total_paid for c in live), Decimal("0")),
    )


@router.get("/dashboard", response_model=CustomerDashboard)
async def customer_dashboard(user: User = Depends(require_feature("due_customers"))):
    """Totals over due customers from their cached, reconciled balances."""
    live = await Customer.filter(shopkeeper_id=user.id, type="due", is_deleted=False)
    return CustomerDashboard(
        total_customers=len(live),
        total_sales=sum((c.total_billed for c in live), Decimal("0")),
        total_paid=sum((c.total_paid for c in live), Decimal("0")),
        total_outstanding=sum((c.balance for c in live if c.balance > 0), Decimal("0")),
    )


@router.get("/{customer_id}", response_model=CustomerRead)
async def get_customer(customer_id: int, user: User = Depends(customer_access)):
    obj = await get_entity(user.id, "customer", customer_id, include_deleted=True)
    return respond_item(obj, to_customer_read)


@router.put("/{customer_id}", response_model=CustomerRead)
async def update_customer(customer_id: int, payload: CustomerUpdate, user: User = Depends(customer_access)):
    obj = await get_entity(user.id, "customer", customer_id)
    # opening balance and type are fixed once bills may reference them
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is None and field in ("name", "is_active"):
            continue
        setattr(obj, field, value)
    await obj.save()
    return respond_item(obj, to_customer_read)


@router.delete("/{customer_id}")
async def delete_customer(customer_id: int, user: User = Depends(customer_access)):
    obj = await get_entity(user.id, "customer", customer_id)
    obj.is_deleted = True
    obj.is_active = False
    obj.deleted_at = datetime.now(tz=timezone.utc)
    await obj.save(update_fields=["is_deleted", "is_active", "deleted_at", "updated_at"])
    logger.info(f"[customers] deleted #{obj.id}")
    return {"message": "Customer deleted successfully"}


@router.patch("/{customer_id}/restore", response_model=CustomerRead)
async def restore_customer(customer_id: int, user: User = Depends(customer_access)):
    obj = await get_entity(user.id, "customer", customer_id, include_deleted=True)
    if not obj.is_deleted:
        raise HTTPException(400, "Customer is not deleted")
    obj.is_deleted = False
    obj.is_active = True
    obj.deleted_at = None
    await obj.save(update_fields=["is_deleted", "is_active", "deleted_at", "updated_at"])
    return respond_item(obj, to_customer_read)


@router.get("/{customer_id}/ledger", response_model=EntityLedger)
async def customer_ledger(
    customer_id: int,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    user: User = Depends(customer_access),
):
    obj = await get_entity(user.id, "customer", customer_id, include_deleted=True)
    return await entity_ledger(user.id, "customer", obj, start_date, end_date)
