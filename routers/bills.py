from fastapi import APIRouter, Depends, HTTPException, Query
from datetime import date, datetime, timezone
from typing import Optional
from tortoise.expressions import Q

from models import Bill, User
from schemas import BillCreate, BillRead, BillStats, BillType, BillEntityType, PaymentMethod
from api_utils import PageParams, apply_filter_map, paginate_and_respond, respond_item
from utils import day_start, day_end
from deps import require_feature
from services.billing import create_bill

router = APIRouter(prefix="/bills", tags=["bills"])

billing_access = require_feature("billing")

# bill entity type -> feature that must be on to bill that kind of entity
ENTITY_FEATURE = {
    "wholesaler": "wholesalers",
    "due_customer": "due_customers",
    "normal_customer": "normal_customers",
}


def to_bill_read(m: Bill) -> BillRead:
    return BillRead.model_validate(m)


@router.post("", response_model=BillRead, status_code=201)
async def create(payload: BillCreate, user: User = Depends(billing_access)):
    feature = ENTITY_FEATURE[payload.entity_type]
    if not user.has_feature(feature):
        raise HTTPException(403, f"Feature not enabled: {feature}")
    bill = await create_bill(user, payload)
    return respond_item(bill, to_bill_read, status_code=201)


@router.get("")
async def list_bills(
    params: PageParams = Depends(),
    bill_type: Optional[BillType] = Query(None, alias="billType"),
    entity_type: Optional[BillEntityType] = Query(None, alias="entityType"),
    entity_id: Optional[int] = Query(None, alias="entityId"),
    payment_method: Optional[PaymentMethod] = Query(None, alias="paymentMethod"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    search: Optional[str] = None,
    user: User = Depends(billing_access),
):
    qs = Bill.filter(shopkeeper_id=user.id)
    fmap = {
        "bill_type": lambda q, v: q.filter(bill_type=v),
        "entity_type": lambda q, v: q.filter(entity_type=v),
        "entity_id": lambda q, v: q.filter(entity_id=v),
        "payment_method": lambda q, v: q.filter(payment_method=v),
        "start_date": lambda q, v: q.filter(created_at__gte=day_start(v)),
        "end_date": lambda q, v: q.filter(created_at__lte=day_end(v)),
        "search": lambda q, v: q.filter(Q(bill_number__icontains=v) | Q(entity_name__icontains=v)),
    }
    filters = {
        "bill_type": bill_type, "entity_type": entity_type, "entity_id": entity_id,
        "payment_method": payment_method, "start_date": start_date, "end_date": end_date, "search": search,
    }
    qs = apply_filter_map(qs, filters, fmap)
    return await paginate_and_respond(qs, params.page, params.limit, ["-created_at", "-id"], to_bill_read)


@router.get("/recent", response_model=list[BillRead])
async def recent_bills(limit: int = Query(10, ge=1, le=100), user: User = Depends(billing_access)):
    rows = await Bill.filter(shopkeeper_id=user.id).order_by("-created_at", "-id").limit(limit)
    return [to_bill_read(b) for b in rows]


@router.get("/stats", response_model=BillStats)
async def bill_stats(user: User = Depends(billing_access)):
    qs = Bill.filter(shopkeeper_id=user.id)
    today = datetime.now(tz=timezone.utc).date()
    return BillStats(
        total_bills=await qs.count(),
        total_purchases=await qs.filter(bill_type="purchase").count(),
        total_sales=await qs.filter(bill_type="sale").count(),
        today_bills=await qs.filter(created_at__gte=day_start(today), created_at__lte=day_end(today)).count(),
    )


@router.get("/number/{bill_number}", response_model=BillRead)
async def get_by_number(bill_number: str, user: User = Depends(billing_access)):
    obj = await Bill.get_or_none(bill_number=bill_number, shopkeeper_id=user.id)
    if not obj:
        raise HTTPException(404, "Bill not found")
    return respond_item(obj, to_bill_read)


@router.get("/{bill_id}", response_model=BillRead)
async def get_bill(bill_id: int, user: User = Depends(billing_access)):
    obj = await Bill.get_or_none(id=bill_id, shopkeeper_id=user.id)
    if not obj:
        raise HTTPException(404, "Bill not found")
    return respond_item(obj, to_bill_read)
