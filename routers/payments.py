from fastapi import APIRouter, Depends, HTTPException, Query
from datetime import date
from typing import Optional

from models import Payment, User
from schemas import PaymentCreate, PaymentRead, PaymentEntityType, PaymentMethod
from api_utils import PageParams, apply_filter_map, paginate_and_respond, respond_item
from deps import get_current_shopkeeper
from utils import day_start, day_end
from services.billing import record_payment

router = APIRouter(prefix="/payments", tags=["payments"])

ENTITY_FEATURES = {
    "customer": ("due_customers", "normal_customers"),
    "wholesaler": ("wholesalers",),
}


def to_payment_read(m: Payment) -> PaymentRead:
    return PaymentRead.model_validate(m)


@router.post("", response_model=PaymentRead, status_code=201)
async def create(payload: PaymentCreate, user: User = Depends(get_current_shopkeeper)):
    if not any(user.has_feature(f) for f in ENTITY_FEATURES[payload.entity_type]):
        raise HTTPException(403, f"Feature not enabled: {' / '.join(ENTITY_FEATURES[payload.entity_type])}")
    payment = await record_payment(user, payload)
    return respond_item(payment, to_payment_read, status_code=201)


@router.get("")
async def list_payments(
    params: PageParams = Depends(),
    entity_type: Optional[PaymentEntityType] = Query(None, alias="entityType"),
    entity_id: Optional[int] = Query(None, alias="entityId"),
    bill_id: Optional[int] = Query(None, alias="billId"),
    payment_method: Optional[PaymentMethod] = Query(None, alias="paymentMethod"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    user: User = Depends(get_current_shopkeeper),
):
    qs = Payment.filter(shopkeeper_id=user.id)
    fmap = {
        "entity_type": lambda q, v: q.filter(entity_type=v),
        "entity_id": lambda q, v: q.filter(entity_id=v),
        "bill_id": lambda q, v: q.filter(bill_id=v),
        "payment_method": lambda q, v: q.filter(payment_method=v),
        "start_date": lambda q, v: q.filter(created_at__gte=day_start(v)),
        "end_date": lambda q, v: q.filter(created_at__lte=day_end(v)),
    }
    filters = {
        "entity_type": entity_type, "entity_id": entity_id, "bill_id": bill_id,
        "payment_method": payment_method, "start_date": start_date, "end_date": end_date,
    }
    qs = apply_filter_map(qs, filters, fmap)
    return await paginate_and_respond(qs, params.page, params.limit, ["-created_at", "-id"], to_payment_read)


@router.get("/{payment_id}", response_model=PaymentRead)
async def get_payment(payment_id: int, user: User = Depends(get_current_shopkeeper)):
    obj = await Payment.get_or_none(id=payment_id, shopkeeper_id=user.id)
    if not obj:
        raise HTTPException(404, "Payment not found")
    return respond_item(obj, to_payment_read)
