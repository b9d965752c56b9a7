# services/billing.py: the only write path for bills and payments
from __future__ import annotations
import logging
from typing import Optional

from tortoise.transactions import in_transaction

from models import Bill, Payment, User
from schemas import BillCreate, PaymentCreate
from services.balances import (
    BILL_ENTITY_TYPES,
    EntityNotFound,
    EntityTypeMismatch,
    get_entity,
    kind_of_bill_entity,
    refresh_entity_totals,
)
from services.ledger import BillRecord, bill_due
from utils import generate_bill_number

logger = logging.getLogger("uvicorn")

# bill entity type -> Customer.type it may be linked to
CUSTOMER_TYPE_FOR_BILL = {"due_customer": "due", "normal_customer": "normal"}


async def create_bill(user: User, payload: BillCreate) -> Bill:
    """
    Insert a bill. Money paid at the counter is also written as a Payment
    linked to the bill, so payment rows are the full settlement history.
    Entity totals are recomputed in the same transaction.
    """
    kind = kind_of_bill_entity(payload.entity_type)
    async with in_transaction():
        entity = None
        if payload.entity_id is not None:
            entity = await get_entity(user.id, kind, payload.entity_id, for_update=True)
            expected = CUSTOMER_TYPE_FOR_BILL.get(payload.entity_type)
            if expected and entity.type != expected:
                raise EntityTypeMismatch(f"{payload.entity_type} bill cannot target a {entity.type} customer")

        bill = await Bill.create(
            shopkeeper_id=user.id,
            bill_number=generate_bill_number(),
            bill_type=payload.bill_type,
            entity_type=payload.entity_type,
            entity_id=entity.id if entity else None,
            entity_name=entity.name if entity else payload.entity_name,
            total_amount=payload.total_amount,
            paid_amount=payload.paid_amount,
            due_amount=bill_due(BillRecord(payload.total_amount, payload.paid_amount)),
            payment_method=payload.payment_method,
            items=[i.model_dump() for i in payload.items],
            notes=payload.notes,
        )

        if entity is not None and payload.paid_amount > 0:
            await Payment.create(
                shopkeeper_id=user.id,
                entity_type=kind,
                entity_id=entity.id,
                entity_name=entity.name,
                amount=payload.paid_amount,
                payment_method=payload.payment_method,
                bill_id=bill.id,
                notes=f"Payment for bill {bill.bill_number}",
            )

        if entity is not None:
            await refresh_entity_totals(entity, kind)

    logger.info(f"[billing] {bill.bill_type} {bill.bill_number} total={bill.total_amount} paid={bill.paid_amount}")
    return bill


async def record_payment(user: User, payload: PaymentCreate) -> Payment:
    kind = payload.entity_type
    async with in_transaction():
        entity = await get_entity(user.id, kind, payload.entity_id, for_update=True)

        bill_id: Optional[int] = None
        if payload.bill_id is not None:
            bill = await Bill.get_or_none(
                id=payload.bill_id,
                shopkeeper_id=user.id,
                entity_id=entity.id,
                entity_type__in=list(BILL_ENTITY_TYPES[kind]),
            )
            if not bill:
                raise EntityNotFound("Bill not found for this entity")
            bill_id = bill.id

        payment = await Payment.create(
            shopkeeper_id=user.id,
            entity_type=kind,
            entity_id=entity.id,
            entity_name=entity.name,
            amount=payload.amount,
            payment_method=payload.payment_method,
            bill_id=bill_id,
            notes=payload.notes,
        )
        await refresh_entity_totals(entity, kind)

    logger.info(f"[billing] payment {kind}#{entity.id} amount={payment.amount}")
    return payment
