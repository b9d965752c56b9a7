# services/balances.py: DB-backed side of the ledger (load records, cache totals, resync)
from __future__ import annotations
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple, Type

from tortoise.exceptions import BaseORMException
from tortoise.queryset import QuerySet
from tortoise.transactions import in_transaction

from models import Bill, Customer, LedgerEntity, Payment, Wholesaler
from schemas import AllocatedBill, BillRead, CustomerRead, EntityLedger, LedgerTotalsRead, PaymentRead, WholesalerRead
from services.ledger import (
    BillRecord,
    DateRange,
    LedgerTotals,
    ZERO,
    PaymentRecord,
    allocate_pro_rata,
    reconcile,
)

logger = logging.getLogger("uvicorn")

ENTITY_MODELS: Dict[str, Type[LedgerEntity]] = {"customer": Customer, "wholesaler": Wholesaler}
BILL_ENTITY_TYPES: Dict[str, Tuple[str, ...]] = {
    "customer": ("due_customer", "normal_customer"),
    "wholesaler": ("wholesaler",),
}


class LedgerDataUnavailable(Exception):
    """Bills or payments could not be read. Never to be reported as an empty ledger."""


class EntityNotFound(LookupError):
    pass


class EntityTypeMismatch(ValueError):
    """A bill names a customer of the other type (due vs normal)."""


def kind_of_bill_entity(entity_type: str) -> str:
    return "wholesaler" if entity_type == "wholesaler" else "customer"


def bill_record(b: Bill) -> BillRecord:
    return BillRecord(
        total_amount=b.total_amount,
        paid_amount=b.paid_amount,
        created_at=b.created_at,
        id=b.id,
        entity_id=b.entity_id,
    )


def payment_record(p: Payment) -> PaymentRecord:
    return PaymentRecord(amount=p.amount, created_at=p.created_at, id=p.id, entity_id=p.entity_id)


def _aware(ts: datetime) -> datetime:
    # stored timestamps are UTC-aware; bounds must be encoded the same way
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _in_range(qs: QuerySet, date_range: Optional[DateRange]) -> QuerySet:
    if date_range is None:
        return qs
    if date_range.start is not None:
        qs = qs.filter(created_at__gte=_aware(date_range.start))
    if date_range.end is not None:
        qs = qs.filter(created_at__lte=_aware(date_range.end))
    return qs


# ---------- record loading ----------

async def fetch_bills(
    shopkeeper_id,
    kind: str,
    entity_id: Optional[int] = None,
    date_range: Optional[DateRange] = None,
) -> List[Bill]:
    try:
        qs = Bill.filter(shopkeeper_id=shopkeeper_id, entity_type__in=list(BILL_ENTITY_TYPES[kind]))
        if entity_id is not None:
            qs = qs.filter(entity_id=entity_id)
        return await _in_range(qs, date_range).order_by("-created_at", "-id")
    except BaseORMException as e:
        raise LedgerDataUnavailable(f"bills unavailable: {e}") from e


async def fetch_payments(
    shopkeeper_id,
    kind: str,
    entity_id: Optional[int] = None,
    date_range: Optional[DateRange] = None,
) -> List[Payment]:
    try:
        qs = Payment.filter(shopkeeper_id=shopkeeper_id, entity_type=kind)
        if entity_id is not None:
            qs = qs.filter(entity_id=entity_id)
        return await _in_range(qs, date_range).order_by("-created_at", "-id")
    except BaseORMException as e:
        raise LedgerDataUnavailable(f"payments unavailable: {e}") from e


async def load_entity_records(
    shopkeeper_id,
    kind: str,
    entity_id: Optional[int] = None,
    date_range: Optional[DateRange] = None,
) -> Tuple[List[BillRecord], List[PaymentRecord]]:
    bills = await fetch_bills(shopkeeper_id, kind, entity_id, date_range)
    payments = await fetch_payments(shopkeeper_id, kind, entity_id, date_range)
    return [bill_record(b) for b in bills], [payment_record(p) for p in payments]


async def get_entity(shopkeeper_id, kind: str, entity_id: int, *, include_deleted: bool = False,
                     for_update: bool = False) -> LedgerEntity:
    qs = ENTITY_MODELS[kind].filter(id=entity_id, shopkeeper_id=shopkeeper_id)
    if not include_deleted:
        qs = qs.filter(is_deleted=False)
    if for_update:
        qs = qs.select_for_update()
    entity = await qs.first()
    if not entity:
        raise EntityNotFound(f"{kind.capitalize()} not found")
    return entity


# ---------- cached totals ----------

def _latest(*stamps: Optional[datetime]) -> Optional[datetime]:
    present = [s for s in stamps if s is not None]
    return max(present) if present else None


async def refresh_entity_totals(entity: LedgerEntity, kind: str) -> LedgerTotals:
    """
    Recompute the cached totals of one entity from its stored records.
    Call inside the same transaction as the write that changed them.
    """
    bills, payments = await load_entity_records(entity.shopkeeper_id, kind, entity.id)
    totals = reconcile(entity.opening_balance, bills, payments)

    entity.total_billed = totals.total_billed
    entity.total_paid = totals.total_paid
    entity.balance = totals.balance
    # lists are newest first
    entity.last_payment_date = payments[0].created_at if payments else None
    entity.last_transaction_date = _latest(
        bills[0].created_at if bills else None,
        entity.last_payment_date,
    )
    await entity.save(update_fields=[
        "total_billed", "total_paid", "balance", "last_payment_date", "last_transaction_date", "updated_at",
    ])
    return totals


async def resync_balances(shopkeeper_id=None) -> Dict[str, int]:
    """
    Recompute every entity's cached totals; returns how many drifted from
    what the records say.
    """
    checked = drifted = 0
    for kind, model in ENTITY_MODELS.items():
        qs = model.all() if shopkeeper_id is None else model.filter(shopkeeper_id=shopkeeper_id)
        for entity_id, owner_id in await qs.values_list("id", "shopkeeper_id"):
            # lock the row so a concurrent bill or payment cannot interleave with the refresh
            async with in_transaction():
                entity = await get_entity(owner_id, kind, entity_id, include_deleted=True, for_update=True)
                before = (Decimal(entity.total_billed), Decimal(entity.total_paid), Decimal(entity.balance))
                totals = await refresh_entity_totals(entity, kind)
            checked += 1
            if before != (totals.total_billed, totals.total_paid, totals.balance):
                drifted += 1
                logger.warning(
                    f"[ledger] drift {kind}#{entity.id}: cached billed/paid/balance={before} "
                    f"-> {totals.total_billed}/{totals.total_paid}/{totals.balance}"
                )
    logger.info(f"[ledger] resync checked={checked} drifted={drifted}")
    return {"entities": checked, "drifted": drifted}


# ---------- per-entity ledger view ----------

def allocatable_due(totals: LedgerTotals) -> Decimal:
    """
    Part of the due that sits on bills: what was billed and not yet paid.
    The opening balance is left out, so payments reduce bill dues first.
    """
    return max(ZERO, totals.total_billed - totals.total_paid)


def totals_read(t: LedgerTotals) -> LedgerTotalsRead:
    return LedgerTotalsRead(**t.as_dict())


def allocated_bill(bill: Bill, due: Decimal, paid: Decimal) -> AllocatedBill:
    return AllocatedBill(**BillRead.model_validate(bill).model_dump(), allocated_due=due, allocated_paid=paid)


async def entity_ledger(
    shopkeeper_id,
    kind: str,
    entity: LedgerEntity,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> EntityLedger:
    """Reconciled totals, bills with their pro-rata share of the due, and payment history."""
    date_range = DateRange.from_dates(start_date, end_date)
    bills = await fetch_bills(shopkeeper_id, kind, entity.id, date_range)
    payments = await fetch_payments(shopkeeper_id, kind, entity.id, date_range)
    records = [bill_record(b) for b in bills]
    totals = reconcile(entity.opening_balance, records, [payment_record(p) for p in payments], date_range)
    bills_due = allocatable_due(totals)
    allocations = allocate_pro_rata(records, bills_due)
    return EntityLedger(
        entity_type=kind,
        entity_id=entity.id,
        entity_name=entity.name,
        start_date=start_date,
        end_date=end_date,
        totals=totals_read(totals),
        opening_due=max(ZERO, totals.outstanding_due - bills_due),
        bills=[allocated_bill(b, a.due, a.paid) for b, a in zip(bills, allocations)],
        payments=[PaymentRead.model_validate(p) for p in payments],
    )


# ---------- read models ----------

def entity_fields(entity: LedgerEntity) -> Dict:
    """ORM row plus the derived due / advance split of its signed balance."""
    balance = Decimal(entity.balance)
    data = {k: getattr(entity, k) for k in (
        "id", "name", "phone", "whatsapp_number", "email", "address",
        "opening_balance", "total_billed", "total_paid", "balance",
        "last_payment_date", "last_transaction_date",
        "is_active", "is_deleted", "created_at", "updated_at",
    )}
    data["outstanding_due"] = max(balance, Decimal("0"))
    data["advance"] = max(-balance, Decimal("0"))
    return data


def to_customer_read(c: Customer) -> CustomerRead:
    return CustomerRead(**entity_fields(c), type=c.type, total_sales=c.total_billed)


def to_wholesaler_read(w: Wholesaler) -> WholesalerRead:
    return WholesalerRead(
        **entity_fields(w), place=w.place, gst_number=w.gst_number, total_purchased=w.total_billed,
    )
