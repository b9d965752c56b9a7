# services/reports.py: dues and period dashboards built on the reconciler
from __future__ import annotations
import logging
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from models import Bill
from schemas import AllocatedBill, DueEntry, DuesReport, PeriodDashboard, PeriodEntityRow
from services import config
from services.balances import (
    ENTITY_MODELS,
    allocatable_due,
    allocated_bill,
    bill_record,
    fetch_bills,
    fetch_payments,
    payment_record,
    totals_read,
)
from services.ledger import DateRange, allocate_pro_rata, naive_utc, reconcile_many, sum_totals

logger = logging.getLogger("uvicorn")

WALK_IN = "Walk-in customers"
PAYMENT_METHODS = ("cash", "card", "online")


# ---------- dues ----------

async def _due_entries(shopkeeper_id, kind: str, now: datetime) -> List[DueEntry]:
    model = ENTITY_MODELS[kind]
    entities = await model.filter(shopkeeper_id=shopkeeper_id, is_deleted=False)
    bills = await fetch_bills(shopkeeper_id, kind)
    payments = await fetch_payments(shopkeeper_id, kind)
    per_entity = reconcile_many(
        [bill_record(b) for b in bills],
        [payment_record(p) for p in payments],
        opening_balances={e.id: e.opening_balance for e in entities},
    )

    out: List[DueEntry] = []
    for e in entities:
        due = per_entity[e.id].outstanding_due
        if due <= 0:
            continue
        last = e.last_transaction_date or e.created_at
        days = (now - naive_utc(last)).days if last else None
        out.append(DueEntry(
            id=e.id,
            entity_type=kind,
            name=e.name,
            phone=e.phone,
            outstanding_due=due,
            last_transaction_date=e.last_transaction_date,
            days_since_last_transaction=days,
            overdue=days is not None and days > config.OVERDUE_DAYS,
        ))
    out.sort(key=lambda d: d.outstanding_due, reverse=True)
    return out


async def dues_report(shopkeeper_id, kinds=("customer", "wholesaler")) -> DuesReport:
    """Entities that still owe (or are owed) money, reconciled from their records."""
    now = naive_utc(datetime.now(tz=timezone.utc))
    customers = await _due_entries(shopkeeper_id, "customer", now) if "customer" in kinds else []
    wholesalers = await _due_entries(shopkeeper_id, "wholesaler", now) if "wholesaler" in kinds else []
    customer_dues = sum((d.outstanding_due for d in customers), 0.0)
    wholesaler_dues = sum((d.outstanding_due for d in wholesalers), 0.0)
    return DuesReport(
        customers=customers,
        wholesalers=wholesalers,
        customer_dues=customer_dues,
        wholesaler_dues=wholesaler_dues,
        total_outstanding=customer_dues + wholesaler_dues,
        overdue_count=sum(1 for d in customers + wholesalers if d.overdue),
    )


# ---------- period dashboards ----------

def previous_range(start_date: Optional[date], end_date: Optional[date]) -> Optional[DateRange]:
    """Window of the same length right before [start_date, end_date]."""
    if not start_date or not end_date or end_date < start_date:
        return None
    span = (end_date - start_date).days + 1
    return DateRange.from_dates(start_date - timedelta(days=span), start_date - timedelta(days=1))


async def period_dashboard(
    shopkeeper_id,
    kind: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> PeriodDashboard:
    """
    Reconcile every entity of one kind over a date window. Opening balances
    only count when the window has no start date.
    """
    rng = DateRange.from_dates(start_date, end_date)
    entities = await ENTITY_MODELS[kind].filter(shopkeeper_id=shopkeeper_id)
    names = {e.id: e.name for e in entities}
    openings = {e.id: e.opening_balance for e in entities if not e.is_deleted and e.opening_balance}

    bills = await fetch_bills(shopkeeper_id, kind, date_range=rng)
    payments = await fetch_payments(shopkeeper_id, kind, date_range=rng)
    bill_records = [bill_record(b) for b in bills]
    per_entity = reconcile_many(bill_records, [payment_record(p) for p in payments], openings, rng)

    bills_by_entity: Dict[Optional[int], List[Bill]] = defaultdict(list)
    for b in bills:
        bills_by_entity[b.entity_id].append(b)
    last_seen: Dict[Optional[int], datetime] = {}
    for row in list(bills) + list(payments):
        seen = last_seen.get(row.entity_id)
        if seen is None or naive_utc(row.created_at) > naive_utc(seen):
            last_seen[row.entity_id] = row.created_at

    rows: List[PeriodEntityRow] = []
    allocated: List[AllocatedBill] = []
    for entity_id, totals in per_entity.items():
        if not (totals.bill_count or totals.payment_count or totals.opening_balance):
            continue
        rows.append(PeriodEntityRow(
            entity_id=entity_id,
            entity_name=names.get(entity_id) or WALK_IN,
            entity_type=kind if entity_id is not None else "walk_in",
            total_billed=totals.total_billed,
            total_paid=totals.total_paid,
            outstanding_due=totals.outstanding_due,
            last_transaction_date=last_seen.get(entity_id),
        ))
        entity_bills = bills_by_entity.get(entity_id, [])
        allocations = allocate_pro_rata([bill_record(b) for b in entity_bills], allocatable_due(totals))
        allocated.extend(allocated_bill(b, a.due, a.paid) for b, a in zip(entity_bills, allocations))
    rows.sort(key=lambda r: r.total_billed, reverse=True)
    allocated.sort(key=lambda b: b.created_at, reverse=True)

    breakdown: Dict[str, Decimal] = {m: Decimal("0") for m in PAYMENT_METHODS}
    for p in payments:
        breakdown[p.payment_method] = breakdown.get(p.payment_method, Decimal("0")) + p.amount
    # walk-in sales have no payment rows; their money sits on the bill
    for b in bills_by_entity.get(None, []):
        breakdown[b.payment_method] = breakdown.get(b.payment_method, Decimal("0")) + b.paid_amount

    previous_total: Optional[Decimal] = None
    prev = previous_range(start_date, end_date)
    if prev is not None:
        previous_total = sum((b.total_amount for b in await fetch_bills(shopkeeper_id, kind, date_range=prev)),
                             Decimal("0"))

    return PeriodDashboard(
        start_date=start_date,
        end_date=end_date,
        totals=totals_read(sum_totals(per_entity.values())),
        previous_total_billed=previous_total,
        payment_breakdown={k: float(v) for k, v in breakdown.items()},
        entities=rows,
        bills=allocated,
    )
