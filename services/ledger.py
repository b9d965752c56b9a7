# services/ledger.py: due-balance reconciliation (pure, no I/O)
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

ZERO = Decimal("0")
CENT = Decimal("0.01")


class LedgerError(ValueError):
    """Record set cannot be reconciled (e.g. a negative amount slipped past validation)."""


def to_decimal(value: Any, *, label: str = "amount") -> Decimal:
    """
    Coerce a stored/serialized amount to Decimal.
    None counts as zero; negatives are rejected.
    """
    if value is None or value == "":
        return ZERO
    d = value if isinstance(value, Decimal) else Decimal(str(value))
    if d < 0:
        raise LedgerError(f"{label} must not be negative (got {d})")
    return d


def _signed(value: Any) -> Decimal:
    if value is None or value == "":
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _cents(d: Decimal) -> Decimal:
    return d.quantize(CENT, rounding=ROUND_HALF_UP)


def naive_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts
    return ts.astimezone(timezone.utc).replace(tzinfo=None)


# ---------- record types ----------

@dataclass(frozen=True)
class BillRecord:
    total_amount: Any
    paid_amount: Any = None
    created_at: Optional[datetime] = None
    id: Optional[Hashable] = None
    entity_id: Optional[Hashable] = None


@dataclass(frozen=True)
class PaymentRecord:
    amount: Any
    created_at: Optional[datetime] = None
    id: Optional[Hashable] = None
    entity_id: Optional[Hashable] = None


@dataclass(frozen=True)
class DateRange:
    """Inclusive [start, end]; a missing bound is open."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @classmethod
    def from_dates(cls, start_date: Optional[date], end_date: Optional[date]) -> "DateRange":
        start = datetime.combine(start_date, time.min) if start_date else None
        end = datetime.combine(end_date, time.max) if end_date else None
        return cls(start=start, end=end)

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None

    def contains(self, ts: Optional[datetime]) -> bool:
        if self.is_open:
            return True
        if ts is None:
            # undated records only belong to an unbounded window
            return False
        t = naive_utc(ts)
        if self.start is not None and t < naive_utc(self.start):
            return False
        if self.end is not None and t > naive_utc(self.end):
            return False
        return True


@dataclass(frozen=True)
class LedgerTotals:
    opening_balance: Decimal = ZERO
    total_billed: Decimal = ZERO
    bill_paid: Decimal = ZERO
    payments_paid: Decimal = ZERO
    total_paid: Decimal = ZERO
    balance: Decimal = ZERO          # signed; negative = advance
    outstanding_due: Decimal = ZERO  # max(0, balance)
    bill_count: int = 0
    payment_count: int = 0

    @property
    def advance(self) -> Decimal:
        return -self.balance if self.balance < 0 else ZERO

    def as_dict(self) -> Dict[str, Any]:
        return {
            "opening_balance": float(self.opening_balance),
            "total_billed": float(self.total_billed),
            "bill_paid": float(self.bill_paid),
            "payments_paid": float(self.payments_paid),
            "total_paid": float(self.total_paid),
            "balance": float(self.balance),
            "outstanding_due": float(self.outstanding_due),
            "advance": float(self.advance),
            "bill_count": self.bill_count,
            "payment_count": self.payment_count,
        }


@dataclass(frozen=True)
class BillAllocation:
    bill: BillRecord
    due: Decimal
    paid: Decimal


# ---------- reconciliation ----------

def reconcile(
    opening_balance: Any,
    bills: Iterable[BillRecord],
    payments: Iterable[PaymentRecord],
    date_range: Optional[DateRange] = None,
) -> LedgerTotals:
    """
    Reconcile one entity's opening balance, bills and payments.

    total_paid takes the larger of the bill-recorded paid amounts and the
    payment records: older rows only carried bill.paid_amount, newer ones also
    write a Payment for the same money, so summing both would double count.
    The opening balance only counts for windows without a lower bound.
    """
    rng = date_range or DateRange()
    opening = _signed(opening_balance) if rng.start is None else ZERO

    total_billed = bill_paid = payments_paid = ZERO
    n_bills = n_payments = 0
    for b in bills:
        if not rng.contains(b.created_at):
            continue
        total_billed += to_decimal(b.total_amount, label="bill total")
        bill_paid += to_decimal(b.paid_amount, label="bill paid amount")
        n_bills += 1
    for p in payments:
        if not rng.contains(p.created_at):
            continue
        payments_paid += to_decimal(p.amount, label="payment amount")
        n_payments += 1

    total_paid = max(bill_paid, payments_paid)
    balance = opening + total_billed - total_paid
    return LedgerTotals(
        opening_balance=opening,
        total_billed=total_billed,
        bill_paid=bill_paid,
        payments_paid=payments_paid,
        total_paid=total_paid,
        balance=balance,
        outstanding_due=max(ZERO, balance),
        bill_count=n_bills,
        payment_count=n_payments,
    )


def bill_due(bill: BillRecord) -> Decimal:
    """Due recorded on the bill itself at creation time."""
    return max(ZERO, to_decimal(bill.total_amount) - to_decimal(bill.paid_amount))


def allocate_pro_rata(bills: Sequence[BillRecord], total_due: Any) -> List[BillAllocation]:
    """
    Spread an entity-level due over its bills by weight of bill total.

    Payments are not attributed to bills, so this is a display approximation:
    the per-bill figures are never persisted. The last bill takes the
    rounding remainder so the shares add up to the rounded due.
    """
    due_total = _cents(max(ZERO, _signed(total_due)))
    billed = sum((to_decimal(b.total_amount) for b in bills), ZERO)
    out: List[BillAllocation] = []
    allocated = ZERO
    for i, b in enumerate(bills):
        amount = to_decimal(b.total_amount)
        if billed <= 0:
            share = ZERO
        elif i == len(bills) - 1:
            share = due_total - allocated
        else:
            share = _cents(due_total * amount / billed)
        allocated += share
        due = max(ZERO, share)
        paid = max(ZERO, _cents(amount - due))
        out.append(BillAllocation(bill=b, due=due, paid=paid))
    return out


# ---------- grouping (period dashboards) ----------

@dataclass
class _Bucket:
    bills: List[BillRecord] = field(default_factory=list)
    payments: List[PaymentRecord] = field(default_factory=list)


def _group_by_entity(
    bills: Iterable[BillRecord],
    payments: Iterable[PaymentRecord],
) -> Dict[Hashable, Tuple[List[BillRecord], List[PaymentRecord]]]:
    """Split mixed record sets by entity_id. Payments for entities without bills are kept."""
    buckets: Dict[Hashable, _Bucket] = {}
    for b in bills:
        buckets.setdefault(b.entity_id, _Bucket()).bills.append(b)
    for p in payments:
        buckets.setdefault(p.entity_id, _Bucket()).payments.append(p)
    return {k: (v.bills, v.payments) for k, v in buckets.items()}


def reconcile_many(
    bills: Iterable[BillRecord],
    payments: Iterable[PaymentRecord],
    opening_balances: Optional[Dict[Hashable, Any]] = None,
    date_range: Optional[DateRange] = None,
) -> Dict[Hashable, LedgerTotals]:
    opening_balances = opening_balances or {}
    grouped = _group_by_entity(bills, payments)
    for entity_id in opening_balances:
        grouped.setdefault(entity_id, ([], []))
    return {
        entity_id: reconcile(opening_balances.get(entity_id), b, p, date_range)
        for entity_id, (b, p) in grouped.items()
    }


def sum_totals(totals: Iterable[LedgerTotals]) -> LedgerTotals:
    """
    Aggregate per-entity totals. outstanding_due is the sum of clamped dues so
    one entity's advance does not hide another's debt.
    """
    acc = dict(opening=ZERO, billed=ZERO, bill_paid=ZERO, pay_paid=ZERO, paid=ZERO, balance=ZERO, due=ZERO)
    n_bills = n_payments = 0
    for t in totals:
        acc["opening"] += t.opening_balance
        acc["billed"] += t.total_billed
        acc["bill_paid"] += t.bill_paid
        acc["pay_paid"] += t.payments_paid
        acc["paid"] += t.total_paid
        acc["balance"] += t.balance
        acc["due"] += t.outstanding_due
        n_bills += t.bill_count
        n_payments += t.payment_count
    return LedgerTotals(
        opening_balance=acc["opening"],
        total_billed=acc["billed"],
        bill_paid=acc["bill_paid"],
        payments_paid=acc["pay_paid"],
        total_paid=acc["paid"],
        balance=acc["balance"],
        outstanding_due=acc["due"],
        bill_count=n_bills,
        payment_count=n_payments,
    )
