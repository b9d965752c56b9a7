# services/invoicing.py: invoice amount computation
from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _q(d: Decimal) -> Decimal:
    return d.quantize(CENT, rounding=ROUND_HALF_UP)


def price_items(items: List[Any]) -> List[Dict[str, Any]]:
    """Line amount is always quantity * rate; a client-sent amount is ignored."""
    out = []
    for it in items:
        row = it.model_dump(exclude_none=True) if hasattr(it, "model_dump") else dict(it)
        qty = Decimal(str(row.get("quantity", 0)))
        rate = Decimal(str(row.get("rate", 0)))
        row["quantity"] = float(qty)
        row["rate"] = float(rate)
        row["amount"] = float(_q(qty * rate))
        if row.get("tax_rate") is not None:
            row["tax_rate"] = float(row["tax_rate"])
        out.append(row)
    return out


def compute_amounts(
    items: List[Dict[str, Any]],
    tax_rate: Optional[Decimal] = None,
    tax_amount: Optional[Decimal] = None,
    discount: Optional[Decimal] = None,
    discount_type: Optional[str] = None,
) -> Dict[str, Decimal]:
    """
    subtotal = sum of line amounts
    discount: fixed amount, or percent of subtotal when discount_type="percentage"
    tax: given tax_amount, else tax_rate percent of the discounted subtotal
    """
    subtotal = sum((Decimal(str(i["amount"])) for i in items), ZERO)

    discount_value = ZERO
    if discount:
        if discount_type == "percentage":
            discount_value = _q(subtotal * Decimal(discount) / HUNDRED)
        else:
            discount_value = Decimal(discount)
    discount_value = min(discount_value, subtotal)
    taxable = subtotal - discount_value

    if tax_amount is not None:
        tax = Decimal(tax_amount)
    elif tax_rate:
        tax = _q(taxable * Decimal(tax_rate) / HUNDRED)
    else:
        tax = ZERO

    return {
        "subtotal": _q(subtotal),
        "discount_amount": _q(discount_value),
        "tax_amount": _q(tax),
        "total": _q(taxable + tax),
    }
