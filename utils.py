import secrets
from datetime import date, datetime, time, timezone


def generate_number(prefix: str) -> str:
    """e.g. BILL-20250114-3F9A2C; random tail keeps concurrent creates apart."""
    stamp = datetime.now(tz=timezone.utc).strftime("%Y%m%d")
    return f"{prefix}-{stamp}-{secrets.token_hex(3).upper()}"


def generate_bill_number() -> str:
    return generate_number("BILL")


def generate_invoice_number() -> str:
    return generate_number("INV")


# calendar-day bounds for created_at filters (timestamps are stored in UTC)
def day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def day_end(d: date) -> datetime:
    return datetime.combine(d, time.max, tzinfo=timezone.utc)
