# services/csv_builder.py
from __future__ import annotations
from typing import Any, Iterable, List
import csv, io, datetime, decimal

from schemas import DueEntry, DuesReport

DUES_COLUMNS: List[dict] = [
    {"name": "Type", "source": "entity_type"},
    {"name": "ID", "source": "id"},
    {"name": "Name", "source": "name"},
    {"name": "Phone", "source": "phone", "default": ""},
    {"name": "Outstanding", "source": "outstanding_due", "round": 2},
    {"name": "Last Transaction", "source": "last_transaction_date", "date_format": "%Y-%m-%d"},
    {"name": "Days Since", "source": "days_since_last_transaction"},
    {"name": "Overdue", "source": "overdue"},
]


def _get_attr_path(root: Any, path: str):
    cur = root
    for part in path.split("."):
        if cur is None:
            return None
        if isinstance(cur, dict):
            cur = cur.get(part)
        else:
            cur = getattr(cur, part, None)
    return cur


def _fmt_value(val: Any, col_cfg: dict) -> Any:
    if val is None:
        return col_cfg.get("default", "")
    if "date_format" in col_cfg and isinstance(val, (datetime.datetime, datetime.date)):
        return val.strftime(col_cfg["date_format"])

    # booleans before numbers: bool is an int subclass
    if isinstance(val, bool):
        return "true" if val else "false"

    if isinstance(val, (int, float, decimal.Decimal)):
        x = decimal.Decimal(str(val))
        if "round" in col_cfg:
            q = decimal.Decimal(10) ** (-int(col_cfg["round"]))
            x = x.quantize(q, rounding=decimal.ROUND_HALF_UP)
        # plain string, no locale
        return format(x, "f")

    return str(val)


def build_csv_bytes(rows: Iterable[Any], columns: List[dict], delimiter: str = ",") -> bytes:
    buf = io.StringIO()
    w = csv.writer(buf, delimiter=delimiter, quotechar='"', quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    w.writerow([c["name"] for c in columns])
    for row in rows:
        w.writerow([_fmt_value(_get_attr_path(row, c["source"]), c) for c in columns])
    # utf-8-sig so spreadsheet apps pick the encoding up
    return buf.getvalue().encode("utf-8-sig")


def build_dues_csv(report: DuesReport) -> bytes:
    rows: List[DueEntry] = list(report.customers) + list(report.wholesalers)
    return build_csv_bytes(rows, DUES_COLUMNS)
