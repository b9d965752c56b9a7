# api_utils.py
import json
import math
from typing import Any, Callable, Iterable
from fastapi import Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from tortoise.queryset import QuerySet

import services.config as config

# ---------- param parsing ----------
def parse_order(field: str | None, order: str | None, allowed_fields: Iterable[str], default: str = "created_at") -> str:
    allowed = set(allowed_fields)
    field = field if field in allowed else default
    prefix = "" if str(order or "desc").lower() == "asc" else "-"
    return f"{prefix}{field}"

def to_bool(v) -> bool:
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    s = str(v).strip().lower()
    return s in {"1", "true", "t", "yes", "y"}

# ---------- Query helpers ----------
def apply_filter_map(qs: QuerySet, filters: dict, fmap: dict[str, Callable[[QuerySet, Any], QuerySet]]) -> QuerySet:
    for key, fn in fmap.items():
        if key in filters and filters[key] not in (None, ""):
            qs = fn(qs, filters[key])
    return qs

def dues_filter(qs: QuerySet, v: str) -> QuerySet:
    """duesFilter on the cached signed balance."""
    if v == "with_dues":
        return qs.filter(balance__gt=0)
    if v == "no_dues":
        return qs.filter(balance__lte=0)
    if v == "advance":
        return qs.filter(balance__lt=0)
    return qs

def _dump(model: BaseModel) -> Any:
    # Pydantic v2 JSON mode keeps UUID/datetime/Decimal safe; aliases give camelCase
    return json.loads(model.model_dump_json(by_alias=True))

async def paginate_and_respond(
    qs: QuerySet,
    page: int,
    limit: int,
    order: str | list[str],
    to_pydantic: Callable[[Any], BaseModel],
) -> JSONResponse:
    total = await qs.count()
    orders = [order] if isinstance(order, str) else list(order)
    items = await qs.order_by(*orders).offset((page - 1) * limit).limit(limit)

    content = {
        "data": [_dump(to_pydantic(it)) for it in items],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if limit else 0,
        },
    }
    return JSONResponse(status_code=200, content=content, headers={"X-Total-Count": str(total)})

def respond_item(model_obj: Any, to_pydantic: Callable[[Any], BaseModel], status_code: int = 200) -> JSONResponse:
    """Single item response that uses the same Pydantic-safe encoding."""
    return JSONResponse(status_code=status_code, content=_dump(to_pydantic(model_obj)))

# ---------- page/limit params container ----------
class PageParams:
    def __init__(
        self,
        page: int = Query(1, ge=1),
        limit: int = Query(config.DEFAULT_PAGE_LIMIT, ge=1),
    ):
        self.page = page
        self.limit = min(limit, config.MAX_PAGE_LIMIT)
