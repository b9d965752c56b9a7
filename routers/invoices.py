from fastapi import APIRouter, Depends, HTTPException, Query
from datetime import date, datetime, timezone
from typing import Optional
from tortoise.expressions import Q
import logging

from models import Invoice, User
from schemas import InvoiceCreate, InvoiceUpdate, InvoiceStatusUpdate, InvoiceRead, InvoiceStatus
from api_utils import PageParams, parse_order, apply_filter_map, paginate_and_respond, respond_item
from deps import require_feature
from services.invoicing import price_items, compute_amounts
from utils import day_start, day_end, generate_invoice_number

router = APIRouter(prefix="/invoices", tags=["invoices"])
logger = logging.getLogger("uvicorn")

invoice_access = require_feature("billing")

SORT_FIELDS = {
    "createdAt": "created_at",
    "invoiceDate": "invoice_date",
    "dueDate": "due_date",
    "total": "total",
    "invoiceNumber": "invoice_number",
    "customerName": "customer_name",
}

# --- helpers ---------------------------------------------------------------

def to_invoice_read(m: Invoice) -> InvoiceRead:
    return InvoiceRead.model_validate(m)

async def get_invoice_or_404(invoice_id: int, user: User) -> Invoice:
    obj = await Invoice.get_or_none(id=invoice_id, shopkeeper_id=user.id, is_deleted=False)
    if not obj:
        raise HTTPException(404, "Invoice not found")
    return obj

def apply_amounts(obj: Invoice, tax_amount=None):
    amounts = compute_amounts(
        obj.items, tax_rate=obj.tax_rate, tax_amount=tax_amount, discount=obj.discount,
        discount_type=obj.discount_type,
    )
    obj.subtotal = amounts["subtotal"]
    obj.tax_amount = amounts["tax_amount"]
    obj.total = amounts["total"]

# --- routes ----------------------------------------------------------------

@router.post("", response_model=InvoiceRead, status_code=201)
async def create_invoice(payload: InvoiceCreate, user: User = Depends(invoice_access)):
    number = payload.invoice_number or generate_invoice_number()
    if await Invoice.exists(shopkeeper_id=user.id, invoice_number=number):
        raise HTTPException(409, "Invoice number already exists")

    items = price_items(payload.items)
    amounts = compute_amounts(
        items, tax_rate=payload.tax_rate, tax_amount=payload.tax_amount, discount=payload.discount,
        discount_type=payload.discount_type,
    )
    obj = await Invoice.create(
        shopkeeper_id=user.id,
        invoice_number=number,
        invoice_date=payload.invoice_date or datetime.now(tz=timezone.utc),
        due_date=payload.due_date,
        customer_name=payload.customer_name,
        customer_email=payload.customer_email,
        customer_phone=payload.customer_phone,
        customer_address=payload.customer_address,
        customer_gstin=payload.customer_gstin,
        # shop details are a snapshot of the profile at issue time
        shop_name=user.business_name or user.name,
        shop_address=user.address,
        shop_place=user.place,
        shop_phone=user.phone,
        items=items,
        subtotal=amounts["subtotal"],
        tax_rate=payload.tax_rate,
        tax_amount=amounts["tax_amount"],
        discount=payload.discount or 0,
        discount_type=payload.discount_type,
        total=amounts["total"],
        template_id=payload.template_id or "modern",
        color_scheme=payload.color_scheme,
        logo=payload.logo,
        notes=payload.notes,
        terms=payload.terms,
        status=payload.status or "draft",
    )
    logger.info(f"[invoices] created {obj.invoice_number} total={obj.total}")
    return respond_item(obj, to_invoice_read, status_code=201)


@router.get("")
async def list_invoices(
    params: PageParams = Depends(),
    search: Optional[str] = None,
    status: Optional[InvoiceStatus] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    user: User = Depends(invoice_access),
):
    qs = Invoice.filter(shopkeeper_id=user.id, is_deleted=False)
    fmap = {
        "search": lambda q, v: q.filter(
            Q(invoice_number__icontains=v) | Q(customer_name__icontains=v) | Q(customer_email__icontains=v)
        ),
        "status": lambda q, v: q.filter(status=v),
        "start_date": lambda q, v: q.filter(invoice_date__gte=day_start(v)),
        "end_date": lambda q, v: q.filter(invoice_date__lte=day_end(v)),
    }
    filters = {"search": search, "status": status, "start_date": start_date, "end_date": end_date}
    qs = apply_filter_map(qs, filters, fmap)
    order = parse_order(SORT_FIELDS.get(sort_by or ""), sort_order, SORT_FIELDS.values())
    return await paginate_and_respond(qs, params.page, params.limit, [order, "-id"], to_invoice_read)


@router.get("/{invoice_id}", response_model=InvoiceRead)
async def get_invoice(invoice_id: int, user: User = Depends(invoice_access)):
    return respond_item(await get_invoice_or_404(invoice_id, user), to_invoice_read)


@router.put("/{invoice_id}", response_model=InvoiceRead)
async def update_invoice(invoice_id: int, payload: InvoiceUpdate, user: User = Depends(invoice_access)):
    obj = await get_invoice_or_404(invoice_id, user)
    changes = payload.model_dump(exclude_unset=True)
    if "items" in changes:
        changes["items"] = price_items(payload.items or [])
        if not changes["items"]:
            changes.pop("items")
    # an explicit tax amount wins; otherwise tax follows the rate, and without a rate the stored amount stays
    explicit_tax = changes.pop("tax_amount", None)
    for field, value in changes.items():
        if value is None and field in ("customer_name", "invoice_date", "template_id", "status", "discount"):
            continue
        setattr(obj, field, value)
    if explicit_tax is None and not obj.tax_rate:
        explicit_tax = obj.tax_amount
    apply_amounts(obj, explicit_tax)
    await obj.save()
    return respond_item(obj, to_invoice_read)


@router.patch("/{invoice_id}/status", response_model=InvoiceRead)
async def update_status(invoice_id: int, payload: InvoiceStatusUpdate, user: User = Depends(invoice_access)):
    obj = await get_invoice_or_404(invoice_id, user)
    obj.status = payload.status
    await obj.save(update_fields=["status", "updated_at"])
    return respond_item(obj, to_invoice_read)


@router.delete("/{invoice_id}")
async def delete_invoice(invoice_id: int, user: User = Depends(invoice_access)):
    obj = await get_invoice_or_404(invoice_id, user)
    obj.is_deleted = True
    await obj.save(update_fields=["is_deleted", "updated_at"])
    return {"message": "Invoice deleted successfully"}
