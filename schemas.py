import uuid
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, Literal, Dict, List, Any
from pydantic import BaseModel, EmailStr, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

BillType = Literal["sale", "purchase"]
BillEntityType = Literal["wholesaler", "due_customer", "normal_customer"]
PaymentEntityType = Literal["customer", "wholesaler"]
PaymentMethod = Literal["cash", "card", "online"]
CustomerType = Literal["due", "normal"]
InvoiceStatus = Literal["draft", "sent", "paid", "cancelled"]

Money = Decimal


class CamelModel(BaseModel):
    """snake_case in Python, camelCase on the wire; both accepted on input."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReadModel(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _blank_to_none(v):
    if isinstance(v, str) and not v.strip():
        return None
    return v


# =========================
# Auth
# =========================
class Token(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=6)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=6)
    new_password: str = Field(min_length=6)


class Features(CamelModel):
    wholesalers: bool = True
    due_customers: bool = True
    normal_customers: bool = True
    billing: bool = True
    reports: bool = True


class UserRead(ReadModel):
    id: uuid.UUID
    email: EmailStr
    name: str
    role: str
    phone: Optional[str] = None
    business_name: Optional[str] = None
    address: Optional[str] = None
    place: Optional[str] = None
    is_active: bool
    features: Features
    created_at: datetime


class LoginResponse(CamelModel):
    user: UserRead
    tokens: Token


class ProfileUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2)
    phone: Optional[str] = None
    business_name: Optional[str] = None
    address: Optional[str] = None
    place: Optional[str] = None


# =========================
# Admin: shopkeepers
# =========================
class ShopkeeperCreate(CamelModel):
    email: EmailStr
    password: str = Field(min_length=6)
    name: str = Field(min_length=2)
    phone: Optional[str] = None
    business_name: Optional[str] = None
    address: Optional[str] = None
    place: Optional[str] = None
    features: Optional[Features] = None


class ShopkeeperUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2)
    phone: Optional[str] = None
    business_name: Optional[str] = None
    address: Optional[str] = None
    place: Optional[str] = None
    is_active: Optional[bool] = None


class ShopkeeperUsage(CamelModel):
    customers: int = 0
    wholesalers: int = 0
    bills: int = 0
    payments: int = 0
    invoices: int = 0


class ShopkeeperRead(UserRead):
    usage: Optional[ShopkeeperUsage] = None


class ShopkeeperStats(CamelModel):
    total: int
    active: int
    inactive: int


# =========================
# Customers / wholesalers
# =========================
class _ContactFields(CamelModel):
    phone: Optional[str] = None
    whatsapp_number: Optional[str] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = None

    @field_validator("phone", "whatsapp_number", "email", "address", mode="before")
    @classmethod
    def blank_contact_to_none(cls, v):
        return _blank_to_none(v)


class CustomerCreate(_ContactFields):
    name: str = Field(min_length=2)
    type: CustomerType
    opening_balance: Money = Field(Decimal("0"), max_digits=14, decimal_places=2)


class CustomerUpdate(_ContactFields):
    name: Optional[str] = Field(None, min_length=2)
    is_active: Optional[bool] = None


class WholesalerCreate(_ContactFields):
    name: str = Field(min_length=2)
    phone: str = Field(min_length=1)
    address: str = Field(min_length=1)
    place: Optional[str] = None
    gst_number: Optional[str] = None
    # positive: we owe them; negative: advance already paid to them
    opening_balance: Money = Field(Decimal("0"), max_digits=14, decimal_places=2)


class WholesalerUpdate(_ContactFields):
    name: Optional[str] = Field(None, min_length=2)
    place: Optional[str] = None
    gst_number: Optional[str] = None
    is_active: Optional[bool] = None


class _EntityRead(ReadModel):
    id: int
    name: str
    phone: Optional[str] = None
    whatsapp_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    opening_balance: float
    total_billed: float
    total_paid: float
    balance: float
    outstanding_due: float
    advance: float
    last_payment_date: Optional[datetime] = None
    last_transaction_date: Optional[datetime] = None
    is_active: bool
    is_deleted: bool
    created_at: datetime
    updated_at: datetime


class CustomerRead(_EntityRead):
    type: CustomerType
    total_sales: float


class WholesalerRead(_EntityRead):
    place: Optional[str] = None
    gst_number: Optional[str] = None
    total_purchased: float


class CustomerStats(CamelModel):
    total: int
    active: int
    inactive: int
    deleted: int
    with_dues: int
    total_outstanding: float
    total_sales: float
    total_paid: float


class WholesalerStats(CamelModel):
    total: int
    active: int
    inactive: int
    deleted: int
    with_dues: int
    total_outstanding: float


class CustomerDashboard(CamelModel):
    total_customers: int
    total_sales: float
    total_paid: float
    total_outstanding: float


class WholesalerDashboard(CamelModel):
    total_wholesalers: int
    total_purchased: float
    total_paid: float
    total_outstanding: float


# =========================
# Bills / payments
# =========================
class BillItem(CamelModel):
    name: str = Field(min_length=1)
    quantity: float = Field(ge=1)
    price: float = Field(ge=0)
    total: float = Field(ge=0)


class BillCreate(CamelModel):
    bill_type: BillType
    entity_type: BillEntityType
    entity_id: Optional[int] = None
    entity_name: str = Field(min_length=1)
    total_amount: Money = Field(gt=0, max_digits=14, decimal_places=2)
    paid_amount: Money = Field(Decimal("0"), ge=0, max_digits=14, decimal_places=2)
    payment_method: PaymentMethod
    items: List[BillItem] = Field(default_factory=list)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_entity_and_amounts(self):
        if self.paid_amount > self.total_amount:
            raise ValueError("paidAmount cannot exceed totalAmount")
        if self.bill_type == "purchase" and self.entity_type != "wholesaler":
            raise ValueError("purchase bills must be against a wholesaler")
        if self.bill_type == "sale" and self.entity_type == "wholesaler":
            raise ValueError("sale bills must be against a customer")
        if self.entity_type != "normal_customer" and self.entity_id is None:
            raise ValueError("entityId is required for wholesaler and due customer bills")
        return self


class BillRead(ReadModel):
    id: int
    bill_number: str
    bill_type: BillType
    entity_type: BillEntityType
    entity_id: Optional[int] = None
    entity_name: str
    total_amount: float
    paid_amount: float
    due_amount: float
    payment_method: PaymentMethod
    items: List[Dict[str, Any]] = Field(default_factory=list)
    notes: Optional[str] = None
    created_at: datetime


class BillStats(CamelModel):
    total_bills: int
    total_purchases: int
    total_sales: int
    today_bills: int


class PaymentCreate(CamelModel):
    entity_type: PaymentEntityType
    entity_id: int
    amount: Money = Field(gt=0, max_digits=14, decimal_places=2)
    payment_method: PaymentMethod
    bill_id: Optional[int] = None
    notes: Optional[str] = None


class PaymentRead(ReadModel):
    id: int
    entity_type: PaymentEntityType
    entity_id: int
    entity_name: str
    amount: float
    payment_method: PaymentMethod
    bill_id: Optional[int] = None
    notes: Optional[str] = None
    created_at: datetime


# =========================
# Ledger / reports
# =========================
class LedgerTotalsRead(CamelModel):
    opening_balance: float
    total_billed: float
    bill_paid: float
    payments_paid: float
    total_paid: float
    balance: float
    outstanding_due: float
    advance: float
    bill_count: int
    payment_count: int


class AllocatedBill(BillRead):
    # pro-rata share of the entity due; display only
    allocated_due: float
    allocated_paid: float


class EntityLedger(CamelModel):
    entity_type: PaymentEntityType
    entity_id: int
    entity_name: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    totals: LedgerTotalsRead
    # outstanding due not carried by any bill (unpaid opening balance)
    opening_due: float
    bills: List[AllocatedBill]
    payments: List[PaymentRead]


class DueEntry(CamelModel):
    id: int
    entity_type: PaymentEntityType
    name: str
    phone: Optional[str] = None
    outstanding_due: float
    last_transaction_date: Optional[datetime] = None
    days_since_last_transaction: Optional[int] = None
    overdue: bool


class DuesReport(CamelModel):
    customers: List[DueEntry]
    wholesalers: List[DueEntry]
    customer_dues: float
    wholesaler_dues: float
    total_outstanding: float
    overdue_count: int


class PeriodEntityRow(CamelModel):
    entity_id: Optional[int] = None
    entity_name: str
    entity_type: str
    total_billed: float
    total_paid: float
    outstanding_due: float
    last_transaction_date: Optional[datetime] = None


class PeriodDashboard(CamelModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    totals: LedgerTotalsRead
    previous_total_billed: Optional[float] = None
    payment_breakdown: Dict[str, float]
    entities: List[PeriodEntityRow]
    bills: List[AllocatedBill]


class ResyncResult(CamelModel):
    entities: int
    drifted: int


# =========================
# Invoices
# =========================
class InvoiceItem(CamelModel):
    description: str = Field(min_length=1)
    quantity: Money = Field(ge=0)
    rate: Money = Field(ge=0)
    amount: Optional[Money] = Field(None, ge=0)  # recomputed as quantity * rate
    tax_rate: Optional[Money] = Field(None, ge=0, le=100)


class _InvoiceFields(CamelModel):
    invoice_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    customer_gstin: Optional[str] = None
    tax_rate: Optional[Money] = Field(None, ge=0, le=100)
    tax_amount: Optional[Money] = Field(None, ge=0)
    discount: Optional[Money] = Field(None, ge=0)
    discount_type: Optional[Literal["percentage", "fixed"]] = None
    template_id: Optional[str] = None
    color_scheme: Optional[str] = None
    logo: Optional[str] = None
    notes: Optional[str] = None
    terms: Optional[str] = None
    status: Optional[InvoiceStatus] = None

    @field_validator("customer_email", mode="before")
    @classmethod
    def blank_email_to_none(cls, v):
        return _blank_to_none(v)


class InvoiceCreate(_InvoiceFields):
    invoice_number: Optional[str] = None
    customer_name: str = Field(min_length=1)
    items: List[InvoiceItem] = Field(min_length=1)


class InvoiceUpdate(_InvoiceFields):
    customer_name: Optional[str] = Field(None, min_length=1)
    items: Optional[List[InvoiceItem]] = Field(None, min_length=1)


class InvoiceStatusUpdate(CamelModel):
    status: InvoiceStatus


class InvoiceRead(ReadModel):
    id: int
    invoice_number: str
    invoice_date: datetime
    due_date: Optional[datetime] = None
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_address: Optional[str] = None
    customer_gstin: Optional[str] = None
    shop_name: Optional[str] = None
    shop_address: Optional[str] = None
    shop_place: Optional[str] = None
    shop_phone: Optional[str] = None
    items: List[Dict[str, Any]]
    subtotal: float
    tax_rate: Optional[float] = None
    tax_amount: float
    discount: float
    discount_type: Optional[str] = None
    total: float
    template_id: str
    color_scheme: Optional[str] = None
    logo: Optional[str] = None
    notes: Optional[str] = None
    terms: Optional[str] = None
    status: InvoiceStatus
    created_at: datetime
    updated_at: datetime
