from tortoise import fields, models
import uuid


ROLE_ADMIN = "admin"
ROLE_SHOPKEEPER = "shopkeeper"

FEATURE_KEYS = ("wholesalers", "due_customers", "normal_customers", "billing", "reports")


def default_features() -> dict:
    return {k: True for k in FEATURE_KEYS}


def _money(**kw):
    return fields.DecimalField(max_digits=14, decimal_places=2, **kw)


# -------- Users --------
class User(models.Model):
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    email = fields.CharField(max_length=100, unique=True, index=True)
    hashed_password = fields.CharField(max_length=128)
    name = fields.CharField(max_length=120)
    role = fields.CharField(max_length=16, default=ROLE_SHOPKEEPER, index=True)  # admin / shopkeeper
    phone = fields.CharField(max_length=32, null=True)
    business_name = fields.CharField(max_length=200, null=True)
    address = fields.CharField(max_length=255, null=True)
    place = fields.CharField(max_length=100, null=True)
    is_active = fields.BooleanField(default=True, index=True)
    features = fields.JSONField(default=default_features)
    refresh_token = fields.TextField(null=True)  # current rotating refresh token
    created_at = fields.DatetimeField(auto_now_add=True, index=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "users"

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def has_feature(self, key: str) -> bool:
        return bool((self.features or {}).get(key, False))

    def __str__(self) -> str:
        return f"{self.name} ({self.email})"


# -------- Ledger entities --------
class LedgerEntity(models.Model):
    """
    Customer / wholesaler with a signed opening balance.
    total_billed / total_paid / balance are cached reconciler output.
    """
    id = fields.IntField(pk=True)
    name = fields.CharField(max_length=200, index=True)
    phone = fields.CharField(max_length=32, null=True)
    whatsapp_number = fields.CharField(max_length=32, null=True)
    email = fields.CharField(max_length=100, null=True)
    address = fields.CharField(max_length=255, null=True)

    opening_balance = _money(default=0)  # + they owe / we owe them, - advance
    total_billed = _money(default=0)
    total_paid = _money(default=0)
    balance = _money(default=0, index=True)  # signed
    last_payment_date = fields.DatetimeField(null=True)
    last_transaction_date = fields.DatetimeField(null=True, index=True)

    is_active = fields.BooleanField(default=True, index=True)
    is_deleted = fields.BooleanField(default=False, index=True)
    deleted_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True, index=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        abstract = True

    def __str__(self) -> str:
        return self.name


class Customer(LedgerEntity):
    shopkeeper = fields.ForeignKeyField("models.User", related_name="customers", on_delete=fields.CASCADE, index=True)
    type = fields.CharField(max_length=8, index=True)  # due / normal

    class Meta:
        table = "customers"


class Wholesaler(LedgerEntity):
    shopkeeper = fields.ForeignKeyField("models.User", related_name="wholesalers", on_delete=fields.CASCADE, index=True)
    place = fields.CharField(max_length=100, null=True)
    gst_number = fields.CharField(max_length=32, null=True)

    class Meta:
        table = "wholesalers"


# -------- Transactions --------
class Bill(models.Model):
    id = fields.IntField(pk=True)
    shopkeeper = fields.ForeignKeyField("models.User", related_name="bills", on_delete=fields.CASCADE, index=True)
    bill_number = fields.CharField(max_length=40, unique=True, index=True)
    bill_type = fields.CharField(max_length=8, index=True)     # sale / purchase
    entity_type = fields.CharField(max_length=16, index=True)  # wholesaler / due_customer / normal_customer
    entity_id = fields.IntField(null=True, index=True)         # null for walk-in customers
    entity_name = fields.CharField(max_length=200)
    total_amount = _money()
    paid_amount = _money(default=0)
    due_amount = _money(default=0)
    payment_method = fields.CharField(max_length=8)            # cash / card / online
    items = fields.JSONField(default=list)
    notes = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True, index=True)

    class Meta:
        table = "bills"

    def __str__(self) -> str:
        return self.bill_number


class Payment(models.Model):
    id = fields.IntField(pk=True)
    shopkeeper = fields.ForeignKeyField("models.User", related_name="payments", on_delete=fields.CASCADE, index=True)
    entity_type = fields.CharField(max_length=16, index=True)  # customer / wholesaler
    entity_id = fields.IntField(index=True)
    entity_name = fields.CharField(max_length=200)
    amount = _money()
    payment_method = fields.CharField(max_length=8)
    bill = fields.ForeignKeyField("models.Bill", null=True, related_name="payments", on_delete=fields.SET_NULL)
    notes = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True, index=True)

    class Meta:
        table = "payments"


# -------- Invoices --------
class Invoice(models.Model):
    id = fields.IntField(pk=True)
    shopkeeper = fields.ForeignKeyField("models.User", related_name="invoices", on_delete=fields.CASCADE, index=True)
    invoice_number = fields.CharField(max_length=40, index=True)
    invoice_date = fields.DatetimeField()
    due_date = fields.DatetimeField(null=True)

    customer_name = fields.CharField(max_length=200)
    customer_email = fields.CharField(max_length=100, null=True)
    customer_phone = fields.CharField(max_length=32, null=True)
    customer_address = fields.CharField(max_length=255, null=True)
    customer_gstin = fields.CharField(max_length=32, null=True)

    shop_name = fields.CharField(max_length=200, null=True)
    shop_address = fields.CharField(max_length=255, null=True)
    shop_place = fields.CharField(max_length=100, null=True)
    shop_phone = fields.CharField(max_length=32, null=True)

    items = fields.JSONField(default=list)
    subtotal = _money(default=0)
    tax_rate = fields.DecimalField(max_digits=5, decimal_places=2, null=True)
    tax_amount = _money(default=0)
    discount = _money(default=0)
    discount_type = fields.CharField(max_length=12, null=True)  # percentage / fixed
    total = _money(default=0)

    template_id = fields.CharField(max_length=32, default="modern")
    color_scheme = fields.CharField(max_length=32, null=True)
    logo = fields.TextField(null=True)
    notes = fields.TextField(null=True)
    terms = fields.TextField(null=True)

    status = fields.CharField(max_length=10, default="draft", index=True)  # draft / sent / paid / cancelled
    is_deleted = fields.BooleanField(default=False, index=True)
    created_at = fields.DatetimeField(auto_now_add=True, index=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "invoices"
        unique_together = ("shopkeeper", "invoice_number")

    def __str__(self) -> str:
        return self.invoice_number
