from decimal import Decimal
from enum import Enum
from typing import Optional
from datetime import datetime, timezone
from sqlalchemy import Index, text
from sqlmodel import SQLModel, Field


class PaymentType(str, Enum):
    PayHere = "PayHere"
    PayPal = "PayPal"


class PaymentStatus(str, Enum):
    pending = "pending"
    success = "success"
    cancelled = "cancelled"
    failed = "failed"
    unknown = "unknown"
    approved = "approved"
    completed = "completed"


SETTLED_STATUSES = (PaymentStatus.success, PaymentStatus.completed)

# at most one settled record per (order_id, payment_type)
_SETTLED_WHERE = text("status IN ('success', 'completed')")
# PayPal orders are recorded once whatever their status
_PAYPAL_WHERE = text("payment_type = 'PayPal'")


class PaymentRecord(SQLModel, table=True):
    __tablename__ = "payment_records"
    __table_args__ = (
        Index(
            "uq_payment_records_settled_order",
            "order_id",
            "payment_type",
            unique=True,
            sqlite_where=_SETTLED_WHERE,
            postgresql_where=_SETTLED_WHERE,
        ),
        Index(
            "uq_payment_records_paypal_order",
            "order_id",
            "payment_type",
            unique=True,
            sqlite_where=_PAYPAL_WHERE,
            postgresql_where=_PAYPAL_WHERE,
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    payment_type: PaymentType = Field(index=True)
    order_id: str = Field(index=True)
    transaction_id: Optional[str] = None
    trip_name: Optional[str] = Field(default=None, index=True)
    amount: Decimal = Field(max_digits=12, decimal_places=2)
    currency: str
    status: PaymentStatus = Field(index=True)
    checksum: Optional[str] = None

    # customer contact / address, each independently optional
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_city: Optional[str] = None
    delivery_country: Optional[str] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


CUSTOMER_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "phone",
    "address",
    "city",
    "country",
    "delivery_address",
    "delivery_city",
    "delivery_country",
)
