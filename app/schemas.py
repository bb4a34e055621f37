from pydantic import BaseModel, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError
from typing import Any, Optional


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _positive_int(value: Any, message: str) -> Any:
    # falsy values (0, "", false) are reported as missing by the model check
    if not value and not isinstance(value, (list, dict)):
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise PydanticCustomError("positive_int", message)
    return value


class CheckoutSessionIn(CamelModel):
    trip_name: Optional[str] = None
    amount: Optional[int] = None  # minor units (cents)
    quantity: Optional[int] = None
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, v):
        return _positive_int(v, "Invalid amount: must be a positive integer in cents")

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity(cls, v):
        return _positive_int(v, "Invalid quantity: must be a positive integer")

    @model_validator(mode="after")
    def _required(self):
        if not all([self.trip_name, self.amount, self.quantity, self.success_url, self.cancel_url]):
            raise PydanticCustomError(
                "missing_fields",
                "Missing required fields: tripName, amount, quantity, successUrl, cancelUrl",
            )
        return self


class StripeSessionOut(BaseModel):
    success: bool = True
    sessionId: str
    sessionUrl: Optional[str] = None


class PayPalOrderOut(BaseModel):
    success: bool = True
    orderId: str
    approvalUrl: str


class CaptureIn(CamelModel):
    order_id: Optional[str] = None
    trip_name: Optional[str] = None


class CaptureOut(BaseModel):
    success: bool = True
    status: str  # "captured" | "already_processed"
    paymentStatus: str
    orderId: str
    transactionId: Optional[str] = None


class PayHereInitiateIn(BaseModel):
    # PayHere's checkout field names are snake_case already
    merchant_id: Optional[str] = None
    order_id: Optional[str] = None
    amount: Optional[Any] = None
    currency: Optional[str] = None
    items: Optional[str] = None
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


class PayHereInitiateOut(BaseModel):
    success: bool = True
    status: str = "initiated"
    hash: str
    custom_1: str


class PayHereNotification(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    merchant_id: Optional[str] = None
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    payhere_amount: Optional[str] = None
    payhere_currency: Optional[str] = None
    status_code: Optional[str] = None
    md5sig: Optional[str] = None
    custom_1: Optional[str] = None
    status_message: Optional[str] = None


class NotificationAck(BaseModel):
    success: bool = True
    status: str  # "acknowledged" | "already_processed"
    paymentStatus: str


class OrderStatusOut(BaseModel):
    success: bool = True
    status: str
