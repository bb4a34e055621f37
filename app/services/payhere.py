"""
PayHere checksum helpers and notification handling.

PayHere signs both directions with the same scheme: an upper-cased MD5 over
the merchant id, order id, amount, currency (and, for notifications, the
status code), followed by the upper-cased MD5 of the merchant secret.
"""
import hashlib
import hmac
import json
import logging
from decimal import InvalidOperation
from typing import Optional

from ..errors import ClientInputError
from ..models import CUSTOMER_FIELDS, PaymentRecord, PaymentStatus, PaymentType
from ..schemas import PayHereInitiateIn, PayHereNotification
from ..utils import to_decimal

logger = logging.getLogger(__name__)

STATUS_CODES = {
    2: PaymentStatus.success,
    0: PaymentStatus.pending,
    -1: PaymentStatus.cancelled,
    -2: PaymentStatus.failed,
}

REQUIRED_NOTIFICATION_FIELDS = (
    "merchant_id",
    "order_id",
    "payhere_amount",
    "payhere_currency",
    "status_code",
    "md5sig",
)


def _md5_upper(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest().upper()


def secret_digest(merchant_secret: str) -> str:
    return _md5_upper(merchant_secret)


def format_amount(amount) -> str:
    """PayHere expects two decimals and no thousands separator."""
    return f"{to_decimal(amount):.2f}"


def initiation_hash(merchant_id: str, order_id: str, amount, currency: str, merchant_secret: str) -> str:
    return _md5_upper(
        merchant_id + order_id + format_amount(amount) + currency + secret_digest(merchant_secret)
    )


def notification_signature(
    merchant_id: str,
    order_id: str,
    amount: str,
    currency: str,
    status_code: str,
    merchant_secret: str,
) -> str:
    # amount is used exactly as PayHere posted it
    return _md5_upper(
        merchant_id + order_id + amount + currency + status_code + secret_digest(merchant_secret)
    )


def signature_matches(expected: str, supplied: str) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


def map_status_code(status_code) -> PaymentStatus:
    try:
        code = int(str(status_code).strip())
    except (TypeError, ValueError):
        return PaymentStatus.unknown
    return STATUS_CODES.get(code, PaymentStatus.unknown)


def missing_fields(notification: PayHereNotification) -> list:
    return [name for name in REQUIRED_NOTIFICATION_FIELDS if not getattr(notification, name)]


def build_custom_payload(payload: PayHereInitiateIn) -> str:
    """Customer and trip context carried through PayHere as ``custom_1``."""
    data = {"tripName": payload.items}
    for name in CUSTOMER_FIELDS:
        data[name] = getattr(payload, name)
    return json.dumps(data, separators=(",", ":"))


def parse_custom_payload(raw: Optional[str]) -> dict:
    """Decode ``custom_1``; anything unreadable degrades to an empty dict."""
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring malformed custom_1 payload")
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring non-object custom_1 payload")
        return {}
    return data


def build_record(notification: PayHereNotification, status: PaymentStatus) -> PaymentRecord:
    context = parse_custom_payload(notification.custom_1)
    customer = {}
    for name in CUSTOMER_FIELDS:
        value = context.get(name)
        customer[name] = str(value) if value not in (None, "") else None

    try:
        amount = to_decimal(notification.payhere_amount)
    except InvalidOperation:
        logger.error("Unparseable payhere_amount %r for order %s",
                     notification.payhere_amount, notification.order_id)
        raise ClientInputError("Invalid payhere_amount")

    trip_name = context.get("tripName")
    return PaymentRecord(
        payment_type=PaymentType.PayHere,
        order_id=notification.order_id,
        transaction_id=notification.payment_id,
        trip_name=str(trip_name) if trip_name else None,
        amount=amount,
        currency=notification.payhere_currency,
        status=status,
        checksum=notification.md5sig,
        **customer,
    )
