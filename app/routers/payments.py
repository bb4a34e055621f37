import logging
from decimal import InvalidOperation
from functools import lru_cache

import httpx
import stripe
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlmodel.ext.asyncio.session import AsyncSession

from ..config import settings
from ..db import get_session
from ..errors import ClientInputError, IntegrationContractError, SignatureMismatchError
from ..models import PaymentStatus, PaymentType
from ..schemas import (
    CaptureIn,
    CaptureOut,
    CheckoutSessionIn,
    NotificationAck,
    OrderStatusOut,
    PayHereInitiateIn,
    PayHereInitiateOut,
    PayHereNotification,
    PayPalOrderOut,
    StripeSessionOut,
)
from ..services import ledger, payhere
from ..services.paypal import PayPalClient, approval_link, build_record, map_order_status
from ..services.stripe_checkout import StripeCheckout
from ..utils import issue_csrf_token, mask_secret, require_csrf_token, to_decimal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])

CAPTURABLE = (PaymentStatus.approved, PaymentStatus.completed)


@lru_cache
def get_paypal_client() -> PayPalClient:
    return PayPalClient.from_settings(settings)


@lru_cache
def get_stripe_checkout() -> StripeCheckout:
    return StripeCheckout.from_settings(settings)


@router.get("/csrf-token")
async def csrf_token(request: Request):
    return {"csrfToken": issue_csrf_token(request)}


@router.get("/check-order-status/{trip_name}", response_model=OrderStatusOut)
async def check_order_status(trip_name: str, session: AsyncSession = Depends(get_session)):
    """Latest PayPal ledger status for a trip, or NOT_FOUND."""
    record = await ledger.latest_for_trip(session, trip_name, PaymentType.PayPal)
    return OrderStatusOut(status=record.status.value if record else "NOT_FOUND")


@router.post("/initiate/payhere", response_model=PayHereInitiateOut, dependencies=[Depends(require_csrf_token)])
async def initiate_payhere(payload: PayHereInitiateIn):
    """Sign a PayHere checkout so the browser can hand it to the PayHere SDK."""
    missing = [name for name in ("order_id", "amount", "currency") if getattr(payload, name) in (None, "")]
    if missing:
        raise ClientInputError(f"Missing required fields: {', '.join(missing)}")
    if payload.merchant_id and payload.merchant_id != settings.payhere_merchant_id:
        raise ClientInputError("Unknown merchant_id")
    try:
        amount = to_decimal(payload.amount)
    except (InvalidOperation, TypeError, ValueError):
        raise ClientInputError("Invalid amount: must be a positive number")
    if isinstance(payload.amount, bool) or amount <= 0:
        raise ClientInputError("Invalid amount: must be a positive number")

    logger.debug("Signing PayHere order %s with secret %s",
                 payload.order_id, mask_secret(settings.payhere_merchant_secret))
    digest = payhere.initiation_hash(
        settings.payhere_merchant_id,
        payload.order_id,
        amount,
        payload.currency,
        settings.payhere_merchant_secret,
    )
    logger.info("PayHere payment initiated for order %s (%s %s)", payload.order_id, amount, payload.currency)
    return PayHereInitiateOut(hash=digest, custom_1=payhere.build_custom_payload(payload))


async def _read_notification(request: Request) -> PayHereNotification:
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            raise ClientInputError("Invalid JSON body")
    else:
        form = await request.form()
        data = dict(form)
    if not isinstance(data, dict):
        raise ClientInputError("Invalid notification payload")
    try:
        return PayHereNotification.model_validate(data)
    except ValidationError as e:
        raise ClientInputError("Invalid notification payload", details=str(e))


# PayHere -> server callback; not CSRF protected, the checksum authenticates it
@router.post("/notify/payhere", response_model=NotificationAck)
async def notify_payhere(request: Request, session: AsyncSession = Depends(get_session)):
    notification = await _read_notification(request)

    missing = payhere.missing_fields(notification)
    if missing:
        raise ClientInputError(f"Missing required fields: {', '.join(missing)}")

    expected = payhere.notification_signature(
        notification.merchant_id,
        notification.order_id,
        notification.payhere_amount,
        notification.payhere_currency,
        notification.status_code,
        settings.payhere_merchant_secret,
    )
    if not payhere.signature_matches(expected, notification.md5sig):
        logger.warning("PayHere signature mismatch for order %s", notification.order_id)
        raise SignatureMismatchError("Invalid signature")

    status = payhere.map_status_code(notification.status_code)
    logger.info("PayHere notification for order %s: status_code=%s (%s)",
                notification.order_id, notification.status_code, status.value)

    if status is not PaymentStatus.success:
        return NotificationAck(status="acknowledged", paymentStatus=status.value)

    record = payhere.build_record(notification, status)
    _, created = await ledger.record_payment(session, record)
    return NotificationAck(
        status="acknowledged" if created else "already_processed",
        paymentStatus=status.value,
    )


@router.post("/create-checkout-session/stripe", response_model=StripeSessionOut,
             dependencies=[Depends(require_csrf_token)])
async def create_stripe_session(payload: CheckoutSessionIn,
                                checkout: StripeCheckout = Depends(get_stripe_checkout)):
    params = checkout.session_params(
        payload.trip_name,
        payload.amount,
        payload.quantity,
        payload.success_url,
        payload.cancel_url,
        currency=settings.default_currency,
    )
    try:
        checkout_session = await checkout.create_session(params)
    except stripe.StripeError as e:
        logger.error("Error creating Stripe checkout session: %s", e)
        raise IntegrationContractError("Failed to create Stripe checkout session", details=str(e))

    logger.info("Stripe session %s created for %r", checkout_session.id, payload.trip_name)
    return StripeSessionOut(sessionId=checkout_session.id, sessionUrl=checkout_session.url)


@router.post("/create-checkout-session/paypal", response_model=PayPalOrderOut,
             dependencies=[Depends(require_csrf_token)])
async def create_paypal_order(payload: CheckoutSessionIn, paypal: PayPalClient = Depends(get_paypal_client)):
    body = paypal.order_body(
        payload.trip_name,
        payload.amount,
        payload.quantity,
        payload.success_url,
        payload.cancel_url,
        currency=settings.default_currency,
    )
    try:
        order = await paypal.create_order(body)
    except httpx.HTTPError as e:
        logger.error("Error creating PayPal order: %s", e)
        raise IntegrationContractError("Failed to create PayPal order", details=str(e))

    link = approval_link(order)
    if not order.get("id") or not link:
        raise IntegrationContractError("Failed to create PayPal order",
                                       details="No approval link found in PayPal response")

    logger.info("PayPal order %s created for %r", order["id"], payload.trip_name)
    return PayPalOrderOut(orderId=order["id"], approvalUrl=link)


@router.post("/capture-paypal-payment", response_model=CaptureOut, dependencies=[Depends(require_csrf_token)])
async def capture_paypal_payment(payload: CaptureIn,
                                 paypal: PayPalClient = Depends(get_paypal_client),
                                 session: AsyncSession = Depends(get_session)):
    """
    Record a PayPal order in the ledger once PayPal reports it approved or
    completed; any other order is authorized first and the authorization
    result recorded.
    """
    if not payload.order_id:
        raise ClientInputError("Missing orderId")
    order_id = payload.order_id

    existing = await ledger.find_record(session, order_id, PaymentType.PayPal)
    if existing:
        return CaptureOut(
            status="already_processed",
            paymentStatus=existing.status.value,
            orderId=order_id,
            transactionId=existing.transaction_id,
        )

    try:
        order = await paypal.get_order(order_id)
    except httpx.HTTPError as e:
        logger.error("Error fetching PayPal order %s: %s", order_id, e)
        raise IntegrationContractError("Failed to capture PayPal payment", details=str(e))

    if map_order_status(order.get("status")) not in CAPTURABLE:
        logger.info("PayPal order %s is %s; authorizing", order_id, order.get("status"))
        try:
            order = await paypal.authorize_order(order_id)
        except httpx.HTTPError as e:
            logger.error("Error authorizing PayPal order %s: %s", order_id, e)
            raise IntegrationContractError("Failed to authorize PayPal payment", details=str(e))

    record, created = await ledger.record_payment(session, build_record(order, payload.trip_name))
    return CaptureOut(
        status="captured" if created else "already_processed",
        paymentStatus=record.status.value,
        orderId=order_id,
        transactionId=record.transaction_id,
    )
