import logging
import time
import httpx
from decimal import InvalidOperation
from typing import Optional
from ..config import Settings
from ..errors import IntegrationContractError
from ..models import PaymentRecord, PaymentStatus, PaymentType
from ..utils import mask_secret, minor_to_major, to_decimal

logger = logging.getLogger(__name__)

TOKEN_TIMEOUT = httpx.Timeout(10.0, connect=5.0)
API_TIMEOUT = httpx.Timeout(30.0, connect=5.0)


class PayPalClient:
    """Thin async wrapper over the PayPal Orders v2 REST API."""

    def __init__(self, client_id: str, client_secret: str, base_url: str,
                 brand_name: str = "Travel Booking",
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip("/")
        self.brand_name = brand_name
        self._transport = transport
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "PayPalClient":
        return cls(
            settings.paypal_client_id,
            settings.paypal_client_secret,
            settings.paypal_base_url,
            brand_name=settings.brand_name,
            **kwargs,
        )

    def _client(self, timeout: httpx.Timeout) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=self._transport)

    async def _access_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        logger.debug("Requesting PayPal token for client %s", mask_secret(self.client_id))
        async with self._client(TOKEN_TIMEOUT) as client:
            resp = await client.post(
                "/v1/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(self.client_id, self.client_secret),
                headers={"Accept": "application/json"},
            )
            resp.raise_for_status()
            data = resp.json()
        self._token = data["access_token"]
        # refresh a minute early
        self._token_expires_at = time.monotonic() + max(int(data.get("expires_in", 0)) - 60, 0)
        return self._token

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> dict:
        token = await self._access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }
        async with self._client(API_TIMEOUT) as client:
            resp = await client.request(method, path, json=json, headers=headers)
            resp.raise_for_status()
            return resp.json()

    def order_body(self, trip_name: str, amount: int, quantity: int,
                   success_url: str, cancel_url: str, currency: str = "USD") -> dict:
        """Build a CAPTURE order for ``quantity`` items of ``amount`` minor units."""
        total = minor_to_major(amount * quantity)
        return {
            "intent": "CAPTURE",
            "purchase_units": [
                {
                    "amount": {
                        "currency_code": currency,
                        "value": total,
                        "breakdown": {
                            "item_total": {"currency_code": currency, "value": total},
                        },
                    },
                    "items": [
                        {
                            "name": trip_name,
                            "description": f"Booking for {trip_name}",
                            "quantity": str(quantity),
                            "unit_amount": {
                                "currency_code": currency,
                                "value": minor_to_major(amount),
                            },
                        }
                    ],
                }
            ],
            "application_context": {
                "return_url": success_url,
                "cancel_url": cancel_url,
                "brand_name": self.brand_name,
                "landing_page": "BILLING",
                "user_action": "PAY_NOW",
            },
        }

    async def create_order(self, body: dict) -> dict:
        return await self._request("POST", "/v2/checkout/orders", json=body)

    async def get_order(self, order_id: str) -> dict:
        return await self._request("GET", f"/v2/checkout/orders/{order_id}")

    async def authorize_order(self, order_id: str) -> dict:
        return await self._request("POST", f"/v2/checkout/orders/{order_id}/authorize", json={})


def approval_link(order: dict) -> Optional[str]:
    for link in order.get("links", []):
        if link.get("rel") in ("approve", "payer-action"):
            return link.get("href")
    return None


ORDER_STATUSES = {
    "APPROVED": PaymentStatus.approved,
    "COMPLETED": PaymentStatus.completed,
    "CREATED": PaymentStatus.pending,
    "SAVED": PaymentStatus.pending,
    "PAYER_ACTION_REQUIRED": PaymentStatus.pending,
    "VOIDED": PaymentStatus.cancelled,
}


AUTHORIZATION_STATUSES = {
    "CREATED": PaymentStatus.approved,
    "CAPTURED": PaymentStatus.completed,
    "PENDING": PaymentStatus.pending,
    "DENIED": PaymentStatus.failed,
    "VOIDED": PaymentStatus.cancelled,
}


def map_order_status(status: Optional[str]) -> PaymentStatus:
    return ORDER_STATUSES.get((status or "").upper(), PaymentStatus.unknown)


def map_authorization_status(status: Optional[str]) -> PaymentStatus:
    return AUTHORIZATION_STATUSES.get((status or "").upper(), PaymentStatus.unknown)


def _first(items) -> dict:
    return items[0] if items else {}


def build_record(order: dict, trip_name: Optional[str] = None) -> PaymentRecord:
    """
    Turn a PayPal order (as returned by get/authorize) into a ledger record.

    Raises IntegrationContractError when the order carries no amount or
    currency, since nothing sensible can be stored without them.
    """
    unit = _first(order.get("purchase_units"))
    payments = unit.get("payments") or {}
    capture = _first(payments.get("captures"))
    authorization = _first(payments.get("authorizations"))

    amount = unit.get("amount") or capture.get("amount") or authorization.get("amount") or {}
    value = amount.get("value")
    currency = amount.get("currency_code")
    if not order.get("id") or not value or not currency:
        raise IntegrationContractError(
            "Failed to record PayPal payment",
            details=f"PayPal order {order.get('id')} has no id/amount/currency",
        )
    try:
        value = to_decimal(value)
    except InvalidOperation:
        raise IntegrationContractError(
            "Failed to record PayPal payment",
            details=f"PayPal order {order.get('id')} has invalid amount {amount.get('value')!r}",
        )

    # an authorized order reads COMPLETED whatever the authorization outcome
    if authorization and not capture:
        status = map_authorization_status(authorization.get("status"))
    else:
        status = map_order_status(order.get("status"))

    if not trip_name:
        trip_name = _first(unit.get("items")).get("name")

    payer = order.get("payer") or {}
    name = payer.get("name") or {}
    shipping = (unit.get("shipping") or {}).get("address") or {}

    return PaymentRecord(
        payment_type=PaymentType.PayPal,
        order_id=order["id"],
        transaction_id=capture.get("id") or authorization.get("id"),
        trip_name=trip_name,
        amount=value,
        currency=currency,
        status=status,
        first_name=name.get("given_name"),
        last_name=name.get("surname"),
        email=payer.get("email_address"),
        phone=((payer.get("phone") or {}).get("phone_number") or {}).get("national_number"),
        address=(payer.get("address") or {}).get("address_line_1"),
        city=(payer.get("address") or {}).get("admin_area_2"),
        country=(payer.get("address") or {}).get("country_code"),
        delivery_address=shipping.get("address_line_1"),
        delivery_city=shipping.get("admin_area_2"),
        delivery_country=shipping.get("country_code"),
    )
