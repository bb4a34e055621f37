"""In-process stand-ins for the payment processors."""
import json
from types import SimpleNamespace

import httpx
import stripe

from app.services.paypal import PayPalClient
from app.services.stripe_checkout import StripeCheckout

PAYPAL_BASE = "https://paypal.test"


class FakeStripeCheckout(StripeCheckout):
    def __init__(self, error=None):
        super().__init__("sk_test_fake")
        self.calls = []
        self.error = error

    async def create_session(self, params):
        self.calls.append(params)
        if self.error:
            raise self.error
        return SimpleNamespace(id="cs_test_123", url="https://checkout.stripe.test/cs_test_123")


def stripe_error(message="card declined"):
    return stripe.StripeError(message)


class FakePayPal:
    """
    Routes PayPal REST calls to canned responses.

    ``orders`` maps order id to the GET representation; ``authorizations``
    maps order id to the authorize response.
    """

    def __init__(self, orders=None, authorizations=None, create_response=None, fail_paths=()):
        self.orders = orders or {}
        self.authorizations = authorizations or {}
        self.create_response = create_response
        self.fail_paths = set(fail_paths)
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content and path.startswith("/v2") else None
        self.requests.append((request.method, path, body))

        if path in self.fail_paths:
            return httpx.Response(500, json={"name": "INTERNAL_SERVER_ERROR"})
        if path == "/v1/oauth2/token":
            return httpx.Response(200, json={"access_token": "A21AA-token", "expires_in": 32400})
        if path == "/v2/checkout/orders" and request.method == "POST":
            return httpx.Response(201, json=self.create_response)

        parts = path.split("/")
        order_id = parts[4] if len(parts) > 4 else None
        if path.endswith("/authorize"):
            if order_id not in self.authorizations:
                return httpx.Response(422, json={"name": "UNPROCESSABLE_ENTITY"})
            return httpx.Response(201, json=self.authorizations[order_id])
        if order_id in self.orders:
            return httpx.Response(200, json=self.orders[order_id])
        return httpx.Response(404, json={"name": "RESOURCE_NOT_FOUND"})

    def client(self) -> PayPalClient:
        return PayPalClient("client", "secret", PAYPAL_BASE, transport=httpx.MockTransport(self.handler))

    def calls_to(self, path):
        return [r for r in self.requests if r[1] == path]


def paypal_order(order_id="5O190127TN364715T", status="COMPLETED", value="25.99", currency="USD",
                 trip_name="Ella Hike", capture_id="3C679366HH908993F", amount=True):
    unit = {
        "reference_id": "default",
        "items": [{"name": trip_name, "quantity": "1",
                   "unit_amount": {"currency_code": currency, "value": value}}],
        "shipping": {"address": {"address_line_1": "12 Temple Rd", "admin_area_2": "Kandy",
                                 "country_code": "LK"}},
    }
    if amount:
        unit["amount"] = {"currency_code": currency, "value": value}
    if capture_id:
        unit["payments"] = {"captures": [{"id": capture_id, "status": "COMPLETED"}]}
    return {
        "id": order_id,
        "status": status,
        "purchase_units": [unit],
        "payer": {
            "name": {"given_name": "Nimal", "surname": "Perera"},
            "email_address": "nimal@example.com",
            "address": {"country_code": "LK"},
        },
    }
