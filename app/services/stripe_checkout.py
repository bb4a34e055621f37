import logging
import stripe
from starlette.concurrency import run_in_threadpool
from ..config import Settings

logger = logging.getLogger(__name__)


class StripeCheckout:
    """Creates Stripe Checkout sessions with an explicitly supplied API key."""

    def __init__(self, api_key: str):
        self.api_key = api_key

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeCheckout":
        return cls(settings.stripe_secret_key)

    def session_params(self, trip_name: str, amount: int, quantity: int,
                       success_url: str, cancel_url: str, currency: str = "USD") -> dict:
        return {
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": currency.lower(),
                        "product_data": {
                            "name": trip_name,
                            "description": f"Booking for {trip_name}",
                        },
                        "unit_amount": amount,  # minor units
                    },
                    "quantity": quantity,
                }
            ],
            "mode": "payment",
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": {"tripName": trip_name, "bookingType": "travel"},
        }

    async def create_session(self, params: dict):
        # the SDK is blocking
        return await run_in_threadpool(stripe.checkout.Session.create, api_key=self.api_key, **params)
