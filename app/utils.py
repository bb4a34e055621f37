import secrets
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Union
from fastapi import Header, Request
from .errors import CsrfError

CSRF_SESSION_KEY = "csrf_token"
TWO_PLACES = Decimal("0.01")


def issue_csrf_token(request: Request) -> str:
    token = request.session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        request.session[CSRF_SESSION_KEY] = token
    return token


def require_csrf_token(request: Request, x_csrf_token: Optional[str] = Header(default=None)):
    expected = request.session.get(CSRF_SESSION_KEY)
    if not expected or not x_csrf_token or not secrets.compare_digest(expected, x_csrf_token):
        raise CsrfError("Invalid or missing CSRF token")
    return True


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    """Keep only the last few characters of a secret for debug output."""
    if not value:
        return "<unset>"
    if len(value) <= visible:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]


def minor_to_major(amount: int) -> str:
    """2599 -> '25.99'"""
    return str((Decimal(amount) / 100).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def to_decimal(value: Union[str, int, float, Decimal]) -> Decimal:
    amount = Decimal(str(value))
    if not amount.is_finite():
        raise InvalidOperation(f"non-finite amount {value!r}")
    return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
