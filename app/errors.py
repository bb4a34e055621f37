import logging
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    """Base error for payment routes; rendered as ``{success: false, error, details?}``."""

    status_code = 500

    def __init__(self, error: str, details: Optional[str] = None):
        super().__init__(error)
        self.error = error
        self.details = details

    def to_body(self) -> dict:
        body = {"success": False, "error": self.error}
        if self.details is not None:
            body["details"] = self.details
        return body


class ClientInputError(PaymentError):
    status_code = 400


class SignatureMismatchError(PaymentError):
    status_code = 400


class CsrfError(PaymentError):
    status_code = 403


class IntegrationContractError(PaymentError):
    """The processor answered without data we rely on, or the call itself failed."""

    status_code = 500


class PersistenceError(PaymentError):
    status_code = 500


async def payment_error_handler(request: Request, exc: PaymentError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"success": False, "error": message})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PaymentError, payment_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
