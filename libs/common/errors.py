"""Typed errors raised by the settlement services.

Every error is an ``HTTPException`` so routers can let it propagate, and each
carries a stable ``code`` that clients can branch on.
"""

from typing import Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse


class SettlementError(HTTPException):
    http_status: int = status.HTTP_400_BAD_REQUEST
    code: str = "settlement_error"
    default_detail: str = "Request could not be processed"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=self.http_status, detail=detail or self.default_detail)

    def __str__(self) -> str:
        return f"{self.code}: {self.detail}"


class ValidationError(SettlementError):
    code = "validation_error"
    default_detail = "Invalid request"


class InsufficientStock(SettlementError):
    http_status = status.HTTP_409_CONFLICT
    code = "insufficient_stock"

    def __init__(self, product_name: str):
        self.product_name = product_name
        super().__init__(f"Not enough stock for {product_name}")


class InsufficientFunds(SettlementError):
    http_status = status.HTTP_402_PAYMENT_REQUIRED
    code = "insufficient_funds"
    default_detail = "Insufficient wallet balance"


class ProviderMismatch(SettlementError):
    """Provider-reported amount or status disagrees with the server-side figure."""

    code = "provider_mismatch"
    default_detail = "Payment does not match the order total"


class ProviderNotCompleted(ProviderMismatch):
    code = "provider_not_completed"
    default_detail = "Payment has not been completed"


class ProviderUnavailable(SettlementError):
    http_status = status.HTTP_502_BAD_GATEWAY
    code = "provider_unavailable"
    default_detail = "Payment provider is unavailable"


class NotFound(SettlementError):
    http_status = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_detail = "Not found"


class AlreadyProcessed(SettlementError):
    http_status = status.HTTP_409_CONFLICT
    code = "already_processed"
    default_detail = "Already processed"


class InconsistentState(SettlementError):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "inconsistent_state"
    default_detail = "Operation partially applied; manual reconciliation required"


async def settlement_error_handler(request: Request, exc: SettlementError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SettlementError, settlement_error_handler)
