"""FastAPI application for the Payments Service."""

from fastapi import FastAPI
from libs.common.errors import register_error_handlers
from libs.common.middleware import add_observability_middleware
from services.payments_service.routers import admin_router, checkout_router


def create_app() -> FastAPI:
    """Create and configure the Payments Service FastAPI app."""
    app = FastAPI(
        title="Payments Service",
        version="0.1.0",
        description="Settles checkouts through wallet, PayPal, Stripe, PayNow and NETS QR.",
    )
    add_observability_middleware(app)
    register_error_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "payments"}

    app.include_router(checkout_router, prefix="/payments")
    app.include_router(admin_router, prefix="/admin/payments")

    return app


app = create_app()
