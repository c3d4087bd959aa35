"""FastAPI application for the Store Service."""

from fastapi import FastAPI
from libs.common.errors import register_error_handlers
from libs.common.middleware import add_observability_middleware
from services.store_service.routers import admin_router, orders_router


def create_app() -> FastAPI:
    """Create and configure the Store Service FastAPI app."""
    app = FastAPI(
        title="Store Service",
        version="0.1.0",
        description="Checkout, orders, delivery changes and refund requests.",
    )
    add_observability_middleware(app)
    register_error_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "store"}

    # Shopper routes (checkout, orders, refund requests)
    app.include_router(orders_router, prefix="/store")

    # Admin routes (refund request review)
    app.include_router(admin_router, prefix="/admin/store")

    return app


app = create_app()
