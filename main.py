#main.py
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import load_core_config
from app.container import Services, build_services
from app.payments.validate import validate_startup
from middleware import RequestContextMiddleware
from routes.admin_reconcile import router as admin_reconcile_router
from routes.admin_suppliers import router as admin_suppliers_router
from routes.health import router as health_router
from routes.metrics import router as metrics_router
from routes.orders import router as orders_router
from routes.purchases import router as purchases_router
from routes.webhooks import router as webhooks_router
from services.observability import configure_logging
from settings import settings

logger = logging.getLogger("bundlepay")


def create_app(services: Services | None = None) -> FastAPI:
    configure_logging(settings.LOG_LEVEL)

    if services is None:
        validate_startup(
            load_core_config(settings),
            strict=settings.MM_STRICT_STARTUP_VALIDATION,
            store_backend=settings.ORDER_STORE_BACKEND,
            database_url=settings.DATABASE_URL,
        )
        services = build_services(settings)

    app = FastAPI(title="BundlePay API", version="1.0.0")
    app.state.services = services

    app.add_middleware(RequestContextMiddleware)

    # -----------------------------
    # ROUTERS
    # -----------------------------

    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(purchases_router)
    app.include_router(orders_router)
    app.include_router(webhooks_router)
    app.include_router(admin_suppliers_router)
    app.include_router(admin_reconcile_router)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled_error path=%s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


app = create_app()
