import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from binwahab.core.config import settings
from binwahab.core.database import Database
from binwahab.core.exceptions import ShopException
from binwahab.models.ecommerce import PaymentGatewayName
from binwahab.services.payments.gateways import PaymentGateway, build_gateways, close_gateways

from binwahab.routes.auth import auth_router
from binwahab.routes.addresses import address_router
from binwahab.routes.cart import cart_router
from binwahab.routes.orders import order_router
from binwahab.routes.shipping import shipping_router
from binwahab.routes.checkout import checkout_router
from binwahab.routes.webhooks import webhook_router
from binwahab.routes.returns import return_router
from binwahab.routes.admin import admin_router

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def configure_logging():
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(
    database: Optional[Database] = None,
    gateways: Optional[Dict[PaymentGatewayName, PaymentGateway]] = None,
) -> FastAPI:
    """
    Build the API. Tests pass their own database and gateways; otherwise
    both are created from settings when the app starts and released on
    shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # ---- STARTUP ----
        owns_database = database is None
        owns_gateways = gateways is None

        app.state.database = database or Database(settings.DATABASE_URL, echo=settings.SQL_ECHO)
        app.state.database.create_all()
        app.state.gateways = gateways if gateways is not None else build_gateways(settings)
        logger.info(f"BINWAHAB API started ({settings.ENVIRONMENT})")

        yield

        # ---- SHUTDOWN ----
        if owns_gateways:
            close_gateways(app.state.gateways)
        if owns_database:
            app.state.database.dispose()

    app = FastAPI(
        title="BINWAHAB Commerce API",
        version="1.0.0",
        lifespan=lifespan
    )

    @app.exception_handler(ShopException)
    async def shop_exception_handler(request: Request, exc: ShopException):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder({"detail": exc.message, "code": exc.code, **exc.details}),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=jsonable_encoder({
                "detail": "Request validation failed",
                "code": "VALIDATION_ERROR",
                "errors": exc.errors(),
            }),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error", "code": "INTERNAL_ERROR"},
        )

    app.include_router(auth_router, prefix=API_PREFIX)
    app.include_router(address_router, prefix=API_PREFIX)
    app.include_router(cart_router, prefix=API_PREFIX)
    app.include_router(order_router, prefix=API_PREFIX)
    app.include_router(shipping_router, prefix=API_PREFIX)
    app.include_router(checkout_router, prefix=API_PREFIX)
    app.include_router(webhook_router, prefix=API_PREFIX)
    app.include_router(return_router, prefix=API_PREFIX)
    app.include_router(admin_router, prefix=API_PREFIX)

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "ok"}

    return app


configure_logging()
app = create_app()
