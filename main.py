"""
FastAPI application entry point.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.routes import admin as admin_routes
from api.routes import payments as payments_routes
from api.routes import webhooks as webhooks_routes
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import configure_logging, get_logger
from core.response import success_response
from core.settings import payment_settings
from infrastructure.adapters.notifier import CeleryPaymentNotifier
from infrastructure.container import build_payment_services
from infrastructure.database import create_database
from infrastructure.external.payments import GatewayRegistry


# configured here, at the entry point, never at import of core modules
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    database = create_database()
    gateways = GatewayRegistry(payment_settings)
    app.state.database = database
    app.state.payment_gateways = gateways
    app.state.payment_services = build_payment_services(
        database,
        gateways,
        notifier=CeleryPaymentNotifier(),
        settings=payment_settings,
    )

    # Production schemas are managed by Alembic (alembic upgrade head)
    if settings.DEBUG:
        await database.create_tables()
        logger.info("database_initialized", message="Database tables created (development)")
    else:
        logger.info("database_migrations_required", message="Run alembic upgrade head before serving traffic")
    logger.info(
        "application_started",
        environment=settings.ENVIRONMENT,
        default_provider=payment_settings.default_provider,
    )

    yield

    await gateways.aclose()
    await database.dispose()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Hackathon registration payments: checkout, webhooks and reconciliation",
)

# Middleware runs bottom-up: RequestID first so the logger sees request_id
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(payments_routes.router, prefix="/api/v1")
app.include_router(webhooks_routes.router, prefix="/api")
app.include_router(admin_routes.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    return success_response(
        data={
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/docs",
            "redoc": "/redoc",
        },
        message="Welcome",
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return success_response(data={"status": "healthy"}, message="OK")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
