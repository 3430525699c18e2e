import uvicorn
from fastapi import FastAPI

from entitlement_service.api.routes.health import router as health_router
from entitlement_service.api.routes.internal_subscriptions import (
    router as internal_subscriptions_router,
)
from entitlement_service.core.config import get_settings
from entitlement_service.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Entitlement Service API",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.include_router(health_router)
    app.include_router(internal_subscriptions_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "entitlement_service.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
