import uvicorn
from fastapi import FastAPI

from qr_offers.api.routes.customers import router as customers_router
from qr_offers.api.routes.health import router as health_router
from qr_offers.api.routes.offers import broadcast_router
from qr_offers.api.routes.offers import router as offers_router
from qr_offers.api.routes.qr import router as qr_router
from qr_offers.api.routes.redemption import router as redemption_router
from qr_offers.api.routes.vendors import router as vendors_router
from qr_offers.core.config import get_settings
from qr_offers.core.logging import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="QR Offers API",
        version="0.1.0",
        docs_url="/docs" if settings.enable_openapi_docs else None,
        redoc_url="/redoc" if settings.enable_openapi_docs else None,
        openapi_url="/openapi.json" if settings.enable_openapi_docs else None,
    )
    app.include_router(health_router)
    app.include_router(qr_router)
    app.include_router(vendors_router)
    app.include_router(offers_router)
    app.include_router(broadcast_router)
    app.include_router(customers_router)
    app.include_router(redemption_router)
    return app


app = create_app()


def run() -> None:
    settings = get_settings()
    uvicorn.run(
        "qr_offers.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.app_env == "dev",
    )


if __name__ == "__main__":
    run()
