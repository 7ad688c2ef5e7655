from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from ride_core.api.v1 import health, pricing, rides, wallets
from ride_core.clients.external import ExternalClient
from ride_core.config.logging import setup_logging
from ride_core.config.settings import Settings
from ride_core.monitoring.metrics import init_app_info, setup_instrumentator


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting ride-core service")

    settings = Settings()
    app.state.external_client = ExternalClient(settings)

    yield
    logger.info("Shutting down ride-core service")


def create_app() -> FastAPI:
    setup_logging(Settings().log_level)

    app = FastAPI(
        title="Ride Core Service",
        description="Ride lifecycle, fares, pricing and wallets for bike sharing",
        version="1.0.0",
        lifespan=lifespan,
    )

    instrumentator = setup_instrumentator()
    instrumentator.instrument(app).expose(app)

    init_app_info("1.0.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router, prefix="/api/v1", tags=["health"])
    app.include_router(rides.router, prefix="/api/v1", tags=["rides"])
    app.include_router(wallets.router, prefix="/api/v1", tags=["wallets"])
    app.include_router(pricing.router, prefix="/api/v1", tags=["pricing"])

    return app


def main():
    import uvicorn

    uvicorn.run(
        "ride_core.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_config=None,
    )


app = create_app()


if __name__ == "__main__":
    main()
