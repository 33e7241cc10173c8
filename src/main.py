"""grocerease - collaborative grocery lists and meal planning."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from src.core.config import Settings
from src.core.logging import configure_logfire, instrument_fastapi, instrument_pydantic_ai
from src.interface.error_handlers import register_exception_handlers
from src.interface.group_router import router as group_router
from src.interface.invitation_router import router as invitation_router
from src.interface.list_router import router as list_router
from src.interface.meal_router import router as meal_router
from src.interface.notification_router import router as notification_router
from src.interface.ws_router import router as ws_router
from src.services.container import Services, build_services


logger = logging.getLogger(__name__)


def validate_startup_configuration(services: Services) -> None:
    """Fail fast when a configured backend is missing its credentials."""
    logger.info("startup_validation_begin")
    try:
        if services.settings.store_backend == "firebase" or services.settings.identity_backend == "firebase":
            services.settings.require_credential("firebase_credentials_path", "Firebase service account")
        logger.info("startup_validation_complete", extra={"status": "ok"})
    except ValueError as e:
        logger.error("startup_validation_failed", extra={"error": str(e)})
        print(f"\n❌ Startup validation failed: {e}\n", file=sys.stderr)  # noqa: T201
        sys.exit(1)


def create_app(services: Services | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the application around ``services``.

    When no services are passed they are built from ``settings``, read from the environment
    at call time. Serve with ``uvicorn src.main:create_app --factory``.
    """
    services = services or build_services(settings or Settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_logfire(services.settings)
        validate_startup_configuration(services)
        instrument_pydantic_ai()

        await services.start()
        logger.info("Store started", extra={"store_backend": services.settings.store_backend})
        yield
        await services.close()
        logger.info("Store closed")

    app = FastAPI(
        title="grocerease",
        description="Collaborative grocery lists and meal planning",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    # Instrument FastAPI with Logfire
    instrument_fastapi(app)
    register_exception_handlers(app)

    app.include_router(list_router)
    app.include_router(meal_router)
    app.include_router(group_router)
    app.include_router(invitation_router)
    app.include_router(notification_router)
    app.include_router(ws_router)

    @app.get("/health")
    async def health_check() -> JSONResponse:
        """Health check endpoint."""
        return JSONResponse(content={"status": "healthy"}, status_code=200)

    return app
