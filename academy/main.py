from contextlib import asynccontextmanager
from typing import Annotated, AsyncGenerator

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from scalar_fastapi import get_scalar_api_reference
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from academy.config.database import get_db
from academy.config.settings import settings
from academy.core.exceptions import AcademyError, ScheduleConflictError
from academy.core.observability import init_observability
from academy.domains.schedule.conflicts import conflict_payload
from academy.domains.schedule.router import router as schedule_router
from academy.domains.subscriptions.router import router as freezes_router

logger = structlog.get_logger(__name__)

ROUTERS = (schedule_router, freezes_router)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(
        "app_starting",
        app_name=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.APP_ENV,
        sms_provider=settings.SMS_PROVIDER,
    )

    try:
        from academy.config.database import init_db

        await init_db()
        logger.info("database_initialized")
    except Exception as e:
        logger.error("database_init_failed", error=str(e), type=type(e).__name__)
        # Production must not serve requests without a schema
        if settings.is_production:
            raise

    yield

    logger.info("app_shutting_down", app_name=settings.APP_NAME)


async def academy_error_handler(request: Request, exc: AcademyError) -> JSONResponse:
    """Render domain errors as ``{"detail": ...}``, plus conflicts on a 409."""
    content: dict = {"detail": exc.message}
    if isinstance(exc, ScheduleConflictError):
        content["conflicts"] = conflict_payload(exc.coach_conflicts, exc.facility_conflicts)
        logger.info(
            "schedule_conflict",
            path=request.url.path,
            coach_conflicts=len(exc.coach_conflicts),
            facility_conflicts=len(exc.facility_conflicts),
        )
    elif exc.status_code >= 500:
        logger.error("domain_error", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=content)


def create_app() -> FastAPI:
    """Build the API: error tracking, CORS, domain routers and docs."""
    init_observability()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Academy scheduling, waitlist and subscription freeze API",
        version=settings.APP_VERSION,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url=None,
        lifespan=lifespan,
        # Trailing-slash redirects drop the Authorization header
        redirect_slashes=False,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "Accept-Language"],
    )
    app.add_exception_handler(AcademyError, academy_error_handler)

    for router in ROUTERS:
        app.include_router(router, prefix=settings.API_V1_PREFIX)

    @app.get("/health")
    async def health_check(db: Annotated[AsyncSession, Depends(get_db)]) -> dict[str, str]:
        try:
            await db.execute(text("SELECT 1"))
            database = "ok"
        except SQLAlchemyError as e:
            logger.warning("health_database_unreachable", error=str(e))
            database = "unreachable"
        return {
            "status": "healthy" if database == "ok" else "degraded",
            "version": settings.APP_VERSION,
            "environment": settings.APP_ENV,
            "database": database,
        }

    @app.get("/reference", include_in_schema=False)
    async def scalar_html():
        return get_scalar_api_reference(
            openapi_url=app.openapi_url,
            title=f"{settings.APP_NAME} - API Reference",
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("academy.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
