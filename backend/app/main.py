from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.router import api_router
from app.core.config import settings
from app.core.database import engine
from app.core.exceptions import OnboardingError
from app.core.logging import setup_logging
from app.core.middleware import CorrelationIdMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("app.startup", env=settings.APP_ENV)
    yield
    await engine.dispose()
    logger.info("app.shutdown")


async def onboarding_error_handler(request: Request, exc: OnboardingError) -> JSONResponse:
    # Routers translate known errors; anything reaching here was not mapped
    logger.error("onboarding.unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": str(exc)})


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        lifespan=lifespan,
    )

    # Last added runs first: CORS answers preflight before correlation ids are bound
    application.add_middleware(CorrelationIdMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-ID"],
    )

    application.add_exception_handler(OnboardingError, onboarding_error_handler)
    application.include_router(api_router)

    return application


app = create_app()
