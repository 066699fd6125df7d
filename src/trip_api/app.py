import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.logging_utils import set_level_of_loggers_with_prefix
from trip_api import __VERSION__
from trip_api.api.v1 import api_router
from trip_api.core.config import settings

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=False,
)

logger = structlog.get_logger()


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        logger.info(
            "Incoming request",
            method=request.method,
            url=str(request.url),
            client=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
            logger.info(
                "Response",
                status_code=response.status_code,
                method=request.method,
                url=str(request.url),
            )
            return response
        except Exception as e:
            logger.error(
                "Error while processing request",
                error=str(e),
                method=request.method,
                url=str(request.url),
                exc_info=True,
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"detail": "Internal server error"},
            )


@asynccontextmanager
async def lifespan(app: FastAPI):
    set_level_of_loggers_with_prefix(settings.LOG_LEVEL, "trip_api", "core")
    logger.info("Starting API", version=__VERSION__)
    yield
    logger.info("Stopping API")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Aggregated records of finished trips.",
    version=__VERSION__,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    lifespan=lifespan,
)

app.include_router(api_router, prefix=settings.API_V1_STR)

app.add_middleware(RequestLoggingMiddleware)  # type: ignore[arg-type]


@app.get("/health", include_in_schema=False)
async def health_check():
    return {"status": "healthy"}
