import logging

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from core.logging_utils import set_level_of_loggers_with_prefix

from .config import get_reduction_settings
from .router import notification_router

app = FastAPI(
    title="Trip Reduction",
    version="1.0.0",
)
set_level_of_loggers_with_prefix(
    get_reduction_settings().LOG_LEVEL, "trip_reduction", "core"
)


class LogRequestMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        logging.getLogger("trip_reduction.requests").info(
            f"{request.method} {request.url.path} -> {response.status_code}"
        )
        return response


app.add_middleware(LogRequestMiddleware)

app.include_router(notification_router)


@app.get("/health", include_in_schema=False)
async def health_check():
    return {"status": "healthy"}
