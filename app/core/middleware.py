import time
import uuid

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from ..errors import BusinessError

logger = structlog.get_logger("bizops.middleware")


class DistributedTracingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
            app="bizops",
        )

        start_time = time.perf_counter()

        try:
            response: Response = await call_next(request)
        except Exception as exc:
            process_time = (time.perf_counter() - start_time) * 1000
            logger.error(
                "request_failed",
                error=str(exc),
                duration_ms=round(process_time, 2),
            )
            return JSONResponse(
                status_code=500,
                content={"error": "Internal Server Error"},
                headers={"X-Request-ID": request_id},
            )

        process_time = (time.perf_counter() - start_time) * 1000
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "request_finished",
            status=response.status_code,
            duration_ms=round(process_time, 2),
        )

        return response


async def business_error_handler(request: Request, exc: BusinessError):
    if exc.status_code >= 500:
        logger.error("business_error", error=exc.detail, kind=type(exc).__name__)
    else:
        logger.info("business_error", error=exc.detail, kind=type(exc).__name__, status=exc.status_code)
    content = {"error": exc.detail}
    if exc.status_code == 502:
        content = {"error": exc.default_detail, "details": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Missing or invalid fields", "details": jsonable_encoder(exc.errors())},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BusinessError, business_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
