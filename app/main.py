import asyncio
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from .api import public_router, router
from .auth_api import router as auth_router
from .authn import default_session_store
from .config import settings
from .core.logging_config import setup_logging
from .core.middleware import DistributedTracingMiddleware, register_error_handlers
from .db import SessionLocal, init_db

log = structlog.get_logger("bizops")


def _read_app_version() -> str:
    version_file = Path(__file__).resolve().parents[1] / "VERSION"
    try:
        value = version_file.read_text(encoding="utf-8").strip()
        return value or "0.1.0"
    except Exception:
        return "0.1.0"


async def session_janitor(store, interval_seconds: float) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        store.purge_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    interval = max(1, int(settings.SESSION_JANITOR_MINUTES)) * 60
    janitor = asyncio.create_task(session_janitor(app.state.session_store, interval))
    try:
        yield
    finally:
        janitor.cancel()


setup_logging()

app = FastAPI(
    title="BizOps",
    description="Gallery, services, bookings and admin assistant API",
    version=_read_app_version(),
    lifespan=lifespan,
)
app.state.session_store = default_session_store
app.add_middleware(DistributedTracingMiddleware)
register_error_handlers(app)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    if bool(settings.SECURITY_HEADERS_ENABLED):
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
    return response


@app.get("/ping")
def ping():
    return {"ok": True}


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/health/ready")
def ready():
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
    except Exception as exc:
        log.error("readiness_db_failed", error=str(exc))
        return JSONResponse(status_code=503, content={"status": "not_ready", "checks": {"db": "error"}})
    return {"status": "ready", "checks": {"db": "ok"}}


app.include_router(public_router)
app.include_router(router)
app.include_router(auth_router)
