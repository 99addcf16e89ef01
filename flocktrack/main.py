from __future__ import annotations

# Run locally with:
#   python -m uvicorn flocktrack.main:app --reload

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import configure_logging
from . import schemas
from .database import Base, engine
from .routers import batch_events as batch_events_router
from .routers import customers, death_records, flock_batches, flock_summary
from .routers import egg_entries as egg_entries_router
from .routers import expenses as expenses_router
from .routers import feed_inventory as feed_inventory_router
from .routers import flock_events as flock_events_router
from .routers import flock_profile as flock_profile_router
from .routers import profile as profile_router
from .routers import sales as sales_router

configure_logging()
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Flock Tracker")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Methods": "GET,OPTIONS,POST,PUT,DELETE",
    "Access-Control-Allow-Headers": "Accept, Authorization, Content-Type, X-Requested-With",
}


# -----------------------------
# CORS
# -----------------------------
@app.middleware("http")
async def permissive_cors(request: Request, call_next):
    # Preflight never reaches the routers
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


# -----------------------------
# ERROR ENVELOPES
# -----------------------------
def _error(status_code: int, message: str, details: dict | None = None, headers=None) -> JSONResponse:
    body = schemas.ErrorOut(error=message, details=details or None).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body, headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    details: dict[str, str] = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        msg = str(err.get("msg", "Invalid value")).removeprefix("Value error, ")
        details.setdefault(".".join(loc) or "request", msg)
    first = next(iter(details.values()), "Request validation failed")
    return _error(400, first, details)


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    # Served by ServerErrorMiddleware, outside permissive_cors
    return _error(500, "Internal server error", headers=CORS_HEADERS)


# -----------------------------
# API ROUTERS
# -----------------------------
app.include_router(customers.router)
app.include_router(flock_batches.router)
app.include_router(death_records.router)
app.include_router(batch_events_router.router)
app.include_router(flock_summary.router)
app.include_router(egg_entries_router.router)
app.include_router(flock_events_router.router)
app.include_router(sales_router.router)
app.include_router(expenses_router.router)
app.include_router(feed_inventory_router.router)
app.include_router(flock_profile_router.router)
app.include_router(profile_router.router)


@app.get("/")
def root():
    return {"status": "ok", "docs": "/docs"}


@app.get("/health")
def health():
    return {"ok": True}
