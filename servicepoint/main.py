import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from servicepoint.api.routes import admin as admin_router
from servicepoint.api.routes import auth as auth_router
from servicepoint.api.routes import bookings as bookings_router
from servicepoint.api.routes import garages as garages_router
from servicepoint.api.routes import users as users_router
from servicepoint.core.config import get_settings
from servicepoint.core.exceptions import RateLimitExceeded, ServicePointError
from servicepoint.core.logging import configure_logging
from servicepoint.core.rate_limit import InMemoryRateLimitStore, RateLimitPruner
from servicepoint.db import models  # noqa: F401  (registers every table)
from servicepoint.db.base import Base, engine

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title="Service Point API")

app.state.rate_limit_store = InMemoryRateLimitStore()
app.state.rate_limit_pruner = RateLimitPruner(
    app.state.rate_limit_store,
    interval=settings.rate_limit_prune_interval_seconds,
    max_age=settings.rate_limit_retention_seconds,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url, *settings.cors_origins],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def request_timeout(request: Request, call_next):
    try:
        return await asyncio.wait_for(call_next(request), timeout=settings.request_timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning("Request timed out: %s %s", request.method, request.url.path)
        return JSONResponse(status_code=408, content={"success": False, "message": "Request timeout"})


@app.on_event("startup")
def startup():
    configure_logging(settings.log_level)
    Base.metadata.create_all(bind=engine)
    app.state.rate_limit_pruner.start()
    logger.info("Service Point API started (%s)", settings.environment)


@app.on_event("shutdown")
def shutdown():
    app.state.rate_limit_pruner.stop()


# --------------------------------------------------
# error envelope
# --------------------------------------------------

@app.exception_handler(ServicePointError)
async def service_point_error_handler(request: Request, exc: ServicePointError):
    headers = None
    if isinstance(exc, RateLimitExceeded):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    # unmatched paths come through here with the default detail
    if exc.status_code == 404 and exc.detail == "Not Found" and request.url.path.startswith("/api"):
        message = "API endpoint not found"
    else:
        message = exc.detail
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": message},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err["loc"] if part not in ("body", "query", "path")),
            "message": err["msg"],
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Invalid input data", "errors": errors},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Server Error",
            "error": "Internal Server Error" if settings.is_production else str(exc),
        },
    )


@app.get("/")
def root():
    return {"message": "Service Point API running"}


@app.get("/api/health")
def health():
    return {"success": True, "status": "ok", "environment": settings.environment}


app.include_router(auth_router.router, prefix="/api")
app.include_router(admin_router.router, prefix="/api")
app.include_router(garages_router.router, prefix="/api")
app.include_router(bookings_router.router, prefix="/api")
app.include_router(users_router.router, prefix="/api")
