"""
Identity Reconciliation - FastAPI Application Entry Point

Run through the CLI so logging and bind settings are applied:

    python identify.py serve --port 3000
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.middleware import BodySizeLimitMiddleware, RateLimitMiddleware, RequestLoggingMiddleware
from api.routes import identify
from db.connection import create_engine, create_session_factory, dispose_engine
from identity.errors import InvalidRequest, StoreError
from service_config import (
    MAX_BODY_BYTES,
    cors_origins,
    environment,
    is_production,
    rate_limit_max_requests,
    rate_limit_window_seconds,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "Identity Reconciliation"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the connection pool at startup and dispose it at shutdown."""
    engine = create_engine()
    app.state.session_factory = create_session_factory(engine)
    logger.info("%s started (environment=%s)", SERVICE_NAME, environment())

    yield  # Application runs here

    await dispose_engine(engine)
    logger.info("Database engine disposed")


app = FastAPI(
    title=SERVICE_NAME,
    description="Consolidates contact records into identity groups",
    version="1.0.0",
    lifespan=lifespan,
)

# Starlette runs the last-added middleware first: CORS, access log, body limit,
# then the rate limiter.
app.add_middleware(
    RateLimitMiddleware,
    max_requests=rate_limit_max_requests(),
    window_seconds=rate_limit_window_seconds(),
)
app.add_middleware(BodySizeLimitMiddleware, max_bytes=MAX_BODY_BYTES)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins(),
    allow_methods=["POST"],
    allow_headers=["Content-Type"],
    max_age=86400,
)

app.include_router(identify.router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report each invalid field with its message; an unparseable body is a 400."""
    if any(error.get("type") == "json_invalid" for error in exc.errors()):
        return JSONResponse(status_code=400, content={"error": "Invalid JSON in request body"})
    errors = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        errors.append({
            "field": ".".join(loc) or "body",
            "message": error.get("msg", "Invalid value"),
        })
    return JSONResponse(status_code=422, content={"errors": errors})


@app.exception_handler(InvalidRequest)
async def invalid_request_handler(request: Request, exc: InvalidRequest):
    return JSONResponse(status_code=400, content={"error": exc.reason})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    """Hide store details in production; surface them elsewhere for debugging."""
    logger.error("Store failure during %s %s: %s", request.method, request.url.path, exc)
    message = "Internal server error" if is_production() else str(exc)
    return JSONResponse(status_code=500, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error during %s %s", request.method, request.url.path)
    message = "Internal server error" if is_production() else (str(exc) or "Internal server error")
    return JSONResponse(status_code=500, content={"error": message})


@app.get("/")
async def health_check():
    return {"status": "ok", "service": SERVICE_NAME}
