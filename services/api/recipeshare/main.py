"""
Recipe Sharing API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Create tables if not present
  3. Start Kafka producer (share emails)
  4. Expose Prometheus /metrics endpoint

Service errors are translated to the response envelope here:
  NotFoundError       → 404
  ValidationError     → 400
  ConflictError       → 409  (also IntegrityError: a lost race on a set key)
  AuthorizationError  → 403
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import IntegrityError

from recipeshare.clients.kafka_producer import init_kafka, stop_kafka
from recipeshare.config import settings
from recipeshare.database import init_db
from recipeshare.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    RecipeShareError,
    ValidationError,
)
from recipeshare.routers import comments, notifications, recipes, users
from recipeshare.schemas import envelope
from recipeshare.telemetry import instrument_app, setup_tracing

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()

STATUS_FOR_ERROR = {
    NotFoundError: 404,
    ValidationError: 400,
    ConflictError: 409,
    AuthorizationError: 403,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of all external connections."""
    logger.info("Starting Recipe Sharing API (env=%s)", settings.environment)

    await init_db()
    await init_kafka()

    logger.info("All services connected. API ready.")
    yield

    logger.info("Shutting down...")
    await stop_kafka()


app = FastAPI(
    title="Recipe Sharing API",
    description=(
        "Recipe authoring, discovery and social engagement: ratings, likes, "
        "comments, follows, favorites and notifications."
    ),
    version="1.0.0",
    lifespan=lifespan,
)


# ── Error envelope ─────────────────────────────────────────────────────────
@app.exception_handler(RecipeShareError)
async def handle_service_error(request: Request, exc: RecipeShareError):
    status_code = next(
        (code for kind, code in STATUS_FOR_ERROR.items() if isinstance(exc, kind)),
        500,
    )
    return JSONResponse(
        status_code=status_code,
        content=envelope(status="error", message=str(exc)),
    )


@app.exception_handler(IntegrityError)
async def handle_integrity_error(request: Request, exc: IntegrityError):
    logger.info("Integrity conflict on %s: %s", request.url.path, exc.orig)
    return JSONResponse(
        status_code=409,
        content=envelope(status="error", message="Conflicting update, please retry"),
    )


@app.exception_handler(HTTPException)
async def handle_http_exception(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=envelope(status="error", message=str(exc.detail)),
    )


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content=envelope(status="error", message=f"{field}: {message}" if field else message),
    )


# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(recipes.router, prefix="/recipes", tags=["Recipes"])
app.include_router(comments.router, prefix="/comments", tags=["Comments"])
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])

# ── Prometheus metrics endpoint ────────────────────────────────────────────
# Mounted at /metrics — scraped by Prometheus
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}
