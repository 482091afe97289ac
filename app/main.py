"""AutoEditor Plans API - FastAPI application entrypoint."""
import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import LEDGER_BACKEND_SQLITE, load_config, log_config_snapshot
from app.correlation import CorrelationIdMiddleware, RequestIdLogFilter
from app.dependencies import get_catalog
from app.routers import billing
from app.routers import entitlements

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
)
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdLogFilter())
logger = logging.getLogger(__name__)

# Load and validate configuration at startup
_config = load_config()
log_config_snapshot(_config)

# Export config value for middleware (validated)
MAX_REQUEST_SIZE_BYTES = _config.max_request_size_bytes


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests exceeding size limit to prevent payload bombs."""

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                too_large = int(content_length) > MAX_REQUEST_SIZE_BYTES
            except ValueError:
                return JSONResponse(
                    status_code=400,
                    content={"detail": "Invalid Content-Length"},
                )
            if too_large:
                return JSONResponse(
                    status_code=413,
                    content={"detail": "Request entity too large"},
                )
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        return response


# Capture service start time for uptime reporting
_SERVICE_START_TIME = datetime.now(timezone.utc)

app = FastAPI(
    title="AutoEditor Plans",
    description="Plan entitlements and usage quotas",
    version=_config.service_version,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware stack (order matters - added in reverse execution order)
# 1. CorrelationId: First to run, wraps everything, adds X-Request-Id to responses
# 2. SecurityHeaders: Adds security headers to responses
# 3. RequestSizeLimit: Rejects oversized requests early
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestSizeLimitMiddleware)

app.include_router(entitlements.router)
app.include_router(billing.router)


@app.on_event("startup")
async def startup_event():
    """Initialize the usage tables and the tier catalog."""
    if _config.ledger_backend == LEDGER_BACKEND_SQLITE:
        from persistence.db import init_db
        init_db()
        logger.info("Database initialized")
    get_catalog()


@app.get("/health")
async def health():
    """Health check with service observability."""
    return {
        "status": "healthy",
        "service": _config.service_name,
        "version": _config.service_version,
        "environment": _config.environment,
        "ledger_backend": _config.ledger_backend,
        "catalog_version": get_catalog().version,
        "started_at": _SERVICE_START_TIME.isoformat(),
    }
