"""
Voltline API
FastAPI backend for electrical contracting projects: cable schedules and
sizing, cost reports and handover document tracking.
"""
import os
import logging
import time
import collections
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

load_dotenv()

from voltline.services.logging_config import setup_logging  # noqa: E402
from voltline.services.middleware import RequestTimingMiddleware  # noqa: E402
from voltline.db import init_db  # noqa: E402

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(level=_log_level, json_output=_json_logs)
logger = logging.getLogger("voltline-api")

APP_VERSION = "1.0.0"
_PROCESS_START = time.monotonic()
RATE_WINDOW_SECONDS = 60

for var in ["DATABASE_URL", "JWT_SECRET_KEY"]:
    if not os.getenv(var):
        logger.warning(f"MISSING env var: {var}, running in dev mode")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield


app = FastAPI(
    title="Voltline API",
    version=APP_VERSION,
    description="Cable schedules, SANS 10142-1 cable sizing, cost reports and handover tracking",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Rate Limiting Middleware
# ---------------------------------------------------------------------------
class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding-window rate limiter.
    Buckets:
      - /api/auth/login, /api/auth/register : 5 req/min per IP
      - Excel import endpoints              : 10 req/min per IP
      - everything else                     : 120 req/min per IP
    """
    def __init__(self, app):
        super().__init__(app)
        self._windows: dict = collections.defaultdict(collections.deque)
        self._last_sweep = time.monotonic()

    def _get_limit(self, path: str) -> int:
        if path in ("/api/auth/login", "/api/auth/register"):
            return 5
        if path.endswith("/import"):
            return 10
        return 120

    def _sweep(self, now: float) -> None:
        """Drop buckets with no request inside the window."""
        self._last_sweep = now
        for bucket in [b for b, w in self._windows.items() if not w or now - w[-1] > RATE_WINDOW_SECONDS]:
            del self._windows[bucket]

    async def dispatch(self, request: Request, call_next):
        ip = request.client.host if request.client else "unknown"
        path = request.url.path
        limit = self._get_limit(path)
        bucket = f"{ip}:{path if limit <= 10 else 'general'}"
        now = time.monotonic()
        if now - self._last_sweep > RATE_WINDOW_SECONDS:
            self._sweep(now)
        window = self._windows[bucket]
        while window and now - window[0] > RATE_WINDOW_SECONDS:
            window.popleft()
        if len(window) >= limit:
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests. Please slow down."},
                headers={"Retry-After": str(RATE_WINDOW_SECONDS)},
            )
        window.append(now)
        return await call_next(request)


# ---------------------------------------------------------------------------
# Security Headers Middleware
# ---------------------------------------------------------------------------
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


_cors_default = "http://localhost:3000,http://localhost:5173"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With", "X-Request-ID"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RateLimitMiddleware)
# Outermost so the request id and timing cover every other middleware
app.add_middleware(RequestTimingMiddleware)

# Routers
from voltline.api.auth_routes import router as auth_router  # noqa: E402
from voltline.api.project_routes import router as project_router  # noqa: E402
from voltline.api.cable_routes import router as cable_router  # noqa: E402
from voltline.api.settings_routes import router as settings_router  # noqa: E402
from voltline.api.cost_report_routes import router as cost_report_router  # noqa: E402
from voltline.api.handover_routes import router as handover_router  # noqa: E402
from voltline.api.report_routes import router as report_router  # noqa: E402

app.include_router(auth_router)
app.include_router(project_router)
app.include_router(cable_router)
app.include_router(settings_router)
app.include_router(cost_report_router)
app.include_router(handover_router)
app.include_router(report_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": APP_VERSION,
        "db_configured": bool(os.getenv("DATABASE_URL")),
        "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("voltline.main:app", host="0.0.0.0", port=8000, reload=True)
