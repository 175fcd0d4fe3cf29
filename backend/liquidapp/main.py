import hmac
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from liquidapp.api.routes import router
from liquidapp.config import settings
from liquidapp.errors import LiquidAppError

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Report missing model credentials at startup instead of on the first capture."""
    if not settings.VISION_API_KEY:
        logger.critical(
            "VISION_API_KEY is not set; evidence analysis and pre-reports will be rejected"
        )
    if settings.STORAGE_SIGNING_SECRET == "change-me":
        logger.warning("STORAGE_SIGNING_SECRET uses the default value; signed URLs are forgeable")
    yield


app = FastAPI(
    title="LiquidApp",
    description=(
        "Insurance-claim intake and liquidation workflow: evidence capture, "
        "AI damage/fraud analysis and per-claim summaries."
    ),
    version=settings.VERSION,
    lifespan=lifespan,
)

# CORS origins from settings (comma-separated env var)
cors_origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# API key authentication middleware
class APIKeyMiddleware(BaseHTTPMiddleware):
    """Simple API key check. If LIQUIDAPP_API_KEY is unset, all requests pass."""

    # Signed storage URLs carry their own authorization (the model provider fetches them)
    _OPEN_PREFIXES = ("/health", "/docs", "/openapi.json", "/redoc", "/api/v1/storage/objects/")

    async def dispatch(self, request: Request, call_next):
        if settings.LIQUIDAPP_API_KEY is not None:
            path = request.url.path
            is_open = any(path.startswith(p) for p in self._OPEN_PREFIXES)
            if not (is_open and request.method == "GET"):
                api_key = request.headers.get("X-API-Key")
                if not hmac.compare_digest(api_key or "", settings.LIQUIDAPP_API_KEY):
                    return JSONResponse(
                        status_code=401,
                        content={"error": "Invalid or missing API key", "code": "unauthorized"},
                    )
        return await call_next(request)


app.add_middleware(APIKeyMiddleware)

# Per-client limit applied to every HTTP route
limiter = Limiter(key_func=get_remote_address, default_limits=[settings.RATE_LIMIT_DEFAULT])
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

app.include_router(router, prefix="/api/v1")


# ── Structured error handlers ─────────────────────────────────────────────────

@app.exception_handler(LiquidAppError)
async def liquidapp_error_handler(request: Request, exc: LiquidAppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed [%s]: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = sorted({str(err["loc"][-1]) for err in exc.errors() if err.get("loc")})
    message = f"Campos requeridos faltantes o inválidos: {', '.join(fields)}" if fields else "Solicitud inválida"
    return JSONResponse(status_code=400, content={"error": message, "code": "validation_error"})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail), "code": "http_error"})


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    return JSONResponse(status_code=409, content={"error": "Conflict", "code": "conflict"})


@app.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s %s:\n%s", request.method, request.url.path, traceback.format_exc())
    return JSONResponse(status_code=500, content={"error": "Error interno del servidor", "code": "internal_error"})


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "version": settings.VERSION}
