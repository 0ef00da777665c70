import logging
import sys
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from taskapp.api.v1 import auth, tasks

# Ensure app loggers print to stdout so you see them in the terminal
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
logging.getLogger("taskapp").setLevel(logging.DEBUG)
from taskapp.config import settings
from taskapp.core.errors import AppError, InternalError, ValidationError
from taskapp.db.session import init_db
from prometheus_client import make_asgi_app

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()

# Human labels for field names in "<Field> is required" messages
FIELD_LABELS = {
    "email": "Email",
    "password": "Password",
    "name": "Name",
    "title": "Title",
    "refreshToken": "Refresh token",
    "refresh_token": "Refresh token",
}


async def scheduled_token_purge():
    """Delete expired refresh tokens so the table only holds live sessions."""
    from taskapp.db.session import async_session_maker
    from taskapp.services.sessions import purge_expired

    async with async_session_maker() as session:
        removed = await purge_expired(session)
        await session.commit()
    if removed:
        logger.info("Purged %s expired refresh token(s)", removed)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings.validate_jwt_config()
    await init_db()
    if settings.token_purge_interval_minutes > 0:
        scheduler.add_job(
            scheduled_token_purge,
            "interval",
            minutes=settings.token_purge_interval_minutes,
            id="refresh_token_purge",
            replace_existing=True,
        )
        scheduler.start()
    yield
    if scheduler.running:
        scheduler.shutdown()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def first_validation_message(errors: list[dict]) -> str:
    """Only the first field error is reported to the client."""
    if not errors:
        return "Validation failed"
    err = errors[0]
    err_type = err.get("type")
    loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
    if err_type == "json_invalid":
        return "Invalid JSON body"
    if err_type in ("model_attributes_type", "dict_type", "model_type"):
        return "Request body is required"
    if err_type == "missing":
        if not loc:
            return "Request body is required"
        field = loc[-1]
        return f"{FIELD_LABELS.get(field, field.replace('_', ' ').capitalize())} is required"
    ctx_error = (err.get("ctx") or {}).get("error")
    if ctx_error is not None:
        return str(ctx_error)
    return err.get("msg") or "Validation failed"


def register_exception_handlers(app: FastAPI) -> None:
    """Every failure leaves as {"success": false, "error": ...}; internals are logged, never sent."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        err = ValidationError(first_validation_message(exc.errors()))
        return _error(err.status_code, err.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        err = InternalError()
        message = err.message
        if settings.debug:
            message += f": {type(exc).__name__}: {exc}"
        return _error(err.status_code, message)


app = FastAPI(
    title="Task Tracker API",
    description="Personal task tracking: accounts, JWT sessions, user-scoped tasks",
    version="0.1.0",
    lifespan=lifespan,
)
register_exception_handlers(app)
app.add_middleware(GZipMiddleware, minimum_size=500)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if getattr(settings, "enable_hsts", False):
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()] if settings.cors_origins else ["*"]
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(auth.router, prefix="/api")
app.include_router(tasks.router, prefix="/api")

metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


@app.get("/health")
def health(request: Request):
    return {"status": "ok"}
