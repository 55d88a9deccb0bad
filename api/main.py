from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_cache import FastAPICache
from fastapi_cache.backends.inmemory import InMemoryBackend
from fastapi_cache.backends.redis import RedisBackend
from redis import asyncio as redis_async
from slowapi.errors import RateLimitExceeded

from api.catalog import router as catalog_router
from api.middleware import route_guard
from api.observability import (
    bind_user_id,
    configure_logging,
    monotonic_ms,
    request_log_fields,
    reset_request_id,
    resolve_request_id,
    set_request_id,
)
from api.pages import router as pages_router
from api.ratelimit import limiter, rate_limit_exceeded_handler
from api.routes import router
from core.config import Settings, get_settings, settings_issues, validate_settings
from core.errors import AppError

logger = logging.getLogger(__name__)


def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("app_error", extra={"code": exc.code, "path": request.url.path, "error": exc.message})
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


def _check_settings(settings: Settings) -> None:
    if settings.is_production:
        validate_settings(settings)
        return
    for issue in settings_issues(settings):
        logger.warning("config_issue", extra={"issue": issue, "app_env": settings.app_env})


async def _init_cache(app: FastAPI, settings: Settings) -> None:
    try:
        client = redis_async.from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
        await client.ping()
    except Exception as exc:  # pragma: no cover - depends on runtime infra
        logger.warning("Redis unavailable, using in-memory cache backend: %s", exc)
        FastAPICache.init(InMemoryBackend(), prefix=settings.cache_prefix)
        app.state.redis = None
        app.state.cache_backend = "memory"
    else:
        FastAPICache.init(RedisBackend(client), prefix=settings.cache_prefix)
        app.state.redis = client
        app.state.cache_backend = "redis"
    logger.info("cache_backend_initialized", extra={"cache_backend": app.state.cache_backend})


def _log_request(
    request: Request, status_code: int, started_ms: float, location: Optional[str] = None, failed: bool = False
) -> None:
    fields = request_log_fields(
        method=request.method,
        path=request.url.path,
        status_code=status_code,
        duration_ms=monotonic_ms() - started_ms,
        client_ip=getattr(request.client, "host", None),
        redirect_to=location if 300 <= status_code < 400 else None,
    )
    if failed:
        logger.exception("http_request_error", extra=fields)
    else:
        logger.info("http_request", extra=fields)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _check_settings(settings)
        if settings.seed_database:
            from db.seed import seed_database

            seed_database()
        await _init_cache(app, settings)
        logger.info(
            "app_started",
            extra={
                "app_env": settings.app_env,
                "mock_payments": settings.mock_payments,
                "skip_email_verification": settings.skip_email_verification,
            },
        )
        try:
            yield
        finally:
            if app.state.redis is not None:
                await app.state.redis.aclose()

    # @cache endpoints need a backend even when the lifespan never runs.
    FastAPICache.init(InMemoryBackend(), prefix=settings.cache_prefix)

    app = FastAPI(title="Coaching Platform API", version="1.0.0", lifespan=lifespan)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(AppError, app_error_handler)
    app.include_router(router)
    app.include_router(catalog_router)
    app.include_router(pages_router)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Added before the logging middleware so the redirects it issues are logged too.
    app.middleware("http")(route_guard)

    @app.middleware("http")
    async def request_context_and_logging(request: Request, call_next: Callable) -> Response:
        header_name = settings.request_id_header_name or "X-Request-ID"
        request_id = resolve_request_id(request.headers.get(header_name))
        token = set_request_id(request_id)
        bind_user_id(None)
        started_ms = monotonic_ms()
        try:
            response = await call_next(request)
        except Exception:
            _log_request(request, 500, started_ms, failed=True)
            raise
        else:
            response.headers[header_name] = request_id
            _log_request(request, response.status_code, started_ms, response.headers.get("location"))
            return response
        finally:
            reset_request_id(token)

    return app


app = create_app()
