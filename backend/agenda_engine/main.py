"""FastAPI application entrypoint."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from secure import Secure
from asgi_correlation_id import CorrelationIdMiddleware
from fastapi_limiter import FastAPILimiter
import redis.asyncio as redis  # type: ignore[import-untyped]

from agenda_engine.api import api_router
from agenda_engine.api.deps import get_scheduler
from agenda_engine.core.config import get_settings
from agenda_engine.db.session import dispose_engine
from agenda_engine.scheduler.offer_expiry_job import build_scheduler
from agenda_engine.security import logging_filters

logger = logging.getLogger(__name__)

settings = get_settings()

_ALLOWED_ORIGINS = [origin for origin in settings.cors_allowlist if origin]
if not _ALLOWED_ORIGINS:
    _ALLOWED_ORIGINS = ["http://localhost:5173"]


async def _start_rate_limiter():
    if not settings.redis_url:
        logger.info("REDIS_URL not set; booking rate limiting disabled")
        return None
    redis_pool = None
    try:
        redis_pool = redis.from_url(
            settings.redis_url, encoding="utf-8", decode_responses=True
        )
        await FastAPILimiter.init(redis_pool)
    except Exception:  # pragma: no cover - limiter startup is best effort
        logger.exception("Failed to initialize rate limiter")
        FastAPILimiter.redis = None
    return redis_pool


@asynccontextmanager
async def lifespan(_: FastAPI):
    redis_pool = await _start_rate_limiter()
    offer_sweeper = build_scheduler(get_scheduler())
    if offer_sweeper is not None:
        offer_sweeper.start()
    try:
        yield
    finally:
        if offer_sweeper is not None:
            offer_sweeper.shutdown(wait=False)
        if redis_pool is not None:
            try:
                await FastAPILimiter.close()
            except Exception:  # pragma: no cover - limiter shutdown
                logger.exception("Failed to close rate limiter")
            finally:
                try:
                    await redis_pool.aclose()
                except Exception:
                    logger.exception("Failed to close redis pool")
        await dispose_engine()


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_ALLOWED_ORIGINS,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)
app.add_middleware(CorrelationIdMiddleware, header_name="X-Request-ID")

_secure_headers = Secure()


@app.middleware("http")
async def _apply_security_headers(request, call_next):
    response = await call_next(request)
    _secure_headers.set_headers(response)
    correlation_id = getattr(request.state, "correlation_id", None)
    if correlation_id:
        response.headers.setdefault("X-Request-ID", str(correlation_id))
    return response


logging_filters.install()

app.include_router(api_router)


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Return a simple welcome message."""
    return {"message": settings.app_name}
