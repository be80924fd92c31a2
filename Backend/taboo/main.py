import logging
from contextlib import asynccontextmanager

import redis.asyncio as redis
import sentry_sdk
from fastapi import FastAPI
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from taboo.config import settings
from taboo.database import Database
from taboo.services.word_set_repository import create_repository

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

# Silence noisy third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

# Initialize Sentry
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        traces_sample_rate=0.2 if settings.ENVIRONMENT == "production" else 1.0,
        send_default_pii=False,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: the pool is created here and owned by app.state until shutdown
    database = Database.from_settings(settings)
    try:
        await database.ping()
        if settings.DB_AUTO_CREATE:
            await database.create_all()
        logger.info("Remote store reachable")
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Remote store unreachable at startup, serving fallback tiers: %s", exc)

    redis_client = redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_timeout=settings.DB_POOL_TIMEOUT,
        socket_connect_timeout=settings.DB_POOL_TIMEOUT,
    )
    try:
        await redis_client.ping()
        logger.info("Local cache reachable")
    except (RedisError, OSError) as exc:
        logger.warning("Local cache unreachable at startup: %s", exc)

    app.state.database = database
    app.state.redis = redis_client
    app.state.repository = create_repository(database, redis_client, settings)

    yield

    # Shutdown
    await redis_client.aclose()
    await database.dispose()


app = FastAPI(
    title="Taboo Word Sets API",
    version="0.1.0",
    lifespan=lifespan,
)

# Middleware
from taboo.middleware.cors import DeviceCORSMiddleware  # noqa: E402

app.add_middleware(DeviceCORSMiddleware, allow_origins=settings.CORS_ORIGINS)

from taboo.middleware.error_handler import register_error_handlers  # noqa: E402

register_error_handlers(app)

# Routers
from taboo.routers.wordsets import router as wordsets_router  # noqa: E402

app.include_router(wordsets_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
