import logging

from fastapi import FastAPI
from redis.exceptions import RedisError

from app.core.settings import settings
from app.db.session import engine
from app.utils.redis_client import close_redis_client

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info("Application startup", extra={"event": {"name": "startup", "environment": settings.environment}})

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Application shutdown")
        try:
            await close_redis_client()
        except RedisError:
            logger.warning("Redis client did not close cleanly", exc_info=True)
        await engine.dispose()
