import logging

from redis.exceptions import RedisError

from app.core.settings import settings
from app.utils.redis_client import get_redis_client

logger = logging.getLogger(__name__)


def _ttl(seconds: int) -> int:
    return max(1, seconds)


def _identifier(intercom_id: int, ip: str | None) -> str:
    return f"{intercom_id}:{ip or 'unknown'}"


async def is_throttled(intercom_id: int, ip: str | None) -> bool:
    """True while the (intercom, client) pair is locked out. Redis errors fail open."""
    redis = get_redis_client()
    try:
        return bool(await redis.get(f"verify_lock:{_identifier(intercom_id, ip)}"))
    except RedisError:
        logger.warning("Verify throttle unavailable; allowing attempt", exc_info=True)
        return False


async def register_verify_attempt(intercom_id: int, ip: str | None, success: bool) -> None:
    redis = get_redis_client()
    identifier = _identifier(intercom_id, ip)
    fail_key = f"verify_fail:{identifier}"
    lock_key = f"verify_lock:{identifier}"
    window = _ttl(settings.verify_lockout_minutes * 60)
    try:
        if success:
            await redis.delete(fail_key)
            return
        attempts = await redis.incr(fail_key)
        await redis.expire(fail_key, window)
        if attempts >= settings.verify_failure_limit:
            await redis.setex(lock_key, window, 1)
            await redis.delete(fail_key)
            logger.warning(
                "Verify attempts locked out",
                extra={"event": {"name": "verify_lockout", "intercom_id": intercom_id, "ip": ip}},
            )
    except RedisError:
        logger.warning("Verify throttle unavailable; attempt not counted", exc_info=True)
        return
