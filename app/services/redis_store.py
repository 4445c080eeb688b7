# app/services/redis_store.py - store probes used by readiness and debug routes
import time
import uuid

from app.infrastructure.observability.logging import get_logger
from app.services.redis_client import fast_redis

logger = get_logger(__name__)

PROBE_TTL_SECONDS = 10


async def ping() -> bool:
    return await fast_redis.ping()


async def health_check(index_keys: dict[str, str] | None = None) -> dict:
    """
    Ping, then a write/read/delete round trip on a throwaway key.

    index_keys maps a label to a sorted-set key whose size is reported
    alongside, e.g. {"unscored_backlog": "messages:unscored"}.
    """
    started = time.perf_counter()
    try:
        if not await ping():
            return {"healthy": False, "ping": False, "error": "Redis ping failed", "service": "redis_store"}

        probe_key = f"health:probe:{uuid.uuid4().hex}"
        probe_value = str(time.time())
        written = await fast_redis.set_with_ttl(probe_key, probe_value, PROBE_TTL_SECONDS)
        read_back = await fast_redis.get(probe_key) if written else None
        if written:
            await fast_redis.delete(probe_key)

        round_trip_ok = written and read_back == probe_value
        result = {
            "healthy": round_trip_ok,
            "ping": True,
            "round_trip": round_trip_ok,
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
            "service": "redis_store",
        }
        if index_keys:
            result["index_sizes"] = {label: await fast_redis.zcard(key) for label, key in index_keys.items()}
        return result

    except Exception as e:
        logger.error("Redis health check failed", error=str(e), error_type=type(e).__name__)
        return {"healthy": False, "error": str(e), "service": "redis_store"}
