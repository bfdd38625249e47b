"""Redis connection helper shared by the registry, claim ledger and limiter."""

import logging

from redis import Redis

logger = logging.getLogger(__name__)


def connect_redis(url: str) -> Redis:
    """Connect to Redis and verify the connection with a ping.

    Responses are decoded to ``str``; every stored value is JSON or a counter.

    Raises
    ------
    redis.exceptions.RedisError
        If the server cannot be reached. Callers treat this as fatal: claims
        must never silently fall back to per-process storage.
    """
    client = Redis.from_url(url, decode_responses=True)
    client.ping()
    logger.info("Redis connected", extra={"database_url": url})
    return client
