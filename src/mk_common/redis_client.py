"""Redis client factory — used for the sweep lock only.

NOT used for stock counts or order state (those go through PostgreSQL).
"""

import redis.asyncio as aioredis

from config.settings import Settings


def create_redis(settings: Settings) -> aioredis.Redis:
    """Create the Redis connection pool; the caller owns and closes it."""
    return aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )


async def close_redis(client: aioredis.Redis) -> None:
    await client.aclose()
