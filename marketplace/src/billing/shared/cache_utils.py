"""
Cache Utilities for Billing

Provides cache key management and invalidation functions for credit data.
Redis is a best-effort read-through cache: any cache failure is logged and
treated as a miss, the ledger tables stay the source of truth.
"""

import json
import logging
from typing import Optional

from marketplace.core.conf import settings

# Cache TTL constants (in seconds)
CREDIT_BALANCE_CACHE_TTL: int = settings.CREDIT_BALANCE_CACHE_TTL
CREDIT_USAGE_CACHE_TTL: int = settings.CREDIT_BALANCE_CACHE_TTL

logger = logging.getLogger(__name__)


def credit_balance_key(user_id: str) -> str:
    return f"{settings.CREDIT_BALANCE_CACHE_PREFIX}:{user_id}"


def credit_usage_key(user_id: str) -> str:
    return f"{settings.CREDIT_BALANCE_CACHE_PREFIX}:usage:{user_id}"


async def invalidate_credit_caches(user_id: str) -> bool:
    """
    Invalidate all credit-related caches for a user.

    Should be called whenever credits are deducted, refilled, reset,
    created or migrated.

    Args:
        user_id: The user whose caches should be invalidated

    Returns:
        True if all caches were invalidated, False on error
    """
    try:
        from marketplace.database.redis import redis_client

        await redis_client.delete(credit_balance_key(user_id), credit_usage_key(user_id))

        logger.debug(f"[CACHE] Invalidated credit caches for {user_id}")
        return True

    except Exception as e:
        logger.warning(f"[CACHE] Failed to invalidate credit caches for {user_id}: {e}")
        return False


async def get_cached_value(key: str) -> Optional[dict]:
    """
    Get a cached value from Redis.

    Args:
        key: Cache key

    Returns:
        Cached value as dict, or None if not found
    """
    try:
        from marketplace.database.redis import redis_client

        cached = await redis_client.get(key)
        if cached:
            return json.loads(cached)
        return None

    except Exception as e:
        logger.warning(f"[CACHE] Failed to get cached value for {key}: {e}")
        return None


async def set_cached_value(key: str, value: dict, ttl: int = CREDIT_BALANCE_CACHE_TTL) -> bool:
    """
    Set a cached value in Redis.

    Args:
        key: Cache key
        value: Value to cache (will be JSON serialized)
        ttl: Time-to-live in seconds

    Returns:
        True if cached successfully, False on error
    """
    try:
        from marketplace.database.redis import redis_client

        await redis_client.setex(key, ttl, json.dumps(value, default=str))
        return True

    except Exception as e:
        logger.warning(f"[CACHE] Failed to set cached value for {key}: {e}")
        return False


async def get_cached_credit_balance(user_id: str) -> Optional[dict]:
    return await get_cached_value(credit_balance_key(user_id))


async def cache_credit_balance(user_id: str, balance: dict) -> bool:
    return await set_cached_value(credit_balance_key(user_id), balance, CREDIT_BALANCE_CACHE_TTL)
