import uuid
from contextlib import contextmanager
from typing import Iterator

import redis

from cart_engine.domain.exceptions import CartConflictError
from cart_engine.utils.retry import redis_retry
from cart_engine.utils.settings import MERGE_LOCK_TTL_SECONDS, REDIS_URL
from cart_engine.utils.logging import get_logger

logger = get_logger(__name__)

#compare-and-delete in one script, nothing can run between GET and DEL
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    Short-lived exclusive locks in redis.
    - acquire: SET key token NX EX ttl
    - release: only by the holder of the token (lua)
    Locks expire on their own if the holder dies.
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @redis_retry()
    def acquire(self, key: str, token: str, ttl: int) -> bool:
        logger.info(f"Acquire lock {key}")
        return bool(self.redis.set(name=key, value=token, nx=True, ex=ttl))

    @redis_retry()
    def release(self, key: str, token: str) -> bool:
        logger.info(f"Release lock {key}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)

    @contextmanager
    def hold(self, key: str, ttl: int = MERGE_LOCK_TTL_SECONDS) -> Iterator[str]:
        """Holds `key` for the duration of the block or raises CartConflictError."""
        token = uuid.uuid4().hex
        if not self.acquire(key, token, ttl):
            raise CartConflictError("Cart is being modified by another request, try again")
        try:
            yield token
        finally:
            try:
                self.release(key, token)
            except redis.RedisError:
                # the lock still expires after ttl
                logger.warning(f"Failed to release lock {key}", exc_info=True)


def merge_lock_key(guest_token: str) -> str:
    return f"cart:merge:{guest_token}"
