import random
import time
from dataclasses import dataclass
from typing import Callable

import redis

from constants import (
    RATE_LIMIT_IP_MAX,
    RATE_LIMIT_IP_WINDOW,
    RATE_LIMIT_USER_MAX,
    RATE_LIMIT_USER_WINDOW,
    RATE_LIMIT_ROOM_MAX,
    RATE_LIMIT_ROOM_WINDOW,
)
from errors import StoreUnavailableError
from redis_keys import REDIS_RATELIMIT_KEY
from logging_config import get_logger

logger = get_logger(__name__)

SCOPE_IP = "ip"
SCOPE_USER = "user"
SCOPE_ROOM = "room"


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float


class RateLimiter:
    """Sliding-window request counter on a Redis sorted set.

    Each request is a member scored by its timestamp (seconds). Members older
    than the window are evicted on every check, so the count always covers
    the trailing window rather than a fixed bucket.
    """

    def __init__(self, redis_client: redis.Redis, clock: Callable[[], float] = time.time):
        self.redis_client = redis_client
        self.clock = clock

    def check(self, identifier: str, scope: str, max_requests: int, window_seconds: int) -> RateLimitResult:
        key = REDIS_RATELIMIT_KEY.format(scope=scope, identifier=identifier)
        now = self.clock()
        window_start = now - window_seconds

        def _check(pipe):
            # Only members strictly inside the window count
            count = pipe.zcount(key, f"({window_start}", "+inf")
            if count >= max_requests:
                oldest = pipe.zrangebyscore(key, f"({window_start}", "+inf", start=0, num=1, withscores=True)
                reset_at = oldest[0][1] + window_seconds if oldest else now + window_seconds
                pipe.multi()
                pipe.zremrangebyscore(key, 0, window_start)
                return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)
            pipe.multi()
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zadd(key, {f"{now}:{random.random()}": now})
            pipe.expire(key, window_seconds)
            return RateLimitResult(allowed=True, remaining=max_requests - count - 1, reset_at=now + window_seconds)

        try:
            result = self.redis_client.transaction(_check, key, value_from_callable=True)
        except redis.RedisError as e:
            logger.error(f"Rate limit check failed for {scope}:{identifier}: {e}", exc_info=True)
            raise StoreUnavailableError("Rate limiter unavailable") from e

        if not result.allowed:
            logger.warning(f"Rate limit exceeded for {scope}:{identifier} ({max_requests}/{window_seconds}s)")
        return result

    def check_ip(self, ip: str) -> RateLimitResult:
        return self.check(ip, SCOPE_IP, RATE_LIMIT_IP_MAX, RATE_LIMIT_IP_WINDOW)

    def check_user(self, token: str) -> RateLimitResult:
        return self.check(token, SCOPE_USER, RATE_LIMIT_USER_MAX, RATE_LIMIT_USER_WINDOW)

    def check_room(self, room_id: str) -> RateLimitResult:
        return self.check(room_id, SCOPE_ROOM, RATE_LIMIT_ROOM_MAX, RATE_LIMIT_ROOM_WINDOW)
