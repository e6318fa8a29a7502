"""Redis-backed leaky-bucket rate limiter for per-attempt mutation endpoints.

Algorithm
---------
Each bucket is a Redis key that stores the number of *tokens* (remaining
requests) and the timestamp of the last refill.  Tokens leak (refill) at a
constant rate of ``RPM / 60`` tokens per second up to a maximum of
``BURST``.  A request is allowed only when at least one token is available;
otherwise a 429 response is returned.

The FastAPI dependency wrapping this lives in ``quizportal.api.deps``
(``require_attempt_rate_limit``).
"""

import logging
import time

import redis

from quizportal.config import settings

logger = logging.getLogger(__name__)

_pool: redis.ConnectionPool | None = None

# Lua script executed atomically inside Redis.
# KEYS[1] = bucket key
# ARGV[1] = max tokens (burst)
# ARGV[2] = refill rate (tokens per second)
# ARGV[3] = current timestamp (float seconds)
# Returns  1 if request allowed, 0 if rejected.
_LUA_SCRIPT = """
local key        = KEYS[1]
local max_tokens = tonumber(ARGV[1])
local refill_rate = tonumber(ARGV[2])
local now        = tonumber(ARGV[3])

local bucket = redis.call('HMGET', key, 'tokens', 'last_refill')
local tokens      = tonumber(bucket[1])
local last_refill = tonumber(bucket[2])

if tokens == nil then
    tokens = max_tokens
    last_refill = now
end

local elapsed = math.max(0, now - last_refill)
tokens = math.min(max_tokens, tokens + elapsed * refill_rate)

local allowed = 0
if tokens >= 1 then
    tokens = tokens - 1
    allowed = 1
end

redis.call('HMSET', key, 'tokens', tokens, 'last_refill', now)
redis.call('EXPIRE', key, 120)
return allowed
"""


def _get_redis() -> redis.Redis:
    global _pool
    if _pool is None:
        _pool = redis.ConnectionPool.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=10,
            socket_connect_timeout=1,
        )
    return redis.Redis(connection_pool=_pool)


def bucket_key(endpoint: str, user_id: object) -> str:
    """One bucket per user per endpoint (autosave and violations don't share)."""
    return f"rl:attempt:{endpoint}:u:{user_id}"


def check(key: str) -> bool:
    """Return True if the request should be allowed."""
    rpm = settings.RATE_LIMIT_ATTEMPT_RPM
    burst = settings.RATE_LIMIT_ATTEMPT_BURST
    if rpm <= 0:
        return True  # rate limiting disabled

    refill_rate = rpm / 60.0  # tokens per second
    try:
        r = _get_redis()
        allowed = r.eval(_LUA_SCRIPT, 1, key, burst, refill_rate, time.time())
        return bool(allowed)
    except redis.RedisError as e:
        logger.warning("Rate-limiter Redis error (allowing request): %s", e)
        return True  # fail-open: don't lock students out of an exam if Redis is down
