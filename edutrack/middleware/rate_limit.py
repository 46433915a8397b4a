from fastapi import Request, status
from fastapi.responses import JSONResponse
import time
import redis
import structlog
from edutrack.core.config import settings

logger = structlog.get_logger()

# Only the ingestion surface is limited
LIMITED_PREFIX = "/api/tracking"


class SlidingWindowLimiter:
    """Redis-backed sliding window limiter for collector clients"""

    def __init__(self, rate: int, period: int, redis_url: str | None = None):
        """
        Args:
            rate: Number of batches allowed per client
            period: Time period in seconds
            redis_url: Redis to share windows between workers; None keeps them in memory
        """
        self.rate = rate
        self.period = period
        self.redis_url = redis_url
        self.windows: dict[str, list[float]] = {}
        self.redis_client = None

    def connect(self) -> None:
        """Switch to Redis if it is reachable; windows stay in memory otherwise"""
        if self.redis_url:
            try:
                self.redis_client = redis.from_url(self.redis_url, decode_responses=False)
                self.redis_client.ping()
                logger.info("rate_limiter_using_redis")
            except Exception as e:
                logger.warning("rate_limiter_redis_failed_using_memory", error=str(e))
                self.redis_client = None

    def hit(self, key: str) -> tuple[bool, int]:
        """
        Record one request for key.

        Returns:
            (allowed, remaining requests in the current window)
        """
        now = time.time()
        if self.redis_client is not None:
            count = self._count_redis(key, now)
        else:
            count = self._count_memory(key, now)

        return count < self.rate, max(0, self.rate - count - 1)

    def _count_redis(self, key: str, now: float) -> int:
        redis_key = f"rate_limit:{key}"

        pipe = self.redis_client.pipeline()
        pipe.zremrangebyscore(redis_key, 0, now - self.period)
        pipe.zcard(redis_key)
        pipe.zadd(redis_key, {str(now): now})
        pipe.expire(redis_key, self.period)
        results = pipe.execute()

        # count before adding current request
        return results[1]

    def _count_memory(self, key: str, now: float) -> int:
        window = [ts for ts in self.windows.get(key, []) if ts > now - self.period]
        count = len(window)
        window.append(now)
        self.windows[key] = window
        return count


# Global rate limiter instance
rate_limiter = SlidingWindowLimiter(
    rate=settings.rate_limit_requests,
    period=settings.rate_limit_period,
    redis_url=settings.redis_url if settings.rate_limit_enabled else None
)


def rate_limit_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    client_ip = request.client.host if request.client else "unknown"
    return f"ip:{client_ip}"


async def rate_limit_middleware(request: Request, call_next):
    """
    Rate limiting middleware

    Limits collector requests per client IP
    """
    if not settings.rate_limit_enabled or not request.url.path.startswith(LIMITED_PREFIX):
        return await call_next(request)

    key = rate_limit_key(request)
    allowed, remaining = rate_limiter.hit(key)

    headers = {
        "X-RateLimit-Limit": str(rate_limiter.rate),
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Reset": str(rate_limiter.period)
    }

    if not allowed:
        logger.warning("rate_limit_exceeded", key=key, path=request.url.path)

        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "detail": "Rate limit exceeded. Please try again later.",
                "retry_after": rate_limiter.period
            },
            headers={**headers, "Retry-After": str(rate_limiter.period)}
        )

    response = await call_next(request)
    response.headers.update(headers)
    return response
