from structlog.testing import capture_logs

from edutrack.core.config import Settings
from edutrack.core.database import engine_options
from edutrack.middleware.rate_limit import SlidingWindowLimiter


def test_limiter_does_not_connect_on_construction():
    with capture_logs() as logs:
        limiter = SlidingWindowLimiter(rate=2, period=60, redis_url="redis://127.0.0.1:1/0")

    assert logs == []
    assert limiter.redis_client is None


def test_limiter_falls_back_to_memory_when_redis_is_down():
    limiter = SlidingWindowLimiter(rate=2, period=60, redis_url="redis://127.0.0.1:1/0")

    with capture_logs() as logs:
        limiter.connect()

    assert limiter.redis_client is None
    assert logs[0]["event"] == "rate_limiter_redis_failed_using_memory"
    assert logs[0]["log_level"] == "warning"


def test_memory_window_limits_per_key():
    limiter = SlidingWindowLimiter(rate=2, period=60)
    limiter.connect()

    assert limiter.hit("ip:1") == (True, 1)
    assert limiter.hit("ip:1") == (True, 0)
    assert limiter.hit("ip:1") == (False, 0)
    assert limiter.hit("ip:2") == (True, 1)


def test_engine_options_for_postgres():
    config = Settings(_env_file=None, database_pool_size=3, database_max_overflow=1)

    options = engine_options(config)

    assert options["pool_size"] == 3
    assert options["max_overflow"] == 1
    assert options["pool_pre_ping"] is True


def test_engine_options_for_sqlite():
    config = Settings(_env_file=None, database_url="sqlite+aiosqlite:///local.db")

    assert engine_options(config) == {"echo": False}
