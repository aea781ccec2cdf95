import pytest
from starlette.requests import Request

from profilegate_backend.app.api.ratelimit import AuthRateLimiter
from profilegate_backend.app.core.errors import AuthError, ErrorKind


class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_window_slides():
    clock = _Clock()
    limiter = AuthRateLimiter(max_requests=2, window_sec=60, clock=clock)

    assert limiter.hit("1.2.3.4") is None
    clock.now += 10
    assert limiter.hit("1.2.3.4") is None
    assert limiter.hit("1.2.3.4") == 50
    # other clients have their own bucket
    assert limiter.hit("5.6.7.8") is None

    clock.now += 51
    assert limiter.hit("1.2.3.4") is None


def test_reset_clears_buckets():
    limiter = AuthRateLimiter(max_requests=1, window_sec=60)
    limiter.hit("ip")
    assert limiter.hit("ip") is not None
    limiter.reset()
    assert limiter.hit("ip") is None


def test_emptied_buckets_are_dropped():
    clock = _Clock()
    limiter = AuthRateLimiter(max_requests=5, window_sec=60, clock=clock)
    for n in range(3):
        limiter.hit(f"10.0.0.{n}")
    assert len(limiter.buckets) == 3

    clock.now += 61
    limiter.hit("10.0.0.99")
    assert list(limiter.buckets) == ["10.0.0.99"]

    clock.now += 61
    limiter.prune()
    assert limiter.buckets == {}


def _request(headers=None, host="203.0.113.7"):
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/auth/login",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": (host, 5555),
    }
    return Request(scope)


def test_forwarded_header_ignored_without_trusted_proxy():
    limiter = AuthRateLimiter(max_requests=1, window_sec=60)
    assert limiter.client_ip(_request({"X-Forwarded-For": "1.1.1.1"})) == "203.0.113.7"


def test_forwarded_header_used_behind_trusted_proxy():
    limiter = AuthRateLimiter(max_requests=1, window_sec=60, trust_proxy=True)
    assert limiter.client_ip(_request({"X-Forwarded-For": "1.1.1.1, 10.0.0.1"})) == "1.1.1.1"
    assert limiter.client_ip(_request()) == "203.0.113.7"


async def test_rotating_forwarded_header_does_not_reset_limit():
    limiter = AuthRateLimiter(max_requests=2, window_sec=60)
    await limiter(_request({"X-Forwarded-For": "1.1.1.1"}))
    await limiter(_request({"X-Forwarded-For": "2.2.2.2"}))
    with pytest.raises(AuthError) as exc:
        await limiter(_request({"X-Forwarded-For": "3.3.3.3"}))
    assert exc.value.kind is ErrorKind.RATE_LIMITED
    assert exc.value.details["retry_after"] >= 1
