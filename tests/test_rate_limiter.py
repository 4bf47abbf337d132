from main import app
from security.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestRateLimiter:
    def test_blocks_after_max_attempts(self):
        limiter = RateLimiter(max_attempts=3, window_seconds=60, enabled=True, clock=FakeClock())
        assert [limiter.hit("ip") for _ in range(4)] == [True, True, True, False]

    def test_window_slides(self):
        clock = FakeClock()
        limiter = RateLimiter(max_attempts=2, window_seconds=60, enabled=True, clock=clock)
        limiter.hit("ip")
        clock.now += 30
        limiter.hit("ip")
        assert limiter.hit("ip") is False

        clock.now += 31  # first attempt has expired
        assert limiter.hit("ip") is True

    def test_keys_are_independent(self):
        limiter = RateLimiter(max_attempts=1, window_seconds=60, enabled=True, clock=FakeClock())
        assert limiter.hit("a") is True
        assert limiter.hit("b") is True
        assert limiter.hit("a") is False

    def test_expired_keys_are_forgotten(self):
        clock = FakeClock()
        limiter = RateLimiter(max_attempts=2, window_seconds=60, enabled=True, clock=clock)
        limiter.hit("10.0.0.1")
        limiter.hit("10.0.0.2")

        clock.now += 61
        limiter.hit("10.0.0.3")

        assert list(limiter._attempts) == ["10.0.0.3"]

    def test_disabled_limiter_allows_everything(self):
        limiter = RateLimiter(max_attempts=1, enabled=False)
        assert all(limiter.hit("ip") for _ in range(10))


def test_login_answers_429_when_limited(client):
    client.post("/auth/register", json={"name": "Ana", "email": "ana@example.com", "password": "s3cret-pass"})
    original = app.state.login_limiter
    app.state.login_limiter = RateLimiter(max_attempts=2, window_seconds=60, enabled=True)
    try:
        codes = [
            client.post("/auth/login", data={"username": "ana@example.com", "password": "wrong-pass"}).status_code
            for _ in range(3)
        ]
    finally:
        app.state.login_limiter = original

    assert codes == [400, 400, 429]
