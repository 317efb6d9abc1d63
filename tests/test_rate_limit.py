from app.services.rate_limit import FixedWindowRateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestFixedWindowRateLimiter:
    def test_allows_up_to_limit(self):
        limiter = FixedWindowRateLimiter(limit=3, window_seconds=900, clock=FakeClock())
        results = [limiter.hit("10.0.0.1")[0] for _ in range(4)]
        assert results == [True, True, True, False]

    def test_reports_retry_after(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(limit=1, window_seconds=900, clock=clock)
        limiter.hit("10.0.0.1")
        clock.now += 100

        allowed, retry_after = limiter.hit("10.0.0.1")
        assert allowed is False
        assert retry_after == 800

    def test_window_resets(self):
        clock = FakeClock()
        limiter = FixedWindowRateLimiter(limit=1, window_seconds=900, clock=clock)
        limiter.hit("10.0.0.1")
        clock.now += 900
        assert limiter.hit("10.0.0.1")[0] is True

    def test_clients_are_counted_separately(self):
        limiter = FixedWindowRateLimiter(limit=1, window_seconds=900, clock=FakeClock())
        assert limiter.hit("10.0.0.1")[0] is True
        assert limiter.hit("10.0.0.2")[0] is True
