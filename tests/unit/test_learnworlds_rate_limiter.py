import pytest

from backend.learnworlds.rate_limiter import TokenBucket


class _FakeTime:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def clock(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def test_first_call_is_free_then_spaced_by_rate():
    t = _FakeTime()
    bucket = TokenBucket(rate=2.0, clock=t.clock, sleep=t.sleep)

    assert bucket.acquire() == 0.0
    assert bucket.acquire() == pytest.approx(0.5)
    assert bucket.acquire() == pytest.approx(0.5)
    assert t.now == pytest.approx(1.0)


def test_idle_time_refills_up_to_capacity():
    t = _FakeTime()
    bucket = TokenBucket(rate=1.0, capacity=2.0, clock=t.clock, sleep=t.sleep)
    bucket.acquire()
    bucket.acquire()

    t.now += 10.0
    assert bucket.acquire() == 0.0
    assert bucket.acquire() == 0.0
    assert bucket.acquire() == pytest.approx(1.0)


def test_rate_must_be_positive():
    with pytest.raises(ValueError):
        TokenBucket(rate=0)
