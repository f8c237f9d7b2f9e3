import pytest

from upshift.supervisor import ExponentialBackoff


class TestExponentialBackoff:
    def test_grows_exponentially_without_jitter(self) -> None:
        backoff = ExponentialBackoff(base=0.5, multiplier=2.0, jitter=0.0)

        assert [backoff.delay(n) for n in range(4)] == [0.5, 1.0, 2.0, 4.0]

    def test_capped_at_max_delay(self) -> None:
        backoff = ExponentialBackoff(base=1.0, max_delay=5.0, jitter=0.0)
        assert backoff.delay(10) == 5.0

    @pytest.mark.parametrize("attempt", [0, 1, 5])
    def test_jitter_stays_in_range(self, attempt: int) -> None:
        backoff = ExponentialBackoff(base=1.0, max_delay=30.0, jitter=0.2)
        nominal = min(2.0**attempt, 30.0)

        for _ in range(50):
            delay = backoff.delay(attempt)
            assert nominal * 0.9 <= delay <= nominal * 1.1

    def test_large_attempt_does_not_overflow(self) -> None:
        backoff = ExponentialBackoff(base=1.0, max_delay=30.0, jitter=0.0)
        assert backoff.delay(5000) == 30.0
