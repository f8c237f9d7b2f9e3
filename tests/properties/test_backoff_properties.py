"""Property-based tests for respawn backoff.

- Delays never exceed max_delay plus half the jitter range
- Delays are never negative
- Without jitter, delays never decrease between attempts
"""

from hypothesis import given, strategies as st

from upshift.supervisor import ExponentialBackoff

# =============================================================================
# Strategies
# =============================================================================

backoffs = st.builds(
    ExponentialBackoff,
    base=st.floats(min_value=0.0, max_value=10.0),
    max_delay=st.floats(min_value=0.0, max_value=120.0),
    multiplier=st.floats(min_value=1.0, max_value=4.0),
    jitter=st.floats(min_value=0.0, max_value=1.0),
)

attempts = st.integers(min_value=0, max_value=64)


# =============================================================================
# Properties
# =============================================================================


class TestExponentialBackoffProperties:
    @given(backoff=backoffs, attempt=attempts)
    def test_delay_bounded(self, backoff: ExponentialBackoff, attempt: int) -> None:
        delay = backoff.delay(attempt)

        upper = backoff.max_delay * (1 + backoff.jitter / 2)
        assert 0.0 <= delay <= upper + 1e-9

    @given(backoff=backoffs, attempt=attempts)
    def test_delay_without_jitter_is_monotonic(
        self, backoff: ExponentialBackoff, attempt: int
    ) -> None:
        steady = ExponentialBackoff(
            base=backoff.base,
            max_delay=backoff.max_delay,
            multiplier=backoff.multiplier,
            jitter=0.0,
        )

        assert steady.delay(attempt) <= steady.delay(attempt + 1)
