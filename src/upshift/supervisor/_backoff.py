"""Respawn delays for crashed workers.

A worker that dies during startup would otherwise be respawned in a tight
loop. Delays grow geometrically up to a cap and are spread by a random
factor so supervisors sharing a failing dependency do not retry in step.
"""

import random
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ExponentialBackoff:
    """Geometric respawn delay with a cap and multiplicative jitter.

    Attempt ``n`` waits ``min(base * multiplier**n, max_delay)`` seconds,
    scaled by a random factor in ``[1 - jitter/2, 1 + jitter/2]``.

    Attributes:
        base: Delay before the first respawn, in seconds.
        max_delay: Upper bound before jitter, in seconds.
        multiplier: Growth factor per attempt.
        jitter: Width of the random factor around 1.0.
    """

    base: float = 0.5
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: float = 0.1

    def delay(self, attempt: int) -> float:
        """Return the seconds to wait before respawn ``attempt`` (from 0)."""
        nominal = self.base
        for _ in range(attempt):
            # Stop early so large attempt numbers cannot overflow
            if nominal >= self.max_delay:
                break
            nominal *= self.multiplier
        nominal = min(nominal, self.max_delay)

        if self.jitter <= 0:
            return nominal
        factor = random.uniform(1 - self.jitter / 2, 1 + self.jitter / 2)  # noqa: S311
        return max(0.0, nominal * factor)
