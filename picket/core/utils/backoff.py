# picket/core/utils/backoff.py
from __future__ import annotations

import random
from dataclasses import dataclass, field, replace


@dataclass
class RetryBackoff:
    """Exponential backoff with +/-25% jitter for in-processor retries.

    max_attempts=0 retries forever. Delays never drop below 100ms.
    """

    initial_ms: int
    max_ms: int
    max_attempts: int
    attempts: int = 0
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def fresh(self) -> RetryBackoff:
        """Same settings, attempt count at zero."""
        return replace(self, attempts=0)

    def can_retry(self) -> bool:
        match self.max_attempts:
            case 0:
                return True
            case _:
                return self.attempts < self.max_attempts

    def next_delay_seconds(self) -> float:
        self.attempts += 1
        exponent = max(0, self.attempts - 1)
        base_ms = min(self.max_ms, int(self.initial_ms * (2**exponent)))
        jitter_range = base_ms * 0.25
        delay_ms = base_ms + self.rng.uniform(-jitter_range, jitter_range)
        return max(0.1, delay_ms / 1000.0)
