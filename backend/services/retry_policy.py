"""
Exponential backoff policy for the authoritative verify call.

The policy is a plain object so tests can swap in a fake sleep and a fixed
random source and assert the exact delays.
"""
import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass
class RetryPolicy:
    """max_attempts counts the first call; delays grow base_delay * multiplier**n."""

    max_attempts: int = 5
    base_delay: float = 0.2
    multiplier: float = 2.0
    max_delay: float = 5.0
    jitter: float = 0.1
    sleep: SleepFn = asyncio.sleep
    rng: random.Random = field(default_factory=random.Random)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.multiplier < 1:
            raise ValueError("base_delay must be >= 0 and multiplier >= 1")
        if not 0 <= self.jitter < 1:
            raise ValueError("jitter must be in [0, 1)")

    def delay_for(self, retry_number: int) -> float:
        """Delay before retry #retry_number (1-based), jitter included."""
        delay = min(self.max_delay, self.base_delay * (self.multiplier ** (retry_number - 1)))
        if self.jitter:
            delay *= 1 + self.rng.uniform(-self.jitter, self.jitter)
        return max(0.0, delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        retry_on: Tuple[Type[BaseException], ...],
        on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    ) -> T:
        """
        Await operation(), retrying on the given exception types.

        Exceptions outside retry_on propagate immediately. After the last
        attempt the final retryable exception propagates.
        """
        attempt = 1
        while True:
            try:
                return await operation()
            except retry_on as e:
                if attempt >= self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                if on_retry:
                    on_retry(attempt, e, delay)
                await self.sleep(delay)
                attempt += 1
