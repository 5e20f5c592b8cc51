from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from echo_brain.domain.errors import TransientUpstreamError

log = logging.getLogger("echo_brain.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    base_delay_s: float = 0.5
    max_delay_s: float = 8.0
    jitter_s: float = 0.25

    def delay(self, attempt: int) -> float:
        """attempt считается с 0; экспонента + случайный jitter."""
        d = min(self.max_delay_s, self.base_delay_s * (2 ** attempt))
        if self.jitter_s > 0:
            d += random.uniform(0, self.jitter_s)
        return d


def call_with_retry(
    fn: Callable[[], T],
    *,
    policy: RetryPolicy,
    what: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Повторяет только TransientUpstreamError (embedding/generation/fetch).
    Всё остальное (entitlement, validation, storage) пролетает сразу.
    После последней попытки пробрасывается последняя ошибка как есть.
    """
    attempts = max(1, int(policy.attempts))
    for attempt in range(attempts):
        try:
            return fn()
        except TransientUpstreamError as e:
            if attempt >= attempts - 1:
                log.error("%s failed after %d attempts: %s", what, attempts, e)
                raise
            delay = policy.delay(attempt)
            log.warning("%s attempt %d/%d failed: %s; retrying in %.2fs", what, attempt + 1, attempts, e, delay)
            sleep(delay)
    raise AssertionError("unreachable")
