"""Bounded exponential backoff for idempotent provider calls."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from edge_provisioner.errors import ProviderUnavailableError

if TYPE_CHECKING:
    from collections.abc import Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently to retry a failing call.

    ``attempts`` counts the first call, so ``attempts=3`` means at most two
    retries.  The delay before retry *n* (1-based) is
    ``min(backoff * multiplier ** (n - 1), max_backoff)``.
    """

    attempts: int = 3
    backoff: float = 0.5
    multiplier: float = 2.0
    max_backoff: float = 8.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def delay(self, retry_number: int) -> float:
        return min(self.backoff * self.multiplier ** (retry_number - 1), self.max_backoff)

    def call(
        self,
        fn: Callable[[], T],
        *,
        description: str,
        retry_on: tuple[type[BaseException], ...] = (ProviderUnavailableError,),
    ) -> T:
        """Call *fn*, retrying on *retry_on* until attempts are exhausted.

        The last exception propagates unchanged once no attempts remain.
        """
        attempt = 1
        while True:
            try:
                return fn()
            except retry_on as exc:
                if attempt >= self.attempts:
                    logger.warning("%s failed after %d attempts: %s", description, attempt, exc)
                    raise
                wait = self.delay(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    description,
                    attempt,
                    self.attempts,
                    wait,
                    exc,
                )
                self.sleep(wait)
                attempt += 1
