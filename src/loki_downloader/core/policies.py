from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type, TypeVar

from loki_downloader.core.cancellation import CancellationToken
from loki_downloader.core.errors import (
    ConfigurationError,
    DeserializationError,
    OutputDirectoryNotEmptyError,
    UnrecoverableError,
)
from loki_downloader.utils.logging import get_logger

T = TypeVar("T")

NON_RETRYABLE: Tuple[Type[BaseException], ...] = (
    UnrecoverableError,
    ConfigurationError,
    DeserializationError,
    OutputDirectoryNotEmptyError,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for re-invoking a whole run after a transient failure."""

    max_attempts: int = 1
    base_delay_s: float = 1.0
    jitter_s: float = 0.3


class CoolDown:
    """Fixed pause between batches that returns early on cancellation."""

    def wait(self, delay_ms: int, token: CancellationToken) -> bool:
        """Sleep for ``delay_ms``; True if the token was cancelled meanwhile."""
        if delay_ms <= 0:
            return token.cancelled
        return token.wait(delay_ms / 1000.0)


def backoff_delay(policy: RetryPolicy, attempt_index: int) -> float:
    """Exponential backoff with jitter."""
    delay = policy.base_delay_s * (2**attempt_index)
    return delay + random.uniform(0, policy.jitter_s)


def run_with_retries(
    fn: Callable[[], T],
    policy: RetryPolicy,
    token: Optional[CancellationToken] = None,
) -> T:
    """
    Call ``fn`` until it succeeds or attempts run out.

    Unrecoverable and configuration errors are raised straight away. A run that
    resumes from persisted state is safe to repeat, which is what makes this
    loop sound. Waiting between attempts stops early on cancellation.
    """
    token = token or CancellationToken()
    log = get_logger("loki_downloader.retry")

    attempt = 0
    while True:
        try:
            return fn()
        except NON_RETRYABLE:
            raise
        except Exception as e:
            attempt += 1
            if attempt >= policy.max_attempts or token.cancelled:
                raise
            delay = backoff_delay(policy, attempt - 1)
            log.warning(
                "Run failed (%s: %s), retrying in %.1fs (attempt=%s/%s)",
                type(e).__name__,
                e,
                delay,
                attempt + 1,
                policy.max_attempts,
            )
            if token.wait(delay):
                raise
