"""
utils/retry.py — Bounded retry policy for upstream calls.

A RetryPolicy is built once per run and handed to every source adapter, so
all adapters retry the same way and tests can inject a zero-delay policy.
Uses tenacity under the hood and logs each retry with structlog.

Usage:
    from visualclimate_pipeline.utils.retry import RetryPolicy

    policy = RetryPolicy(max_attempts=2, backoff_seconds=3.0)
    payload = await policy.call(fetch_page, url, page=1)

    # From settings (retry_attempts / retry_backoff_seconds)
    policy = RetryPolicy.from_settings()
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from visualclimate_shared.config import settings
from visualclimate_shared.errors import SourceUnavailable

log = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry ``retry_on`` errors up to ``max_attempts`` total attempts with a
    fixed ``backoff_seconds`` pause. Anything else propagates immediately.
    """

    max_attempts: int = 2
    backoff_seconds: float = 3.0
    retry_on: type[BaseException] | tuple[type[BaseException], ...] = SourceUnavailable
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_attempts,
            backoff_seconds=settings.retry_backoff_seconds,
        )

    @classmethod
    def no_retry(cls) -> "RetryPolicy":
        return cls(max_attempts=1, backoff_seconds=0.0)

    async def call(
        self,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Await ``fn(*args, **kwargs)`` under this policy; re-raises the last error."""
        attempt_log = log.bind(function=getattr(fn, "__qualname__", repr(fn)))
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.backoff_seconds),
            retry=retry_if_exception_type(self.retry_on),
            sleep=self.sleep,
            reraise=True,
        ):
            with attempt:
                attempt_num = attempt.retry_state.attempt_number
                if attempt_num > 1:
                    attempt_log.warning(
                        "retry_attempt",
                        attempt=attempt_num,
                        max_attempts=self.max_attempts,
                        backoff_s=self.backoff_seconds,
                    )
                return await fn(*args, **kwargs)
        raise AssertionError("unreachable: AsyncRetrying exits by return or reraise")
