from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import RetryConfig
from .exceptions import HalConnectionError

T = TypeVar("T")

logger = logging.getLogger(__name__)


async def retry_connection_errors(
    func: Callable[[], Awaitable[T]], policy: RetryConfig
) -> T:
    """
    Await `func()`, retrying connection failures with exponential backoff.

    Only `HalConnectionError` is retried. Timeouts, rejections and
    cancellation surface on the first occurrence.

    Raises:
        The last exception once `policy.max_attempts` attempts are used up.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max(1, policy.max_attempts)),
        wait=wait_exponential(
            multiplier=policy.base_wait_seconds,
            max=policy.max_wait_seconds,
            exp_base=2,
        ),
        retry=retry_if_exception_type(HalConnectionError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await func()
    raise AssertionError("unreachable")  # pragma: no cover
