"""Transport-level retry for idempotent market-data reads."""
from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

import httpx
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

log = logging.getLogger("traider.retry")

F = TypeVar('F', bound=Callable[..., Any])

TRANSIENT_ERRORS = (httpx.TransportError, ConnectionError, TimeoutError)


def with_retry(func: F | None = None, *, attempts: int = 3, max_wait: float = 10.0) -> Any:
    """Retry an async call on dropped connections and timeouts.

    HTTP status errors are never retried here. Usable bare (@with_retry)
    or configured (@with_retry(attempts=5)).
    """
    policy = retry(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=1, min=1, max=max_wait),
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        before_sleep=before_sleep_log(log, logging.WARNING),
        reraise=True,
    )
    if func is None:
        return policy
    return policy(func)
