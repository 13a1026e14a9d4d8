"""Exponential backoff for transient collaborator errors (rate limits, 5xx)."""

from __future__ import annotations

import asyncio
import random
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar

from ..logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = (429, 500, 502, 503)


def _status_of(exc: BaseException) -> Optional[int]:
    for candidate in (
        getattr(exc, "status_code", None),
        getattr(exc, "status", None),
        getattr(getattr(exc, "response", None), "status_code", None),
    ):
        try:
            if candidate is not None:
                return int(candidate)
        except (TypeError, ValueError):
            continue
    return None


def _retry_after(exc: BaseException) -> Optional[float]:
    headers: Any = getattr(getattr(exc, "response", None), "headers", None) or getattr(exc, "headers", None)
    if not headers:
        return None
    value = headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    label: str = "retry_with_backoff",
    max_retries: int = 3,
    base_delay: float = 2.0,
    retryable_status_codes: Iterable[int] = RETRYABLE_STATUS_CODES,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Await ``fn()``, retrying retryable HTTP statuses up to ``max_retries`` times."""

    retryable = set(retryable_status_codes)
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as exc:
            status = _status_of(exc)
            if status not in retryable or attempt >= max_retries:
                raise
            delay = _retry_after(exc)
            if delay is None:
                delay = base_delay * (2**attempt) + random.uniform(0, 1)
            attempt += 1
            LOGGER.warning(
                "%s: status %s, retrying in %.1fs (attempt %d/%d)",
                label,
                status,
                delay,
                attempt,
                max_retries,
            )
            await sleep(delay)


__all__ = ["RETRYABLE_STATUS_CODES", "retry_with_backoff"]
