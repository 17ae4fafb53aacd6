"""
Bounded retry around a single request/response call to a rate-limited
service (the Gemini chat completion).

Only rate-limit/quota failures are retried, with a linear backoff:
3s after the first failure, 6s after the second, and so on. Everything
else is classified and surfaced immediately.
"""
import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

from logging_config import logger

RATE_LIMIT_MARKERS = ("429", "quota", "resource has been exhausted", "resource_exhausted", "rate limit")
AUTH_MARKERS = ("api_key", "api key", "permission_denied", "unauthenticated", "401", "403")
BLOCKED_MARKERS = ("blocked", "safety")


class CallErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    AUTH_FAILURE = "auth_failure"
    CONTENT_BLOCKED = "content_blocked"
    UNKNOWN = "unknown"


class CallError(Exception):
    """The external call failed for good"""

    def __init__(self, kind: CallErrorKind, detail: str, attempts: int = 1):
        self.kind = kind
        self.detail = detail
        self.attempts = attempts
        super().__init__(f"{kind.value}: {detail}")


def _detail(error: BaseException) -> str:
    text = str(error)
    return f"{error.__class__.__name__}: {text}" if text else error.__class__.__name__


def classify_failure(error: BaseException) -> CallErrorKind:
    """Map a failure to a CallErrorKind by matching known indicators in its detail"""
    detail = _detail(error).lower()
    if any(marker in detail for marker in RATE_LIMIT_MARKERS):
        return CallErrorKind.RATE_LIMITED
    if any(marker in detail for marker in AUTH_MARKERS):
        return CallErrorKind.AUTH_FAILURE
    if any(marker in detail for marker in BLOCKED_MARKERS):
        return CallErrorKind.CONTENT_BLOCKED
    return CallErrorKind.UNKNOWN


class ResilientCaller:
    """
    Wraps `request(payload) -> str`.

    Args:
        request: Coroutine function performing one attempt.
        sleep: Awaitable sleep, replaceable with a controllable clock in tests.
        backoff_seconds: Base wait; the n-th retry waits n * backoff_seconds.
    """

    def __init__(
        self,
        request: Callable[[str], Awaitable[str]],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        backoff_seconds: float = 3.0,
    ):
        self.request = request
        self.sleep = sleep
        self.backoff_seconds = backoff_seconds

    async def call(self, payload: str, max_attempts: int = 3) -> str:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        last_detail: Optional[str] = None
        for attempt in range(1, max_attempts + 1):
            try:
                return await self.request(payload)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                kind = classify_failure(e)
                last_detail = _detail(e)
                logger.warning(
                    "External call failed",
                    attempt=attempt,
                    max_attempts=max_attempts,
                    kind=kind.value,
                    error=last_detail,
                )
                if kind is not CallErrorKind.RATE_LIMITED:
                    raise CallError(kind, last_detail, attempts=attempt) from e
                if attempt == max_attempts:
                    raise CallError(kind, last_detail, attempts=attempt) from e

                wait = attempt * self.backoff_seconds
                logger.info("Rate limited, retrying", retry_in=wait, next_attempt=attempt + 1)
                await self.sleep(wait)

        # unreachable: the loop either returns or raises
        raise CallError(CallErrorKind.UNKNOWN, last_detail or "no attempts made", attempts=max_attempts)
