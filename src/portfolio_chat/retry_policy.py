from __future__ import annotations

import httpx
from loguru import logger
from tenacity import retry_if_exception, stop_after_attempt, wait_exponential

MAX_ATTEMPTS = 3
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def _status_code_of(exc: BaseException) -> int | None:
    # httpx.HTTPStatusError keeps it on the response; openai/anthropic APIStatusError on the exception.
    response = getattr(exc, "response", None)
    status = getattr(exc, "status_code", None) or getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def is_retryable(exc: BaseException) -> bool:
    """Retry transport failures and throttling / transient server statuses."""
    if isinstance(exc, (httpx.TransportError, TimeoutError, ConnectionError)):
        return True

    # Provider SDKs wrap connection problems in their own types.
    name = type(exc).__name__
    if name in {"APIConnectionError", "APITimeoutError"}:
        return True

    status = _status_code_of(exc)
    return status in RETRYABLE_STATUS_CODES


def _on_retry(retry_state) -> None:
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    fn_name = getattr(retry_state.fn, "__qualname__", "call")
    logger.warning(f"{fn_name}: {reason}. Retrying in {wait:.0f}s (attempt {attempt}/{MAX_ATTEMPTS})...")


def default_retry_kwargs(*, max_attempts: int = MAX_ATTEMPTS) -> dict:
    """Keyword arguments for ``tenacity.retry`` shared by every outbound call."""
    return {
        "retry": retry_if_exception(is_retryable),
        "wait": wait_exponential(multiplier=1, min=2, max=8),
        "stop": stop_after_attempt(max_attempts),
        "before_sleep": _on_retry,
        "reraise": True,
    }
