"""
Redelivery policy for failed handlers

The broker layer is the only place that retries. A failed message is
republished to its queue with an incremented retry-count header after an
exponential delay, and dead-lettered once the budget is spent.
"""

from typing import Any, Mapping, Optional

RETRY_COUNT_HEADER = "x-retry-count"
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 2.0


def retry_count_from_headers(headers: Optional[Mapping[str, Any]]) -> int:
    """
    Read the retry count of a delivery, defaulting to 0

    The header is not provenance-checked. Negative or non-integer values are
    coerced to 0 so they cannot push the count below the budget, but a forged
    header can still reset it.
    """
    if not headers:
        return 0

    raw = headers.get(RETRY_COUNT_HEADER, 0)
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="ignore")
    try:
        count = int(raw)
    except (TypeError, ValueError):
        return 0
    return max(count, 0)


class RetryPolicy:
    """Bounded exponential backoff: base * 2^retry_count"""

    def __init__(self, max_retries: int = DEFAULT_MAX_RETRIES, base_delay: float = DEFAULT_BASE_DELAY):
        self.max_retries = max_retries
        self.base_delay = base_delay

    def should_retry(self, retry_count: int) -> bool:
        return retry_count < self.max_retries

    def delay_for(self, retry_count: int) -> float:
        return self.base_delay * (2 ** retry_count)
