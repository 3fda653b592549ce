"""
Retry policy for rate-limited (HTTP 429) CRM calls.

Kept separate from the client so the schedule can be tested on its own:

    policy = RetryPolicy(max_retries=3, backoff_ms=2000)
    policy.delay_seconds(0)                  # 2.0
    policy.delay_seconds(1)                  # 4.0
    policy.delay_seconds(0, retry_after="7") # 7.0 (server hint wins)
"""
from dataclasses import dataclass
from typing import Optional, Union


def parse_retry_after(value: Optional[Union[str, int, float]]) -> Optional[float]:
    """Parse a Retry-After header given in seconds. HTTP-date values are ignored."""
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if seconds < 0:
        return None
    return seconds


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with a fixed retry cap, honoring a server hint."""

    max_retries: int = 3
    backoff_ms: int = 2000
    multiplier: float = 2.0

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def should_retry(self, retry_index: int) -> bool:
        """retry_index counts retries already spent (0 on the first failure)."""
        return retry_index < self.max_retries

    def delay_seconds(self, retry_index: int, retry_after=None) -> float:
        """Seconds to wait before retry number retry_index + 1."""
        hinted = parse_retry_after(retry_after)
        if hinted is not None:
            return hinted
        return (self.backoff_ms / 1000.0) * (self.multiplier ** retry_index)
