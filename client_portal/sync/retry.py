"""
Bounded exponential backoff used for bulk-load and resubscribe retries.
"""

from dataclasses import dataclass

from client_portal.config import Settings


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff capped at a fixed ceiling."""
    
    max_attempts: int = 3
    base_delay: float = 0.5
    max_delay: float = 8.0
    
    def delay(self, attempt: int) -> float:
        """Delay before retrying after the given 0-based failed attempt."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)
    
    def should_retry(self, attempt: int) -> bool:
        """True if another attempt is allowed after 0-based attempt failed."""
        return attempt + 1 < self.max_attempts
    
    @classmethod
    def for_loads(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.sync_max_attempts,
            base_delay=settings.sync_backoff_base_seconds,
            max_delay=settings.sync_backoff_max_seconds,
        )
    
    @classmethod
    def for_resubscribe(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.resubscribe_max_attempts,
            base_delay=settings.sync_backoff_base_seconds,
            max_delay=settings.sync_backoff_max_seconds,
        )
