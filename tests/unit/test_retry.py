"""Unit tests for RetryPolicy."""

from client_portal.config import Settings
from client_portal.sync.retry import RetryPolicy


class TestRetryPolicy:
    """Tests for bounded exponential backoff."""
    
    def test_delay_doubles(self):
        policy = RetryPolicy(base_delay=0.5, max_delay=8.0)
        
        assert [policy.delay(n) for n in range(4)] == [0.5, 1.0, 2.0, 4.0]
    
    def test_delay_is_capped(self):
        policy = RetryPolicy(base_delay=0.5, max_delay=8.0)
        
        assert policy.delay(10) == 8.0
    
    def test_attempt_budget(self):
        """Three attempts means two retries."""
        policy = RetryPolicy(max_attempts=3)
        
        assert policy.should_retry(0)
        assert policy.should_retry(1)
        assert not policy.should_retry(2)
    
    def test_from_settings(self):
        settings = Settings(
            _env_file=None,
            sync_max_attempts=5,
            resubscribe_max_attempts=2,
            sync_backoff_base_seconds=1.0,
            sync_backoff_max_seconds=4.0,
        )
        
        assert RetryPolicy.for_loads(settings) == RetryPolicy(5, 1.0, 4.0)
        assert RetryPolicy.for_resubscribe(settings) == RetryPolicy(2, 1.0, 4.0)
