"""HTTP clients shared by the sequence and taxonomy sources."""

from hmmer_pipeline.api_clients.base import CachedAPIClient, is_retryable_status
from hmmer_pipeline.api_clients.ratelimit import RateLimiter

__all__ = ["CachedAPIClient", "RateLimiter", "is_retryable_status"]
