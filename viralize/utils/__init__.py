"""Módulo de utilidades"""

from .cache import AssetCache, DiskAssetCache, MemoryAssetCache, content_key
from .backoff import RetryPolicy, RateLimiter, TransientUpstreamError, RateLimitError

__all__ = [
    "AssetCache", "DiskAssetCache", "MemoryAssetCache", "content_key",
    "RetryPolicy", "RateLimiter", "TransientUpstreamError", "RateLimitError",
]
