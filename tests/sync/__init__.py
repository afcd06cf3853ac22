"""
Test suite for the dispatch core.

Covers the components behind the informer's delivery guarantees:
- Rate limiter backoff policies
- RateLimitingQueue deduplication, exclusivity, delays and shutdown
- DeletedObjectMap capture and purge rules
- Watch registration and cache callback translation
- Informer dispatch, retry, shadow lifecycle and startup barrier
"""
