"""Data stores for caching and locking.

Stores handle:
- Redis: cache entries with TTL, set-if-absent locks, compare-and-delete

No business/ranking logic in stores - that belongs in services.
"""
