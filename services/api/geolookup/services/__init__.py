"""Business logic services.

Services handle:
- Coordinate normalization and cache keys
- Cache-aside coordination (result store, stampede lock)
- Upstream planning, filtering/ranking and fallbacks
"""
