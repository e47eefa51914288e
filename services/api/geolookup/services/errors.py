"""Error taxonomy for the lookup core.

- QueryValidationError: rejected before any cache/lock/upstream work (HTTP 400)
- UpstreamError: provider failure; always absorbed by the fallback chain
- LockWaitExhausted: waiter gave up under the `fail` lock-wait policy (HTTP 503)
- StoreUnavailable: the shared key-value store is unreachable (HTTP 503)
"""


class GeoLookupError(RuntimeError):
    pass


class QueryValidationError(GeoLookupError):
    pass


class UpstreamError(GeoLookupError):
    pass


class LockWaitExhausted(GeoLookupError):
    def __init__(self, key: str, waited_seconds: float):
        super().__init__(f"Lock wait exhausted for {key} after {waited_seconds:.1f}s")
        self.key = key
        self.waited_seconds = waited_seconds


class StoreUnavailable(GeoLookupError):
    pass
