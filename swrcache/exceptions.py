"""Cache exceptions."""


class CacheError(Exception):
    """Base class for cache errors."""
    pass


class InvalidArgumentError(CacheError, ValueError):
    """Raised for empty keys or inconsistent freshness windows."""
    pass


class FetchFailedError(CacheError):
    """Raised when a synchronous fetch fails and no cached value can be served."""

    def __init__(self, key: str, original: BaseException):
        super().__init__(f"Fetch failed for {key}: {original}")
        self.key = key
        self.original = original
