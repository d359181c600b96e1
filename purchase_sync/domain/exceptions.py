"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ShopAPIError(DomainException):
    """Upstream commerce API returned an error or is unavailable"""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        page_index: int | None = None,
        url: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.page_index = page_index
        self.url = url


class ShopResponseParseError(ShopAPIError):
    """Upstream response body could not be parsed into entities"""

    pass


class CrawlCancelledError(DomainException):
    """Crawl was told to stop before the collection was exhausted"""

    pass


class InvalidSyncTransitionError(DomainException):
    """Sync lifecycle was asked to move to a state it cannot reach"""

    pass


class SyncInProgressError(DomainException):
    """Another sync cycle is still running"""

    pass
