"""
Failure taxonomy for the ingestion pipeline.

Only FatalInputFailure ever reaches the caller of ingest(); everything else is
contained at the stage that raised it.
"""


class CrawlError(Exception):
    """Base class for all pipeline failures."""
    pass


class SoftFetchFailure(CrawlError):
    """Raised when a fetch/render stage fails; triggers the next fallback."""
    pass


class ExtractionParseFailure(CrawlError):
    """Raised when semantic-service output cannot be parsed, even after repair."""
    pass


class PersistenceFailure(CrawlError):
    """Raised when a Persistence Gateway write fails."""
    pass


class FatalInputFailure(CrawlError):
    """Raised for input that can never succeed (e.g. a syntactically invalid URL)."""
    pass
