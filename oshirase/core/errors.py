"""Exception hierarchy for the aggregator."""


class AggregatorError(Exception):
    """Base class for all aggregator errors."""


class ConfigError(AggregatorError):
    """Configuration is missing or invalid. Fatal at startup."""


class SourceError(AggregatorError):
    """A source adapter could not produce its records."""

    def __init__(self, source: str, message: str) -> None:
        self.source = source
        super().__init__(f"{source}: {message}")


class PersistenceError(AggregatorError):
    """A batch write to the document store failed."""


class CacheError(AggregatorError):
    """A cache round-trip failed. Never escapes the cache layer."""


class MatchError(AggregatorError):
    """A matcher could not evaluate a record against an extra set."""
