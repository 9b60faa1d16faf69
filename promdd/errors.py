"""Exception hierarchy for the forwarder."""


class PromDDError(Exception):
    """Base class for all forwarder errors."""


class ConfigurationError(PromDDError):
    """Invalid or unreadable configuration. Raised at startup."""


class DiscoveryError(PromDDError):
    """Listing metric names from Prometheus failed. Fatal to the process."""


class QueryError(PromDDError):
    """A single range query failed. Aborts the current tick only."""

    def __init__(self, message: str, expression: str = ""):
        super().__init__(message)
        self.expression = expression


class SubmissionError(PromDDError):
    """Submitting a batch to Datadog failed. Aborts the current tick only."""
