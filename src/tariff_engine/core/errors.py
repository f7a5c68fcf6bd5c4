"""Error kinds raised by the engine and its collaborators."""


class ConfigurationError(Exception):
    """Raised when required store or service configuration is missing."""

    pass


class UpstreamQueryError(Exception):
    """Raised when the time-series store or charging API fails a request."""

    pass


class ValidationError(Exception):
    """Raised when a request argument is rejected before any fetch."""

    pass


class NotFoundError(Exception):
    """Raised when a requested entity is absent from the current snapshot."""

    pass
