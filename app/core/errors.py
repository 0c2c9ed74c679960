"""
error types for the priority subsystem

only the bare calculator raises hard errors.
everything the handler does is fail-open (defaults or counted failures),
so these mostly show up in tests, integration bugs, and startup checks.
"""


class InvalidPriorityInput(ValueError):
    """A request is missing a field every priority sub-score depends on."""


class RequestNotFound(LookupError):
    pass


class PriorityConfigurationError(RuntimeError):
    """Raised at startup when the priority weights drift away from 1.0."""
