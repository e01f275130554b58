"""
Error kinds raised while building flame graphs.

Errors are local-data errors found during aggregation or transform and are
propagated unchanged to the caller. An empty event set is not an error.
"""


class StackFlameError(Exception):
    """Base class for all stackflame errors."""


class InvalidInput(StackFlameError, ValueError):
    """An empty or malformed stack trace, event or fetch result."""


class UnresolvedFrame(StackFlameError, KeyError):
    """A frame or executable reference is missing from the directory."""

    def __init__(self, kind: str, identifier):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"unresolved {kind}: {identifier!r}")

    def __str__(self):
        # KeyError quotes its argument, keep the plain message
        return self.args[0]


class ConfigError(StackFlameError):
    """An environment setting could not be parsed."""
