"""
Projection engine exceptions.

Computation errors propagate to the caller. Batch operations catch them per
unit and report them in their summaries instead.
"""


class ProjectionError(Exception):
    """Base class for every error raised by the projection engine"""


class InputError(ProjectionError, ValueError):
    """Malformed request: bad weights, unknown asset class, unknown scenario, bad horizon"""


class DataUnavailable(ProjectionError):
    """A collaborator could not supply enough data to simulate an instrument"""

    def __init__(self, ticker: str, reason: str):
        self.ticker = ticker
        self.reason = reason
        super().__init__(f"{ticker}: {reason}")


class InvariantViolation(ProjectionError, RuntimeError):
    """Internal inconsistency in a computed distribution (e.g. upside below downside)"""

    def __init__(self, message: str, upside: float = None, downside: float = None):
        self.upside = upside
        self.downside = downside
        super().__init__(message)


class CacheWriteFailure(ProjectionError):
    """A single cache entry could not be persisted"""

    def __init__(self, key, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"{key}: {reason}")
