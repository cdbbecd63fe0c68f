"""
logclust Exceptions

Two families are kept apart so callers (and tests) can tell "caller's fault"
from "engine's fault":

    ConfigurationError       - bad parameters / bad input, raised before work starts
    UnsupportedOperationError- a feature combination an engine does not support
    StreamStateError         - streaming API used out of order
    ClusteringInternalError  - incremental bookkeeping is inconsistent (a bug)
"""


class LogclustError(Exception):
    """Base class for all logclust errors."""
    pass


class ConfigurationError(LogclustError, ValueError):
    """Raised when an engine or trainer is configured or called incorrectly."""
    pass


class UnsupportedOperationError(ConfigurationError):
    """Raised when a requested feature is not supported by an engine."""
    pass


class StreamStateError(LogclustError, RuntimeError):
    """Raised when a streaming estimator is used out of sequence."""
    pass


class ClusteringInternalError(LogclustError, RuntimeError):
    """Raised when an internal clustering invariant is violated."""
    pass
