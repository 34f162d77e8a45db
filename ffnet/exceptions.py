"""
exceptions.py
~~~~~~~~~~~~~

Errors raised by the network engine and its persistence codec.
"""


class NetworkError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(NetworkError, ValueError):
    """Raised when a network topology is malformed."""


class DimensionMismatchError(NetworkError, ValueError):
    """Raised when a vector does not match the network's input or output width."""

    def __init__(self, what: str, expected: int, actual):
        self.what = what
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{what} must be a flat vector of length {expected}, got shape {actual}"
        )


class PersistenceError(NetworkError):
    """Base class for save/load failures that are not filesystem errors."""


class CorruptFileError(PersistenceError):
    """Raised when a stored network is truncated or holds out-of-range fields."""


class TopologyMismatchError(PersistenceError):
    """Raised when a stored topology differs from the network it is loaded into."""
