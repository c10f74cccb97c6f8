"""Error taxonomy shared by configuration and the delivery pipeline."""

from __future__ import annotations


class RelayError(Exception):
    """Base class for every error surfaced by the relay."""


class ConfigurationError(RelayError, ValueError):
    """A relabel rule or setting is invalid; raised at construction time."""


class SerializationError(RelayError):
    """The batch could not be encoded into the request payload."""


class TransportError(RelayError):
    """No response was obtained (network failure or deadline exceeded)."""


class ResponseFormatError(RelayError):
    """The destination answered with a body or status we cannot interpret."""


class PartialWriteError(RelayError):
    """The destination rejected part of the batch."""


class InvariantViolation(RelayError):
    """The destination reported more rejected datapoints than were sent."""


__all__ = [
    "RelayError",
    "ConfigurationError",
    "SerializationError",
    "TransportError",
    "ResponseFormatError",
    "PartialWriteError",
    "InvariantViolation",
]
