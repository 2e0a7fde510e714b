"""Custom exception hierarchy for pycarlink."""

from __future__ import annotations


class CarLinkError(Exception):
    """Base exception for all pycarlink errors."""


class CarLinkConfigError(CarLinkError):
    """Invalid or missing configuration."""


class CarLinkAuthError(CarLinkError):
    """Request did not carry the configured shared secret."""


class MissingParameterError(CarLinkError):
    """A required request field is absent (e.g. an empty command).

    Surfaced to the caller as a client error; no state is mutated.
    """

    def __init__(self, message: str, *, parameter: str = "") -> None:
        self.parameter = parameter
        super().__init__(message)


class InvalidParameterError(MissingParameterError):
    """A request field is present but carries an unusable value."""


class MalformedDirectiveError(CarLinkError):
    """A single ``KEY=VALUE`` segment could not be parsed.

    Only raised by the segment parser; the command parser skips the
    offending segment and keeps the rest.
    """

    def __init__(self, message: str, *, segment: str = "") -> None:
        self.segment = segment
        super().__init__(message)


class GeoLookupError(CarLinkError):
    """External address-to-timezone lookup failed (network, HTTP, payload)."""

    def __init__(self, message: str, *, address: str = "") -> None:
        self.address = address
        super().__init__(message)
