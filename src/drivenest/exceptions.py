"""Custom exception hierarchy for drivenest."""

from __future__ import annotations


class DriveNestError(Exception):
    """Base exception for all drivenest errors."""


class DriveNestConfigError(DriveNestError):
    """Invalid or missing configuration."""


class TransportError(DriveNestError):
    """HTTP-level failure (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class _EndpointError(DriveNestError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class AttributionError(_EndpointError):
    """Attribution endpoint returned a bad status or an unparsable body."""


class ConfigError(_EndpointError):
    """Configuration endpoint returned a bad status, body, or content URL.

    The controller never lets this escape: it degrades to the cached
    content URL or to the sticky ``Legacy`` mode instead.
    """


class PersistenceError(DriveNestError):
    """Key-value store read/write failure.

    Not surfaced to callers of the controller; store failures are logged
    and the affected value is treated as absent.
    """
