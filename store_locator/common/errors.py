"""Domain errors and failure typing."""

from __future__ import annotations


class LocatorError(Exception):
    """Base class for store locator failures."""

    error_code = "LOCATOR_ERROR"


class ConfigError(LocatorError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class FetchError(LocatorError):
    """Raised when location records cannot be retrieved after retries."""

    error_code = "FETCH_ERROR"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GeocodeError(LocatorError):
    """Raised when geocoding fails as a whole rather than for a single address."""

    error_code = "GEOCODE_ERROR"
