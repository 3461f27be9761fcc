"""
TEMPFOCUS Custom Exceptions

Domain-specific exception hierarchy for the temperature focus compensation
controller. Callers can catch every controller error with TempFocusError.

Exception Hierarchy:
    TempFocusError (base)
    ├── ConfigurationError
    ├── DeviceError
    │   ├── NotConnectedError
    │   └── InvalidReadingError
    ├── GuiderError
    └── CompensationError
        └── OutOfRangeError
"""

from typing import Any, Optional


class TempFocusError(Exception):
    """Base exception for all TEMPFOCUS errors.

    Attributes:
        message: Human-readable error description
        details: Optional dict with additional error context
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(TempFocusError):
    """Error in configuration file or settings."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_file: Optional[str] = None,
    ) -> None:
        details = {}
        if config_key:
            details["config_key"] = config_key
        if config_file:
            details["config_file"] = config_file
        super().__init__(message, details)
        self.config_key = config_key
        self.config_file = config_file


# =============================================================================
# Device Errors
# =============================================================================

class DeviceError(TempFocusError):
    """Base class for focuser and guider state errors."""

    def __init__(
        self,
        message: str,
        device_type: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        details = kwargs
        if device_type:
            details["device_type"] = device_type
        super().__init__(message, details)
        self.device_type = device_type


class NotConnectedError(DeviceError):
    """Focuser or guider is missing or disconnected."""
    pass


class InvalidReadingError(DeviceError):
    """Focuser temperature sensor returned a non-finite value."""

    def __init__(self, message: str, value: Optional[float] = None) -> None:
        super().__init__(message, device_type="focuser")
        if value is not None:
            self.details["value"] = value
        self.value = value


class GuiderError(TempFocusError):
    """PHD2 rejected a request or is not reachable."""

    def __init__(self, message: str, method: Optional[str] = None) -> None:
        details: dict[str, Any] = {}
        if method:
            details["method"] = method
        super().__init__(message, details)
        self.method = method


# =============================================================================
# Compensation Errors
# =============================================================================

class CompensationError(TempFocusError):
    """Base class for compensation calculation errors."""
    pass


class OutOfRangeError(CompensationError):
    """Computed position or step count does not fit a signed 32-bit integer."""

    def __init__(
        self,
        message: str,
        mode: Optional[str] = None,
        value: Optional[float] = None,
    ) -> None:
        details: dict[str, Any] = {}
        if mode:
            details["mode"] = mode
        if value is not None:
            details["value"] = value
        super().__init__(message, details)
        self.mode = mode
        self.value = value


# Allow importing without prefix for common cases
Error = TempFocusError
