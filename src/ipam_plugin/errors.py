"""
Error taxonomy for ipam-plugin.

Errors never reach the wire as structured codes: the plugin protocol only
knows a plain message. The classes here exist so drivers, the handler and
the configuration layer can raise and log failures consistently.
"""

from __future__ import annotations

from typing import Any


class IpamPluginError(Exception):
    """
    Base exception for all ipam-plugin errors.

    Attributes:
        message: Human-readable error message
        cause: Original exception that caused this error
    """

    def __init__(self, message: str, *, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "cause": str(self.cause) if self.cause else None,
        }


class RequestDecodeError(IpamPluginError):
    """The inbound request body could not be decoded into the expected record."""

    def __init__(self, message: str, *, path: str | None = None, cause: Exception | None = None):
        super().__init__(message, cause=cause)
        self.path = path

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["path"] = self.path
        return d


class DriverError(IpamPluginError):
    """
    Convenience base for errors raised by driver implementations.

    Drivers may raise any exception; the handler sends ``str(exc)`` back as
    the ``Err`` message. Subclassing this keeps that message free of extra
    decoration.
    """


class ConfigError(IpamPluginError):
    """An environment value could not be turned into a setting."""

    def __init__(self, message: str, *, variable: str | None = None, cause: Exception | None = None):
        super().__init__(message, cause=cause)
        self.variable = variable


__all__ = [
    "IpamPluginError",
    "RequestDecodeError",
    "DriverError",
    "ConfigError",
]
