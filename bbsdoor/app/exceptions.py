"""
Custom exception hierarchy for the BBS door layer.

This module provides a structured exception hierarchy for consistent
error handling across drop file parsing, transports and sessions.
"""


class DoorException(Exception):
    """Base exception for all door errors."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigurationError(DoorException):
    """Configuration validation errors (invalid settings, missing values)."""

    pass


class DropFileError(ConfigurationError):
    """Drop file missing, unreadable, unrecognised or too short."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        missing_line: int | None = None,
    ):
        super().__init__(message, code="DROPFILE")
        self.path = path
        self.missing_line = missing_line


class TransportError(DoorException):
    """Transport/connection errors."""

    pass


class TransportInitError(TransportError):
    """A transport could not be brought up (bad handle, missing port)."""

    pass


class SerialUnavailableError(TransportInitError):
    """Serial port missing or not usable on this platform."""

    pass


class TransportExhaustedError(TransportError):
    """Every transport in the plan failed, including the local console."""

    pass


class ConnectionClosedError(TransportError):
    """Remote side hung up; the session must save and exit."""

    pass


class SessionError(DoorException):
    """Session lifecycle errors."""

    pass


class CharacterLockedError(SessionError):
    """Character name is locked to the drop file alias in door mode."""

    pass


class AuthorizationError(DoorException):
    """Access level/permission errors (insufficient privileges)."""

    pass
