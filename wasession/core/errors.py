from __future__ import annotations

from typing import Optional


class WaSessionError(Exception):
    """Base exception for wasession."""

    http_status = 500


class RenderError(WaSessionError):
    """Raised when a QR payload or pairing code cannot be encoded."""


class UploadError(WaSessionError):
    """Raised when the credentials file cannot be pushed to remote storage."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BootstrapTimeout(WaSessionError):
    """Raised when no token (or no completed link) arrives within the window."""

    http_status = 504

    def __init__(self, message: str, timeout_s: float):
        super().__init__(message)
        self.timeout_s = timeout_s


class DisconnectFatal(WaSessionError):
    """Raised for disconnect reasons the bootstrap cannot recover from."""

    def __init__(self, reason: object, detail: Optional[str] = None):
        message = f"fatal disconnect: {reason}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.reason = reason


class ConnectionTerminated(WaSessionError):
    """Raised when the socket was lost or closed and the request is abandoned."""

    def __init__(self, reason: object):
        super().__init__(f"connection terminated: {reason}")
        self.reason = reason


class RetriesExhausted(WaSessionError):
    """Raised when a retryable disconnect keeps happening past the attempt cap."""

    def __init__(self, reason: object, attempts: int):
        super().__init__(f"gave up after {attempts} attempts (last reason: {reason})")
        self.reason = reason
        self.attempts = attempts


class CapacityError(WaSessionError):
    """Raised when the concurrent session cap is reached."""

    http_status = 503


class CredentialsMissing(WaSessionError):
    """Raised when the socket opened but no credentials were persisted."""


class PairingUnsupported(WaSessionError):
    """Raised when the socket implementation cannot issue pairing codes."""

    http_status = 501
