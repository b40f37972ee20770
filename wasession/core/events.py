from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    QR_READY = "qr-ready"
    OPEN = "open"
    CLOSED = "closed"


class DisconnectReason(str, Enum):
    """Why a socket closed, named after Baileys' DisconnectReason."""

    RESTART_REQUIRED = "restart-required"
    TIMED_OUT = "timed-out"
    CONNECTION_LOST = "connection-lost"
    CONNECTION_CLOSED = "connection-closed"
    CONNECTION_REPLACED = "connection-replaced"
    LOGGED_OUT = "logged-out"
    BAD_SESSION = "bad-session"
    MULTIDEVICE_MISMATCH = "multidevice-mismatch"
    FORBIDDEN = "forbidden"
    UNAVAILABLE_SERVICE = "unavailable-service"
    UNKNOWN = "unknown"

    @classmethod
    def from_status_code(cls, code: Optional[int]) -> "DisconnectReason":
        if code is None:
            return cls.UNKNOWN
        return _STATUS_CODES.get(int(code), cls.UNKNOWN)

    @property
    def is_retryable(self) -> bool:
        return self in (DisconnectReason.RESTART_REQUIRED, DisconnectReason.TIMED_OUT)

    @property
    def is_terminal(self) -> bool:
        return self in (DisconnectReason.CONNECTION_LOST, DisconnectReason.CONNECTION_CLOSED)


# 408 is both "timed out" and "connection lost" upstream; during a bootstrap it
# is almost always the QR refs running out, so it is treated as retryable.
_STATUS_CODES = {
    515: DisconnectReason.RESTART_REQUIRED,
    408: DisconnectReason.TIMED_OUT,
    428: DisconnectReason.CONNECTION_CLOSED,
    440: DisconnectReason.CONNECTION_REPLACED,
    401: DisconnectReason.LOGGED_OUT,
    500: DisconnectReason.BAD_SESSION,
    411: DisconnectReason.MULTIDEVICE_MISMATCH,
    403: DisconnectReason.FORBIDDEN,
    503: DisconnectReason.UNAVAILABLE_SERVICE,
}


class PresentationMode(str, Enum):
    QR_PNG = "qr-png"
    QR_DATA_URL = "qr-data-url"
    PAIRING_CODE = "pairing-code"

    @classmethod
    def from_value(cls, raw: str) -> "PresentationMode":
        key = (raw or "").strip().lower()
        mode = _MODE_ALIASES.get(key)
        if mode is None:
            raise ValueError(f"unknown presentation mode: {raw!r}")
        return mode

    @property
    def is_qr(self) -> bool:
        return self is not PresentationMode.PAIRING_CODE


_MODE_ALIASES = {
    "png": PresentationMode.QR_PNG,
    "qr-png": PresentationMode.QR_PNG,
    "image": PresentationMode.QR_PNG,
    "data-url": PresentationMode.QR_DATA_URL,
    "dataurl": PresentationMode.QR_DATA_URL,
    "qr-data-url": PresentationMode.QR_DATA_URL,
    "pairing-code": PresentationMode.PAIRING_CODE,
    "code": PresentationMode.PAIRING_CODE,
}


@dataclass
class ConnectionEvent:
    state: ConnectionState
    qr: Optional[str] = None
    reason: Optional[DisconnectReason] = None
    detail: Optional[str] = None


@dataclass(frozen=True)
class Token:
    mode: PresentationMode
    content_type: str
    body: bytes | str


@dataclass
class BootstrapEvent:
    """One item of the controller's event stream."""

    kind: str  # "token", "retry", "open", "uploaded", "confirmed", "completed", "closed"
    request_id: str
    attempt: int
    token: Optional[Token] = None
    reason: Optional[DisconnectReason] = None
    session_id: Optional[str] = None
    data: dict[str, Any] = field(default_factory=dict)
