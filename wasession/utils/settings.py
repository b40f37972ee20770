"""Process-wide configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

from wasession.core.events import PresentationMode
from wasession.defaults.config import (
    DEFAULT_BOOTSTRAP_CONFIG,
    DEFAULT_CONFIRMATION_MESSAGE,
    DEFAULT_SERVER_CONFIG,
)
from wasession.infra.upload import UploadConfig

_FALSE_VALUES = {"0", "false", "False", "no", "off"}


@dataclass
class BootstrapSettings:
    token_timeout_s: float = DEFAULT_BOOTSTRAP_CONFIG["token_timeout_s"]
    link_timeout_s: float = DEFAULT_BOOTSTRAP_CONFIG["link_timeout_s"]
    settle_delay_s: float = DEFAULT_BOOTSTRAP_CONFIG["settle_delay_s"]
    max_attempts: int = DEFAULT_BOOTSTRAP_CONFIG["max_attempts"]
    retry_backoff_s: float = DEFAULT_BOOTSTRAP_CONFIG["retry_backoff_s"]
    retry_backoff_max_s: float = DEFAULT_BOOTSTRAP_CONFIG["retry_backoff_max_s"]
    upload_url_prefix: str = ""
    session_id_prefix: str = ""
    confirmation_message: str = DEFAULT_CONFIRMATION_MESSAGE

    def backoff_for(self, attempt: int) -> float:
        """Delay before attempt ``attempt + 1``."""
        if self.retry_backoff_s <= 0:
            return 0.0
        return min(self.retry_backoff_s * (2 ** max(0, attempt - 1)), self.retry_backoff_max_s)


@dataclass
class Settings:
    host: str = DEFAULT_SERVER_CONFIG["host"]
    port: int = DEFAULT_SERVER_CONFIG["port"]
    session_root: str = DEFAULT_SERVER_CONFIG["session_root"]
    qr_mode: PresentationMode = PresentationMode.QR_PNG
    max_concurrent_sessions: int = DEFAULT_SERVER_CONFIG["max_concurrent_sessions"]
    max_session_records: int = DEFAULT_SERVER_CONFIG["max_session_records"]
    exit_on_fatal: bool = True
    log_level: str = "INFO"
    log_json: bool = True
    bootstrap: BootstrapSettings | None = None
    upload: UploadConfig | None = None

    def __post_init__(self) -> None:
        if self.bootstrap is None:
            self.bootstrap = BootstrapSettings()
        if self.upload is None:
            self.upload = UploadConfig()
        if self.qr_mode is PresentationMode.PAIRING_CODE:
            raise ValueError("qr_mode must be a QR presentation mode")


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default) not in _FALSE_VALUES


def _text(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def settings_from_env() -> Settings:
    bootstrap = BootstrapSettings(
        token_timeout_s=float(os.getenv("WASESSION_TOKEN_TIMEOUT", "30")),
        link_timeout_s=float(os.getenv("WASESSION_LINK_TIMEOUT", "120")),
        settle_delay_s=float(os.getenv("WASESSION_SETTLE_DELAY", "2.5")),
        max_attempts=max(1, int(os.getenv("WASESSION_MAX_ATTEMPTS", "3"))),
        retry_backoff_s=float(os.getenv("WASESSION_RETRY_BACKOFF", "0.5")),
        retry_backoff_max_s=float(os.getenv("WASESSION_RETRY_BACKOFF_MAX", "5")),
        upload_url_prefix=os.getenv("WASESSION_UPLOAD_URL_PREFIX", ""),
        session_id_prefix=os.getenv("WASESSION_SESSION_ID_PREFIX", ""),
        confirmation_message=os.getenv("WASESSION_CONFIRMATION_MESSAGE", DEFAULT_CONFIRMATION_MESSAGE),
    )
    upload = UploadConfig(
        endpoint=_text("WASESSION_UPLOAD_ENDPOINT"),
        token=_text("WASESSION_UPLOAD_TOKEN"),
        public_base_url=_text("WASESSION_UPLOAD_PUBLIC_URL"),
        timeout_s=float(os.getenv("WASESSION_UPLOAD_TIMEOUT", "30")),
    )
    return Settings(
        host=os.getenv("WASESSION_HOST", DEFAULT_SERVER_CONFIG["host"]),
        port=int(os.getenv("WASESSION_PORT", str(DEFAULT_SERVER_CONFIG["port"]))),
        session_root=os.getenv("WASESSION_SESSION_ROOT", DEFAULT_SERVER_CONFIG["session_root"]),
        qr_mode=PresentationMode.from_value(os.getenv("WASESSION_QR_MODE", DEFAULT_SERVER_CONFIG["qr_mode"])),
        max_concurrent_sessions=max(1, int(os.getenv("WASESSION_MAX_SESSIONS", "16"))),
        max_session_records=max(1, int(os.getenv("WASESSION_MAX_RECORDS", "500"))),
        exit_on_fatal=_flag("WASESSION_EXIT_ON_FATAL", "1"),
        log_level=os.getenv("WASESSION_LOG_LEVEL", "INFO"),
        log_json=_flag("WASESSION_LOG_JSON", "1"),
        bootstrap=bootstrap,
        upload=upload,
    )
