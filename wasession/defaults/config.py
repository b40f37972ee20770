"""Default bootstrap and server constants."""

DEFAULT_CONFIRMATION_MESSAGE = """*SESSION GENERATED SUCCESSFULLY* ✅

Your session ID:
{session_id}

Keep it private. Anyone holding it can act as this linked device.
"""

DEFAULT_BOOTSTRAP_CONFIG = {
    "token_timeout_s": 30.0,
    "link_timeout_s": 120.0,
    "settle_delay_s": 2.5,
    "max_attempts": 3,
    "retry_backoff_s": 0.5,
    "retry_backoff_max_s": 5.0,
}

DEFAULT_SERVER_CONFIG = {
    "host": "0.0.0.0",
    "port": 8000,
    "session_root": "./sessions",
    "qr_mode": "png",
    "max_concurrent_sessions": 16,
    "max_session_records": 500,
}

QR_BOX_SIZE = 10
QR_BORDER = 1

CREDENTIALS_FILENAME = "creds.json"
KEYS_FILENAME = "keys.json"

UPLOAD_CONTENT_TYPE = "application/json"
UPLOAD_TIMEOUT_S = 30.0

EXIT_FATAL = 1
