"""HTTP service that links WhatsApp Web devices and ships their credentials."""

__version__ = "0.1.0"

__all__ = [
    "BootstrapController",
    "PresentationMode",
    "DisconnectReason",
    "WaSessionError",
    "create_app",
]


def __getattr__(name: str) -> object:
    """Lazy exports so importing the package does not pull in flask or qrcode."""
    if name == "BootstrapController":
        from .client.controller import BootstrapController

        return BootstrapController

    if name in {"PresentationMode", "DisconnectReason"}:
        from .core.events import DisconnectReason, PresentationMode

        return {"PresentationMode": PresentationMode, "DisconnectReason": DisconnectReason}[name]

    if name == "WaSessionError":
        from .core.errors import WaSessionError

        return WaSessionError

    if name == "create_app":
        from .web.server import create_app

        return create_app

    raise AttributeError(f"module 'wasession' has no attribute {name!r}")
