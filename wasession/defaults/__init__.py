"""Default constants and configuration values for wasession."""

from .config import DEFAULT_BOOTSTRAP_CONFIG, DEFAULT_CONFIRMATION_MESSAGE

__all__ = ["DEFAULT_BOOTSTRAP_CONFIG", "DEFAULT_CONFIRMATION_MESSAGE"]
