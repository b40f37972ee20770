"""Client package public exports."""

from .controller import BootstrapController
from .emitter import render

__all__ = ["BootstrapController", "render"]
