"""Core types shared by the controller, storage and HTTP layers."""
