"""Configuration package for the fiat ramp relay."""
from .settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
