"""External service integrations."""
from .onramper_client import OnramperClient

__all__ = ["OnramperClient"]
