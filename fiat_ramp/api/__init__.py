"""FastAPI application and routes."""
from .main import create_app
from .schemas import CheckoutResponse, HealthCheckResponse, WebhookResponse

__all__ = [
    "create_app",
    "CheckoutResponse",
    "HealthCheckResponse",
    "WebhookResponse",
]
