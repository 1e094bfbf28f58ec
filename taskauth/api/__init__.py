"""API package exports."""

from taskauth.api.middleware import CorrelationIdMiddleware
from taskauth.api.routes import router

__all__ = ["router", "CorrelationIdMiddleware"]
