"""
API Module
"""
from .main import create_api_app
from .middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from .dependencies import ServiceContainer

__all__ = [
    "create_api_app",
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
    "ServiceContainer",
]
