"""HTTP Server module."""

from dataset_viewer.server.app import create_app
from dataset_viewer.server.middleware import BodySizeLimitMiddleware, RequestContextMiddleware
from dataset_viewer.server.routes import classify_error, create_routes

__all__ = [
    "BodySizeLimitMiddleware",
    "RequestContextMiddleware",
    "classify_error",
    "create_app",
    "create_routes",
]
