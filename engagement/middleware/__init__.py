"""
Middleware components for request processing.
"""

from engagement.middleware.request_context import RequestContextMiddleware

__all__ = ["RequestContextMiddleware"]
