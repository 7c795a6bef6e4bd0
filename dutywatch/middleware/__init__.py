"""
Middleware components for request processing.
"""

from dutywatch.middleware.request_context import RequestContextMiddleware

__all__ = ["RequestContextMiddleware"]
