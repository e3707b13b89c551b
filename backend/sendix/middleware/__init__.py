"""
HTTP middleware.
"""
from sendix.middleware.request_id import RequestIdMiddleware

__all__ = ["RequestIdMiddleware"]
