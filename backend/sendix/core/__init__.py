"""
Core module containing configuration and shared utilities.
"""
from sendix.core.config import settings
from sendix.core.errors import (
    SendixError,
    NotFound,
    Forbidden,
    InvalidTransition,
    InvalidReference,
    ValidationFailed,
    EmptyMessage,
    ThreadDisabled,
)

__all__ = [
    "settings",
    "SendixError",
    "NotFound",
    "Forbidden",
    "InvalidTransition",
    "InvalidReference",
    "ValidationFailed",
    "EmptyMessage",
    "ThreadDisabled",
]
