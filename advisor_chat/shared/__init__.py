"""
Shared utilities module.
"""

from .sanitizers import (
    sanitize_api_response,
    sanitize_exception_message,
    sanitize_text,
)

__all__ = [
    "sanitize_text",
    "sanitize_api_response",
    "sanitize_exception_message",
]
