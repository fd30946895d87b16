"""
Shared sanitization utilities.

Strips credentials from text before it is logged or sent to the caller.
Provider SDK errors and market-data payloads sometimes echo the request URL
or headers, which carry API keys.
"""

import re
from typing import Any

_API_KEY_PATTERN = re.compile(r"(apikey[=:]\s*)([A-Za-z0-9]+)", re.IGNORECASE)
_BEARER_TOKEN_PATTERN = re.compile(r"(Bearer\s+)([A-Za-z0-9._-]+)", re.IGNORECASE)
# OpenAI-style secret keys (sk-..., xai-..., pplx-...)
_SECRET_KEY_PATTERN = re.compile(r"\b((?:sk|xai|pplx)-)[A-Za-z0-9_-]{8,}")

_SENSITIVE_KEYWORDS = frozenset(
    {"api key", "apikey", "api_key", "bearer", "sk-", "xai-", "pplx-"}
)


def sanitize_text(text: str, mask: str = "****") -> str:
    """
    Remove sensitive information from text strings.

    Examples:
        >>> sanitize_text("Error: Invalid apikey=ABC123DEF")
        "Error: Invalid apikey=****"
        >>> sanitize_text("Incorrect API key provided: sk-abcdefgh12345")
        "Incorrect API key provided: sk-****"
    """
    if not text:
        return text

    text_lower = text.lower()
    if not any(keyword in text_lower for keyword in _SENSITIVE_KEYWORDS):
        return text

    result = _API_KEY_PATTERN.sub(rf"\1{mask}", text)
    result = _BEARER_TOKEN_PATTERN.sub(rf"\1{mask}", result)
    result = _SECRET_KEY_PATTERN.sub(rf"\1{mask}", result)
    return result


def sanitize_api_response(
    response: dict[str, Any], mask: str = "****"
) -> dict[str, Any]:
    """Remove API keys from the message fields of an API error payload."""
    if not response:
        return response

    sanitized = response.copy()
    for field in ("Information", "Note", "Error Message", "error", "message", "detail"):
        if field in sanitized and isinstance(sanitized[field], str):
            sanitized[field] = sanitize_text(sanitized[field], mask)
    return sanitized


def sanitize_exception_message(exc: BaseException, mask: str = "****") -> str:
    """Sanitize an exception message for safe logging/display."""
    return sanitize_text(str(exc), mask)
