"""
Streaming package for the chat endpoint.

- transport.py: chunk framing and stream lifecycle
- handlers.py: POST /api/chat handler
"""

from .handlers import chat
from .transport import ERROR_TRAILER, MEDIA_TYPE, prime_stream

__all__ = ["ERROR_TRAILER", "MEDIA_TYPE", "chat", "prime_stream"]
