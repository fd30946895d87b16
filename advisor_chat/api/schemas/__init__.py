"""
API request/response schemas.
"""

from .chat_models import ChatMessage, ChatRequest, FileContext

__all__ = ["ChatMessage", "ChatRequest", "FileContext"]
