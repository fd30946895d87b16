"""
Chat API module.

- streaming/handlers.py: POST /api/chat
- streaming/transport.py: response framing and stream lifecycle
"""

from fastapi import APIRouter

from .streaming import chat

router = APIRouter(prefix="/api/chat", tags=["chat"])

router.add_api_route(
    "",
    chat,
    methods=["POST"],
    name="chat",
)

__all__ = ["router"]
