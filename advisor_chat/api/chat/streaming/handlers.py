"""
POST /api/chat handler.
"""

import structlog
from fastapi import Depends
from fastapi.responses import StreamingResponse

from ....agent.orchestrator import ChatOrchestrator
from ...dependencies.chat_deps import get_orchestrator
from ...schemas.chat_models import ChatRequest
from .transport import MEDIA_TYPE, prime_stream

logger = structlog.get_logger()


async def chat(
    chat_request: ChatRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    """
    Answer a chat request as a chunked text/plain stream.

    Errors raised before the first fragment (unknown model, missing
    credential, provider failure) are AppErrors and become JSON
    ``{"error": ...}`` responses via the app's exception handler.
    """
    envelope = await orchestrator.handle(chat_request)
    chunks = await prime_stream(envelope)
    return StreamingResponse(chunks, media_type=MEDIA_TYPE)
