"""
Response transport for chat responses.

Every invocation convention arrives as a ResponseEnvelope of text chunks and
leaves as one wire shape: ``text/plain; charset=utf-8``, chunked.

Lifecycle per response: open -> fragment* -> close | error
- Failures before the first fragment propagate to the caller, so the endpoint
  answers with a JSON error instead of an empty 200
- Failures after the first fragment append ERROR_TRAILER and close the
  stream, so truncation is never silent
"""

from collections.abc import AsyncIterator

import structlog

from ....agent.invoker import ResponseEnvelope
from ....core.exceptions import AppError
from ....shared.sanitizers import sanitize_exception_message

logger = structlog.get_logger()

MEDIA_TYPE = "text/plain; charset=utf-8"
ERROR_TRAILER = "\n\n[error] {message}"


async def prime_stream(envelope: ResponseEnvelope) -> AsyncIterator[str]:
    """
    Pull the first fragment before the response is committed.

    Returns:
        Iterator replaying the first fragment followed by the rest

    Raises:
        AppError: Any failure raised before the first fragment
    """
    iterator = aiter(envelope.chunks)
    try:
        first: str | None = await anext(iterator)
    except StopAsyncIteration:
        first = None

    logger.info(
        "Response stream opened",
        source=envelope.source,
        streaming=envelope.streaming,
        empty=first is None,
    )
    return _framed(envelope, first, iterator)


async def _framed(
    envelope: ResponseEnvelope, first: str | None, rest: AsyncIterator[str]
) -> AsyncIterator[str]:
    fragments = 0
    characters = 0
    try:
        if first is not None:
            fragments += 1
            characters += len(first)
            yield first
            async for chunk in rest:
                fragments += 1
                characters += len(chunk)
                yield chunk
    except Exception as e:
        message = e.message if isinstance(e, AppError) else sanitize_exception_message(e)
        logger.error(
            "Response stream failed after first fragment",
            source=envelope.source,
            fragments=fragments,
            error=message,
            error_type=type(e).__name__,
        )
        yield ERROR_TRAILER.format(message=message)
        return

    logger.info(
        "Response stream closed",
        source=envelope.source,
        fragments=fragments,
        characters=characters,
    )
