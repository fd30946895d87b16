"""
Single-provider invocation.

Two calling conventions live here; the third (tool-calling loop) is in
``tool_loop``:

1. Native streaming: ``astream`` and forward every text fragment as it arrives
2. Single-shot: ``ainvoke`` and return the complete text

Whatever the convention, callers receive a ``ResponseEnvelope`` whose chunks
are an async iterator, so the transport always emits the same wire shape.
"""

from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from ..api.schemas.chat_models import ChatMessage
from ..core.deadline import RequestDeadline
from ..core.exceptions import AppError, ProviderInvocationError
from ..core.model_config import ProviderVariant, get_variant_config
from ..services.context_assembler import AssembledContext
from ..shared.sanitizers import sanitize_exception_message
from .llm_client import ChatModelFactory, to_langchain_messages

logger = structlog.get_logger()


@dataclass(frozen=True)
class ResponseEnvelope:
    """Text chunks for one response plus the convention that produced them."""

    chunks: AsyncIterator[str]
    streaming: bool  # False: single-shot result re-emitted as one chunk
    source: str  # Variant id or "combined-analysis", for logging


def content_text(content: Any) -> str:
    """Extract text from a LangChain message content (str or content blocks)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return ""


async def one_chunk(call: Callable[[], Awaitable[str]]) -> AsyncIterator[str]:
    """Re-emit a single-shot result as a one-chunk stream (called on first pull)."""
    result = await call()
    if result:
        yield result


def _invocation_error(variant: ProviderVariant, convention: str, error: Exception) -> ProviderInvocationError:
    message = sanitize_exception_message(error)
    logger.error(
        "Provider invocation failed",
        variant=variant.value,
        convention=convention,
        error=message,
        error_type=type(error).__name__,
    )
    return ProviderInvocationError(
        f"{get_variant_config(variant).display_name} request failed: {message}",
        variant=variant.value,
        convention=convention,
    )


class SingleProviderInvoker:
    """Executes exactly one call against one provider variant."""

    def __init__(self, model_factory: ChatModelFactory):
        self.model_factory = model_factory

    async def stream(
        self,
        variant: ProviderVariant,
        context: AssembledContext,
        messages: Sequence[ChatMessage],
        deadline: RequestDeadline,
    ) -> AsyncIterator[str]:
        """
        Native streaming convention.

        Yields:
            Non-empty text fragments in arrival order

        Raises:
            ProviderInvocationError: Provider failed mid-call (not retried)
            RequestTimeoutError: Request deadline expired
        """
        chat = self.model_factory.create(variant, streaming=True)
        lc_messages = to_langchain_messages(context.render(), list(messages))

        logger.info(
            "Streaming provider call started",
            variant=variant.value,
            message_count=len(messages),
        )
        fragments = 0
        try:
            async for chunk in deadline.iterate(
                chat.astream(lc_messages), operation=f"{variant.value} stream"
            ):
                text = content_text(chunk.content)
                if text:
                    fragments += 1
                    yield text
        except AppError:
            raise
        except Exception as e:
            raise _invocation_error(variant, "stream", e) from e

        logger.info("Streaming provider call completed", variant=variant.value, fragments=fragments)

    async def complete(
        self,
        variant: ProviderVariant,
        context: AssembledContext,
        messages: Sequence[ChatMessage],
        deadline: RequestDeadline,
    ) -> str:
        """
        Single-shot convention: one request, complete text back.

        Raises:
            ProviderInvocationError: Provider failed (not retried)
            RequestTimeoutError: Request deadline expired
        """
        chat = self.model_factory.create(variant, streaming=False)
        lc_messages = to_langchain_messages(context.render(), list(messages))

        try:
            response = await deadline.run(
                chat.ainvoke(lc_messages), operation=f"{variant.value} completion"
            )
        except AppError:
            raise
        except Exception as e:
            raise _invocation_error(variant, "complete", e) from e

        text = content_text(response.content)
        logger.info("Single-shot provider call completed", variant=variant.value, length=len(text))
        return text

    def invoke(
        self,
        variant: ProviderVariant,
        context: AssembledContext,
        messages: Sequence[ChatMessage],
        deadline: RequestDeadline,
    ) -> ResponseEnvelope:
        """Pick the convention from the variant's capabilities."""
        if get_variant_config(variant).capabilities.streaming:
            return ResponseEnvelope(
                chunks=self.stream(variant, context, messages, deadline),
                streaming=True,
                source=variant.value,
            )
        return ResponseEnvelope(
            chunks=one_chunk(lambda: self.complete(variant, context, messages, deadline)),
            streaming=False,
            source=variant.value,
        )
