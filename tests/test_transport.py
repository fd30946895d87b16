"""
Unit tests for response framing and stream lifecycle.
"""

import pytest

from advisor_chat.agent.invoker import ResponseEnvelope
from advisor_chat.api.chat.streaming.transport import ERROR_TRAILER, prime_stream
from advisor_chat.core.exceptions import ConfigurationError, ProviderInvocationError


def _envelope(*items, streaming=True):
    async def chunks():
        for item in items:
            if isinstance(item, BaseException):
                raise item
            yield item

    return ResponseEnvelope(chunks=chunks(), streaming=streaming, source="test")


async def _drain(chunks):
    return [chunk async for chunk in chunks]


class TestPrimeStream:
    @pytest.mark.asyncio
    async def test_replays_all_fragments(self):
        chunks = await prime_stream(_envelope("a", "b", "c"))

        assert await _drain(chunks) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_error_before_first_fragment_propagates(self):
        with pytest.raises(ConfigurationError):
            await prime_stream(_envelope(ConfigurationError("XAI_API_KEY is not configured")))

    @pytest.mark.asyncio
    async def test_mid_stream_error_appends_trailer(self):
        chunks = await prime_stream(
            _envelope("partial answer", ProviderInvocationError("GPT-4o request failed: reset"))
        )

        result = await _drain(chunks)

        assert result == [
            "partial answer",
            ERROR_TRAILER.format(message="GPT-4o request failed: reset"),
        ]

    @pytest.mark.asyncio
    async def test_unexpected_mid_stream_error_is_sanitized(self):
        chunks = await prime_stream(_envelope("x", RuntimeError("bad apikey=SECRET")))

        result = await _drain(chunks)

        assert result[-1] == ERROR_TRAILER.format(message="bad apikey=****")

    @pytest.mark.asyncio
    async def test_empty_response(self):
        chunks = await prime_stream(_envelope())

        assert await _drain(chunks) == []

    @pytest.mark.asyncio
    async def test_single_shot_result_same_shape(self):
        chunks = await prime_stream(_envelope("whole answer", streaming=False))

        assert await _drain(chunks) == ["whole answer"]
