"""
Unit tests for the bounded tool-calling loop.
"""

import json

import pytest
from fakes import ScriptedChatModel, StubModelFactory, tool_call_chunk
from langchain_core.messages import AIMessageChunk, ToolMessage
from langchain_core.tools import tool

from advisor_chat.agent.tool_loop import CEILING_NOTICE, ToolCallingLoop
from advisor_chat.api.schemas.chat_models import ChatMessage
from advisor_chat.core.deadline import RequestDeadline
from advisor_chat.core.exceptions import ProviderInvocationError
from advisor_chat.core.model_config import ProviderVariant

MESSAGES = [ChatMessage(role="user", content="portfolio mode: how is AAPL?")]


@tool
async def lookup_price(symbol: str) -> str:
    """Look up a price."""
    return f"{symbol}=151.75"


@tool
async def broken_tool(symbol: str) -> str:
    """Always fails."""
    raise RuntimeError(f"upstream unavailable for {symbol}")


def _loop(model, max_rounds=3, variant=ProviderVariant.GPT_4O):
    factory = StubModelFactory({variant: model})
    return ToolCallingLoop(factory, [lookup_price, broken_tool], max_rounds=max_rounds)


async def _run(loop, context, variant=ProviderVariant.GPT_4O):
    return [
        chunk
        async for chunk in loop.stream(variant, context, MESSAGES, RequestDeadline.after(5))
    ]


class TestTermination:
    @pytest.mark.asyncio
    async def test_answer_without_tools_ends_after_one_round(self, simple_context):
        model = ScriptedChatModel("AAPL looks fine")
        loop = _loop(model)

        chunks = await _run(loop, simple_context)

        assert "".join(chunks) == "AAPL looks fine"
        assert loop.result.rounds == 1
        assert loop.result.termination == "answer"
        assert model.bound_tools is not None

    @pytest.mark.asyncio
    async def test_tool_round_then_answer(self, simple_context):
        model = ScriptedChatModel(
            [tool_call_chunk("lookup_price", '{"symbol": "AAPL"}')],
            "AAPL is at 151.75",
        )
        loop = _loop(model)

        chunks = await _run(loop, simple_context)

        assert "".join(chunks) == "AAPL is at 151.75"
        assert loop.result.rounds == 2
        assert loop.result.termination == "answer"
        assert loop.result.invocations[0].result == "AAPL=151.75"
        tool_message = model.calls[1][-1]
        assert isinstance(tool_message, ToolMessage)
        assert tool_message.content == "AAPL=151.75"
        assert tool_message.tool_call_id == "call_1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ceiling", [1, 2, 5])
    async def test_rounds_never_exceed_ceiling(self, simple_context, ceiling):
        # Model requests a tool on every round
        model = ScriptedChatModel([tool_call_chunk("lookup_price", '{"symbol": "AAPL"}')])
        loop = _loop(model, max_rounds=ceiling)

        chunks = await _run(loop, simple_context)

        assert loop.result.rounds <= ceiling
        assert loop.result.rounds == ceiling
        assert len(model.calls) == ceiling
        assert loop.result.termination == "ceiling"
        assert chunks[-1] == CEILING_NOTICE.format(rounds=ceiling)

    def test_ceiling_must_be_positive(self):
        with pytest.raises(ValueError):
            _loop(ScriptedChatModel("x"), max_rounds=0)


class TestToolErrors:
    @pytest.mark.asyncio
    async def test_tool_failure_returned_as_structured_error(self, simple_context):
        model = ScriptedChatModel(
            [tool_call_chunk("broken_tool", '{"symbol": "AAPL"}')],
            "Sorry, the quote service is down.",
        )
        loop = _loop(model)

        chunks = await _run(loop, simple_context)

        assert "".join(chunks) == "Sorry, the quote service is down."
        invocation = loop.result.invocations[0]
        assert invocation.error == "upstream unavailable for AAPL"
        tool_message = model.calls[1][-1]
        assert json.loads(tool_message.content) == {"error": "upstream unavailable for AAPL"}

    @pytest.mark.asyncio
    async def test_unknown_tool_returned_as_structured_error(self, simple_context):
        model = ScriptedChatModel([tool_call_chunk("delete_everything", "{}")], "Done")
        loop = _loop(model)

        await _run(loop, simple_context)

        assert json.loads(model.calls[1][-1].content) == {"error": "Unknown tool: delete_everything"}

    @pytest.mark.asyncio
    async def test_invalid_arguments_returned_as_structured_error(self, simple_context):
        model = ScriptedChatModel([tool_call_chunk("lookup_price", '{"ticker": "AAPL"}')], "Done")
        loop = _loop(model)

        await _run(loop, simple_context)

        assert loop.result.invocations[0].error is not None
        assert "error" in json.loads(model.calls[1][-1].content)

    @pytest.mark.asyncio
    async def test_malformed_argument_json_returned_as_structured_error(self, simple_context):
        model = ScriptedChatModel([tool_call_chunk("lookup_price", '{"symbol": AAPL}')], "Done")
        loop = _loop(model)

        chunks = await _run(loop, simple_context)

        assert "".join(chunks) == "Done"
        assert loop.result.rounds == 2
        assert loop.result.termination == "answer"
        assert len(model.calls) == 2
        invocation = loop.result.invocations[0]
        assert invocation.name == "lookup_price"
        assert invocation.error.startswith("Could not parse arguments for lookup_price")
        tool_message = model.calls[1][-1]
        assert isinstance(tool_message, ToolMessage)
        assert tool_message.tool_call_id == "call_1"
        assert json.loads(tool_message.content) == {"error": invocation.error}


class TestProviderFailures:
    @pytest.mark.asyncio
    async def test_provider_error_propagates(self, simple_context):
        model = ScriptedChatModel([AIMessageChunk(content="Thinking"), RuntimeError("reset")])
        loop = _loop(model)

        with pytest.raises(ProviderInvocationError):
            await _run(loop, simple_context)

    @pytest.mark.asyncio
    async def test_variant_without_tool_support_rejected(self, simple_context):
        loop = _loop(ScriptedChatModel("x"), variant=ProviderVariant.GPT_4O_MINI)

        with pytest.raises(ProviderInvocationError):
            await _run(loop, simple_context, variant=ProviderVariant.GPT_4O_MINI)
