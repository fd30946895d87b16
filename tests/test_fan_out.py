"""
Unit tests for combined-analysis fan-out and synthesis.
"""

import asyncio

import pytest
from fakes import ScriptedChatModel, StubModelFactory

from advisor_chat.agent.fan_out import (
    EMPTY_BRANCH_PLACEHOLDER,
    BranchOutcome,
    FanOutOrchestrator,
    build_synthesis_prompt,
)
from advisor_chat.agent.invoker import SingleProviderInvoker
from advisor_chat.api.schemas.chat_models import ChatMessage
from advisor_chat.core.deadline import RequestDeadline
from advisor_chat.core.exceptions import ProviderInvocationError
from advisor_chat.core.model_config import ProviderVariant

QUESTION = "What is the Q3 outlook?"
MESSAGES = [ChatMessage(role="user", content=QUESTION)]
BRANCHES = [ProviderVariant.GPT_4O_MINI, ProviderVariant.GROK_4, ProviderVariant.SONAR_PRO]


def _setup(branch_a, branch_b, branch_c, synthesis="Combined view"):
    models = {
        ProviderVariant.GPT_4O_MINI: ScriptedChatModel(branch_a),
        ProviderVariant.GROK_4: ScriptedChatModel(branch_b),
        ProviderVariant.SONAR_PRO: ScriptedChatModel(branch_c),
        ProviderVariant.GPT_4O: ScriptedChatModel(synthesis),
    }
    factory = StubModelFactory(models)
    fan_out = FanOutOrchestrator(SingleProviderInvoker(factory), BRANCHES, ProviderVariant.GPT_4O)
    return fan_out, factory, models


def _synthesis_input(models) -> str:
    return models[ProviderVariant.GPT_4O].calls[0][-1].content


class TestFanOut:
    @pytest.mark.asyncio
    async def test_exactly_four_calls_and_all_outputs_in_synthesis(self, simple_context):
        fan_out, factory, models = _setup("A", "B", "C")

        result = await fan_out.run(simple_context, MESSAGES, QUESTION, RequestDeadline.after(5))

        assert factory.total_calls == 4
        synthesis_input = _synthesis_input(models)
        assert QUESTION in synthesis_input
        assert "--- ANALYSIS 1: GPT-4o mini ---\nA\n" in synthesis_input
        assert "--- ANALYSIS 2: Grok 4 ---\nB\n" in synthesis_input
        assert "--- ANALYSIS 3: Sonar Pro ---\nC\n" in synthesis_input
        assert result.synthesis == "Combined view"
        assert [b.text for b in result.branches] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_all_calls_are_single_shot(self, simple_context):
        fan_out, factory, _ = _setup("A", "B", "C")

        await fan_out.run(simple_context, MESSAGES, QUESTION, RequestDeadline.after(5))

        assert all(streaming is False for _, streaming in factory.created)

    @pytest.mark.asyncio
    async def test_failing_branch_contributes_empty_text(self, simple_context):
        fan_out, factory, models = _setup(
            "Bullish on margins", RuntimeError("grok unavailable"), "Rates are the risk"
        )

        result = await fan_out.run(simple_context, MESSAGES, QUESTION, RequestDeadline.after(5))

        failed = result.branches[1]
        assert failed.text == ""
        assert failed.label == "Grok 4"
        assert "grok unavailable" in failed.error
        synthesis_input = _synthesis_input(models)
        assert "Bullish on margins" in synthesis_input
        assert "Rates are the risk" in synthesis_input
        assert EMPTY_BRANCH_PLACEHOLDER in synthesis_input
        assert result.synthesis == "Combined view"
        assert factory.total_calls == 4

    @pytest.mark.asyncio
    async def test_all_branches_failing_still_synthesizes(self, simple_context):
        fan_out, _, models = _setup(RuntimeError("a"), RuntimeError("b"), RuntimeError("c"))

        result = await fan_out.run(simple_context, MESSAGES, QUESTION, RequestDeadline.after(5))

        assert all(b.text == "" for b in result.branches)
        assert result.synthesis == "Combined view"
        assert _synthesis_input(models).count(EMPTY_BRANCH_PLACEHOLDER) == 3

    @pytest.mark.asyncio
    async def test_synthesis_waits_for_slowest_branch(self, simple_context):
        order = []

        class Slow(ScriptedChatModel):
            async def ainvoke(self, messages):
                await asyncio.sleep(0.05)
                order.append("slow branch")
                return await super().ainvoke(messages)

        class Synthesis(ScriptedChatModel):
            async def ainvoke(self, messages):
                order.append("synthesis")
                return await super().ainvoke(messages)

        models = {
            ProviderVariant.GPT_4O_MINI: ScriptedChatModel("A"),
            ProviderVariant.GROK_4: Slow("B"),
            ProviderVariant.SONAR_PRO: ScriptedChatModel("C"),
            ProviderVariant.GPT_4O: Synthesis("done"),
        }
        fan_out = FanOutOrchestrator(
            SingleProviderInvoker(StubModelFactory(models)), BRANCHES, ProviderVariant.GPT_4O
        )

        await fan_out.run(simple_context, MESSAGES, QUESTION, RequestDeadline.after(5))

        assert order == ["slow branch", "synthesis"]
        assert "B" in models[ProviderVariant.GPT_4O].calls[0][-1].content

    @pytest.mark.asyncio
    async def test_synthesis_failure_propagates(self, simple_context):
        fan_out, _, _ = _setup("A", "B", "C", synthesis=RuntimeError("synthesis down"))

        with pytest.raises(ProviderInvocationError):
            await fan_out.run(simple_context, MESSAGES, QUESTION, RequestDeadline.after(5))

    def test_requires_three_branches(self):
        with pytest.raises(ValueError):
            FanOutOrchestrator(_invoker_without_models(), BRANCHES[:2], ProviderVariant.GPT_4O)


def _invoker_without_models():
    return SingleProviderInvoker(StubModelFactory({}))


class TestSynthesisPrompt:
    def test_labels_and_question_embedded(self):
        branches = [
            BranchOutcome("GPT-4o", ProviderVariant.GPT_4O, "alpha"),
            BranchOutcome("Grok 4", ProviderVariant.GROK_4, "", error="boom"),
            BranchOutcome("Sonar Pro", ProviderVariant.SONAR_PRO, "gamma"),
        ]

        prompt = build_synthesis_prompt("Q?", branches)

        assert prompt.startswith("USER QUESTION:\nQ?")
        assert "--- ANALYSIS 1: GPT-4o ---\nalpha" in prompt
        assert f"--- ANALYSIS 2: Grok 4 ---\n{EMPTY_BRANCH_PLACEHOLDER}" in prompt
        assert "--- ANALYSIS 3: Sonar Pro ---\ngamma" in prompt
