"""
Bounded tool-calling loop (portfolio mode).

Each round streams the model's reply, forwarding text as it arrives. When the
reply requests tools, every tool is executed locally and its result (or a
structured error) goes back to the model as a ToolMessage. Calls whose
arguments are not valid JSON are answered with an error too. The loop ends
on a reply without tool calls or when the round ceiling is reached.
"""

import asyncio
import json
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

import structlog
from langchain_core.messages import AIMessage, AIMessageChunk, ToolMessage
from langchain_core.tools import BaseTool

from ..api.schemas.chat_models import ChatMessage
from ..core.deadline import RequestDeadline
from ..core.exceptions import AppError, ProviderInvocationError, RequestTimeoutError
from ..core.model_config import ProviderVariant, get_variant_config
from ..services.context_assembler import AssembledContext
from ..shared.sanitizers import sanitize_exception_message
from .invoker import content_text
from .llm_client import ChatModelFactory, to_langchain_messages

logger = structlog.get_logger()

CEILING_NOTICE = "\n\n_Stopped after {rounds} tool rounds without a final answer._"


@dataclass(frozen=True)
class ToolInvocation:
    """One executed tool call. Exactly one of result/error is set."""

    name: str
    arguments: dict[str, Any]
    result: str | None = None
    error: str | None = None

    def to_model_content(self) -> str:
        if self.error is not None:
            return json.dumps({"error": self.error})
        return self.result or ""


@dataclass
class ToolLoopResult:
    """Outcome of a finished loop, for observability."""

    rounds: int = 0
    termination: Literal["answer", "ceiling"] | None = None
    invocations: list[ToolInvocation] = field(default_factory=list)


def _serialize(result: Any) -> str:
    if isinstance(result, str):
        return result
    return json.dumps(result, default=str)


def _unparsed(call: dict[str, Any]) -> ToolInvocation:
    """Invocation for a tool call whose arguments the provider sent as invalid JSON."""
    name = call.get("name") or ""
    detail = call.get("error") or "invalid JSON"
    reason = f"Could not parse arguments for {name or 'tool call'}: {detail}"
    logger.warning("Model sent unparseable tool arguments", tool=name, arguments=call.get("args"))
    return ToolInvocation(name, {}, error=reason)


class ToolCallingLoop:
    """
    One loop run per request.

    ``result`` is populated once ``stream`` has been fully consumed.
    """

    def __init__(
        self,
        model_factory: ChatModelFactory,
        tools: Sequence[BaseTool],
        max_rounds: int,
    ):
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self.model_factory = model_factory
        self.tools = {t.name: t for t in tools}
        self.max_rounds = max_rounds
        self.result = ToolLoopResult()

    async def _execute(self, call: dict[str, Any], deadline: RequestDeadline) -> ToolInvocation:
        name = call.get("name", "")
        arguments = call.get("args") or {}
        tool = self.tools.get(name)
        if tool is None:
            logger.warning("Model requested unknown tool", tool=name)
            return ToolInvocation(name, arguments, error=f"Unknown tool: {name}")

        try:
            result = await deadline.run(tool.ainvoke(arguments), operation=f"tool {name}")
        except RequestTimeoutError:
            raise
        except Exception as e:
            reason = sanitize_exception_message(e)
            logger.warning(
                "Tool execution failed - returning error to model",
                tool=name,
                error=reason,
                error_type=type(e).__name__,
            )
            return ToolInvocation(name, arguments, error=reason)

        logger.info("Tool executed", tool=name)
        return ToolInvocation(name, arguments, result=_serialize(result))

    async def stream(
        self,
        variant: ProviderVariant,
        context: AssembledContext,
        messages: Sequence[ChatMessage],
        deadline: RequestDeadline,
    ) -> AsyncIterator[str]:
        """
        Run the loop, yielding the model's text as it streams.

        Raises:
            ProviderInvocationError: Provider failed mid-call (not retried)
            RequestTimeoutError: Request deadline expired
        """
        if not get_variant_config(variant).capabilities.tool_calling:
            raise ProviderInvocationError(
                f"{variant.value} cannot run the tool-calling loop", variant=variant.value
            )

        chat = self.model_factory.create(variant, streaming=True).bind_tools(
            list(self.tools.values())
        )
        lc_messages = to_langchain_messages(context.render(), list(messages))
        self.result = ToolLoopResult()

        while self.result.rounds < self.max_rounds:
            self.result.rounds += 1
            reply: AIMessageChunk | None = None
            try:
                async for chunk in deadline.iterate(
                    chat.astream(lc_messages), operation=f"{variant.value} tool round"
                ):
                    reply = chunk if reply is None else reply + chunk
                    text = content_text(chunk.content)
                    if text:
                        yield text
            except AppError:
                raise
            except Exception as e:
                message = sanitize_exception_message(e)
                logger.error(
                    "Tool loop provider call failed",
                    variant=variant.value,
                    round=self.result.rounds,
                    error=message,
                )
                raise ProviderInvocationError(
                    f"{get_variant_config(variant).display_name} request failed: {message}",
                    variant=variant.value,
                    convention="tool_loop",
                ) from e

            tool_calls = reply.tool_calls if reply is not None else []
            invalid_calls = reply.invalid_tool_calls if reply is not None else []
            if not tool_calls and not invalid_calls:
                self.result.termination = "answer"
                break

            if self.result.rounds >= self.max_rounds:
                self.result.termination = "ceiling"
                yield CEILING_NOTICE.format(rounds=self.result.rounds)
                break

            lc_messages.append(
                AIMessage(
                    content=reply.content,
                    tool_calls=tool_calls,
                    invalid_tool_calls=invalid_calls,
                )
            )
            invocations = await asyncio.gather(
                *(self._execute(call, deadline) for call in tool_calls)
            )
            answered = [
                *zip(tool_calls, invocations, strict=True),
                *((call, _unparsed(call)) for call in invalid_calls),
            ]
            for call, invocation in answered:
                self.result.invocations.append(invocation)
                lc_messages.append(
                    ToolMessage(
                        content=invocation.to_model_content(),
                        tool_call_id=call.get("id") or invocation.name,
                        name=invocation.name,
                    )
                )

        logger.info(
            "Tool loop finished",
            variant=variant.value,
            rounds=self.result.rounds,
            termination=self.result.termination,
            tool_calls=len(self.result.invocations),
            tool_errors=sum(1 for i in self.result.invocations if i.error is not None),
        )
