"""
Chat request pipeline.

Received -> ModeSelected -> ContextAssembling -> {Invoking | FanningOut}
-> [Synthesizing] -> Transporting -> Done

Mode selection is pure and runs first, together with the credential checks
for every variant the request will use, so configuration errors surface
before any external call. Every later stage is bounded by one
RequestDeadline.
"""

import uuid
from collections.abc import AsyncIterator
from typing import Any

import structlog

from ..api.schemas.chat_models import ChatRequest
from ..core.config import Settings
from ..core.deadline import RequestDeadline
from ..core.model_config import ProviderVariant, resolve_variant
from ..services.context_assembler import AssembledContext, ContextAssembler
from ..services.market_data import AlphaVantageMarketDataService
from .fan_out import FanOutOrchestrator
from .invoker import ResponseEnvelope, SingleProviderInvoker
from .llm_client import ChatModelFactory, ensure_credentials
from .mode_selector import COMBINED_ANALYSIS_MODEL, ChatMode, ModeSelection, select_mode
from .tool_loop import ToolCallingLoop
from .tools import create_portfolio_tools

logger = structlog.get_logger()


class ChatOrchestrator:
    """Turns a ChatRequest into a ResponseEnvelope."""

    def __init__(
        self,
        settings: Settings,
        assembler: ContextAssembler,
        model_factory: ChatModelFactory,
        market_data: AlphaVantageMarketDataService | None = None,
    ):
        self.settings = settings
        self.assembler = assembler
        self.model_factory = model_factory
        self.invoker = SingleProviderInvoker(model_factory)
        self.portfolio_tools = create_portfolio_tools(market_data)

    def _branch_variants(self) -> list[ProviderVariant]:
        return [resolve_variant(model) for model in self.settings.combined_branch_models]

    def _variants_in_use(self, selection: ModeSelection) -> list[ProviderVariant]:
        if selection.mode == ChatMode.COMBINED_ANALYSIS:
            return [*self._branch_variants(), selection.variant]
        return [selection.variant]

    async def handle(self, request: ChatRequest) -> ResponseEnvelope:
        """
        Run the pipeline up to the point where response chunks can be pulled.

        Raises:
            ConfigurationError: Unknown model or missing credential (no provider call made)
            ValidationError: Unsupported mode/model combination
        """
        request_id = uuid.uuid4().hex[:12]
        log = logger.bind(request_id=request_id, model=request.model)
        log.info("Chat request state", state="received", message_count=len(request.messages))

        selection = select_mode(request.model, request.messages, self.settings)
        for variant in self._variants_in_use(selection):
            ensure_credentials(variant, self.settings)
        log.info(
            "Chat request state",
            state="mode_selected",
            mode=selection.mode.value,
            variant=selection.variant.value,
            family=selection.family.value,
        )

        deadline = RequestDeadline.after(self.settings.request_timeout_seconds)

        log.info("Chat request state", state="context_assembling")
        context = await self.assembler.assemble(request, deadline)

        if selection.mode == ChatMode.COMBINED_ANALYSIS:
            log.info("Chat request state", state="fanning_out")
            return ResponseEnvelope(
                chunks=self._combined_analysis(request, context, deadline, log),
                streaming=False,
                source=COMBINED_ANALYSIS_MODEL,
            )

        if selection.mode == ChatMode.PORTFOLIO:
            log.info("Chat request state", state="invoking", convention="tool_loop")
            loop = ToolCallingLoop(
                self.model_factory, self.portfolio_tools, self.settings.tool_loop_max_rounds
            )
            return ResponseEnvelope(
                chunks=loop.stream(selection.variant, context, request.messages, deadline),
                streaming=True,
                source=selection.variant.value,
            )

        envelope = self.invoker.invoke(selection.variant, context, request.messages, deadline)
        log.info(
            "Chat request state",
            state="invoking",
            convention="stream" if envelope.streaming else "single_shot",
        )
        return envelope

    async def _combined_analysis(
        self,
        request: ChatRequest,
        context: AssembledContext,
        deadline: RequestDeadline,
        log: Any,
    ) -> AsyncIterator[str]:
        fan_out = FanOutOrchestrator(
            self.invoker, self._branch_variants(), resolve_variant(self.settings.synthesis_model)
        )
        result = await fan_out.run(
            context, request.messages, request.latest_user_message(), deadline
        )
        log.info(
            "Chat request state",
            state="synthesized",
            failed_branches=[b.label for b in result.branches if b.error is not None],
        )
        if result.synthesis:
            yield result.synthesis
