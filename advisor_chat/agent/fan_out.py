"""
Combined analysis: three providers answer the same question concurrently,
then a fourth call synthesizes their answers.

Branch isolation: a failing branch contributes "" under its label and never
cancels the others. Synthesis starts only after every branch has settled.
"""

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from ..api.schemas.chat_models import ChatMessage
from ..core.deadline import RequestDeadline
from ..core.model_config import ProviderVariant, get_variant_config
from ..services.context_assembler import AssembledContext, assemble_context
from ..shared.sanitizers import sanitize_exception_message
from .invoker import SingleProviderInvoker

logger = structlog.get_logger()

EMPTY_BRANCH_PLACEHOLDER = "(no response - this analyst was unavailable)"

SYNTHESIS_SYSTEM_PROMPT = """You are the lead analyst combining three independent analyses into one answer.

Rules:
- Merge the analyses into a single, well-structured response to the user's question
- Where the analyses agree, state the conclusion once with confidence
- Where they disagree, say so and explain which view is better supported and why
- Ignore any analysis marked as unavailable; do not mention missing analysts unless all are missing
- Do not refer to the analysts by name; write as one voice"""


@dataclass(frozen=True)
class BranchOutcome:
    """Settled result of one branch. ``text`` is "" when the branch failed."""

    label: str
    variant: ProviderVariant
    text: str
    error: str | None = None


@dataclass(frozen=True)
class FanOutResult:
    branches: tuple[BranchOutcome, BranchOutcome, BranchOutcome]
    synthesis: str


def build_synthesis_prompt(question: str, branches: Sequence[BranchOutcome]) -> str:
    """Embed the user's question and every labeled branch output."""
    sections = [f"USER QUESTION:\n{question}"]
    for index, branch in enumerate(branches, start=1):
        body = branch.text.strip() or EMPTY_BRANCH_PLACEHOLDER
        sections.append(f"--- ANALYSIS {index}: {branch.label} ---\n{body}")
    sections.append("Write the combined answer to the user's question.")
    return "\n\n".join(sections)


class FanOutOrchestrator:
    """Runs the three branches and the synthesis call."""

    def __init__(
        self,
        invoker: SingleProviderInvoker,
        branch_variants: Sequence[ProviderVariant],
        synthesis_variant: ProviderVariant,
    ):
        if len(branch_variants) != 3:
            raise ValueError(
                f"Combined analysis needs exactly 3 branch models, got {len(branch_variants)}"
            )
        self.invoker = invoker
        self.branch_variants = tuple(branch_variants)
        self.synthesis_variant = synthesis_variant

    async def _run_branch(
        self,
        variant: ProviderVariant,
        context: AssembledContext,
        messages: Sequence[ChatMessage],
        deadline: RequestDeadline,
    ) -> str:
        # Single-shot for every branch: results must be complete before synthesis
        return await self.invoker.complete(variant, context, messages, deadline)

    async def run(
        self,
        context: AssembledContext,
        messages: Sequence[ChatMessage],
        question: str,
        deadline: RequestDeadline,
    ) -> FanOutResult:
        """
        Fan out, wait for all branches, synthesize.

        Raises:
            ProviderInvocationError: The synthesis call failed
            RequestTimeoutError: Deadline expired during synthesis
        """
        logger.info(
            "Combined analysis fan-out started",
            branches=[v.value for v in self.branch_variants],
            synthesis=self.synthesis_variant.value,
        )

        # Full barrier: gather returns only once every branch has settled
        settled = await asyncio.gather(
            *(self._run_branch(v, context, messages, deadline) for v in self.branch_variants),
            return_exceptions=True,
        )

        outcomes = []
        for variant, result in zip(self.branch_variants, settled, strict=True):
            label = get_variant_config(variant).display_name
            if isinstance(result, BaseException):
                error = sanitize_exception_message(result)
                logger.warning(
                    "Combined analysis branch failed - contributing empty output",
                    branch=label,
                    variant=variant.value,
                    error=error,
                    error_type=type(result).__name__,
                )
                outcomes.append(BranchOutcome(label, variant, "", error))
            else:
                outcomes.append(BranchOutcome(label, variant, result))

        succeeded = sum(1 for o in outcomes if o.error is None)
        if succeeded == 0:
            logger.warning("All combined analysis branches failed - synthesizing on empty inputs")
        else:
            logger.info("Combined analysis branches settled", succeeded=succeeded, failed=3 - succeeded)

        synthesis_context = assemble_context({"base": SYNTHESIS_SYSTEM_PROMPT})
        synthesis_input = [
            ChatMessage(role="user", content=build_synthesis_prompt(question, outcomes))
        ]
        synthesis = await self.invoker.complete(
            self.synthesis_variant, synthesis_context, synthesis_input, deadline
        )

        logger.info("Combined analysis synthesized", length=len(synthesis))
        return FanOutResult(branches=(outcomes[0], outcomes[1], outcomes[2]), synthesis=synthesis)
