"""
System-instruction assembly for chat requests.

The final instructions are an immutable, ordered tuple of named fragments:

    base -> current_date -> custom_instructions -> mode_overlay
         -> market_data -> history -> file_context

Lookups for custom instructions, market data and user history run
concurrently. Each result is placed in its named slot, so the order never
depends on which lookup finished first. A failed or timed-out lookup only
drops its own fragment; partial context is always valid context.
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import TypeVar

import structlog

from ..api.schemas.chat_models import ChatRequest, FileContext
from ..core.config import Settings
from ..core.deadline import RequestDeadline
from ..shared.sanitizers import sanitize_exception_message
from .collaborators import CustomInstructionsClient, HistorySearchClient
from .market_data import MarketContextService

logger = structlog.get_logger()

T = TypeVar("T")

FRAGMENT_ORDER: tuple[str, ...] = (
    "base",
    "current_date",
    "custom_instructions",
    "mode_overlay",
    "market_data",
    "history",
    "file_context",
)

HISTORY_FOUND_HEADER = "CLIENT RECORDS (from the user's history search):"

HISTORY_FOUND_RULES = """STRICT GROUNDING RULES FOR CLIENT FACTS:
- Answer questions about clients ONLY from the CLIENT RECORDS above.
- Do NOT invent, guess or extrapolate names, amounts, dates, account details or any other client fact that is not in those records.
- If the records do not contain the answer, say so plainly instead of filling the gap.
- Quote figures exactly as they appear in the records."""

HISTORY_NOT_FOUND_BLOCK = """CLIENT RECORDS: The user's history search returned NO matching records.
- Tell the user explicitly that no records were found for this question in their history.
- Do NOT invent or assume any client facts, names, amounts or dates.
- You may still answer general tax or business questions, clearly separated from client-specific statements."""


@dataclass(frozen=True)
class ContextFragment:
    """One named block of the system instructions."""

    name: str
    text: str


@dataclass(frozen=True)
class AssembledContext:
    """Immutable, ordered system instructions for one request."""

    fragments: tuple[ContextFragment, ...]

    def render(self) -> str:
        """Join fragments into the final system prompt."""
        return "\n\n".join(fragment.text for fragment in self.fragments)

    def names(self) -> list[str]:
        return [fragment.name for fragment in self.fragments]

    def get(self, name: str) -> str | None:
        for fragment in self.fragments:
            if fragment.name == name:
                return fragment.text
        return None


def assemble_context(slots: Mapping[str, str | None]) -> AssembledContext:
    """
    Build an AssembledContext from named slot values.

    Pure function: slot values are placed in FRAGMENT_ORDER regardless of the
    mapping's iteration order; empty or missing slots are omitted.

    Raises:
        ValueError: If a slot name is not part of FRAGMENT_ORDER
    """
    unknown = set(slots) - set(FRAGMENT_ORDER)
    if unknown:
        raise ValueError(f"Unknown context fragments: {sorted(unknown)}")

    fragments = []
    for name in FRAGMENT_ORDER:
        text = slots.get(name)
        if text and text.strip():
            fragments.append(ContextFragment(name=name, text=text.strip()))
    return AssembledContext(fragments=tuple(fragments))


# ===== Fragment builders =====


def build_current_date_block(today: date) -> str:
    return (
        f"CURRENT DATE: {today.strftime('%A, %B %d, %Y')} (UTC).\n"
        f"Treat this as today's date. If the user does not specify a tax year, "
        f"assume {today.year}."
    )


def build_custom_instructions_block(instructions: str) -> str:
    return (
        "USER CUSTOM INSTRUCTIONS (follow these unless they conflict with the rules above):\n"
        f"{instructions}"
    )


def build_mode_overlay_block(mode_instructions: str) -> str:
    return f"MODE INSTRUCTIONS:\n{mode_instructions.strip()}"


def build_market_data_block(market_context: str) -> str:
    return (
        "MARKET DATA (latest available figures; prefer these over memory and use "
        "the current date above to judge how fresh they are):\n"
        f"{market_context}"
    )


def build_history_block(records: str | None) -> str:
    """
    Exactly one of the two history blocks, chosen by the search outcome.

    ``None`` (lookup failed or timed out) and "" (no matches) both produce
    the not-found block.
    """
    if records and records.strip():
        return f"{HISTORY_FOUND_HEADER}\n{records.strip()}\n\n{HISTORY_FOUND_RULES}"
    return HISTORY_NOT_FOUND_BLOCK


def _render_file(file: FileContext) -> str:
    return (
        f"=== BEGIN FILE: {file.filename} ===\n"
        f"File Name: {file.filename}\n"
        f"File Type: {file.type}\n"
        f"File Size: {file.size} bytes\n"
        f"File Content:\n{file.content}\n"
        f"=== END FILE: {file.filename} ==="
    )


def build_file_context_block(files: list[FileContext]) -> str | None:
    """Render uploaded files; several files are enumerated for comparison."""
    if not files:
        return None

    if len(files) == 1:
        return (
            "FILE CONTEXT:\nThe user has uploaded a file with the following content:\n\n"
            f"{_render_file(files[0])}\n\n"
            "Please analyze this file content in your response and provide insights "
            "based on the uploaded document."
        )

    parts = [f"FILE CONTEXT:\nThe user has uploaded {len(files)} files:"]
    for index, file in enumerate(files, start=1):
        parts.append(f"--- File {index} of {len(files)} ---\n{_render_file(file)}")
    parts.append(
        "Analyze each file, and compare and cross-reference them where relevant: "
        "point out agreements, differences and figures that do not reconcile between files."
    )
    return "\n\n".join(parts)


# ===== Assembler =====


class ContextAssembler:
    """Builds the system instructions for a chat request."""

    def __init__(
        self,
        settings: Settings,
        base_instructions: str,
        market_context: MarketContextService | None = None,
        history_client: HistorySearchClient | None = None,
        instructions_client: CustomInstructionsClient | None = None,
        today: Callable[[], date] | None = None,
    ):
        self.settings = settings
        self.base_instructions = base_instructions
        self.market_context = market_context
        self.history_client = history_client
        self.instructions_client = instructions_client
        self._today = today or (lambda: datetime.now(UTC).date())

    async def _guarded(
        self, name: str, lookup: Awaitable[T], deadline: RequestDeadline
    ) -> T | None:
        """Run one lookup; failures and timeouts degrade to None."""
        try:
            return await asyncio.wait_for(
                lookup, timeout=deadline.cap(self.settings.subfetch_timeout_seconds)
            )
        except TimeoutError:
            logger.warning("Context lookup timed out - fragment omitted", fragment=name)
        except Exception as e:
            logger.warning(
                "Context lookup failed - fragment omitted",
                fragment=name,
                error=sanitize_exception_message(e),
                error_type=type(e).__name__,
            )
        return None

    async def _fetch_custom_instructions(self, user_id: str | None) -> str | None:
        if not user_id or self.instructions_client is None:
            return None
        return await self.instructions_client.fetch(user_id)

    async def _fetch_market_data(self, question: str) -> str | None:
        if self.market_context is None or not question:
            return None
        return await self.market_context.fetch_market_context(question)

    async def _search_history(self, request: ChatRequest, question: str) -> str:
        if self.history_client is None:
            logger.warning("History search requested but no history service configured")
            return ""
        return await self.history_client.search(
            question, request.user_id, request.workspace_owner
        )

    async def assemble(
        self, request: ChatRequest, deadline: RequestDeadline
    ) -> AssembledContext:
        """
        Assemble the system instructions for ``request``.

        Never raises for lookup failures; each failure only omits its fragment
        (or, for history search, selects the no-records block).
        """
        question = request.latest_user_message()

        custom_instructions, market_data, history = await asyncio.gather(
            self._guarded(
                "custom_instructions",
                self._fetch_custom_instructions(request.user_id),
                deadline,
            ),
            self._guarded("market_data", self._fetch_market_data(question), deadline),
            self._guarded(
                "history",
                self._search_history(request, question)
                if request.search_my_history
                else _none(),
                deadline,
            ),
        )

        slots: dict[str, str | None] = {
            "base": self.base_instructions,
            "current_date": build_current_date_block(self._today()),
            "custom_instructions": (
                build_custom_instructions_block(custom_instructions)
                if custom_instructions
                else None
            ),
            "mode_overlay": (
                build_mode_overlay_block(request.mode_instructions)
                if request.mode_instructions and request.mode_instructions.strip()
                else None
            ),
            "market_data": build_market_data_block(market_data) if market_data else None,
            "history": build_history_block(history) if request.search_my_history else None,
            "file_context": build_file_context_block(request.file_contexts()),
        }

        context = assemble_context(slots)
        logger.info(
            "System instructions assembled",
            fragments=context.names(),
            history_requested=request.search_my_history,
            history_found=bool(history),
            length=len(context.render()),
        )
        return context


async def _none() -> None:
    return None
