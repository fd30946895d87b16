"""
Mode selection for chat requests.

Decides, from the model selector and the whole conversation, which provider
variant serves the request and in which mode:

- COMBINED_ANALYSIS: ``model == "combined-analysis"``; three branch providers
  plus one synthesis call, regardless of any other routing
- PORTFOLIO: a trigger phrase appears anywhere in the conversation; the
  variant is upgraded to its family's tool-capable variant
- DEFAULT: the variant resolved from the model selector
"""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

import structlog

from ..api.schemas.chat_models import ChatMessage
from ..core.config import Settings
from ..core.exceptions import ValidationError
from ..core.model_config import (
    ProviderFamily,
    ProviderVariant,
    get_family_config,
    get_variant_config,
    resolve_variant,
)

logger = structlog.get_logger()

COMBINED_ANALYSIS_MODEL = "combined-analysis"


class ChatMode(str, Enum):
    DEFAULT = "default"
    PORTFOLIO = "portfolio"
    COMBINED_ANALYSIS = "combined_analysis"


@dataclass(frozen=True)
class ModeSelection:
    """Routing decision for one request."""

    mode: ChatMode
    variant: ProviderVariant  # Synthesis variant in combined-analysis mode
    family: ProviderFamily


def conversation_triggers_portfolio(
    messages: Sequence[ChatMessage], trigger_phrases: Sequence[str]
) -> bool:
    """True when any turn (user or assistant) contains a trigger phrase."""
    phrases = [phrase.lower() for phrase in trigger_phrases if phrase.strip()]
    return any(
        phrase in message.content.lower() for message in messages for phrase in phrases
    )


def select_mode(
    model: str, messages: Sequence[ChatMessage], settings: Settings
) -> ModeSelection:
    """
    Select mode and provider variant.

    Pure and deterministic: identical inputs always give the same selection.

    Raises:
        ConfigurationError: If the model selector maps to no provider
        ValidationError: If portfolio mode is requested for a family that
            cannot run the tool-calling loop
    """
    if model.strip().lower() == COMBINED_ANALYSIS_MODEL:
        variant = resolve_variant(settings.synthesis_model)
        return ModeSelection(
            mode=ChatMode.COMBINED_ANALYSIS,
            variant=variant,
            family=get_variant_config(variant).family,
        )

    variant = resolve_variant(model)
    family = get_variant_config(variant).family

    if conversation_triggers_portfolio(messages, settings.portfolio_trigger_phrases):
        tool_variant = get_family_config(family).tool_variant
        if tool_variant is None:
            raise ValidationError(
                f"Portfolio mode is not supported for model '{model}'. "
                "Choose a Grok, GPT or Qwen model.",
                model=model,
                family=family.value,
            )
        if tool_variant != variant:
            logger.info(
                "Portfolio mode - upgrading to tool-capable variant",
                requested=variant.value,
                upgraded=tool_variant.value,
            )
        return ModeSelection(mode=ChatMode.PORTFOLIO, variant=tool_variant, family=family)

    return ModeSelection(mode=ChatMode.DEFAULT, variant=variant, family=family)
