"""
LangChain chat-model construction for every provider family.

- XAI (Grok): ChatOpenAI against the xAI OpenAI-compatible endpoint, live
  search enabled at setup via ``search_parameters``
- OPENAI (GPT): ChatOpenAI
- QWEN: ChatTongyi (langchain-community) via Alibaba Cloud DashScope,
  ``enable_search`` at setup
- PERPLEXITY (Sonar): ChatOpenAI against the Perplexity endpoint; search is
  built into the model
"""

from typing import Any

import structlog
from langchain_community.chat_models import ChatTongyi
from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from ..api.schemas.chat_models import ChatMessage
from ..core.config import Settings
from ..core.exceptions import ConfigurationError
from ..core.model_config import (
    ProviderFamily,
    ProviderVariant,
    get_family_config,
    get_variant_config,
)

logger = structlog.get_logger()


BASE_SYSTEM_PROMPT = """You are a research assistant for accountants, tax preparers and small-business advisors.

Your job:
- Answer tax, bookkeeping and business questions accurately and concisely
- Cite the authority you rely on (IRS publication, code section, form instructions) when you state a rule
- Show the calculation when you give a number, with the inputs you used
- Point out thresholds, phase-outs and filing deadlines that could change the answer
- Say clearly when a question depends on facts you do not have, and list what you would need

Style:
- Lead with the direct answer, then the supporting detail
- Use short headings and bullet lists for multi-part answers
- Keep tables compact; only include columns that matter
- Never present an estimate as a certainty

You are not a substitute for professional judgement; flag situations that need a licensed professional's review."""


def ensure_credentials(variant: ProviderVariant, settings: Settings) -> None:
    """
    Check the variant's credential before any provider call.

    Raises:
        ConfigurationError: If the required API key is not configured
    """
    config = get_variant_config(variant)
    credential = config.capabilities.required_credential
    if not settings.credential_for(credential):
        logger.error(
            "Provider credential missing",
            variant=variant.value,
            family=config.family.value,
            credential=credential,
        )
        raise ConfigurationError(
            f"{config.display_name} is not available: {credential.upper()} is not configured",
            variant=variant.value,
            credential=credential,
        )


def to_langchain_messages(
    system_prompt: str, messages: list[ChatMessage]
) -> list[BaseMessage]:
    """
    Convert the conversation to LangChain message objects.

    Args:
        system_prompt: Rendered system instructions (prepended as SystemMessage)
        messages: Conversation turns in order

    Returns:
        List of LangChain message objects
    """
    lc_messages: list[BaseMessage] = [SystemMessage(content=system_prompt)]
    for msg in messages:
        if msg.role == "user":
            lc_messages.append(HumanMessage(content=msg.content))
        else:
            lc_messages.append(AIMessage(content=msg.content))
    return lc_messages


class ChatModelFactory:
    """Builds a configured LangChain chat model for a provider variant."""

    def __init__(self, settings: Settings):
        self.settings = settings

    def create(self, variant: ProviderVariant, *, streaming: bool = True) -> BaseChatModel:
        """
        Create a chat model for ``variant``.

        Built-in search is switched on here, at setup, for families that
        support it; it is never toggled per turn.

        Raises:
            ConfigurationError: If the variant's credential is missing
        """
        ensure_credentials(variant, self.settings)

        config = get_variant_config(variant)
        family = get_family_config(config.family)
        api_key = self.settings.credential_for(config.capabilities.required_credential)
        search = config.capabilities.built_in_search

        if config.family == ProviderFamily.QWEN:
            model_kwargs: dict[str, Any] = {"result_format": "message"}
            if search:
                model_kwargs["enable_search"] = True
            chat: BaseChatModel = ChatTongyi(  # type: ignore[call-arg]  # LangChain stubs incomplete
                model_name=variant.value,
                dashscope_api_key=api_key,
                streaming=streaming,
                model_kwargs=model_kwargs,
            )
        else:
            extra_body: dict[str, Any] | None = None
            if config.family == ProviderFamily.XAI and search:
                extra_body = {"search_parameters": {"mode": "auto"}}
            chat = ChatOpenAI(
                model=variant.value,
                api_key=api_key,
                base_url=family.base_url,
                temperature=self.settings.default_llm_temperature,
                max_tokens=self.settings.max_output_tokens,
                streaming=streaming,
                extra_body=extra_body,
            )

        logger.info(
            "Chat model initialized",
            variant=variant.value,
            family=config.family.value,
            streaming=streaming,
            built_in_search=search,
        )
        return chat
