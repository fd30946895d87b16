"""
Provider capability registry for LLM selection.
Centralizes provider variants, their calling conventions and credentials.
"""

from dataclasses import dataclass
from enum import Enum

from .exceptions import ConfigurationError


class ProviderFamily(str, Enum):
    """LLM vendor families reachable from the chat endpoint."""

    XAI = "xai"
    OPENAI = "openai"
    QWEN = "qwen"
    PERPLEXITY = "perplexity"


class ProviderVariant(str, Enum):
    """Concrete model ids. The enum value is the provider-side model name."""

    GROK_4_FAST = "grok-4-fast"
    GROK_4 = "grok-4"
    GPT_4O_MINI = "gpt-4o-mini"
    GPT_4O = "gpt-4o"
    QWEN_PLUS = "qwen-plus"
    QWEN_MAX = "qwen-max"
    SONAR = "sonar"
    SONAR_PRO = "sonar-pro"


@dataclass(frozen=True)
class ProviderCapabilities:
    """Calling-convention profile of a provider variant."""

    streaming: bool
    tool_calling: bool
    built_in_search: bool
    required_credential: str  # Settings field holding the API key


@dataclass(frozen=True)
class VariantConfig:
    """Complete configuration for a provider variant."""

    variant: ProviderVariant
    family: ProviderFamily
    display_name: str
    capabilities: ProviderCapabilities


@dataclass(frozen=True)
class FamilyConfig:
    """Routing defaults for a provider family."""

    family: ProviderFamily
    model_prefix: str
    default_variant: ProviderVariant
    tool_variant: ProviderVariant | None  # None: family cannot run the tool loop
    base_url: str | None = None  # OpenAI-compatible endpoint, None for native SDKs


_XAI = ProviderCapabilities(
    streaming=True, tool_calling=False, built_in_search=True,
    required_credential="xai_api_key",
)
_XAI_TOOLS = ProviderCapabilities(
    streaming=True, tool_calling=True, built_in_search=True,
    required_credential="xai_api_key",
)
_OPENAI = ProviderCapabilities(
    streaming=True, tool_calling=False, built_in_search=False,
    required_credential="openai_api_key",
)
_OPENAI_TOOLS = ProviderCapabilities(
    streaming=True, tool_calling=True, built_in_search=False,
    required_credential="openai_api_key",
)
_QWEN = ProviderCapabilities(
    streaming=True, tool_calling=False, built_in_search=True,
    required_credential="dashscope_api_key",
)
_QWEN_TOOLS = ProviderCapabilities(
    streaming=True, tool_calling=True, built_in_search=True,
    required_credential="dashscope_api_key",
)
_PERPLEXITY = ProviderCapabilities(
    streaming=False, tool_calling=False, built_in_search=True,
    required_credential="perplexity_api_key",
)


# ===== Registry =====

PROVIDER_REGISTRY: dict[ProviderVariant, VariantConfig] = {
    ProviderVariant.GROK_4_FAST: VariantConfig(
        ProviderVariant.GROK_4_FAST, ProviderFamily.XAI, "Grok 4 Fast", _XAI
    ),
    ProviderVariant.GROK_4: VariantConfig(
        ProviderVariant.GROK_4, ProviderFamily.XAI, "Grok 4", _XAI_TOOLS
    ),
    ProviderVariant.GPT_4O_MINI: VariantConfig(
        ProviderVariant.GPT_4O_MINI, ProviderFamily.OPENAI, "GPT-4o mini", _OPENAI
    ),
    ProviderVariant.GPT_4O: VariantConfig(
        ProviderVariant.GPT_4O, ProviderFamily.OPENAI, "GPT-4o", _OPENAI_TOOLS
    ),
    ProviderVariant.QWEN_PLUS: VariantConfig(
        ProviderVariant.QWEN_PLUS, ProviderFamily.QWEN, "Qwen Plus", _QWEN
    ),
    ProviderVariant.QWEN_MAX: VariantConfig(
        ProviderVariant.QWEN_MAX, ProviderFamily.QWEN, "Qwen Max", _QWEN_TOOLS
    ),
    ProviderVariant.SONAR: VariantConfig(
        ProviderVariant.SONAR, ProviderFamily.PERPLEXITY, "Sonar", _PERPLEXITY
    ),
    ProviderVariant.SONAR_PRO: VariantConfig(
        ProviderVariant.SONAR_PRO, ProviderFamily.PERPLEXITY, "Sonar Pro", _PERPLEXITY
    ),
}

FAMILIES: dict[ProviderFamily, FamilyConfig] = {
    ProviderFamily.XAI: FamilyConfig(
        family=ProviderFamily.XAI,
        model_prefix="grok",
        default_variant=ProviderVariant.GROK_4_FAST,
        tool_variant=ProviderVariant.GROK_4,
        base_url="https://api.x.ai/v1",
    ),
    ProviderFamily.OPENAI: FamilyConfig(
        family=ProviderFamily.OPENAI,
        model_prefix="gpt",
        default_variant=ProviderVariant.GPT_4O_MINI,
        tool_variant=ProviderVariant.GPT_4O,
    ),
    ProviderFamily.QWEN: FamilyConfig(
        family=ProviderFamily.QWEN,
        model_prefix="qwen",
        default_variant=ProviderVariant.QWEN_PLUS,
        tool_variant=ProviderVariant.QWEN_MAX,
    ),
    ProviderFamily.PERPLEXITY: FamilyConfig(
        family=ProviderFamily.PERPLEXITY,
        model_prefix="sonar",
        default_variant=ProviderVariant.SONAR,
        tool_variant=None,
        base_url="https://api.perplexity.ai",
    ),
}

# Registry must be total over the enum
_missing = set(ProviderVariant) - set(PROVIDER_REGISTRY)
if _missing:
    raise RuntimeError(f"Provider variants missing from registry: {sorted(_missing)}")


def get_variant_config(variant: ProviderVariant) -> VariantConfig:
    """Get registry entry for a variant."""
    return PROVIDER_REGISTRY[variant]


def get_family_config(family: ProviderFamily) -> FamilyConfig:
    """Get routing defaults for a family."""
    return FAMILIES[family]


def resolve_variant(model: str) -> ProviderVariant:
    """
    Map a model-selector string to a provider variant.

    Exact model ids win; otherwise the closed prefix table picks the family
    default. Anything else is a configuration error, never a silent fallback.

    Args:
        model: Model selector from the request (e.g., "grok-4", "gpt-4.1")

    Returns:
        ProviderVariant for the selector

    Raises:
        ConfigurationError: If the selector matches no variant or family prefix
    """
    normalized = model.strip().lower()
    try:
        return ProviderVariant(normalized)
    except ValueError:
        pass

    for family_config in FAMILIES.values():
        if normalized.startswith(family_config.model_prefix):
            return family_config.default_variant

    raise ConfigurationError(
        f"Unsupported model '{model}'. No provider is configured for it.",
        model=model,
    )


def get_all_variants() -> list[VariantConfig]:
    """Get all registered variants grouped by family."""
    return sorted(
        PROVIDER_REGISTRY.values(), key=lambda v: (v.family.value, v.variant.value)
    )
