"""
Health check endpoint.

Reports which provider families have credentials configured, never the
credentials themselves.
"""

from typing import Any

import structlog
from fastapi import APIRouter, Depends

from ..core.config import Settings, get_settings
from ..core.model_config import FAMILIES, get_all_variants, get_family_config, get_variant_config

logger = structlog.get_logger()

router = APIRouter()


def provider_status(settings: Settings) -> dict[str, bool]:
    """Map each provider family to whether its credential is configured."""
    status = {}
    for family in FAMILIES:
        credential = get_variant_config(
            get_family_config(family).default_variant
        ).capabilities.required_credential
        status[family.value] = bool(settings.credential_for(credential))
    return status


@router.get("/health")
async def health_check(settings: Settings = Depends(get_settings)) -> dict[str, Any]:
    """Liveness, provider credential visibility and the models usable right now."""
    providers = provider_status(settings)
    available_models = [
        config.variant.value
        for config in get_all_variants()
        if providers[config.family.value]
    ]
    logger.info(
        "Health check requested",
        configured=[family for family, ok in providers.items() if ok],
    )
    return {
        "status": "ok",
        "environment": settings.environment,
        "providers": providers,
        "available_models": available_models,
    }
