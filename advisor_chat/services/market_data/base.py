"""
Base class for Alpha Vantage market data access.
Provides HTTP client management and error sanitization.
"""

from typing import Any

import httpx
import structlog

from ...core.config import Settings
from ...core.exceptions import ConfigurationError, ExternalServiceError
from ...shared.sanitizers import sanitize_api_response, sanitize_text

logger = structlog.get_logger()


class AlphaVantageBase:
    """
    Base class for Alpha Vantage API interactions.

    Provides:
    - HTTP client with connection pooling
    - API key management
    - Response sanitization (removes API keys from logs)
    - Resource cleanup
    """

    base_url = "https://www.alphavantage.co/query"

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        """Initialize service with Alpha Vantage API key and persistent HTTP client.

        Args:
            settings: Application settings with API keys
            client: Optional shared httpx client (created when omitted)
        """
        self.settings = settings
        self.api_key = settings.alpha_vantage_api_key

        self.client = client or httpx.AsyncClient(
            timeout=15.0,
            limits=httpx.Limits(
                max_keepalive_connections=5,
                max_connections=10,
                keepalive_expiry=30.0,
            ),
        )

        if not self.api_key:
            logger.warning("Alpha Vantage API key not configured")

    async def close(self) -> None:
        """Close HTTP client and cleanup resources."""
        await self.client.aclose()
        logger.info("Alpha Vantage client closed")

    async def _query(self, function: str, **params: Any) -> dict[str, Any]:
        """
        Run one Alpha Vantage query and return the decoded JSON payload.

        Raises:
            ConfigurationError: If no API key is configured
            ExternalServiceError: On transport errors, non-200 status or
                rate-limit/error payloads
        """
        if not self.api_key:
            raise ConfigurationError(
                "Alpha Vantage API key not configured",
                credential="alpha_vantage_api_key",
            )

        try:
            response = await self.client.get(
                self.base_url,
                params={"function": function, "apikey": self.api_key, **params},
            )
        except httpx.RequestError as e:
            raise ExternalServiceError(
                f"Alpha Vantage request failed: {sanitize_text(str(e))}",
                service="alpha_vantage",
                function=function,
            ) from e

        if response.status_code != 200:
            raise ExternalServiceError(
                f"Alpha Vantage API error: {response.status_code} - "
                f"{sanitize_text(response.text)}",
                service="alpha_vantage",
                function=function,
                status_code=response.status_code,
            )

        data: dict[str, Any] = response.json()

        # Rate limiting and invalid keys come back as 200 with a message field
        if "Note" in data or "Information" in data or "Error Message" in data:
            sanitized = sanitize_api_response(data)
            logger.warning(
                "Alpha Vantage returned an error payload",
                function=function,
                response=sanitized,
            )
            raise ExternalServiceError(
                "Alpha Vantage returned no data",
                service="alpha_vantage",
                function=function,
            )

        return data
