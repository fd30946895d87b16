"""
HTTP clients for the record-keeping collaborators of the chat core.

- HistorySearchClient: free-text search over a user's client records
- CustomInstructionsClient: per-user custom instructions store

Both raise on failure; the context assembler decides how failures degrade.
"""

from typing import Any

import httpx
import structlog

from ..core.config import Settings
from ..core.exceptions import ConfigurationError, ExternalServiceError
from ..shared.sanitizers import sanitize_text

logger = structlog.get_logger()


class _CollaboratorClient:
    """Shared httpx plumbing (bearer auth, status/transport error mapping)."""

    service_name = "collaborator"

    def __init__(self, base_url: str, api_token: str = "", client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.client = client or httpx.AsyncClient(timeout=15.0)

    def _headers(self) -> dict[str, str]:
        if not self.api_token:
            return {}
        return {"Authorization": f"Bearer {self.api_token}"}

    def _require_url(self) -> None:
        if not self.base_url:
            raise ConfigurationError(
                f"{self.service_name} URL not configured", service=self.service_name
            )

    async def _request(self, method: str, **kwargs: Any) -> dict[str, Any]:
        self._require_url()
        try:
            response = await self.client.request(
                method, self.base_url, headers=self._headers(), **kwargs
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                f"{self.service_name} returned {e.response.status_code}",
                service=self.service_name,
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise ExternalServiceError(
                f"{self.service_name} request failed: {sanitize_text(str(e))}",
                service=self.service_name,
            ) from e

        data: dict[str, Any] = response.json()
        return data

    async def close(self) -> None:
        await self.client.aclose()


class HistorySearchClient(_CollaboratorClient):
    """Searches the user's (or workspace owner's) client records."""

    service_name = "history_search"

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None = None) -> "HistorySearchClient":
        return cls(settings.history_search_url, settings.collaborator_api_token, client)

    async def search(
        self, query: str, user_id: str | None, workspace_owner: str | None = None
    ) -> str:
        """
        Search records relevant to ``query``.

        Returns:
            Matching record text, "" when nothing matched
        """
        data = await self._request(
            "POST",
            json={
                "query": query,
                "userId": user_id,
                "workspaceOwner": workspace_owner or user_id,
            },
        )
        context = str(data.get("context") or "").strip()
        logger.info(
            "History search completed",
            user_id=user_id,
            workspace_owner=workspace_owner,
            found=bool(context),
            context_length=len(context),
        )
        return context


class CustomInstructionsClient(_CollaboratorClient):
    """Reads the custom instructions a user saved for the assistant."""

    service_name = "custom_instructions"

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None = None) -> "CustomInstructionsClient":
        return cls(settings.custom_instructions_url, settings.collaborator_api_token, client)

    async def fetch(self, user_id: str) -> str | None:
        """Return the user's instructions, or None when none are saved."""
        data = await self._request("GET", params={"userId": user_id})
        instructions = str(data.get("instructions") or "").strip()
        return instructions or None
