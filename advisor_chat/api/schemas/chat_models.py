"""
Request models for the chat endpoint.
"""

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# ===== Request Models =====


class ChatMessage(BaseModel):
    """One conversation turn."""

    role: Literal["user", "assistant"]
    content: str = Field(..., max_length=200_000)


class FileContext(BaseModel):
    """Uploaded file whose text is injected into the system instructions."""

    filename: str = Field(
        ...,
        validation_alias=AliasChoices("filename", "name"),
        description="Original file name",
    )
    type: str = Field("text/plain", description="MIME type reported by the upload")
    size: int = Field(0, ge=0, description="File size in bytes")
    content: str = Field("", description="Extracted text content")


class ChatRequest(BaseModel):
    """Chat request as posted by the chat UI (camelCase keys)."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(
        ..., min_length=1, description="Ordered conversation, latest turn last"
    )
    model: str = Field(
        ...,
        min_length=1,
        description="Model selector: grok-4, gpt-4o, qwen-plus, sonar-pro, combined-analysis, ...",
    )
    file_context: FileContext | list[FileContext] | None = Field(
        None, alias="fileContext", description="One or many uploaded files"
    )
    search_my_history: bool = Field(
        False, alias="searchMyHistory", description="Ground answers in the user's records"
    )
    user_id: str | None = Field(None, alias="userId")
    workspace_owner: str | None = Field(
        None, alias="workspaceOwner", description="Owner whose records are searched"
    )
    mode_instructions: str | None = Field(
        None, alias="modeInstructions", description="Free-text mode overlay"
    )

    def file_contexts(self) -> list[FileContext]:
        """Uploaded files as a list regardless of request shape."""
        if self.file_context is None:
            return []
        if isinstance(self.file_context, list):
            return self.file_context
        return [self.file_context]

    def latest_user_message(self) -> str:
        """Content of the most recent user turn ("" if none)."""
        for message in reversed(self.messages):
            if message.role == "user":
                return message.content
        return ""
