"""API request and response schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class APIRequestModel(BaseModel):
    """Base model for request bodies.

    Forbids unknown fields to avoid silently accepting typos or outdated clients.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class MessageInput(BaseModel):
    """A single message in the conversation.

    Roles are not restricted here; unknown roles are dropped during
    normalization instead of failing the request.
    """

    role: str
    content: str = ""


class LLMSelection(APIRequestModel):
    """Optional provider/model choice for one request."""

    provider: str | None = None
    model: str | None = None


class ChatRequest(APIRequestModel):
    """Request body of ``POST /chat``."""

    messages: list[MessageInput] = Field(
        ...,
        min_length=1,
        description="Conversation so far, oldest first",
    )
    tool_args: dict[str, dict[str, Any]] | None = Field(
        None,
        alias="toolArgs",
        description="Default arguments per tool name; model arguments win on conflicts",
    )
    llm: LLMSelection | None = None
    api_key: str | None = Field(None, alias="apiKey")
    user_id: str | None = Field(None, alias="userId")


class ToolStepOut(BaseModel):
    """Trace entry for one tool invocation (arguments are redacted)."""

    name: str
    args: dict[str, Any]
    ok: bool
    ms: int
    result: dict[str, Any] | None = None
    error: str | None = None
    tx_id: str | None = None
    uid: str | None = None


class ChatResponse(BaseModel):
    """Response body of ``POST /chat``."""

    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(..., serialization_alias="requestId")
    user_id: str = Field(..., serialization_alias="userId")
    final_text: str = Field(..., serialization_alias="finalText")
    links: list[str] | None = None
    sources: list[str] | None = None
    tool_steps: list[ToolStepOut] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Error body returned by the exception handlers."""

    error: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
