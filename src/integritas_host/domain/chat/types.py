"""Shared chat domain types.

Keep these types small and provider-agnostic so the Anthropic, OpenAI and
mock handlers can reuse them without circular imports.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

Role = Literal["user", "assistant", "system"]

RECOGNIZED_ROLES: frozenset[str] = frozenset({"user", "assistant", "system"})

# Tools whose result is authoritative for the user-facing summary.
PRIMARY_TOOLS: frozenset[str] = frozenset({"stamp_data", "verify_data"})
# Internal health/readiness tools; never offered to the model.
DIAGNOSTIC_TOOLS: frozenset[str] = frozenset({"health", "ready"})

STAMP_TOOL = "stamp_data"
VERIFY_TOOL = "verify_data"

CHAIN_NAME = "Minima"
CREDENTIAL_FIELD = "api_key"

RAW_SAMPLE_CHARS = 600

LOOP_LIMIT_TEXT = "Tool loop limit reached. Please try again or refine the request."


@dataclass
class ChatMessage:
    """A message in the chat conversation."""

    role: Role
    content: str


@dataclass
class ToolCatalogItem:
    """A tool offered to the model, with a sanitized object schema."""

    name: str
    input_schema: dict[str, Any]
    description: str | None = None


@dataclass
class ToolStep:
    """Trace entry for one tool invocation.

    ``output`` keeps the full tool result for finalization and id extraction;
    only the capped ``result`` summary is serialized.
    """

    name: str
    args: dict[str, Any]
    ok: bool = True
    ms: int = 0
    result: dict[str, Any] | None = None
    error: str | None = None
    tx_id: str | None = None
    uid: str | None = None
    output: Any = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "args": self.args,
            "ok": self.ok,
            "ms": self.ms,
        }
        if self.result is not None:
            data["result"] = self.result
        if self.error is not None:
            data["error"] = self.error
        if self.tx_id is not None:
            data["tx_id"] = self.tx_id
        if self.uid is not None:
            data["uid"] = self.uid
        return data


@dataclass
class HandlerResult:
    """Outcome of one provider handler run."""

    text: str
    steps: list[ToolStep] = field(default_factory=list)


ToolCallback = Callable[[str, dict[str, Any]], Awaitable[Any]]


@dataclass
class RunOptions:
    """Per-run options shared by every provider handler."""

    tools: list[ToolCatalogItem]
    call_tool: ToolCallback
    model: str | None = None
    system_prompt: str | None = None
    max_tool_rounds: int = 3
    response_as_json: bool = False


class ChatHandler(Protocol):
    """Uniform interface of the provider handlers."""

    provider: str
    model: str

    async def run(self, messages: list[ChatMessage], options: RunOptions) -> HandlerResult: ...


# ----- Tool result envelope -----


@dataclass
class ToolResultEnvelope:
    """Partial view over an MCP tool result.

    Every field is optional; tool servers return different subsets.
    """

    summary: str | None = None
    message: str | None = None
    error: Any = None
    structured_content: dict[str, Any] = field(default_factory=dict)
    content: list[dict[str, Any]] = field(default_factory=list)
    is_error: bool = False

    @classmethod
    def from_result(cls, result: Any) -> ToolResultEnvelope:
        if not isinstance(result, dict):
            return cls()
        structured = result.get("structuredContent")
        if not isinstance(structured, dict):
            nested = result.get("result")
            structured = nested.get("structuredContent") if isinstance(nested, dict) else None
        content = result.get("content")
        return cls(
            summary=_as_text(result.get("summary")),
            message=_as_text(result.get("message")),
            error=result.get("error"),
            structured_content=structured if isinstance(structured, dict) else {},
            content=[c for c in content if isinstance(c, dict)] if isinstance(content, list) else [],
            is_error=bool(result.get("isError")),
        )


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def structured_content(result: Any) -> dict[str, Any]:
    """Structured result block of a tool result, or an empty dict."""
    return ToolResultEnvelope.from_result(result).structured_content


def result_summary(result: Any) -> str | None:
    """Best short description of a tool result.

    Prefers the structured ``summary``, then top-level summary, message and
    error fields.
    """
    envelope = ToolResultEnvelope.from_result(result)
    summary = envelope.structured_content.get("summary")
    if summary is not None:
        return _as_text(summary)
    for candidate in (envelope.summary, envelope.message):
        if candidate:
            return candidate
    if envelope.error is not None:
        if isinstance(envelope.error, dict):
            return _as_text(envelope.error.get("message")) or clamp(envelope.error, 200)
        return _as_text(envelope.error)
    return None


def clamp(value: Any, limit: int = 800) -> str:
    """Serialize ``value`` and cap it at ``limit`` characters."""
    if isinstance(value, str):
        text = value
    else:
        try:
            text = json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            text = str(value)
    return text[:limit] + "…" if len(text) > limit else text


def summarize_tool_result(result: Any) -> dict[str, Any]:
    """Trace view of a tool result: optional summary plus a capped raw sample."""
    summary: dict[str, Any] = {}
    text = result_summary(result)
    if text is not None:
        summary["summary"] = text
    summary["raw"] = clamp(result, RAW_SAMPLE_CHARS)
    return summary


def normalize_messages(raw_messages: list[Any]) -> list[ChatMessage]:
    """Keep only recognized roles; never return an empty conversation.

    Accepts `ChatMessage` instances or ``{"role", "content"}`` mappings.
    """
    normalized: list[ChatMessage] = []
    for raw in raw_messages:
        if isinstance(raw, ChatMessage):
            role, content = raw.role, raw.content
        elif isinstance(raw, dict):
            role, content = raw.get("role"), raw.get("content")
        else:
            role, content = getattr(raw, "role", None), getattr(raw, "content", None)
        if role not in RECOGNIZED_ROLES:
            continue
        normalized.append(ChatMessage(role=role, content="" if content is None else str(content)))

    if not normalized:
        normalized.append(ChatMessage(role="user", content="Hello"))
    return normalized


def latest_user_text(messages: list[ChatMessage]) -> str:
    """Content of the most recent user message ("" when there is none)."""
    for message in reversed(messages):
        if message.role == "user":
            return message.content
    return ""


def tool_result_text(result: Any) -> str:
    """Tool result serialized for a provider's tool-result message."""
    try:
        return json.dumps(result, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(result)
