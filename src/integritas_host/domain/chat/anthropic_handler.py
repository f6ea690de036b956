"""Anthropic/Claude API handler for chat turns.

This module handles Anthropic-specific API calls and the tool-use loop.
"""

from dataclasses import dataclass
from typing import Any

import anthropic
from anthropic.types import MessageParam, ToolParam, ToolResultBlockParam
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from integritas_host.domain.chat.types import (
    LOOP_LIMIT_TEXT,
    ChatMessage,
    HandlerResult,
    RunOptions,
    ToolCatalogItem,
    ToolStep,
    summarize_tool_result,
    tool_result_text,
)
from integritas_host.shared.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class _ToolUse:
    id: str
    name: str
    input: dict[str, Any]


def to_anthropic_tools(tools: list[ToolCatalogItem]) -> list[ToolParam]:
    """Catalog items as Anthropic tool declarations."""
    out: list[ToolParam] = []
    for tool in tools:
        schema = dict(tool.input_schema or {})
        schema["type"] = "object"
        schema.setdefault("properties", {})
        param = ToolParam(name=tool.name, input_schema=schema)
        if tool.description:
            param["description"] = tool.description
        out.append(param)
    return out


def to_anthropic_messages(
    messages: list[ChatMessage], system_prompt: str | None
) -> tuple[str, list[MessageParam]]:
    """Split system-role messages into the system prompt.

    Anthropic accepts only user/assistant turns in ``messages``.
    """
    system_parts = [system_prompt] if system_prompt else []
    convo: list[MessageParam] = []
    for message in messages:
        if message.role == "system":
            if message.content:
                system_parts.append(message.content)
            continue
        convo.append(MessageParam(role=message.role, content=message.content))
    return "\n\n".join(system_parts), convo


def _block_to_param(block: Any) -> dict[str, Any] | None:
    block_type = getattr(block, "type", None)
    if block_type == "text":
        return {"type": "text", "text": getattr(block, "text", "") or ""}
    if block_type == "tool_use":
        return {
            "type": "tool_use",
            "id": block.id,
            "name": block.name,
            "input": getattr(block, "input", None) or {},
        }
    return None


class AnthropicHandler:
    """Handles Anthropic/Claude API interactions.

    Includes:
    - API calls with retry logic
    - Bounded tool-use loop
    - Response text extraction
    """

    provider = "anthropic"

    def __init__(
        self,
        client: anthropic.AsyncAnthropic,
        model: str,
        max_tokens: int,
    ):
        """Initialize the Anthropic handler.

        Args:
            client: Anthropic async client
            model: Default model name (e.g., claude-3-5-sonnet-20240620)
            max_tokens: Maximum tokens per response
        """
        self.client = client
        self.model = model
        self.max_tokens = max_tokens

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception_type((anthropic.APITimeoutError, anthropic.APIConnectionError)),
        reraise=True,
    )
    async def call_api(
        self,
        messages: list[MessageParam],
        *,
        model: str,
        system: str,
        tools: list[ToolParam],
    ) -> anthropic.types.Message:
        """Call Anthropic API with retry logic for transient errors.

        Args:
            messages: Conversation in Anthropic format
            model: Model to use for this call
            system: System prompt ("" for none)
            tools: Tool declarations (omitted from the request when empty)

        Returns:
            Anthropic Message response
        """
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": self.max_tokens,
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = tools
        return await self.client.messages.create(**kwargs)

    async def run(self, messages: list[ChatMessage], options: RunOptions) -> HandlerResult:
        """Run the tool-use loop until Claude stops asking for tools.

        JSON output is requested through the system prompt only; the
        Messages API has no JSON response mode.
        """
        model = options.model or self.model
        system, convo = to_anthropic_messages(messages, options.system_prompt)
        tools = to_anthropic_tools(options.tools)
        steps: list[ToolStep] = []

        for round_number in range(max(1, options.max_tool_rounds)):
            response = await self.call_api(convo, model=model, system=system, tools=tools)
            content = list(getattr(response, "content", None) or [])

            tool_uses = [
                _ToolUse(
                    id=block.id,
                    name=block.name,
                    input=_tool_input(block),
                )
                for block in content
                if getattr(block, "type", None) == "tool_use"
            ]
            if not tool_uses:
                return HandlerResult(text=_extract_text(content), steps=steps)

            logger.debug(
                "anthropic_tool_round",
                round=round_number + 1,
                tools=[use.name for use in tool_uses],
            )

            tool_results: list[ToolResultBlockParam] = []
            for use in tool_uses:
                result = await options.call_tool(use.name, use.input)
                steps.append(
                    ToolStep(
                        name=use.name,
                        args=use.input,
                        result=summarize_tool_result(result),
                        output=result,
                    )
                )
                tool_results.append(
                    ToolResultBlockParam(
                        type="tool_result",
                        tool_use_id=use.id,
                        content=tool_result_text(result),
                    )
                )

            assistant_blocks = [p for p in map(_block_to_param, content) if p is not None]
            convo.append(MessageParam(role="assistant", content=assistant_blocks))
            convo.append(MessageParam(role="user", content=tool_results))

        return HandlerResult(text=LOOP_LIMIT_TEXT, steps=steps)


def _tool_input(block: Any) -> dict[str, Any]:
    raw = getattr(block, "input", None)
    return raw if isinstance(raw, dict) else {}


def _extract_text(content: list[Any]) -> str:
    return "".join(
        getattr(block, "text", "") or ""
        for block in content
        if getattr(block, "type", None) == "text"
    )
