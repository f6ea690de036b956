"""OpenAI-compatible API handlers for chat turns.

OpenAI and OpenRouter speak the same chat-completions protocol; OpenRouter
only differs in its base URL and model names.
"""

import json
from dataclasses import dataclass
from typing import Any

import openai
from openai import AsyncOpenAI
from openai.types.chat import (
    ChatCompletion,
    ChatCompletionMessageParam,
    ChatCompletionToolMessageParam,
    ChatCompletionToolParam,
)
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
class _ToolCall:
    id: str
    name: str
    arguments: str


def to_openai_tools(tools: list[ToolCatalogItem]) -> list[ChatCompletionToolParam]:
    """Catalog items as OpenAI function declarations."""
    out: list[ChatCompletionToolParam] = []
    for tool in tools:
        parameters = dict(tool.input_schema or {})
        parameters["type"] = "object"
        parameters.setdefault("properties", {})
        function: dict[str, Any] = {"name": tool.name, "parameters": parameters}
        if tool.description:
            function["description"] = tool.description
        out.append(ChatCompletionToolParam(type="function", function=function))
    return out


def to_openai_messages(
    messages: list[ChatMessage], system_prompt: str | None
) -> list[ChatCompletionMessageParam]:
    convo: list[ChatCompletionMessageParam] = []
    if system_prompt:
        convo.append({"role": "system", "content": system_prompt})
    for message in messages:
        convo.append({"role": message.role, "content": message.content})
    return convo


def parse_arguments(raw: str | None) -> dict[str, Any]:
    """Decode a function-call argument string; malformed JSON yields ``{}``."""
    try:
        parsed = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _tool_calls_of(message: Any) -> list[_ToolCall]:
    calls: list[_ToolCall] = []
    for tc in getattr(message, "tool_calls", None) or []:
        tc_id = getattr(tc, "id", None)
        tc_function = getattr(tc, "function", None)
        tc_name = getattr(tc_function, "name", None)
        tc_arguments = getattr(tc_function, "arguments", None)
        if isinstance(tc_id, str) and isinstance(tc_name, str):
            calls.append(
                _ToolCall(
                    id=tc_id,
                    name=tc_name,
                    arguments=tc_arguments if isinstance(tc_arguments, str) else "{}",
                )
            )
    return calls


class OpenAIHandler:
    """Handles OpenAI chat-completions interactions.

    Includes:
    - API calls with retry logic
    - Bounded tool-call loop
    - Optional JSON-object response mode
    """

    provider = "openai"

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        max_tokens: int,
    ):
        """Initialize the handler.

        Args:
            client: OpenAI async client (base URL already configured)
            model: Default model name (e.g., gpt-4o-mini)
            max_tokens: Maximum tokens per response
        """
        self.client = client
        self.model = model
        self.max_tokens = max_tokens

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception_type((openai.APITimeoutError, openai.APIConnectionError)),
        reraise=True,
    )
    async def call_api(
        self,
        messages: list[ChatCompletionMessageParam],
        *,
        model: str,
        tools: list[ChatCompletionToolParam],
        response_as_json: bool = False,
    ) -> ChatCompletion:
        """Call the chat-completions endpoint.

        ``tools`` is omitted from the request when empty; some providers
        reject an empty tool list.

        Raises:
            openai.APITimeoutError: On timeout (after retries)
            openai.APIConnectionError: On connection error (after retries)
        """
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": self.max_tokens,
            "messages": messages,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        if response_as_json:
            kwargs["response_format"] = {"type": "json_object"}
        return await self.client.chat.completions.create(**kwargs)

    async def run(self, messages: list[ChatMessage], options: RunOptions) -> HandlerResult:
        """Run the tool-call loop until the model answers without tool calls."""
        model = options.model or self.model
        convo = to_openai_messages(messages, options.system_prompt)
        tools = to_openai_tools(options.tools)
        steps: list[ToolStep] = []

        for round_number in range(max(1, options.max_tool_rounds)):
            response = await self.call_api(
                convo,
                model=model,
                tools=tools,
                response_as_json=options.response_as_json,
            )
            message = response.choices[0].message
            tool_calls = _tool_calls_of(message)
            if not tool_calls:
                return HandlerResult(text=getattr(message, "content", None) or "", steps=steps)

            logger.debug(
                "openai_tool_round",
                provider=self.provider,
                round=round_number + 1,
                tools=[tc.name for tc in tool_calls],
            )

            tool_messages: list[ChatCompletionToolMessageParam] = []
            for tc in tool_calls:
                args = parse_arguments(tc.arguments)
                result = await options.call_tool(tc.name, args)
                steps.append(
                    ToolStep(
                        name=tc.name,
                        args=args,
                        result=summarize_tool_result(result),
                        output=result,
                    )
                )
                tool_messages.append(
                    ChatCompletionToolMessageParam(
                        role="tool",
                        tool_call_id=tc.id,
                        content=tool_result_text(result),
                    )
                )

            convo.append(
                {
                    "role": "assistant",
                    "content": getattr(message, "content", None) or "",
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {"name": tc.name, "arguments": tc.arguments},
                        }
                        for tc in tool_calls
                    ],
                }
            )
            convo.extend(tool_messages)

        return HandlerResult(text=LOOP_LIMIT_TEXT, steps=steps)


class OpenRouterHandler(OpenAIHandler):
    """OpenAI-compatible handler pointed at OpenRouter."""

    provider = "openrouter"
