"""Offline handler for local development and tests.

A last user message of the form ``TOOL <name> <json-args>`` calls that tool
once; anything else gets a canned reply without touching tools.
"""

import json
import re
from typing import Any

from integritas_host.domain.chat.types import (
    ChatMessage,
    HandlerResult,
    RunOptions,
    ToolStep,
    latest_user_text,
    summarize_tool_result,
)

TOOL_COMMAND = re.compile(r"^TOOL\s+(\w+)\s*(.*)$", re.IGNORECASE | re.DOTALL)

NO_TOOL_TEXT = "mock response (no tool invoked)"


class MockHandler:
    """Deterministic stand-in for a model provider."""

    provider = "mock"

    def __init__(self, model: str = "mock"):
        self.model = model

    async def run(self, messages: list[ChatMessage], options: RunOptions) -> HandlerResult:
        match = TOOL_COMMAND.match(latest_user_text(messages).strip())
        if not match:
            return HandlerResult(text=NO_TOOL_TEXT)

        name = match.group(1)
        args: dict[str, Any] = {}
        try:
            parsed = json.loads(match.group(2) or "{}")
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            args = parsed

        result = await options.call_tool(name, args)
        step = ToolStep(name=name, args=args, result=summarize_tool_result(result), output=result)
        return HandlerResult(text="ok", steps=[step])
