"""Chat domain module.

This module runs chat turns: it scopes MCP tools to the user's intent, drives
the provider's tool-calling loop and finalizes the answer.

Modules:
- service: Main ChatService orchestrator
- tool_caller: MCP tool execution with timeouts and tracing
- anthropic_handler / openai_handler / mock_handler: provider loops
- handler_factory: provider selection and model allowlists
- finalizer: user-facing answer repair
- llm_errors: LLM transport error classification
"""

from integritas_host.domain.chat.handler_factory import LLMChoice, choose_handler
from integritas_host.domain.chat.service import ChatService, ChatTurnRequest, ChatTurnResult
from integritas_host.domain.chat.tool_caller import ToolCaller
from integritas_host.domain.chat.types import ChatMessage, ToolStep

__all__ = [
    "ChatService",
    "ChatTurnRequest",
    "ChatTurnResult",
    "ChatMessage",
    "LLMChoice",
    "ToolCaller",
    "ToolStep",
    "choose_handler",
]
