"""FastAPI dependencies for API routes."""

from fastapi import Request

from integritas_host.config import get_settings
from integritas_host.domain.chat.service import ChatService
from integritas_host.mcp.client import ToolServer
from integritas_host.shared.exceptions import ToolServerError


def get_tool_server(request: Request) -> ToolServer:
    """Tool server connected at startup (or injected by tests)."""
    tool_server = getattr(request.app.state, "tool_server", None)
    if tool_server is None:
        raise ToolServerError("MCP client not initialized")
    return tool_server


def get_chat_service(request: Request) -> ChatService:
    """Chat service bound to the shared tool server."""
    return ChatService(get_tool_server(request), settings=get_settings())
