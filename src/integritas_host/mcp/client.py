"""MCP tool server connection.

The host talks to exactly one MCP server for the lifetime of the process.
`connect_tool_server` opens the configured transport (stdio, streamable HTTP
or SSE) inside an `AsyncExitStack` owned by the application lifespan, and the
resulting `McpToolServer` is injected into every chat turn.

All results are returned as plain JSON-compatible dicts so callers (and test
fakes) never depend on MCP SDK model classes.
"""

import os
from collections.abc import Awaitable, Callable
from contextlib import AsyncExitStack
from datetime import timedelta
from typing import Any, Protocol

from mcp import ClientSession, StdioServerParameters
from mcp.client.sse import sse_client
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client
from mcp.types import Implementation
from pydantic import AnyUrl

from integritas_host import __version__
from integritas_host.config import Settings
from integritas_host.shared.exceptions import ToolServerError
from integritas_host.shared.logging import get_logger

logger = get_logger(__name__)

CLIENT_NAME = "integritas-mcp-host"

# The SDK deadline ignores progress notifications; ToolCaller bounds tool calls.
TOOL_CALL_READ_TIMEOUT = timedelta(hours=24)

ProgressCallback = Callable[[float, float | None, str | None], Awaitable[None]]


class ToolServer(Protocol):
    """Narrow interface of the tool server used by the orchestrator."""

    async def list_tools(self) -> dict[str, Any]: ...

    async def list_resources(self) -> dict[str, Any]: ...

    async def read_resource(self, uri: str) -> dict[str, Any]: ...

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        progress_callback: ProgressCallback | None = None,
    ) -> dict[str, Any]: ...


def _dump(model: Any) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


class McpToolServer:
    """`ToolServer` backed by an initialized `mcp.ClientSession`.

    Request/response correlation for concurrent calls is handled by the
    session itself.
    """

    def __init__(self, session: ClientSession):
        self.session = session

    async def list_tools(self) -> dict[str, Any]:
        return _dump(await self.session.list_tools())

    async def list_resources(self) -> dict[str, Any]:
        return _dump(await self.session.list_resources())

    async def read_resource(self, uri: str) -> dict[str, Any]:
        return _dump(await self.session.read_resource(AnyUrl(uri)))

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any],
        progress_callback: ProgressCallback | None = None,
    ) -> dict[str, Any]:
        result = await self.session.call_tool(
            name,
            arguments,
            read_timeout_seconds=TOOL_CALL_READ_TIMEOUT,
            progress_callback=progress_callback,
        )
        return _dump(result)


async def connect_tool_server(settings: Settings, stack: AsyncExitStack) -> McpToolServer:
    """Open the configured MCP transport and initialize a client session.

    The transport and session are registered on ``stack``; closing the stack
    shuts the connection down.

    Raises:
        ToolServerError: If the transport target is missing.
    """
    if settings.mcp_mode == "http":
        if not settings.mcp_http_url:
            raise ToolServerError("MCP_HTTP_URL is required when MCP_MODE=http")
        read, write, _session_id = await stack.enter_async_context(
            streamablehttp_client(settings.mcp_http_url)
        )
        target = settings.mcp_http_url
    elif settings.mcp_mode == "sse":
        if not settings.mcp_sse_url:
            raise ToolServerError("MCP_SSE_URL is required when MCP_MODE=sse")
        read, write = await stack.enter_async_context(sse_client(settings.mcp_sse_url))
        target = settings.mcp_sse_url
    else:
        params = StdioServerParameters(
            command=settings.mcp_stdio_cmd,
            args=settings.mcp_stdio_args,
            cwd=settings.mcp_cwd,
            env=dict(os.environ),
        )
        read, write = await stack.enter_async_context(stdio_client(params))
        target = " ".join([settings.mcp_stdio_cmd, *settings.mcp_stdio_args])

    session = await stack.enter_async_context(
        ClientSession(
            read,
            write,
            read_timeout_seconds=timedelta(seconds=settings.mcp_request_timeout_seconds),
            client_info=Implementation(name=CLIENT_NAME, version=__version__),
        )
    )
    await session.initialize()

    logger.info("mcp_connected", mode=settings.mcp_mode, target=target)
    return McpToolServer(session)
